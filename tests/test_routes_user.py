import pytest

from coinbot.errors import PersistenceFailure


def test_get_coins(client, fake_store):
    user = fake_store.add_user(1001, coins=15)
    resp = client.get(f"/api/user/{user['id']}/coins")
    assert resp.status_code == 200
    assert resp.get_json() == {"coins": 15}


def test_get_coins_unknown_user(client, fake_store):
    resp = client.get("/api/user/404/coins")
    assert resp.status_code == 404


@pytest.mark.parametrize('bad_id', ['abc', '12abc', '-1', '1.5', '99999999999'])
def test_get_coins_bad_id(client, fake_store, bad_id):
    resp = client.get(f"/api/user/{bad_id}/coins")
    assert resp.status_code == 400


def test_get_coins_store_down(client, fake_store):
    fake_store.fail_with = PersistenceFailure('connection refused')
    resp = client.get("/api/user/1/coins")
    assert resp.status_code == 500


def test_withdraw_insufficient_then_success(client, fake_store):
    user = fake_store.add_user(1001, coins=15)
    url = f"/api/user/{user['id']}/coins/withdraw"

    resp = client.post(url, json={"amount": 20})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Insufficient funds", "currentCoins": 15}
    assert fake_store.get_balance(user['id']) == 15

    resp = client.post(url, json={"amount": 10})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["newBalance"] == 5
    assert fake_store.get_balance(user['id']) == 5


def test_withdraw_whole_float_amount(client, fake_store):
    user = fake_store.add_user(1001, coins=15)
    resp = client.post(f"/api/user/{user['id']}/coins/withdraw", json={"amount": 15.0})
    assert resp.get_json()["newBalance"] == 0


@pytest.mark.parametrize('body', [{}, {"amount": 0}, {"amount": -5}, {"amount": "10"},
                                  {"amount": True}, {"amount": 2.5}, {"amount": None},
                                  [{"amount": 5}], "10", 7, None])
def test_withdraw_invalid_amount(client, fake_store, body):
    user = fake_store.add_user(1001, coins=15)
    resp = client.post(f"/api/user/{user['id']}/coins/withdraw", json=body)
    assert resp.status_code == 400
    assert fake_store.get_balance(user['id']) == 15


def test_withdraw_non_json_body(client, fake_store):
    user = fake_store.add_user(1001, coins=15)
    resp = client.post(f"/api/user/{user['id']}/coins/withdraw", data="amount=5")
    assert resp.status_code == 400


def test_withdraw_bad_id(client, fake_store):
    resp = client.post("/api/user/x1/coins/withdraw", json={"amount": 1})
    assert resp.status_code == 400


def test_withdraw_unknown_user(client, fake_store):
    resp = client.post("/api/user/77/coins/withdraw", json={"amount": 1})
    assert resp.status_code == 404


def test_withdraw_store_down(client, fake_store):
    user = fake_store.add_user(1001, coins=15)
    fake_store.fail_with = PersistenceFailure('deadlock detected')
    resp = client.post(f"/api/user/{user['id']}/coins/withdraw", json={"amount": 1})
    assert resp.status_code == 500
    fake_store.fail_with = None
    assert fake_store.get_balance(user['id']) == 15


def test_withdraw_wrong_method(client, fake_store):
    assert client.get("/api/user/1/coins/withdraw").status_code == 405


def test_cors_preflight(client, fake_store):
    resp = client.options("/api/user/1/coins/withdraw", headers={
        "Origin": "https://frontend.example",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "Content-Type",
    })
    assert resp.status_code == 200
    assert resp.headers.get("Access-Control-Allow-Origin") == "https://frontend.example"


def test_health(client, fake_store):
    fake_store.add_user(1)
    resp = client.get("/api/health")
    assert resp.get_json()["users"] == 1
    fake_store.fail_with = PersistenceFailure('down')
    assert client.get("/api/health").status_code == 500
