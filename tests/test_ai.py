import json

import pytest
import requests

from coinbot import ai
from coinbot.config import config
from coinbot.errors import UpstreamUnavailable


class FakeResponse:

    def __init__(self, status_code=200, body=None, text=''):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError('No JSON object could be decoded')
        return self._body


def completion(content):
    return {'choices': [{'message': {'role': 'assistant', 'content': content}}]}


@pytest.fixture
def openrouter(monkeypatch):
    monkeypatch.setattr(config, 'OPENROUTER_KEY', 'sk-test')
    calls = []
    state = {'response': FakeResponse(body=completion('Hi there!'))}

    def post(url, headers=None, json=None, timeout=None):
        calls.append({'url': url, 'headers': headers, 'json': json, 'timeout': timeout})
        response = state['response']
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(ai.http_requests, 'post', post)
    state['calls'] = calls
    return state


def test_call_returns_content(openrouter):
    assert ai.call_openrouter([{'role': 'user', 'content': 'hi'}]) == 'Hi there!'
    call = openrouter['calls'][0]
    assert call['headers']['Authorization'] == 'Bearer sk-test'
    assert call['json']['model'] == config.AI_MODEL
    assert 'response_format' not in call['json']


def test_json_mode(openrouter):
    ai.call_openrouter([{'role': 'user', 'content': 'quiz'}], json_mode=True)
    assert openrouter['calls'][0]['json']['response_format'] == {'type': 'json_object'}


def test_missing_key(openrouter, monkeypatch):
    monkeypatch.setattr(config, 'OPENROUTER_KEY', '')
    with pytest.raises(UpstreamUnavailable):
        ai.call_openrouter([{'role': 'user', 'content': 'hi'}])
    assert openrouter['calls'] == []


@pytest.mark.parametrize('response', [
    FakeResponse(status_code=502, text='Bad gateway'),
    FakeResponse(body={'error': 'quota'}),
    FakeResponse(body=None),
    FakeResponse(body=completion('')),
    requests.ConnectionError('connection reset'),
])
def test_upstream_failures(openrouter, response):
    openrouter['response'] = response
    with pytest.raises(UpstreamUnavailable):
        ai.call_openrouter([{'role': 'user', 'content': 'hi'}])


def test_chat_reply_uses_and_extends_history(openrouter, monkeypatch):
    stored = []
    history = [{'role': 'user', 'content': 'hello'}, {'role': 'assistant', 'content': 'Hi!'}]
    monkeypatch.setattr(ai, 'recent_chat_turns', lambda user_id: list(history))
    monkeypatch.setattr(ai, 'append_chat_turns', lambda user_id, turns: stored.append((user_id, turns)))

    assert ai.chat_reply(7, 'what is 2+2?') == 'Hi there!'
    messages = openrouter['calls'][0]['json']['messages']
    assert messages[:2] == history
    assert messages[-1] == {'role': 'user', 'content': 'User asked: "what is 2+2?"'}
    assert stored == [(7, [{'role': 'user', 'content': 'what is 2+2?'},
                           {'role': 'assistant', 'content': 'Hi there!'}])]


def test_chat_reply_anonymous_keeps_no_history(openrouter, monkeypatch):
    def unexpected(*args, **kwargs):
        raise AssertionError('history must not be touched')
    monkeypatch.setattr(ai, 'recent_chat_turns', unexpected)
    monkeypatch.setattr(ai, 'append_chat_turns', unexpected)
    assert ai.chat_reply(None, 'hi') == 'Hi there!'


def test_chat_reply_failure_keeps_history_untouched(openrouter, monkeypatch):
    stored = []
    monkeypatch.setattr(ai, 'recent_chat_turns', lambda user_id: [])
    monkeypatch.setattr(ai, 'append_chat_turns', lambda user_id, turns: stored.append(turns))
    openrouter['response'] = FakeResponse(status_code=500)
    with pytest.raises(UpstreamUnavailable):
        ai.chat_reply(7, 'hi')
    assert stored == []


class TestParseQuiz:

    def test_valid(self):
        raw = json.dumps({'question': 'Largest planet?',
                          'options': ['A) Mars', 'B) Jupiter', 'C) Venus', 'D) Earth'], 'answer': 'B'})
        assert ai.parse_quiz(raw) == {
            'question': 'Largest planet?',
            'options': ['A) Mars', 'B) Jupiter', 'C) Venus', 'D) Earth'],
            'correct_index': 1,
        }

    @pytest.mark.parametrize('raw', [
        'not json',
        json.dumps(['A', 'B']),
        json.dumps({'question': 'Q?', 'options': ['A) x', 'B) y']}),
        json.dumps({'question': '', 'options': ['A) x', 'B) y'], 'answer': 'A'}),
        json.dumps({'question': 'Q?', 'options': ['A) x'], 'answer': 'A'}),
        json.dumps({'question': 'Q?', 'options': ['A) x', 'B) y'], 'answer': 'E'}),
    ])
    def test_invalid(self, raw):
        with pytest.raises(UpstreamUnavailable):
            ai.parse_quiz(raw)

    def test_generate_quiz_requests_json(self, openrouter):
        openrouter['response'] = FakeResponse(body=completion(json.dumps(
            {'question': 'Q?', 'options': ['A) x', 'B) y'], 'answer': 'A'})))
        assert ai.generate_quiz()['correct_index'] == 0
        assert openrouter['calls'][0]['json']['response_format'] == {'type': 'json_object'}
