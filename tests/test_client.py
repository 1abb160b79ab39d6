from unittest import mock

import pytest
import requests

from video_notes import client as client_mod
from video_notes.client import FAILURE_MESSAGE, TIMEOUT_MESSAGE, SummarizeClient
from video_notes.retry import Scheduler, SubmitOutcome

URL = "https://youtu.be/dQw4w9WgXcQ"


def response(status, body=None, headers=None):
    resp = mock.Mock(status_code=status, ok=200 <= status < 400, headers=headers or {})
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


def client_with(resp=None, error=None):
    session = mock.Mock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = resp
    return SummarizeClient("http://notes.local/", session=session, timeout=5), session


class TestSummarizeClient:
    def test_success_posts_url_and_returns_body(self):
        body = {"summary": "S", "notes": "N", "videoId": "dQw4w9WgXcQ", "method": "captions"}
        c, session = client_with(response(200, body))

        out = c.summarize(URL)

        assert out.ok and out.data == body
        session.post.assert_called_once_with("http://notes.local/api/summarize", json={"url": URL}, timeout=5)

    def test_rate_limit_uses_body_hint_and_keeps_transcript(self):
        body = {"error": "Usage limit reached.", "code": "rate_limited", "retryAfter": 12, "transcript": "words"}
        c, _ = client_with(response(429, body, {"Retry-After": "99"}))
        out = c.summarize(URL)

        assert out.kind == "rate_limited"
        assert out.retry_after == 12
        assert out.data["transcript"] == "words"
        assert out.message == "Usage limit reached."

    def test_rate_limit_falls_back_to_header(self):
        c, _ = client_with(response(429, {"error": "slow down"}, {"Retry-After": "45"}))
        assert c.summarize(URL).retry_after == 45

    def test_rate_limit_without_any_hint(self):
        c, _ = client_with(response(429, None))
        out = c.summarize(URL)
        assert out.kind == "rate_limited"
        assert out.retry_after is None

    def test_gateway_timeout_message(self):
        c, _ = client_with(response(504, {"error": "Processing timed out.", "code": "timeout"}))
        out = c.summarize(URL)
        assert out.kind == "failed"
        assert out.message == TIMEOUT_MESSAGE

    def test_server_error_message_is_passed_through(self):
        c, _ = client_with(response(400, {"error": "Invalid YouTube URL", "code": "invalid_reference"}))
        assert c.summarize(URL).message == "Invalid YouTube URL"

    def test_unparseable_error_body(self):
        c, _ = client_with(response(502, None))
        assert c.summarize(URL).message == FAILURE_MESSAGE

    def test_client_side_timeout(self):
        c, _ = client_with(error=requests.Timeout("read timed out"))
        assert c.summarize(URL).message == TIMEOUT_MESSAGE

    def test_connection_error(self):
        c, _ = client_with(error=requests.ConnectionError("refused"))
        out = c.summarize(URL)
        assert out.kind == "failed"
        assert out.message.startswith("Could not reach the server")


class TestMain:
    @pytest.fixture
    def patched(self, monkeypatch, clock):
        outcomes = []

        class ScriptedClient:
            def __init__(self, base_url, session=None, timeout=70.0):
                self.base_url = base_url

            def summarize(self, reference):
                return outcomes.pop(0)

        monkeypatch.setattr(client_mod, "SummarizeClient", ScriptedClient)
        monkeypatch.setattr(client_mod, "Scheduler", lambda: Scheduler(clock=clock, sleep=clock.sleep))
        return outcomes

    def test_success_prints_result(self, patched, capsys):
        patched.append(SubmitOutcome("success", data={"summary": "Short summary", "notes": "- point"}))
        assert client_mod.main([URL]) == 0
        out = capsys.readouterr().out
        assert "Short summary" in out and "- point" in out

    def test_cooldown_then_automatic_retry(self, patched, clock, capsys):
        patched.extend([
            SubmitOutcome("rate_limited", data={"transcript": "partial words"}, retry_after=3),
            SubmitOutcome("success", data={"summary": "Done", "notes": ""}),
        ])
        assert client_mod.main([URL]) == 0
        assert clock() == 3
        out = capsys.readouterr().out
        assert "partial words" in out and "Done" in out

    def test_failure_exit_code(self, patched, capsys):
        patched.append(SubmitOutcome("failed", message="Invalid YouTube URL"))
        assert client_mod.main([URL]) == 1
        assert "Invalid YouTube URL" in capsys.readouterr().err
