import time
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from tests.conftest import LONG_TEXT, FakeAcquirer, FakeGenerator, rate_limited, transcript
from video_notes.main import app, get_pipeline_factory, get_settings
from video_notes.models import AudioPayload, Failed, Success, Unavailable
from video_notes.pipeline import SummaryPipeline

URL = "https://youtu.be/dQw4w9WgXcQ"


@pytest.fixture
def configure(settings):
    """Install settings and a pipeline built from fakes for the duration of a test."""

    def _configure(transcripts=(), audios=(), generator=None, settings_override=None, pipeline_cls=SummaryPipeline):
        active = settings_override or settings
        app.dependency_overrides[get_settings] = lambda: active
        app.dependency_overrides[get_pipeline_factory] = lambda: (
            lambda s: pipeline_cls(s, generator or FakeGenerator(), list(transcripts), list(audios))
        )

    yield _configure
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


class TestInput:
    def test_missing_url_is_400(self, configure, client):
        configure()
        resp = client.post("/api/summarize", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "URL is required"

    def test_malformed_body_is_400(self, configure, client):
        configure()
        resp = client.post("/api/summarize", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "missing_reference"

    def test_invalid_reference_is_400(self, configure, client):
        configure()
        resp = client.post("/api/summarize", json={"url": "https://vimeo.com/1"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid YouTube URL", "code": "invalid_reference"}

    def test_credential_missing_is_500_before_acquisition(self, settings, client):
        app.dependency_overrides[get_settings] = lambda: replace(settings, gemini_api_key=None)
        try:
            resp = client.post("/api/summarize", json={"url": URL})
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 500
        assert resp.json()["code"] == "credential_missing"


class TestResponses:
    def test_success(self, configure, client):
        configure([FakeAcquirer("t1", Success(transcript()))])
        resp = client.post("/api/summarize", json={"url": URL})
        assert resp.status_code == 200
        assert resp.json() == {
            "summary": "S",
            "notes": "N",
            "transcript": LONG_TEXT,
            "videoId": "dQw4w9WgXcQ",
            "method": "captions",
        }

    def test_video_reference_alias_and_short_path(self, configure, client):
        configure([FakeAcquirer("t1", Success(transcript()))])
        resp = client.post("/summarize", json={"videoReference": URL})
        assert resp.status_code == 200

    def test_rate_limited_with_partial_transcript(self, configure, client):
        configure([FakeAcquirer("t1", Success(transcript()))], generator=FakeGenerator(error=rate_limited(30)))
        resp = client.post("/api/summarize", json={"url": URL})

        assert resp.status_code == 429
        body = resp.json()
        assert body["transcript"] == LONG_TEXT
        assert body["retryAfter"] == 30
        assert resp.headers["Retry-After"] == "30"

    def test_rate_limited_without_transcript(self, configure, client):
        audio = AudioPayload(b"\x00" * 10)
        configure([], [FakeAcquirer("a1", Success(audio))], generator=FakeGenerator(error=rate_limited(5)))
        body = client.post("/api/summarize", json={"url": URL}).json()
        assert "transcript" not in body
        assert body["retryAfter"] == 5

    def test_exhausted_is_500_with_actionable_message(self, configure, client):
        configure([FakeAcquirer("t1", Unavailable())], [FakeAcquirer("a1", Failed("timeout"))])
        resp = client.post("/api/summarize", json={"url": URL})
        assert resp.status_code == 500
        assert "shorter video" in resp.json()["error"]

    def test_platform_timeout_is_504(self, configure, settings, client):
        def slow(target):
            time.sleep(0.5)
            return Unavailable()

        configure([FakeAcquirer("t1", slow)], settings_override=replace(settings, request_timeout=0.05))
        resp = client.post("/api/summarize", json={"url": URL})
        assert resp.status_code == 504
        assert resp.json()["code"] == "timeout"

    def test_unexpected_error_is_generic_500(self, configure, client):
        class Broken(SummaryPipeline):
            def run(self, reference):
                raise RuntimeError("secret upstream detail")

        configure(pipeline_cls=Broken)
        resp = client.post("/api/summarize", json={"url": URL})
        assert resp.status_code == 500
        assert "secret" not in resp.json()["error"]
