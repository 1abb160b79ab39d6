from __future__ import annotations

from typing import Callable, List, Optional, Union

import pytest

from video_notes.config import Settings
from video_notes.errors import RateLimited
from video_notes.models import (
    AcquisitionOutcome,
    AudioPayload,
    RateLimitSignal,
    TranscriptPayload,
    VideoTarget,
)

LONG_TEXT = (
    "Today we look at how transformers process sequences. Attention lets every token "
    "look at every other token, and the model learns which relationships matter most."
)
assert len(LONG_TEXT) > 100


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeAcquirer:
    """Returns a fixed outcome (or calls a function) and records every call."""

    def __init__(self, name: str, outcome: Union[AcquisitionOutcome, Callable[[VideoTarget], AcquisitionOutcome]]):
        self.name = name
        self.outcome = outcome
        self.calls: List[VideoTarget] = []
        self.remaining: List[Optional[float]] = []

    def attempt(self, target: VideoTarget, remaining: Optional[float] = None) -> AcquisitionOutcome:
        self.calls.append(target)
        self.remaining.append(remaining)
        if callable(self.outcome):
            return self.outcome(target)
        return self.outcome


class FakeGenerator:
    def __init__(self, reply: str = '{"summary": "S", "notes": "N"}', error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.text_calls: List[str] = []
        self.audio_calls: List[AudioPayload] = []
        self.timeouts: List[Optional[float]] = []

    def summarize_transcript(self, text: str, timeout: Optional[float] = None) -> str:
        self.text_calls.append(text)
        self.timeouts.append(timeout)
        if self.error:
            raise self.error
        return self.reply

    def summarize_audio(self, audio: AudioPayload, timeout: Optional[float] = None) -> str:
        self.audio_calls.append(audio)
        self.timeouts.append(timeout)
        if self.error:
            raise self.error
        return self.reply


def transcript(text: str = LONG_TEXT) -> TranscriptPayload:
    return TranscriptPayload([text], source="fake")


def rate_limited(cooldown: int = 30) -> RateLimited:
    return RateLimited(RateLimitSignal(cooldown=cooldown))


@pytest.fixture
def settings() -> Settings:
    return Settings(gemini_api_key="test-key")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
