from __future__ import annotations
from typing import Optional

from video_notes.models import RateLimitSignal


class PipelineError(Exception):
    """요청을 끝내는 오류. status_code / code / message 는 그대로 응답에 실린다."""

    status_code = 500
    code = "internal_error"
    default_message = "Server encountered an error processing this request."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingReference(PipelineError):
    status_code = 400
    code = "missing_reference"
    default_message = "URL is required"


class InvalidReference(PipelineError):
    status_code = 400
    code = "invalid_reference"
    default_message = "Invalid YouTube URL"


class CredentialMissing(PipelineError):
    code = "credential_missing"
    default_message = "Gemini API Key missing"


class AcquisitionExhausted(PipelineError):
    code = "acquisition_exhausted"
    default_message = (
        "Unable to extract content from this video. It might be too long, private, "
        "or age-restricted, or it has no captions. Try a shorter video with subtitles."
    )


class AudioTooLarge(AcquisitionExhausted):
    code = "audio_too_large"
    default_message = (
        "No captions were found and the audio for this video is larger than the 19 MiB "
        "the AI model accepts. Try a shorter video or one with subtitles."
    )


class GenerationFailed(PipelineError):
    code = "generation_failed"
    default_message = "The AI model could not process this video. Please try again later."


class PipelineTimeout(PipelineError):
    status_code = 504
    code = "timeout"
    default_message = (
        "The request timed out. Long videos often exceed the server limit. "
        "Please try a shorter video (under 5 mins)."
    )


class RateLimited(PipelineError):
    status_code = 429
    code = "rate_limited"
    default_message = "Usage limit reached. Waiting for quota cooldown before retrying."

    def __init__(self, signal: RateLimitSignal, message: Optional[str] = None):
        self.signal = signal
        super().__init__(message)


class SourceUnavailable(Exception):
    """Acquirer 내부용: 해당 방법을 이 환경/영상에서 쓸 수 없음 (실패 아님)."""
