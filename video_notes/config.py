from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional, Tuple

DEFAULT_MODEL = "gemini-flash-latest"
MAX_AUDIO_BYTES = 19 * 1024 * 1024


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw and raw.strip() else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw and raw.strip() else default


@dataclass(frozen=True)
class Settings:
    """Everything the pipeline needs, passed in explicitly instead of read ad hoc."""

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    ytdlp_path: str = "yt-dlp"
    cookies_path: Optional[str] = None
    caption_languages: Tuple[str, ...] = ("en",)

    transcript_char_budget: int = 20_000
    min_transcript_chars: int = 100
    max_audio_bytes: int = MAX_AUDIO_BYTES

    # seconds
    http_timeout: float = 15.0
    subtitle_tool_timeout: float = 25.0
    audio_tool_timeout: float = 45.0
    audio_stream_timeout: float = 30.0
    generation_timeout: float = 50.0
    pipeline_budget: float = 55.0
    request_timeout: float = 60.0

    default_cooldown: int = 30

    @classmethod
    def from_env(cls) -> "Settings":
        langs = os.getenv("CAPTION_LANGUAGES", "en")
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
            ytdlp_path=os.getenv("YTDLP_PATH", "yt-dlp"),
            cookies_path=os.getenv("YT_COOKIES_PATH") or None,
            caption_languages=tuple(c.strip() for c in langs.split(",") if c.strip()) or ("en",),
            transcript_char_budget=_env_int("TRANSCRIPT_CHAR_BUDGET", 20_000),
            min_transcript_chars=_env_int("MIN_TRANSCRIPT_CHARS", 100),
            max_audio_bytes=_env_int("MAX_AUDIO_BYTES", MAX_AUDIO_BYTES),
            http_timeout=_env_float("HTTP_TIMEOUT", 15.0),
            subtitle_tool_timeout=_env_float("SUBTITLE_TOOL_TIMEOUT", 25.0),
            audio_tool_timeout=_env_float("AUDIO_TOOL_TIMEOUT", 45.0),
            audio_stream_timeout=_env_float("AUDIO_STREAM_TIMEOUT", 30.0),
            generation_timeout=_env_float("GENERATION_TIMEOUT", 50.0),
            pipeline_budget=_env_float("PIPELINE_BUDGET", 55.0),
            request_timeout=_env_float("REQUEST_TIMEOUT", 60.0),
            default_cooldown=_env_int("DEFAULT_COOLDOWN", 30),
        )

    def cookies_file(self) -> Optional[str]:
        """cookies.txt 경로가 실제로 있을 때만 반환."""
        if self.cookies_path and os.path.exists(self.cookies_path):
            return self.cookies_path
        return None
