from __future__ import annotations
import logging
import math
import re
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as gexc

from video_notes.config import Settings
from video_notes.errors import CredentialMissing, GenerationFailed, RateLimited
from video_notes.models import AudioPayload, RateLimitSignal

logger = logging.getLogger(__name__)

TRANSCRIPT_PROMPT = """Analyze this YouTube transcript and generate:
1. A concise summary (2-3 paragraphs).
2. Structured study notes in markdown.

Transcript:
```{transcript}```

Format as JSON: {{"summary": "...", "notes": "..."}}"""

AUDIO_PROMPT = (
    "Listen to this audio and generate: "
    "1. Verbatim transcript (key 'transcript'). "
    "2. Summary (key 'summary'). "
    "3. Study notes in markdown (key 'notes'). "
    "Format as JSON."
)


def transcript_prompt(text: str, budget: int = 20_000) -> str:
    # 모델 입력 한도 때문에 앞부분만 보낸다 (손실 있음, 실패 아님)
    return TRANSCRIPT_PROMPT.format(transcript=text[:budget])


_RETRY_IN_RE = re.compile(r"retry in\s+([\d.]+)\s*s", re.I)
_RETRY_DELAY_RE = re.compile(r"retry_delay\s*\{\s*seconds:\s*(\d+)", re.I)


def cooldown_hint(err: Exception, default: int = 30) -> int:
    text = str(err)
    for rx in (_RETRY_IN_RE, _RETRY_DELAY_RE):
        m = rx.search(text)
        if m:
            try:
                return max(1, math.ceil(float(m.group(1))))
            except ValueError:
                continue
    return default


_RATE_LIMIT_TEXT_RE = re.compile(r"\b429\b|\bresource (?:has been )?exhausted\b|\brate[ _-]?limit|\bquota exceeded\b|\bexceeded your current quota\b", re.I)


def is_rate_limit(err: Exception) -> bool:
    if isinstance(err, (gexc.ResourceExhausted, gexc.TooManyRequests)):
        return True
    if getattr(err, "code", None) == 429:
        return True
    # 숫자 429 가 크기/토큰 수에 섞인 경우는 제외 (단어 경계로만)
    return bool(_RATE_LIMIT_TEXT_RE.search(str(err)))


class GeminiClient:
    """google-generativeai 호출 래퍼. 텍스트 모드 / 오디오(inline data) 모드."""

    def __init__(self, settings: Settings, model=None):
        self.settings = settings
        if model is None:
            if not settings.gemini_api_key:
                raise CredentialMissing()
            genai.configure(api_key=settings.gemini_api_key)
            model = genai.GenerativeModel(settings.gemini_model)
        self.model = model

    def generate(self, prompt: str, audio: Optional[AudioPayload] = None, timeout: Optional[float] = None) -> str:
        contents = prompt if audio is None else [prompt, {"mime_type": audio.mime_type, "data": audio.data}]
        try:
            resp = self.model.generate_content(
                contents,
                request_options={"timeout": timeout or self.settings.generation_timeout},
            )
            text = resp.text
        except Exception as e:
            if is_rate_limit(e):
                cooldown = cooldown_hint(e, self.settings.default_cooldown)
                logger.warning("Gemini rate limited, cooldown %ss: %s", cooldown, e)
                raise RateLimited(RateLimitSignal(cooldown=cooldown)) from e
            logger.error("Gemini call failed: %s", e)
            raise GenerationFailed() from e
        if not text or not text.strip():
            raise GenerationFailed("The AI model returned an empty response. Please try again later.")
        return text.strip()

    def summarize_transcript(self, text: str, timeout: Optional[float] = None) -> str:
        return self.generate(transcript_prompt(text, self.settings.transcript_char_budget), timeout=timeout)

    def summarize_audio(self, audio: AudioPayload, timeout: Optional[float] = None) -> str:
        return self.generate(AUDIO_PROMPT, audio, timeout=timeout)
