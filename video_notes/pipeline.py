from __future__ import annotations
import logging
import time
from typing import Callable, List, Optional, Sequence

from video_notes.acquirers import Acquirer, default_audio_acquirers, default_transcript_acquirers
from video_notes.config import Settings
from video_notes.errors import (
    AcquisitionExhausted,
    AudioTooLarge,
    CredentialMissing,
    GenerationFailed,
    MissingReference,
    PipelineTimeout,
    RateLimited,
)
from video_notes.models import (
    AudioPayload,
    Failed,
    GenerationResult,
    PipelineResult,
    Success,
    TranscriptPayload,
    VideoTarget,
)
from video_notes.normalizer import normalize
from video_notes.summarizer import GeminiClient
from video_notes.yt_utils import extract_video_id

logger = logging.getLogger(__name__)

DEGRADED_SUMMARY = (
    "Summary unavailable: the AI model could not process this transcript. Please try again later."
)
DEGRADED_NOTES = "Notes unavailable."


class SummaryPipeline:
    """
    ExtractIdentifier → AcquireTranscript → AcquireAudio(자막 없을 때만) → Generate → Normalize.
    각 단계 안에서는 순서대로 하나씩 시도하고, 처음 쓸 만한 결과에서 멈춘다.
    """

    def __init__(
        self,
        settings: Settings,
        generator,
        transcript_acquirers: Sequence[Acquirer],
        audio_acquirers: Sequence[Acquirer],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.generator = generator
        self.transcript_acquirers = list(transcript_acquirers)
        self.audio_acquirers = list(audio_acquirers)
        self.clock = clock

    def run(self, reference: Optional[str]) -> PipelineResult:
        if not reference or not reference.strip():
            raise MissingReference()
        if not self.settings.gemini_api_key:
            raise CredentialMissing()
        video_id = extract_video_id(reference)
        target = VideoTarget(video_id=video_id, reference=reference.strip())
        deadline = self.clock() + self.settings.pipeline_budget
        attempts: List[str] = []

        transcript = self.acquire_transcript(target, deadline, attempts)
        if transcript is not None:
            return self._generate_from_transcript(target, transcript, attempts, deadline)

        logger.info("No usable transcript for %s; falling back to audio", video_id)
        audio = self.acquire_audio(target, deadline, attempts)
        return self._generate_from_audio(target, audio, attempts, deadline)

    def _remaining(self, deadline: float, before: str) -> float:
        left = deadline - self.clock()
        if left <= 0:
            logger.warning("budget of %.0fs spent before %s", self.settings.pipeline_budget, before)
            raise PipelineTimeout()
        return left

    # ---------- 수집 단계 ----------
    def _attempt(self, stage: str, index: int, total: int, acquirer: Acquirer, target: VideoTarget, deadline: float):
        left = self._remaining(deadline, acquirer.name)
        logger.info("[%s %d/%d] %s for %s", stage, index, total, acquirer.name, target.video_id)
        try:
            return acquirer.attempt(target, remaining=left)
        except Exception as e:
            logger.exception("[%s %d/%d] %s raised", stage, index, total, acquirer.name)
            return Failed(f"{type(e).__name__}: {e}", name=acquirer.name)

    def acquire_transcript(self, target: VideoTarget, deadline: float, attempts: List[str]) -> Optional[TranscriptPayload]:
        total = len(self.transcript_acquirers)
        for i, acq in enumerate(self.transcript_acquirers, 1):
            outcome = self._attempt("transcript", i, total, acq, target, deadline)
            if isinstance(outcome, Success):
                payload = outcome.payload
                if payload.usable(self.settings.min_transcript_chars):
                    logger.info("[transcript %d/%d] %s succeeded (%d chars)", i, total, acq.name, len(payload.text))
                    attempts.append(f"{acq.name}: success")
                    return payload
                logger.warning("[transcript %d/%d] %s too short (%d chars)", i, total, acq.name, len(payload.text))
                attempts.append(f"{acq.name}: too short")
            else:
                logger.warning("[transcript %d/%d] %s: %s", i, total, acq.name, outcome.reason)
                attempts.append(f"{acq.name}: {outcome.reason}")
        return None

    def acquire_audio(self, target: VideoTarget, deadline: float, attempts: List[str]) -> AudioPayload:
        total = len(self.audio_acquirers)
        oversize = False
        limit = self.settings.max_audio_bytes
        for i, acq in enumerate(self.audio_acquirers, 1):
            outcome = self._attempt("audio", i, total, acq, target, deadline)
            if isinstance(outcome, Success):
                payload = outcome.payload
                if not payload.exceeds(limit):
                    logger.info("[audio %d/%d] %s succeeded (%.2fMB)", i, total, acq.name, payload.size / 1024 / 1024)
                    attempts.append(f"{acq.name}: success")
                    return payload
                # 모델 inline-data 한도를 넘으면 보내지 않는다
                oversize = True
                logger.warning("[audio %d/%d] %s returned %d bytes > %d", i, total, acq.name, payload.size, limit)
                attempts.append(f"{acq.name}: too large")
                continue
            if isinstance(outcome, Failed) and outcome.oversize:
                oversize = True
            logger.warning("[audio %d/%d] %s: %s", i, total, acq.name, outcome.reason)
            attempts.append(f"{acq.name}: {outcome.reason}")

        logger.error("All acquisition methods failed for %s: %s", target.video_id, "; ".join(attempts))
        if oversize:
            raise AudioTooLarge()
        raise AcquisitionExhausted()

    # ---------- 생성 단계 ----------
    def _generation_timeout(self, deadline: float) -> float:
        # 생성 호출도 남은 예산 안에서 끝나야 한다
        return min(self.settings.generation_timeout, self._remaining(deadline, "generation"))

    def _generate_from_transcript(
        self, target: VideoTarget, transcript: TranscriptPayload, attempts: List[str], deadline: float
    ) -> PipelineResult:
        text = transcript.text
        timeout = self._generation_timeout(deadline)
        logger.info("[generate] transcript mode for %s (timeout %.0fs)", target.video_id, timeout)
        try:
            raw = self.generator.summarize_transcript(text, timeout=timeout)
        except RateLimited as e:
            # 이미 얻은 자막은 429 응답에 실어 보낸다
            e.signal.transcript = text
            raise
        except Exception as e:
            logger.warning("[generate] failed for %s, returning transcript only: %s", target.video_id, e)
            result = GenerationResult(summary=DEGRADED_SUMMARY, notes=DEGRADED_NOTES, transcript=text)
            return PipelineResult(result, target.video_id, "captions", degraded=True, attempts=attempts)

        result = normalize(raw)
        result.transcript = text
        return PipelineResult(result, target.video_id, "captions", attempts=attempts)

    def _generate_from_audio(
        self, target: VideoTarget, audio: AudioPayload, attempts: List[str], deadline: float
    ) -> PipelineResult:
        timeout = self._generation_timeout(deadline)
        logger.info("[generate] audio mode for %s (%s, %d bytes)", target.video_id, audio.mime_type, audio.size)
        try:
            raw = self.generator.summarize_audio(audio, timeout=timeout)
        except (RateLimited, GenerationFailed):
            raise
        except Exception as e:
            raise GenerationFailed() from e
        return PipelineResult(normalize(raw), target.video_id, "audio", attempts=attempts)


def build_pipeline(settings: Settings) -> SummaryPipeline:
    return SummaryPipeline(
        settings,
        GeminiClient(settings),
        default_transcript_acquirers(settings),
        default_audio_acquirers(settings),
    )
