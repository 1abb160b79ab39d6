from __future__ import annotations
from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar, Union

P = TypeVar("P")


@dataclass(frozen=True)
class VideoTarget:
    video_id: str
    reference: str

    @property
    def watch_url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"


@dataclass
class TranscriptPayload:
    """시간 순서대로 정렬된 자막 조각들."""

    segments: List[str]
    source: str = ""

    @property
    def text(self) -> str:
        return "\n".join(s.strip() for s in self.segments if s and s.strip())

    def usable(self, min_chars: int = 100) -> bool:
        # 너무 짧은 자막은 요약할 거리가 없으므로 실패로 본다
        return len(self.text) > min_chars


@dataclass
class AudioPayload:
    data: bytes
    mime_type: str = "audio/mp4"
    source: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    def exceeds(self, limit: int) -> bool:
        return self.size > limit


@dataclass
class Success(Generic[P]):
    payload: P
    name: str = ""


@dataclass
class Unavailable:
    reason: str = "unavailable"
    name: str = ""


@dataclass
class Failed:
    reason: str
    name: str = ""
    oversize: bool = False


AcquisitionOutcome = Union[Success, Unavailable, Failed]


@dataclass
class GenerationResult:
    summary: str
    notes: str
    transcript: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"summary": self.summary, "notes": self.notes}
        if self.transcript:
            out["transcript"] = self.transcript
        return out


@dataclass
class RateLimitSignal:
    cooldown: int = 30
    transcript: Optional[str] = None


@dataclass
class PipelineResult:
    result: GenerationResult
    video_id: str
    method: str
    degraded: bool = False
    attempts: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        out = self.result.to_dict()
        out["videoId"] = self.video_id
        out["method"] = self.method
        if self.degraded:
            out["degraded"] = True
        return out
