# video_notes/normalizer.py
# 모델 응답 → GenerationResult. 첫 { ~ 마지막 } 가 JSON 이면 구조화, 아니면 원문을 notes 로 (예외 없음)
from __future__ import annotations
import json
import logging
import re
from typing import Any, Optional

from video_notes.models import GenerationResult

logger = logging.getLogger(__name__)

SUMMARY_PLACEHOLDER = "Summary generation failed."

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(_as_text(v) for v in value)
    return json.dumps(value, ensure_ascii=False)


def extract_object(raw: str) -> Optional[dict]:
    m = _OBJECT_RE.search(raw or "")
    if not m:
        return None
    try:
        obj = json.loads(m.group(0))
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def degraded(raw: str) -> GenerationResult:
    return GenerationResult(summary=SUMMARY_PLACEHOLDER, notes=raw or "")


def normalize(raw: str) -> GenerationResult:
    obj = extract_object(raw)
    if obj is None:
        logger.warning("Model output was not valid JSON (%d chars); returning raw notes", len(raw or ""))
        return degraded(raw)

    summary = _as_text(obj.get("summary")).strip() or SUMMARY_PLACEHOLDER
    notes = _as_text(obj.get("notes"))
    transcript = _as_text(obj.get("transcript")).strip() or None
    return GenerationResult(summary=summary, notes=notes, transcript=transcript)
