# video_notes/yt_utils.py
from __future__ import annotations
import html
import json
import re
import shutil
from typing import List, Optional

from video_notes.errors import InvalidReference


# ---------------------------
# 공통: 유저 에이전트 / 비디오ID
# ---------------------------
def _user_agent() -> str:
    return (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    )


_ID = r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
# 호스트는 문자열 맨 앞에서만 (notyoutube.com, 다른 URL 안의 youtu.be 등은 거부)
_URL_RE = re.compile(
    r"^(?i:https?://)?(?i:(?:www|m|music)\.)?"
    r"(?:(?i:youtube(?:-nocookie)?\.com)/(?:\S*?[?&]v=|(?:embed|v|e|shorts|live)/)|(?i:youtu\.be)/)"
    + _ID
)
_BARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


def extract_video_id(reference: str) -> str:
    """유튜브 URL에서 video_id(11자) 추출. 못 찾으면 InvalidReference."""
    ref = (reference or "").strip()
    if _BARE_ID_RE.match(ref):
        return ref
    m = _URL_RE.search(ref)
    if not m:
        raise InvalidReference()
    return m.group(1)


def canonical_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def find_executable(path_or_name: str) -> Optional[str]:
    """yt-dlp 같은 외부 도구가 이 환경에 있는지 호출 시점에 확인."""
    if not path_or_name:
        return None
    return shutil.which(path_or_name)


# -----------------------
# 자막 정리 유틸
# -----------------------
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_TS_RE = re.compile(r"^(?:\d+:)?\d{2}:\d{2}\.\d{3}\s*-->\s*(?:\d+:)?\d{2}:\d{2}\.\d{3}")
_XML_CUE_RE = re.compile(r"<(text|p)\b[^>]*>(.*?)</\1>", re.S)


def strip_markup(text: str) -> str:
    """태그 제거 + 엔티티 디코딩 + 공백 정리. 자막 XML은 엔티티가 이중으로 들어오기도 한다."""
    cleaned = _TAG_RE.sub(" ", text or "")
    cleaned = html.unescape(html.unescape(cleaned))
    return _WS_RE.sub(" ", cleaned).strip()


def parse_vtt(body: str) -> List[str]:
    """WEBVTT → 순서대로 정리된 cue 텍스트. 자동자막의 롤링 중복은 한 번만 남긴다."""
    cues: List[str] = []
    buf: List[str] = []

    def flush():
        if buf:
            txt = strip_markup(" ".join(buf))
            if txt and (not cues or cues[-1] != txt):
                cues.append(txt)
        buf.clear()

    in_header = True
    for line in body.splitlines():
        line_s = line.strip()
        if _TS_RE.match(line_s):
            # 타임스탬프 바로 앞 줄은 cue 식별자
            buf.clear()
            in_header = False
            continue
        if not line_s:
            flush()
            continue
        if in_header or line_s.isdigit() or line_s.startswith(("NOTE", "STYLE")):
            continue
        buf.append(line_s)
    flush()
    return cues


def parse_json3(data: dict) -> List[str]:
    out: List[str] = []
    for ev in data.get("events") or []:
        segs = ev.get("segs") or []
        txt = _WS_RE.sub(" ", "".join(s.get("utf8", "") for s in segs)).strip()
        if txt:
            out.append(txt)
    return out


def parse_xml_captions(body: str) -> List[str]:
    cues = [strip_markup(m.group(2)) for m in _XML_CUE_RE.finditer(body)]
    cues = [c for c in cues if c]
    if cues:
        return cues
    whole = strip_markup(body)
    return [whole] if whole else []


def caption_text(body: str) -> List[str]:
    """자막 본문 형식(json3 / WEBVTT / XML)을 보고 알맞게 파싱."""
    head = (body or "").lstrip()
    if not head:
        return []
    if head.startswith("{"):
        try:
            return parse_json3(json.loads(head))
        except ValueError:
            pass
    if head.startswith("WEBVTT"):
        return parse_vtt(head)
    return parse_xml_captions(head)
