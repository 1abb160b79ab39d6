# video_notes/acquirers.py
from __future__ import annotations
import json
import logging
import subprocess
import time
from typing import Callable, Dict, Iterable, List, Optional

import requests
import yt_dlp
from youtube_transcript_api import NoTranscriptFound, TranscriptsDisabled, YouTubeTranscriptApi

from video_notes.config import Settings
from video_notes.errors import SourceUnavailable
from video_notes.models import (
    AcquisitionOutcome,
    AudioPayload,
    Failed,
    Success,
    TranscriptPayload,
    Unavailable,
    VideoTarget,
)
from video_notes.yt_utils import _user_agent, caption_text, find_executable

logger = logging.getLogger(__name__)

_MIME_BY_EXT = {
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
}


class PayloadTooLarge(Exception):
    pass


class DownloadTimeout(Exception):
    pass


class Acquirer:
    """한 가지 방법으로 영상 내용을 얻는다. attempt()는 절대 예외를 밖으로 내보내지 않는다."""

    name = "acquirer"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.remaining: Optional[float] = None

    def attempt(self, target: VideoTarget, remaining: Optional[float] = None) -> AcquisitionOutcome:
        self.remaining = remaining
        try:
            payload = self.fetch(target)
        except SourceUnavailable as e:
            return Unavailable(str(e) or "unavailable", name=self.name)
        except PayloadTooLarge as e:
            return Failed(str(e), name=self.name, oversize=True)
        except (DownloadTimeout, requests.Timeout, subprocess.TimeoutExpired):
            return Failed("timeout", name=self.name)
        except Exception as e:
            logger.debug("%s raised", self.name, exc_info=True)
            return Failed(f"{type(e).__name__}: {e}", name=self.name)
        if payload is None:
            return Unavailable("no content", name=self.name)
        return Success(payload, name=self.name)

    def fetch(self, target: VideoTarget):
        raise NotImplementedError

    def timeout_for(self, configured: float) -> float:
        # 파이프라인의 남은 예산보다 오래 기다리지 않는다
        if self.remaining is None:
            return configured
        return max(0.1, min(configured, self.remaining))

    def _cookie_args(self) -> List[str]:
        cookies = self.settings.cookies_file()
        return ["--cookies", cookies] if cookies else []


class TranscriptAcquirer(Acquirer):
    name = "transcript"


class AudioAcquirer(Acquirer):
    name = "audio"


# -----------------------------------
# 1) youtube_transcript_api 로 우선 시도
# -----------------------------------
class CaptionsApiAcquirer(TranscriptAcquirer):
    name = "captions-api"

    def __init__(self, settings: Settings, api: Optional[YouTubeTranscriptApi] = None):
        super().__init__(settings)
        self._api = api

    @property
    def api(self) -> YouTubeTranscriptApi:
        if self._api is None:
            self._api = YouTubeTranscriptApi()
        return self._api

    def fetch(self, target: VideoTarget) -> TranscriptPayload:
        try:
            try:
                fetched = self.api.fetch(target.video_id, languages=list(self.settings.caption_languages))
            except NoTranscriptFound:
                # 우선순위 언어가 없으면 목록의 첫 자막 (자동 생성 포함)
                first = next(iter(self.api.list(target.video_id)), None)
                if first is None:
                    raise SourceUnavailable("no transcripts listed")
                fetched = first.fetch()
        except TranscriptsDisabled:
            raise SourceUnavailable("transcripts disabled")
        return TranscriptPayload([snippet.text for snippet in fetched], source=self.name)


# ------------------------------------------
# 2) watch 페이지의 player response 에서 caption track 찾기
# ------------------------------------------
_PLAYER_MARKER = "ytInitialPlayerResponse"


def player_response_from_html(page: str) -> Dict:
    idx = page.find(_PLAYER_MARKER)
    while idx != -1:
        start = page.find("{", idx)
        if start == -1:
            break
        try:
            obj, _ = json.JSONDecoder().raw_decode(page, start)
            if isinstance(obj, dict):
                return obj
        except ValueError:
            pass
        idx = page.find(_PLAYER_MARKER, idx + len(_PLAYER_MARKER))
    raise ValueError("player response not found in watch page")


def pick_caption_track(tracks: List[Dict], languages: Iterable[str] = ("en",)) -> Optional[Dict]:
    """영어(수동 > 자동) 우선, 없으면 첫 번째 트랙."""
    if not tracks:
        return None

    def matches(track: Dict, lang: str) -> bool:
        code = (track.get("languageCode") or "").lower()
        return code == lang or code.startswith(lang + "-")

    for lang in languages:
        lang = lang.lower()
        manual = [t for t in tracks if matches(t, lang) and t.get("kind") != "asr"]
        if manual:
            return manual[0]
        auto = [t for t in tracks if matches(t, lang)]
        if auto:
            return auto[0]
    return tracks[0]


class PlayerCaptionsAcquirer(TranscriptAcquirer):
    name = "player-captions"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        super().__init__(settings)
        self.session = session or requests.Session()

    def fetch(self, target: VideoTarget) -> TranscriptPayload:
        headers = {"User-Agent": _user_agent(), "Accept-Language": "en-US,en;q=0.8"}
        self.session.cookies.set("CONSENT", "YES+1", domain=".youtube.com")
        r = self.session.get(target.watch_url + "&hl=en", headers=headers, timeout=self.timeout_for(self.settings.http_timeout))
        r.raise_for_status()

        player = player_response_from_html(r.text)
        renderer = (player.get("captions") or {}).get("playerCaptionsTracklistRenderer") or {}
        track = pick_caption_track(renderer.get("captionTracks") or [], self.settings.caption_languages)
        if not track or not track.get("baseUrl"):
            raise SourceUnavailable("no caption tracks")

        cr = self.session.get(track["baseUrl"], headers=headers, timeout=self.timeout_for(self.settings.http_timeout))
        cr.raise_for_status()
        return TranscriptPayload(caption_text(cr.text), source=self.name)


# ------------------------------------------
# 3) yt-dlp 실행 파일로 자막 URL 찾기 (설치된 경우만)
# ------------------------------------------
def pick_subtitle_format(info: Dict, languages: Iterable[str] = ("en",)) -> Optional[Dict]:
    """수동 자막 > 자동 자막 순으로 영어 트랙, 포맷은 json3 > vtt > 첫 번째."""
    for key in ("subtitles", "automatic_captions"):
        caps = info.get(key) or {}
        for lang in languages:
            codes = [c for c in caps if c == lang or c.startswith(lang + "-")]
            for code in codes:
                formats = [f for f in caps.get(code) or [] if f.get("url")]
                if not formats:
                    continue
                for ext in ("json3", "vtt"):
                    for f in formats:
                        if f.get("ext") == ext:
                            return f
                return formats[0]
    return None


class YtDlpSubtitlesAcquirer(TranscriptAcquirer):
    name = "yt-dlp-subtitles"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        super().__init__(settings)
        self.session = session or requests.Session()

    def fetch(self, target: VideoTarget) -> TranscriptPayload:
        exe = find_executable(self.settings.ytdlp_path)
        if not exe:
            raise SourceUnavailable("yt-dlp executable not found")

        cmd = [exe, "--dump-json", "--skip-download", "--no-playlist", "--no-warnings"]
        cmd += self._cookie_args() + [target.watch_url]
        # timeout 이 나면 subprocess.run 이 자식 프로세스를 kill 하고 회수한다
        proc = subprocess.run(cmd, capture_output=True, timeout=self.timeout_for(self.settings.subtitle_tool_timeout))
        if proc.returncode != 0:
            raise RuntimeError(f"yt-dlp exited with {proc.returncode}")

        info = json.loads(proc.stdout)
        fmt = pick_subtitle_format(info, self.settings.caption_languages)
        if not fmt:
            raise SourceUnavailable("no matching subtitles")

        r = self.session.get(fmt["url"], headers={"User-Agent": _user_agent()}, timeout=self.timeout_for(self.settings.http_timeout))
        r.raise_for_status()
        return TranscriptPayload(caption_text(r.text), source=self.name)


# --------------------------------
# 오디오: yt-dlp 실행 파일 (stdout 으로 받기)
# --------------------------------
class YtDlpAudioAcquirer(AudioAcquirer):
    name = "yt-dlp-audio"

    def fetch(self, target: VideoTarget) -> AudioPayload:
        exe = find_executable(self.settings.ytdlp_path)
        if not exe:
            raise SourceUnavailable("yt-dlp executable not found")

        limit = self.settings.max_audio_bytes
        cmd = [
            exe,
            "-f", "worstaudio[ext=m4a]/bestaudio[ext=m4a]",
            "-o", "-",
            "--no-progress", "--no-warnings", "--no-playlist",
            "--max-filesize", f"{max(1, limit // (1024 * 1024))}M",
        ]
        cmd += self._cookie_args() + [target.watch_url]
        proc = subprocess.run(cmd, capture_output=True, timeout=self.timeout_for(self.settings.audio_tool_timeout))
        # --max-filesize 에 걸리면 yt-dlp 는 빈 stdout 으로 끝나고 stderr 에만 남긴다
        if not proc.stdout and b"max-filesize" in (proc.stderr or b""):
            raise PayloadTooLarge(f"too large: yt-dlp skipped a file over {limit} bytes")
        if proc.returncode != 0 or not proc.stdout:
            raise RuntimeError(f"yt-dlp audio download failed (exit {proc.returncode})")
        if len(proc.stdout) > limit:
            raise PayloadTooLarge(f"too large: {len(proc.stdout)} bytes > {limit}")
        return AudioPayload(proc.stdout, "audio/mp4", source=self.name)


# --------------------------------
# 오디오: yt_dlp 라이브러리로 포맷 URL → requests 스트리밍
# --------------------------------
class StreamingAudioAcquirer(AudioAcquirer):
    name = "stream-audio"
    chunk_size = 64 * 1024

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(settings)
        self.session = session or requests.Session()
        self.clock = clock

    def resolve_format(self, target: VideoTarget) -> Dict:
        ydl_opts = {
            "format": "worstaudio[ext=m4a]/worstaudio",
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
            "socket_timeout": self.timeout_for(self.settings.http_timeout),
            "http_headers": {"User-Agent": _user_agent()},
        }
        cookies = self.settings.cookies_file()
        if cookies:
            ydl_opts["cookiefile"] = cookies
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(target.watch_url, download=False)
        fmt = (info.get("requested_formats") or [info])[0]
        if not fmt.get("url"):
            raise SourceUnavailable("no audio-only stream")
        return fmt

    def fetch(self, target: VideoTarget) -> AudioPayload:
        deadline = self.clock() + self.timeout_for(self.settings.audio_stream_timeout)
        limit = self.settings.max_audio_bytes

        fmt = self.resolve_format(target)
        declared = fmt.get("filesize") or fmt.get("filesize_approx")
        if declared and declared > limit:
            raise PayloadTooLarge(f"too large: {declared} bytes declared > {limit}")

        headers = {"User-Agent": _user_agent()}
        headers.update(fmt.get("http_headers") or {})
        left = max(0.1, deadline - self.clock())
        buf = bytearray()
        try:
            with self.session.get(fmt["url"], headers=headers, stream=True, timeout=left) as r:
                r.raise_for_status()
                for chunk in r.iter_content(chunk_size=self.chunk_size):
                    if self.clock() > deadline:
                        raise DownloadTimeout()
                    if chunk:
                        buf.extend(chunk)
                    if len(buf) > limit:
                        raise PayloadTooLarge(f"too large: stream passed {limit} bytes")
        except requests.ConnectionError as e:
            if "timed out" in str(e).lower():
                raise DownloadTimeout() from e
            raise

        if not buf:
            raise RuntimeError("empty audio stream")
        mime = _MIME_BY_EXT.get((fmt.get("ext") or "").lower(), "audio/mp4")
        return AudioPayload(bytes(buf), mime, source=self.name)


def default_transcript_acquirers(settings: Settings) -> List[TranscriptAcquirer]:
    return [
        CaptionsApiAcquirer(settings),
        PlayerCaptionsAcquirer(settings),
        YtDlpSubtitlesAcquirer(settings),
    ]


def default_audio_acquirers(settings: Settings) -> List[AudioAcquirer]:
    return [
        YtDlpAudioAcquirer(settings),
        StreamingAudioAcquirer(settings),
    ]
