from __future__ import annotations
import argparse
import os
import sys
from typing import Optional

import requests

from video_notes.retry import CooldownController, Scheduler, State, Status, SubmitOutcome

TIMEOUT_MESSAGE = (
    "The request timed out. Long videos often exceed the server limit. "
    "Please try a shorter video (under 5 mins)."
)
FAILURE_MESSAGE = "Failed to summarize video. The video might be restricted or too long."


class SummarizeClient:
    """/api/summarize 호출 → SubmitOutcome (성공 / 429 / 실패)."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 70.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def summarize(self, reference: str) -> SubmitOutcome:
        try:
            r = self.session.post(f"{self.base_url}/api/summarize", json={"url": reference}, timeout=self.timeout)
        except requests.Timeout:
            return SubmitOutcome("failed", message=TIMEOUT_MESSAGE)
        except requests.RequestException as e:
            return SubmitOutcome("failed", message=f"Could not reach the server: {e}")

        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if r.ok:
            return SubmitOutcome("success", data=data)
        if r.status_code == 429:
            retry_after = data.get("retryAfter") or r.headers.get("Retry-After")
            try:
                retry_after = int(retry_after) if retry_after is not None else None
            except (TypeError, ValueError):
                retry_after = None
            return SubmitOutcome(
                "rate_limited",
                data=data,
                message=data.get("error") or "Rate limit reached. Retrying...",
                retry_after=retry_after,
            )
        if r.status_code == 504:
            return SubmitOutcome("failed", data=data, message=TIMEOUT_MESSAGE)
        return SubmitOutcome("failed", data=data, message=data.get("error") or FAILURE_MESSAGE)


def _print_state(ctl: CooldownController) -> None:
    if ctl.state is State.SUBMITTING:
        print("▶ Retrying..." if ctl.retrying else "▶ Processing...")
    elif ctl.state is State.COOLDOWN:
        end = "\n" if ctl.countdown == 0 else ""
        print(f"\r⏳ Usage limit reached. Waiting for quota cooldown... (Resuming in {ctl.countdown}s) ", end=end, flush=True)


def _print_result(result: dict) -> None:
    print("\n===== Summary =====\n")
    print(result.get("summary", ""))
    print("\n===== Study Notes =====\n")
    print(result.get("notes", ""))
    if result.get("transcript"):
        print("\n===== Full Transcript =====\n")
        print(result["transcript"])


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Summarize a YouTube video via the video-notes server")
    ap.add_argument("url", help="YouTube URL")
    ap.add_argument("--server", default=os.getenv("VIDEO_NOTES_SERVER", "http://localhost:8000"), help="server base URL")
    ap.add_argument("--cooldown", type=int, default=30, help="fallback cooldown seconds after a 429")
    args = ap.parse_args(argv)

    client = SummarizeClient(args.server)
    scheduler = Scheduler()
    ctl = CooldownController(client.summarize, scheduler, default_cooldown=args.cooldown, on_change=_print_state)

    ctl.start(args.url)
    while ctl.state is State.COOLDOWN:
        if ctl.result and ctl.result.get("transcript"):
            print("\n⚠ Showing the transcript while the summary waits for the cooldown (Ctrl+C cancels the retry).")
            print(ctl.result["transcript"])
        try:
            scheduler.run()
        except KeyboardInterrupt:
            ctl.cancel()
            print()

    if ctl.status is Status.SUCCESS:
        _print_result(ctl.result or {})
        return 0
    if ctl.status is Status.CANCELLED:
        print(f"✖ {ctl.message}")
        return 130
    print(f"✖ {ctl.message}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
