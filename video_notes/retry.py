# video_notes/retry.py
# 429 이후 클라이언트 쪽 쿨다운 / 자동 재시도.
#   IDLE -> SUBMITTING -> SUCCEEDED | FAILED | COOLDOWN
#   COOLDOWN -> SUBMITTING (카운트다운 0 또는 retry_now) / IDLE (cancel)
from __future__ import annotations
import logging
import sched
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, scheduler: sched.scheduler, event: sched.Event):
        self._scheduler = scheduler
        self._event = event

    def cancel(self) -> None:
        # 이미 실행됐거나 취소된 이벤트면 할 일 없음
        if self._event in self._scheduler.queue:
            self._scheduler.cancel(self._event)


class Scheduler:
    """sched.scheduler 위에 advance() 만 얹은 것. clock/sleep 은 테스트에서 가짜로 바꾼다."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self.clock = clock
        self.sleep = sleep
        self._sched = sched.scheduler(clock, sleep)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return TimerHandle(self._sched, self._sched.enter(max(0.0, delay), 0, callback))

    def pending(self) -> int:
        return len(self._sched.queue)

    def run(self) -> None:
        self._sched.run()

    def advance(self, seconds: float) -> None:
        target = self.clock() + seconds
        while True:
            wait = self._sched.run(blocking=False)
            if wait is None or self.clock() + wait > target:
                break
            self.sleep(wait)
        remaining = target - self.clock()
        if remaining > 0:
            self.sleep(remaining)


class State(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    COOLDOWN = "cooldown"


class Status(Enum):
    NONE = "none"
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"


@dataclass
class SubmitOutcome:
    kind: str  # "success" | "rate_limited" | "failed"
    data: dict = field(default_factory=dict)
    message: str = ""
    retry_after: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.kind == "success"


class CooldownController:
    def __init__(
        self,
        submit: Callable[[str], SubmitOutcome],
        scheduler: Optional[Scheduler] = None,
        default_cooldown: int = 30,
        on_change: Optional[Callable[["CooldownController"], Any]] = None,
    ):
        self.submit_fn = submit
        self.scheduler = scheduler or Scheduler()
        self.default_cooldown = default_cooldown
        self.on_change = on_change

        self.state = State.IDLE
        self.status = Status.NONE
        self.message = ""
        self.result: Optional[dict] = None
        self.countdown: Optional[int] = None
        self.retrying = False
        self.attempts = 0
        self.reference: Optional[str] = None

        self._token = 0
        self._timer: Optional[TimerHandle] = None

    # ---------- public actions ----------
    def start(self, reference: str) -> None:
        if self.state in (State.SUBMITTING, State.COOLDOWN):
            raise RuntimeError(f"cannot start a new request while {self.state.value}")
        self.reference = reference
        self.result = None
        self.message = ""
        self.status = Status.NONE
        self._submit(retry=False)

    def cancel(self) -> bool:
        if self.state is not State.COOLDOWN:
            return False
        self._invalidate()
        self.state = State.IDLE
        self.status = Status.CANCELLED
        self.message = "Retry cancelled."
        self.countdown = None
        self.retrying = False
        logger.info("Retry cancelled by user")
        self._notify()
        return True

    def retry_now(self) -> bool:
        if self.state is not State.COOLDOWN:
            return False
        self._invalidate()
        self._submit(retry=True)
        return True

    # ---------- internals ----------
    def _invalidate(self) -> None:
        self._token += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def _submit(self, retry: bool) -> None:
        self._invalidate()
        self.state = State.SUBMITTING
        self.countdown = None
        self.retrying = retry
        self.attempts += 1
        self._notify()

        try:
            outcome = self.submit_fn(self.reference)
        except Exception as e:
            logger.exception("Submission raised")
            outcome = SubmitOutcome("failed", message=str(e) or "Request failed.")

        if outcome.kind == "success":
            self.state = State.SUCCEEDED
            self.status = Status.SUCCESS
            self.result = outcome.data
            self.message = ""
            self.retrying = False
            self._notify()
        elif outcome.kind == "rate_limited":
            # 부분 결과(자막)가 있으면 쿨다운 동안 보여준다
            if outcome.data.get("transcript"):
                self.result = outcome.data
            self.status = Status.RATE_LIMITED
            self.message = outcome.message or "Rate limit reached. Retrying..."
            self._enter_cooldown(outcome.retry_after or self.default_cooldown)
        else:
            self.state = State.FAILED
            self.status = Status.ERROR
            self.message = outcome.message or "Request failed."
            self.retrying = False
            self._notify()

    def _enter_cooldown(self, seconds: int) -> None:
        self.state = State.COOLDOWN
        self.countdown = max(0, int(seconds))
        logger.info("Entering cooldown for %ss", self.countdown)
        # 타이머를 먼저 걸어야 on_change 안에서의 cancel/retry_now 가 그것을 무효화한다
        self._schedule_tick()
        self._notify()

    def _schedule_tick(self) -> None:
        token = self._token
        self._timer = self.scheduler.call_later(1.0, lambda: self._tick(token))

    def _tick(self, token: int) -> None:
        if token != self._token or self.state is not State.COOLDOWN:
            return
        self._timer = None
        self.countdown = max(0, (self.countdown or 0) - 1)
        if self.countdown == 0:
            self._submit(retry=True)
            return
        self._schedule_tick()
        self._notify()
