from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .alerts import send_email
from .db import log_event
from .health import check_readiness
from .kube import PodStatus, WorkloadError, WorkloadStatus
from .settings import settings


class RolloutPhase(str, Enum):
    UPDATING = "Updating"
    WATCHING = "Watching"
    READY = "Ready"
    FAILED = "Failed"
    ROLLING_BACK = "RollingBack"
    ROLLED_BACK = "RolledBack"
    ROLLBACK_FAILED = "RollbackFailed"


class RolloutEvent(str, Enum):
    PATCHED = "patched"
    PATCHED_WATCH = "patched_watch"
    NOT_READY = "not_ready"
    READY = "ready"
    POD_FAILED = "pod_failed"
    TIMEOUT = "timeout"
    NO_PREVIOUS_IMAGE = "no_previous_image"
    ROLLBACK_CONFIRMED = "rollback_confirmed"
    ROLLBACK_DECLINED = "rollback_declined"
    ROLLBACK_OK = "rollback_ok"
    ROLLBACK_ERROR = "rollback_error"


class RolloutAction(str, Enum):
    POLL = "poll"
    CONFIRM_ROLLBACK = "confirm_rollback"
    PATCH_PREVIOUS = "patch_previous"
    STOP = "stop"


P, E, A = RolloutPhase, RolloutEvent, RolloutAction

TRANSITIONS: dict[tuple[RolloutPhase, RolloutEvent], tuple[RolloutPhase, RolloutAction]] = {
    (P.UPDATING, E.PATCHED): (P.READY, A.STOP),
    (P.UPDATING, E.PATCHED_WATCH): (P.WATCHING, A.POLL),
    (P.WATCHING, E.NOT_READY): (P.WATCHING, A.POLL),
    (P.WATCHING, E.READY): (P.READY, A.STOP),
    (P.WATCHING, E.POD_FAILED): (P.FAILED, A.CONFIRM_ROLLBACK),
    (P.WATCHING, E.TIMEOUT): (P.FAILED, A.CONFIRM_ROLLBACK),
    (P.FAILED, E.NO_PREVIOUS_IMAGE): (P.FAILED, A.STOP),
    (P.FAILED, E.ROLLBACK_DECLINED): (P.FAILED, A.STOP),
    (P.FAILED, E.ROLLBACK_CONFIRMED): (P.ROLLING_BACK, A.PATCH_PREVIOUS),
    (P.ROLLING_BACK, E.ROLLBACK_OK): (P.ROLLED_BACK, A.STOP),
    (P.ROLLING_BACK, E.ROLLBACK_ERROR): (P.ROLLBACK_FAILED, A.STOP),
}


class InvalidTransition(ValueError):
    pass


class RolloutError(RuntimeError):
    pass


def transition(phase: RolloutPhase, event: RolloutEvent) -> tuple[RolloutPhase, RolloutAction]:
    try:
        return TRANSITIONS[(phase, event)]
    except KeyError:
        raise InvalidTransition(f"no transition from {phase.value} on {event.value}") from None


class WorkloadRuntime(Protocol):
    def get_current_image(self, name: str, container: str) -> str: ...

    def patch_container_image(self, name: str, container: str, image: str) -> None: ...

    def get_workload(self, name: str) -> WorkloadStatus: ...

    def list_pods(self, selector: str) -> list[PodStatus]: ...


@dataclass
class RolloutState:
    workload_id: str
    container_id: str
    previous_image: str
    current_image: str
    phase: RolloutPhase = RolloutPhase.UPDATING
    cause: str | None = None


@dataclass(frozen=True)
class RolloutResult:
    state: RolloutState
    rollback_cancelled: bool = False

    @property
    def phase(self) -> RolloutPhase:
        return self.state.phase

    @property
    def cause(self) -> str | None:
        return self.state.cause

    @property
    def succeeded(self) -> bool:
        return self.state.phase is RolloutPhase.READY


def _format_duration(seconds: float) -> str:
    seconds = int(seconds)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


class RolloutSupervisor:
    """Applies an image change and optionally watches it, reverting on failure.

    One workload per ``run``. The watch waits on two timers, a periodic tick
    and the overall timeout, and stops polling as soon as a terminal
    condition is reached.
    """

    def __init__(
        self,
        runtime: WorkloadRuntime,
        *,
        poll_interval_s: float | None = None,
        confirm: Callable[[str], bool] | None = None,
        on_phase: Callable[[RolloutState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runtime = runtime
        self.poll_interval_s = max(0.1, float(settings.poll_interval_s if poll_interval_s is None else poll_interval_s))
        self.confirm = confirm
        self.on_phase = on_phase
        self.clock = clock
        self.sleep = sleep

    def run(
        self,
        workload: str,
        container: str,
        image: str,
        *,
        watch: bool = False,
        timeout_s: float | None = None,
    ) -> RolloutResult:
        timeout_s = float(settings.watch_timeout_s if timeout_s is None else timeout_s)

        # Read right before mutating so the rollback target is as fresh as possible.
        previous = self.runtime.get_current_image(workload, container)
        state = RolloutState(
            workload_id=workload,
            container_id=container,
            previous_image=previous,
            current_image=image,
        )
        log_event("INFO", f"Updating container {container}: {previous} -> {image}", workload=workload, image=image)

        try:
            self.runtime.patch_container_image(workload, container, image)
        except WorkloadError as e:
            log_event("ERROR", f"Image update failed: {e}", workload=workload, image=image)
            raise RolloutError(f"failed to update container {container} in {workload}: {e}") from e

        action = self._apply(state, RolloutEvent.PATCHED_WATCH if watch else RolloutEvent.PATCHED)
        if action is RolloutAction.POLL:
            action = self._watch(state, timeout_s)

        cancelled = False
        if action is RolloutAction.CONFIRM_ROLLBACK:
            event = self._rollback_decision(state)
            cancelled = event is RolloutEvent.ROLLBACK_DECLINED
            action = self._apply(state, event)

        if action is RolloutAction.PATCH_PREVIOUS:
            action = self._apply(state, self._patch_previous(state))

        result = RolloutResult(state=state, rollback_cancelled=cancelled)
        self._maybe_email(result)
        return result

    def _apply(self, state: RolloutState, event: RolloutEvent) -> RolloutAction:
        old = state.phase
        state.phase, action = transition(old, event)
        if state.phase is not old:
            level = "ERROR" if state.phase in {RolloutPhase.FAILED, RolloutPhase.ROLLBACK_FAILED} else "INFO"
            detail = f": {state.cause}" if state.cause and level == "ERROR" else ""
            log_event(
                level,
                f"{old.value} -> {state.phase.value}{detail}",
                workload=state.workload_id,
                image=state.current_image,
            )
            if self.on_phase is not None:
                self.on_phase(state)
        return action

    def _watch(self, state: RolloutState, timeout_s: float) -> RolloutAction:
        start = self.clock()
        deadline = start + max(0.0, timeout_s)
        next_tick = start + self.poll_interval_s

        while True:
            now = self.clock()
            fire_at = min(next_tick, deadline)
            if fire_at > now:
                self.sleep(fire_at - now)
                now = self.clock()

            # The timeout wins when both timers are due.
            if now >= deadline:
                state.cause = f"timeout: deployment didn't become ready within {_format_duration(timeout_s)}"
                return self._apply(state, RolloutEvent.TIMEOUT)

            next_tick += self.poll_interval_s
            if next_tick <= now:
                next_tick = now + self.poll_interval_s

            action = self._apply(state, self._poll(state))
            if action is not RolloutAction.POLL:
                return action

    def _poll(self, state: RolloutState) -> RolloutEvent:
        try:
            ready, cause = check_readiness(self.runtime, state.workload_id)
        except WorkloadError as e:
            log_event("WARN", f"Readiness check failed: {e}", workload=state.workload_id, image=state.current_image)
            return RolloutEvent.NOT_READY
        if ready:
            return RolloutEvent.READY
        if cause:
            state.cause = cause
            return RolloutEvent.POD_FAILED
        return RolloutEvent.NOT_READY

    def _rollback_decision(self, state: RolloutState) -> RolloutEvent:
        if not state.previous_image:
            state.cause = f"{state.cause}; no previous image saved for rollback"
            log_event("ERROR", "No previous image saved for rollback", workload=state.workload_id, image=state.current_image)
            return RolloutEvent.NO_PREVIOUS_IMAGE
        if self.confirm is None:
            return RolloutEvent.ROLLBACK_CONFIRMED
        message = (
            f"Deployment failed. Rollback container {state.container_id} to {state.previous_image}?"
        )
        if self.confirm(message):
            return RolloutEvent.ROLLBACK_CONFIRMED
        state.cause = f"{state.cause}; rollback cancelled by user"
        log_event("WARN", "Rollback cancelled by user", workload=state.workload_id, image=state.current_image)
        return RolloutEvent.ROLLBACK_DECLINED

    def _patch_previous(self, state: RolloutState) -> RolloutEvent:
        try:
            self.runtime.patch_container_image(state.workload_id, state.container_id, state.previous_image)
        except WorkloadError as e:
            state.cause = f"{state.cause}; rollback to {state.previous_image} failed: {e}"
            return RolloutEvent.ROLLBACK_ERROR
        state.current_image = state.previous_image
        return RolloutEvent.ROLLBACK_OK

    def _maybe_email(self, result: RolloutResult) -> None:
        if not settings.enable_email:
            return
        if result.phase not in {RolloutPhase.ROLLED_BACK, RolloutPhase.ROLLBACK_FAILED} and not result.rollback_cancelled:
            return
        st = result.state
        subject = f"{result.phase.value}: {st.workload_id}/{st.container_id}"
        body = (
            f"Deployment: {st.workload_id}\n"
            f"Container: {st.container_id}\n"
            f"Previous image: {st.previous_image}\n"
            f"Current image: {st.current_image}\n"
            f"Phase: {result.phase.value}\n"
            f"Detail: {result.cause or '-'}"
        )
        send_email(subject, body)
