"""
Purpose: Movement classification for a broadcasting vehicle.
What it does:
Turns a noisy stream of position samples into IDLE / MOVING / STOPPED
using a displacement threshold and a stop debounce timer.

Rules:
- First sample only sets the reference point; status stays IDLE until a
  second sample makes displacement computable.
- displacement >= threshold: MOVING right away, pending stop timer cancelled.
- displacement <  threshold: (re)arm the stop timer; if it expires with no
  new sample in between, STOPPED.
- Every sample becomes the new reference, whatever the outcome.
- reset() ends the session: IDLE, no reference, no timer.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from .models import MovementStatus, Sample
from .policy import TrackingPolicy, default_tracking_policy
from .timers import Timer

logger = logging.getLogger(__name__)

StatusListener = Callable[[MovementStatus], None]


class ClassifierState(str, Enum):
    """
    Internal state. UNKNOWN means no reference sample yet and is shown as IDLE.
    """
    UNKNOWN = "unknown"
    IDLE = "idle"
    MOVING = "moving"
    STOPPED = "stopped"


_EXPOSED = {
    ClassifierState.UNKNOWN: MovementStatus.IDLE,
    ClassifierState.IDLE: MovementStatus.IDLE,
    ClassifierState.MOVING: MovementStatus.MOVING,
    ClassifierState.STOPPED: MovementStatus.STOPPED,
}


class MovementClassifier:
    """
    One instance per broadcasting session. Owns its reference sample
    and its stop timer; nothing is shared between sessions.
    """

    def __init__(
        self,
        timer: Timer,
        policy: Optional[TrackingPolicy] = None,
        on_status_change: Optional[StatusListener] = None,
    ):
        self.policy = policy or default_tracking_policy()
        self._timer = timer
        self._on_status_change = on_status_change
        self._state = ClassifierState.UNKNOWN
        self._reference: Optional[Sample] = None

    @property
    def state(self) -> ClassifierState:
        return self._state

    @property
    def status(self) -> MovementStatus:
        return _EXPOSED[self._state]

    @property
    def reference(self) -> Optional[Sample]:
        return self._reference

    @property
    def stop_pending(self) -> bool:
        return self._timer.armed

    def observe(self, sample: Sample) -> MovementStatus:
        """
        Feed one sample. Returns the status right after processing it
        (a pending stop only shows up once the timer fires).
        """
        previous = self._reference
        self._reference = sample

        if previous is None:
            self._set_state(ClassifierState.IDLE)
            return self.status

        displacement = sample.position.displacement_to(previous.position)

        if displacement >= self.policy.movement_threshold_deg:
            self._timer.cancel()
            self._set_state(ClassifierState.MOVING)
        else:
            # restart, never accumulate
            self._timer.arm(self.policy.stop_debounce_ms, self._on_stop_timeout)

        return self.status

    def reset(self) -> None:
        """
        Session over: back to IDLE with no reference and no pending timer.
        """
        self._timer.cancel()
        self._reference = None
        self._set_state(ClassifierState.UNKNOWN)

    def _on_stop_timeout(self) -> None:
        self._set_state(ClassifierState.STOPPED)

    def _set_state(self, new_state: ClassifierState) -> None:
        old_status = self.status
        self._state = new_state
        if self.status != old_status:
            logger.debug("Movement status %s -> %s", old_status.value, self.status.value)
            if self._on_status_change is not None:
                self._on_status_change(self.status)
