"""Duration-based violation state machine for one liveness modality."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sessionguard.schemas.safety import (
    LIVENESS_SCORE_DETAIL,
    LIVENESS_THRESHOLD_DETAIL,
    SafetyFlag,
    SafetyFlagKind,
)

LIVENESS_THRESHOLD = 0.6
WARN_AFTER_SEC = 10.0
KICK_AFTER_SEC = 20.0


class ViolationState(str, Enum):
    CLEAN = "clean"
    PENDING = "pending"
    WARNED = "warned"
    KICKED = "kicked"


@dataclass
class ViolationOutcome:
    """What the supervisor must do after one evaluation."""
    warn: bool = False
    kick: bool = False
    flag: Optional[SafetyFlag] = None


def liveness_flag(kind: SafetyFlagKind, score: float, threshold: float = LIVENESS_THRESHOLD) -> SafetyFlag:
    """
    Express a low liveness score as a violation flag.

    The flag score is ``1 - liveness`` against ``1 - threshold`` so that
    ``fired`` keeps meaning "score reached threshold".
    """
    return SafetyFlag.evaluate(
        kind,
        1.0 - score,
        round(1.0 - threshold, 6),
        details={LIVENESS_SCORE_DETAIL: score, LIVENESS_THRESHOLD_DETAIL: threshold},
    )


class ViolationTracker:
    """
    Clean -> Pending -> Warned -> Kicked, driven by the latest modality score.

    Any score at or above the threshold returns the tracker to Clean. The
    warning is reported once, on entering Warned; a flag is produced on every
    evaluation while Warned; the kick is reported once.
    """

    def __init__(
        self,
        kind: SafetyFlagKind,
        threshold: float = LIVENESS_THRESHOLD,
        warn_after: float = WARN_AFTER_SEC,
        kick_after: float = KICK_AFTER_SEC,
    ):
        self.kind = kind
        self.threshold = threshold
        self.warn_after = warn_after
        self.kick_after = kick_after
        self.state = ViolationState.CLEAN
        self.started_at: Optional[float] = None

    def reset(self) -> None:
        self.state = ViolationState.CLEAN
        self.started_at = None

    def evaluate(self, score: float, now: float) -> ViolationOutcome:
        """Advance the machine with the current score at monotonic time ``now`` (seconds)."""
        if score >= self.threshold:
            self.reset()
            return ViolationOutcome()

        if self.state == ViolationState.CLEAN:
            self.state = ViolationState.PENDING
            self.started_at = now
            return ViolationOutcome()

        if self.state == ViolationState.KICKED:
            return ViolationOutcome()

        elapsed = now - self.started_at
        if elapsed > self.kick_after:
            self.state = ViolationState.KICKED
            return ViolationOutcome(kick=True)

        if elapsed > self.warn_after:
            first = self.state == ViolationState.PENDING
            self.state = ViolationState.WARNED
            return ViolationOutcome(warn=first, flag=liveness_flag(self.kind, score, self.threshold))

        return ViolationOutcome()
