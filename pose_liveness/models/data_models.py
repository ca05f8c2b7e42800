"""
Data models for guided pose liveness verification
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidGeometryError


class Direction(str, Enum):
    """Head pose a challenge asks for"""
    STRAIGHT = "straight"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"


class Axis(str, Enum):
    """Head rotation axis a challenge is evaluated on"""
    YAW = "yaw"
    PITCH = "pitch"


class Comparison(str, Enum):
    """How an angle is compared against a challenge threshold"""
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    WITHIN = "within"


class VerificationState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    AWAITING_POSE = "awaiting_pose"
    POSE_HELD = "pose_held"
    SUCCESS = "success"
    FAILED = "failed"


class FailureReason(str, Enum):
    SESSION_TIMEOUT = "session_timeout"
    CANCELLED = "cancelled"
    RETRIES_EXCEEDED = "retries_exceeded"


class EventType(str, Enum):
    """Events emitted by the engine for the renderer"""
    INSTRUCTION_CHANGED = "instruction_changed"
    HOLD_ACCEPTED = "hold_accepted"
    CHALLENGE_PASSED = "challenge_passed"
    CHALLENGE_FAILED = "challenge_failed"
    SESSION_SUCCEEDED = "session_succeeded"
    SESSION_FAILED = "session_failed"


ACTIVE_STATES = (
    VerificationState.STARTED,
    VerificationState.AWAITING_POSE,
    VerificationState.POSE_HELD,
)

TERMINAL_STATES = (VerificationState.SUCCESS, VerificationState.FAILED)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box given by its four edges"""
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(frozen=True)
class FrameSize:
    width: float
    height: float


@dataclass(frozen=True)
class FaceObservation:
    """
    One detector result for one frame.

    The bounding box is in detector pixel space. Angles are in degrees;
    positive yaw means the head is turned to the user's left and positive
    pitch means the head is tilted down.
    """
    bounding_box: BoundingBox
    yaw_degrees: float
    pitch_degrees: float
    timestamp: float


@dataclass(frozen=True)
class TargetRegion:
    """Rectangle in preview space where the face must stay contained"""
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @classmethod
    def from_preview(
        cls,
        preview_width: float,
        preview_height: float,
        width_fraction: float = 0.55,
        height_fraction: float = 0.40
    ) -> "TargetRegion":
        """
        Build the centered target region for a preview of the given size.

        Raises:
            InvalidGeometryError: If either preview dimension is not positive
        """
        if preview_width <= 0 or preview_height <= 0:
            raise InvalidGeometryError(
                f"Preview dimensions must be positive, got {preview_width}x{preview_height}"
            )
        width = preview_width * width_fraction
        height = preview_height * height_fraction
        return cls(
            left=(preview_width - width) / 2,
            top=(preview_height - height) / 2,
            width=width,
            height=height
        )


@dataclass(frozen=True)
class Challenge:
    """One head pose requirement"""
    direction: Direction
    axis: Optional[Axis]
    threshold_degrees: float
    comparison: Comparison
    instruction: str

    def is_satisfied_by(self, yaw_degrees: float, pitch_degrees: float) -> bool:
        """
        Check the pose angles against this challenge.

        WITHIN challenges have no single axis: both yaw and pitch must lie
        strictly inside the threshold.
        """
        if self.comparison == Comparison.WITHIN:
            return (
                abs(yaw_degrees) < self.threshold_degrees
                and abs(pitch_degrees) < self.threshold_degrees
            )

        angle = yaw_degrees if self.axis == Axis.YAW else pitch_degrees
        if self.comparison == Comparison.GREATER_THAN:
            return angle > self.threshold_degrees
        return angle < self.threshold_degrees


@dataclass(frozen=True)
class ChallengeResult:
    challenge: Challenge
    passed: bool
    elapsed_seconds: float


@dataclass(frozen=True)
class VerificationReport:
    """Read-only verdict of a finished session"""
    overall_passed: bool
    failed_challenge: Optional[Challenge]
    completed_at: float
    results: List[ChallengeResult] = field(default_factory=list)
    failure_reason: Optional[FailureReason] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_passed": self.overall_passed,
            "failed_challenge": (
                self.failed_challenge.direction.value if self.failed_challenge else None
            ),
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "completed_at": self.completed_at,
            "results": [
                {
                    "direction": result.challenge.direction.value,
                    "passed": result.passed,
                    "elapsed_seconds": round(result.elapsed_seconds, 3),
                }
                for result in self.results
            ],
        }


@dataclass
class Session:
    """
    Mutable root of one verification attempt.

    Owned exclusively by the verification engine.
    """
    generation: int
    challenges: List[Challenge]
    started_at: float
    state: VerificationState = VerificationState.STARTED
    current_index: int = 0
    results: List[ChallengeResult] = field(default_factory=list)
    challenge_started_at: Optional[float] = None
    hold_started_at: Optional[float] = None
    attempts: int = 0
    affirming: bool = False
    failure_reason: Optional[FailureReason] = None
    report: Optional[VerificationReport] = None

    @property
    def current_challenge(self) -> Optional[Challenge]:
        if 0 <= self.current_index < len(self.challenges):
            return self.challenges[self.current_index]
        return None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


# Human-readable messages for each event type, shown by the renderer
EVENT_MESSAGES = {
    EventType.INSTRUCTION_CHANGED: "New instruction",
    EventType.HOLD_ACCEPTED: "Hold still",
    EventType.CHALLENGE_PASSED: "Challenge passed",
    EventType.CHALLENGE_FAILED: "Pose lost, try again",
    EventType.SESSION_SUCCEEDED: "Verification Successful!",
    EventType.SESSION_FAILED: "Verification Failed",
}


@dataclass(frozen=True)
class VerificationEvent:
    """One-way notification from the engine to the renderer"""
    type: EventType
    generation: int
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_feedback(self) -> Dict[str, Any]:
        """Convert to the JSON message shape sent to clients"""
        message = self.payload.get("instruction") or EVENT_MESSAGES[self.type]
        return {
            "type": self.type.value,
            "message": message,
            "data": {"generation": self.generation, **self.payload},
        }
