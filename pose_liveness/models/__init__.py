from .data_models import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    Axis,
    BoundingBox,
    Challenge,
    ChallengeResult,
    Comparison,
    Direction,
    EventType,
    FaceObservation,
    FailureReason,
    FrameSize,
    Session,
    TargetRegion,
    VerificationEvent,
    VerificationReport,
    VerificationState,
)

__all__ = [
    "ACTIVE_STATES",
    "TERMINAL_STATES",
    "Axis",
    "BoundingBox",
    "Challenge",
    "ChallengeResult",
    "Comparison",
    "Direction",
    "EventType",
    "FaceObservation",
    "FailureReason",
    "FrameSize",
    "Session",
    "TargetRegion",
    "VerificationEvent",
    "VerificationReport",
    "VerificationState",
]
