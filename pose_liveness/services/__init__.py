from .challenge_sequencer import ChallengeSequencer
from .frame_pipeline import FramePipeline, LatestFrameSlot
from .geometry import face_in_target, is_contained, normalize_bounding_box
from .result_aggregator import ResultAggregator
from .verification_engine import Timer, TimerKind, VerificationEngine

__all__ = [
    "ChallengeSequencer",
    "FramePipeline",
    "LatestFrameSlot",
    "ResultAggregator",
    "Timer",
    "TimerKind",
    "VerificationEngine",
    "face_in_target",
    "is_contained",
    "normalize_bounding_box",
]
