"""
Error taxonomy for the guided liveness verification engine
"""


class LivenessError(Exception):
    """Base class for all verification engine errors"""


class InvalidGeometryError(LivenessError, ValueError):
    """
    Raised when preview or detector dimensions are zero or negative.

    Non-fatal: the engine logs it and treats the frame as not contained.
    """


class DetectionError(LivenessError):
    """
    Raised by a pose detector when a frame cannot be analysed.

    The frame pipeline treats it as "no face observed" for that frame.
    """


class InvalidCommandError(LivenessError):
    """Raised when a caller command is not valid in the current state"""
