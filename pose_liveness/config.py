"""
Configuration management for the application
"""
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from .models.data_models import Direction

load_dotenv()


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == '':
        return None
    return int(value)


class Config:
    """Application configuration"""

    # Target region, as fractions of the preview size
    TARGET_WIDTH_FRACTION = float(os.getenv('LIVENESS_TARGET_WIDTH_FRACTION', '0.55'))
    TARGET_HEIGHT_FRACTION = float(os.getenv('LIVENESS_TARGET_HEIGHT_FRACTION', '0.40'))

    # Challenge Configuration
    THRESHOLD_DEGREES = float(os.getenv('LIVENESS_THRESHOLD_DEGREES', '20'))
    HOLD_DURATION_MS = int(os.getenv('LIVENESS_HOLD_DURATION_MS', '800'))
    AFFIRMATION_DELAY_MS = int(os.getenv('LIVENESS_AFFIRMATION_DELAY_MS', '0'))
    RANDOMIZE_ORDER = os.getenv('LIVENESS_RANDOMIZE_ORDER', 'false').lower() == 'true'
    INCLUDE_BASELINE = os.getenv('LIVENESS_INCLUDE_BASELINE', 'false').lower() == 'true'
    MAX_RETRIES = _optional_int(os.getenv('LIVENESS_MAX_RETRIES'))

    # Session Configuration (0 disables the timeout)
    SESSION_TIMEOUT_SECONDS = int(os.getenv('LIVENESS_SESSION_TIMEOUT_SECONDS', '60'))
    TICK_INTERVAL_MS = int(os.getenv('LIVENESS_TICK_INTERVAL_MS', '100'))
    EVENT_QUEUE_SIZE = int(os.getenv('LIVENESS_EVENT_QUEUE_SIZE', '64'))

    # ML Model Configuration
    MEDIAPIPE_MODEL_PATH = os.path.expanduser(os.getenv(
        'MEDIAPIPE_MODEL_PATH',
        str(Path.home() / '.mediapipe_models' / 'face_landmarker.task')
    ))
    MIRROR_YAW = os.getenv('LIVENESS_MIRROR_YAW', 'true').lower() == 'true'

    # Server Configuration
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', '8000'))
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')


config = Config()


DEFAULT_DIRECTIONS: Tuple[Direction, ...] = (Direction.LEFT, Direction.RIGHT, Direction.DOWN)

_NUMBER_FIELDS = (
    'target_width_fraction',
    'target_height_fraction',
    'threshold_degrees',
    'hold_duration_seconds',
    'affirmation_delay_seconds',
    'session_timeout_seconds',
)
_OPTIONAL_FIELDS = ('session_timeout_seconds',)
_BOOL_FIELDS = ('randomize_order', 'include_baseline')


@dataclass(frozen=True)
class VerificationConfig:
    """
    Per-session settings, built from the application config and
    optionally overridden when a session starts.
    """
    target_width_fraction: float = 0.55
    target_height_fraction: float = 0.40
    threshold_degrees: float = 20.0
    hold_duration_seconds: float = 0.8
    affirmation_delay_seconds: float = 0.0
    session_timeout_seconds: Optional[float] = 60.0
    randomize_order: bool = False
    include_baseline: bool = False
    max_retries: Optional[int] = None
    directions: Tuple[Direction, ...] = field(default=DEFAULT_DIRECTIONS)

    def __post_init__(self):
        self._check_types()
        for name in ('target_width_fraction', 'target_height_fraction'):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        if self.threshold_degrees <= 0:
            raise ValueError(f"threshold_degrees must be positive, got {self.threshold_degrees}")
        if self.hold_duration_seconds <= 0:
            raise ValueError(
                f"hold_duration_seconds must be positive, got {self.hold_duration_seconds}"
            )
        if self.affirmation_delay_seconds < 0:
            raise ValueError("affirmation_delay_seconds must not be negative")
        if self.session_timeout_seconds is not None and self.session_timeout_seconds <= 0:
            raise ValueError("session_timeout_seconds must be positive or None")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {self.max_retries}")

        # Accept plain strings, e.g. from JSON overrides
        directions = tuple(Direction(d) for d in self.directions)
        if not directions:
            raise ValueError("At least one challenge direction is required")
        if len(set(directions)) != len(directions):
            raise ValueError(
                f"Challenge directions must not repeat: {[d.value for d in directions]}"
            )
        if self.include_baseline and Direction.STRAIGHT in directions:
            raise ValueError("Straight is already the baseline challenge")
        object.__setattr__(self, 'directions', directions)

    def _check_types(self) -> None:
        # bool is an int subclass, so it is rejected explicitly for numbers
        for name in _NUMBER_FIELDS:
            value = getattr(self, name)
            if value is None and name in _OPTIONAL_FIELDS:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
        for name in _BOOL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ValueError(f"{name} must be true or false, got {value!r}")
        if self.max_retries is not None and (
            isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int)
        ):
            raise ValueError(f"max_retries must be an integer or null, got {self.max_retries!r}")
        if isinstance(self.directions, str) or not isinstance(self.directions, (list, tuple)):
            raise ValueError(f"directions must be a list, got {self.directions!r}")

    @classmethod
    def from_config(cls, cfg: Config = config) -> "VerificationConfig":
        timeout = cfg.SESSION_TIMEOUT_SECONDS
        return cls(
            target_width_fraction=cfg.TARGET_WIDTH_FRACTION,
            target_height_fraction=cfg.TARGET_HEIGHT_FRACTION,
            threshold_degrees=cfg.THRESHOLD_DEGREES,
            hold_duration_seconds=cfg.HOLD_DURATION_MS / 1000.0,
            affirmation_delay_seconds=cfg.AFFIRMATION_DELAY_MS / 1000.0,
            session_timeout_seconds=float(timeout) if timeout > 0 else None,
            randomize_order=cfg.RANDOMIZE_ORDER,
            include_baseline=cfg.INCLUDE_BASELINE,
            max_retries=cfg.MAX_RETRIES,
        )

    def with_overrides(self, **overrides) -> "VerificationConfig":
        """
        Return a copy with the given fields replaced.

        Raises:
            ValueError: On unknown field names or invalid values
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)
