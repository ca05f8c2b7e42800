"""
Unit tests for configuration
"""
import pytest

from pose_liveness.config import DEFAULT_DIRECTIONS, Config, VerificationConfig
from pose_liveness.models.data_models import Direction


class StubConfig(Config):
    TARGET_WIDTH_FRACTION = 0.5
    TARGET_HEIGHT_FRACTION = 0.5
    THRESHOLD_DEGREES = 15.0
    HOLD_DURATION_MS = 1200
    AFFIRMATION_DELAY_MS = 250
    SESSION_TIMEOUT_SECONDS = 0
    RANDOMIZE_ORDER = True
    INCLUDE_BASELINE = True
    MAX_RETRIES = 2


class TestVerificationConfig:
    """Tests for per-session settings"""

    def test_defaults(self):
        cfg = VerificationConfig()

        assert cfg.hold_duration_seconds == 0.8
        assert cfg.threshold_degrees == 20.0
        assert cfg.directions == DEFAULT_DIRECTIONS
        assert cfg.max_retries is None

    def test_from_config_converts_units(self):
        cfg = VerificationConfig.from_config(StubConfig())

        assert cfg.hold_duration_seconds == pytest.approx(1.2)
        assert cfg.affirmation_delay_seconds == pytest.approx(0.25)
        assert cfg.session_timeout_seconds is None
        assert cfg.randomize_order is True
        assert cfg.include_baseline is True
        assert cfg.max_retries == 2
        assert cfg.threshold_degrees == 15.0

    def test_directions_accept_strings(self):
        cfg = VerificationConfig(directions=["up", "left"])

        assert cfg.directions == (Direction.UP, Direction.LEFT)

    @pytest.mark.parametrize("overrides", [
        {"target_width_fraction": 0},
        {"target_height_fraction": 1.5},
        {"threshold_degrees": -1},
        {"hold_duration_seconds": 0},
        {"affirmation_delay_seconds": -0.1},
        {"session_timeout_seconds": 0},
        {"max_retries": -1},
        {"directions": ()},
        {"directions": ("sideways",)},
    ])
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValueError):
            VerificationConfig(**overrides)

    def test_with_overrides_returns_copy(self):
        base = VerificationConfig()

        changed = base.with_overrides(hold_duration_seconds=0.5, directions=["right"])

        assert changed.hold_duration_seconds == 0.5
        assert changed.directions == (Direction.RIGHT,)
        assert base.hold_duration_seconds == 0.8

    def test_with_overrides_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="speed"):
            VerificationConfig().with_overrides(speed=2)

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            VerificationConfig().threshold_degrees = 10

    @pytest.mark.parametrize("overrides", [
        {"randomize_order": "false"},
        {"include_baseline": "false"},
        {"randomize_order": 1},
        {"max_retries": "3"},
        {"max_retries": 2.5},
        {"max_retries": True},
        {"hold_duration_seconds": "0.8"},
        {"threshold_degrees": True},
        {"session_timeout_seconds": "60"},
        {"directions": "left"},
    ])
    def test_wrongly_typed_overrides_rejected(self, overrides):
        """JSON values of the wrong type are rejected rather than coerced"""
        with pytest.raises(ValueError):
            VerificationConfig().with_overrides(**overrides)

    def test_null_overrides_allowed_for_optional_fields(self):
        cfg = VerificationConfig().with_overrides(max_retries=None, session_timeout_seconds=None)

        assert cfg.max_retries is None
        assert cfg.session_timeout_seconds is None

    def test_repeated_directions_rejected(self):
        with pytest.raises(ValueError, match="repeat"):
            VerificationConfig(directions=["left", "right", "left"])

    def test_straight_with_baseline_rejected(self):
        with pytest.raises(ValueError, match="baseline"):
            VerificationConfig(directions=["straight", "left"], include_baseline=True)

    def test_straight_without_baseline_allowed(self):
        cfg = VerificationConfig(directions=["straight", "left"])

        assert cfg.directions == (Direction.STRAIGHT, Direction.LEFT)
