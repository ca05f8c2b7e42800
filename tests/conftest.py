"""
Shared fixtures for verification engine tests
"""
import random

import pytest

from helpers import PREVIEW_HEIGHT, PREVIEW_WIDTH, FakeClock
from pose_liveness.config import VerificationConfig
from pose_liveness.services.challenge_sequencer import ChallengeSequencer
from pose_liveness.services.verification_engine import VerificationEngine


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def base_config():
    return VerificationConfig(hold_duration_seconds=0.8, session_timeout_seconds=60.0)


@pytest.fixture
def engine(clock, base_config):
    engine = VerificationEngine(
        config=base_config,
        sequencer=ChallengeSequencer(rng=random.Random(7)),
        clock=clock
    )
    engine.set_preview_size(PREVIEW_WIDTH, PREVIEW_HEIGHT)
    return engine
