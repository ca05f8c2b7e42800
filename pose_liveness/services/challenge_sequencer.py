"""
Challenge Sequencer for building the ordered list of pose challenges
"""
import random
from typing import Dict, List, Optional, Sequence

from ..models.data_models import Axis, Challenge, Comparison, Direction

DEFAULT_THRESHOLD_DEGREES = 20.0


class ChallengeSequencer:
    """
    Builds the challenge sequence for a session from a static catalog.

    The random source is injectable so tests can seed it; by default a
    SystemRandom is used so production order cannot be predicted.
    """

    # Designer-chosen order used when randomization is off
    DEFAULT_ORDER = (Direction.LEFT, Direction.RIGHT, Direction.DOWN)

    # Human-readable instructions for each direction
    INSTRUCTIONS = {
        Direction.STRAIGHT: "Look Straight Ahead",
        Direction.LEFT: "Look Left",
        Direction.RIGHT: "Look Right",
        Direction.UP: "Look Up",
        Direction.DOWN: "Look Down",
    }

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.SystemRandom()

    @classmethod
    def catalog(
        cls,
        threshold_degrees: float = DEFAULT_THRESHOLD_DEGREES
    ) -> Dict[Direction, Challenge]:
        """
        One challenge per supported direction.

        Positive yaw is a turn to the user's left, positive pitch a tilt
        downwards.
        """
        def make(direction, axis, threshold, comparison):
            return Challenge(
                direction=direction,
                axis=axis,
                threshold_degrees=threshold,
                comparison=comparison,
                instruction=cls.INSTRUCTIONS[direction]
            )

        return {
            Direction.STRAIGHT: make(
                Direction.STRAIGHT, None, threshold_degrees, Comparison.WITHIN
            ),
            Direction.LEFT: make(
                Direction.LEFT, Axis.YAW, threshold_degrees, Comparison.GREATER_THAN
            ),
            Direction.RIGHT: make(
                Direction.RIGHT, Axis.YAW, -threshold_degrees, Comparison.LESS_THAN
            ),
            Direction.UP: make(
                Direction.UP, Axis.PITCH, -threshold_degrees, Comparison.LESS_THAN
            ),
            Direction.DOWN: make(
                Direction.DOWN, Axis.PITCH, threshold_degrees, Comparison.GREATER_THAN
            ),
        }

    def build_sequence(
        self,
        randomized: bool,
        directions: Sequence[Direction] = DEFAULT_ORDER,
        include_baseline: bool = False,
        threshold_degrees: float = DEFAULT_THRESHOLD_DEGREES
    ) -> List[Challenge]:
        """
        Build the ordered challenge list for one session.

        Args:
            randomized: Shuffle the directions uniformly when True
            directions: Directions to include, in their fixed order
            include_baseline: Prepend a Straight challenge (never shuffled)
            threshold_degrees: Angle threshold for every challenge

        Returns:
            List[Challenge]: Each requested direction exactly once

        Raises:
            ValueError: If a direction is repeated, or Straight is requested
                both explicitly and as baseline
        """
        ordered = [Direction(d) for d in directions]
        if len(set(ordered)) != len(ordered):
            raise ValueError(f"Challenge directions must not repeat: {ordered}")
        if include_baseline and Direction.STRAIGHT in ordered:
            raise ValueError("Straight is already the baseline challenge")

        if randomized:
            self.rng.shuffle(ordered)

        if include_baseline:
            ordered.insert(0, Direction.STRAIGHT)

        challenges = self.catalog(threshold_degrees)
        return [challenges[direction] for direction in ordered]
