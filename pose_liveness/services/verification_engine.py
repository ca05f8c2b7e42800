"""
Verification Engine: the state machine that walks a user through the pose
challenges of one session
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..config import VerificationConfig
from ..exceptions import InvalidCommandError, InvalidGeometryError
from ..models.data_models import (
    Challenge,
    ChallengeResult,
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
from .challenge_sequencer import ChallengeSequencer
from .geometry import face_in_target
from .result_aggregator import ResultAggregator

logger = logging.getLogger(__name__)

EventCallback = Callable[[VerificationEvent], None]


class TimerKind(str, Enum):
    HOLD = "hold"
    AFFIRMATION = "affirmation"
    SESSION_TIMEOUT = "session_timeout"


@dataclass(frozen=True)
class Timer:
    """Pending deadline, tagged with the session generation that armed it"""
    kind: TimerKind
    deadline: float
    generation: int


class VerificationEngine:
    """
    Event-driven state machine for guided liveness verification.

    Inputs are caller commands (start, cancel, reset), face observations and
    timer ticks. Each input is processed to completion and returns the list
    of events it produced; the same events are also pushed to subscribers.
    Only one session is live per engine.

    All times are in seconds on the same clock as the observation
    timestamps (time.monotonic by default).
    """

    def __init__(
        self,
        config: Optional[VerificationConfig] = None,
        sequencer: Optional[ChallengeSequencer] = None,
        aggregator: Optional[ResultAggregator] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config if config is not None else VerificationConfig.from_config()
        self.sequencer = sequencer if sequencer is not None else ChallengeSequencer()
        self.aggregator = aggregator if aggregator is not None else ResultAggregator()
        self.clock = clock

        self.session: Optional[Session] = None
        self.session_config = self.config
        self.preview_size: Optional[FrameSize] = None
        self.target_region: Optional[TargetRegion] = None

        self._generation = 0
        self._timers: Dict[TimerKind, Timer] = {}
        self._subscribers: List[EventCallback] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> VerificationState:
        if self.session is None:
            return VerificationState.IDLE
        return self.session.state

    @property
    def current_challenge(self) -> Optional[Challenge]:
        if self.session is None or not self.session.is_active:
            return None
        return self.session.current_challenge

    @property
    def report(self) -> Optional[VerificationReport]:
        return self.session.report if self.session is not None else None

    @property
    def pending_timers(self) -> Dict[TimerKind, Timer]:
        return dict(self._timers)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, callback: EventCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # ------------------------------------------------------------------
    # Preview geometry
    # ------------------------------------------------------------------

    def set_preview_size(self, width: float, height: float) -> None:
        """
        Record the renderer's preview size and recompute the target region.

        Invalid sizes are kept but leave no target region, so containment
        fails until a valid size arrives.
        """
        self.preview_size = FrameSize(width=width, height=height)
        self._recompute_target_region()

    def _recompute_target_region(self) -> None:
        if self.preview_size is None:
            self.target_region = None
            return
        try:
            self.target_region = TargetRegion.from_preview(
                self.preview_size.width,
                self.preview_size.height,
                self.session_config.target_width_fraction,
                self.session_config.target_height_fraction
            )
        except InvalidGeometryError as e:
            logger.warning(f"Target region unavailable: {e}")
            self.target_region = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, config: Optional[VerificationConfig] = None) -> List[VerificationEvent]:
        """
        Begin a new session.

        Args:
            config: Settings for this session only (defaults to the engine's)

        Returns:
            List[VerificationEvent]: The first instruction event

        Raises:
            InvalidCommandError: If a session is active or awaiting reset
        """
        if self.session is not None:
            raise InvalidCommandError(
                f"Cannot start: session {self.session.generation} is "
                f"{self.session.state.value}; reset() it first"
            )

        session_config = config if config is not None else self.config
        # Nothing is committed until the sequence has been built
        challenges = self.sequencer.build_sequence(
            randomized=session_config.randomize_order,
            directions=session_config.directions,
            include_baseline=session_config.include_baseline,
            threshold_degrees=session_config.threshold_degrees
        )

        now = self.clock()
        self.session_config = session_config
        self._recompute_target_region()
        self._cancel_all_timers()

        self._generation += 1
        self.session = Session(
            generation=self._generation,
            challenges=challenges,
            started_at=now
        )
        logger.info(
            f"Session {self._generation} started with challenges "
            f"{[c.direction.value for c in challenges]}"
        )

        timeout = self.session_config.session_timeout_seconds
        if timeout is not None:
            self._arm(TimerKind.SESSION_TIMEOUT, now + timeout)

        events: List[VerificationEvent] = []
        self._begin_challenge(now, events)
        return self._emit(events)

    def cancel(self) -> List[VerificationEvent]:
        """Fail the active session with reason CANCELLED (no-op otherwise)"""
        if self.session is None or not self.session.is_active:
            logger.debug(f"cancel() ignored in state {self.state.value}")
            return []
        events: List[VerificationEvent] = []
        self._fail(FailureReason.CANCELLED, self.clock(), events)
        return self._emit(events)

    def reset(self) -> List[VerificationEvent]:
        """Return a finished session to IDLE (no-op unless terminal)"""
        if self.session is None or not self.session.is_terminal:
            logger.debug(f"reset() ignored in state {self.state.value}")
            return []
        logger.info(f"Session {self.session.generation} reset")
        self._cancel_all_timers()
        self.session = None
        self.session_config = self.config
        self._recompute_target_region()
        return []

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def on_observation(
        self,
        observation: Optional[FaceObservation],
        detector_size: Optional[FrameSize] = None,
        now: Optional[float] = None
    ) -> List[VerificationEvent]:
        """
        Feed the result of one processed frame.

        Args:
            observation: The face seen in the frame, or None if no face
            detector_size: Size of the frame the detector analysed; the
                preview size is assumed when omitted
            now: Time of the frame (defaults to the observation timestamp,
                or the clock when there is no observation)

        Returns:
            List[VerificationEvent]: Events produced by this input
        """
        if now is None:
            now = observation.timestamp if observation is not None else self.clock()

        events: List[VerificationEvent] = []
        self._process_timers(now, events)

        session = self.session
        if session is None or not session.is_active or session.affirming:
            return self._emit(events)

        satisfied = self._conditions_hold(session.current_challenge, observation, detector_size)

        if session.state == VerificationState.AWAITING_POSE:
            if satisfied:
                self._accept_hold(now, events)
        elif session.state == VerificationState.POSE_HELD:
            if not satisfied:
                self._interrupt_hold(now, events)

        return self._emit(events)

    def tick(self, now: Optional[float] = None) -> List[VerificationEvent]:
        """Fire every timer whose deadline has passed"""
        if now is None:
            now = self.clock()
        events: List[VerificationEvent] = []
        self._process_timers(now, events)
        return self._emit(events)

    # ------------------------------------------------------------------
    # Condition evaluation
    # ------------------------------------------------------------------

    def _conditions_hold(
        self,
        challenge: Optional[Challenge],
        observation: Optional[FaceObservation],
        detector_size: Optional[FrameSize]
    ) -> bool:
        if challenge is None or observation is None:
            return False

        if not challenge.is_satisfied_by(observation.yaw_degrees, observation.pitch_degrees):
            logger.debug(
                f"Pose not satisfied for {challenge.direction.value}: "
                f"yaw={observation.yaw_degrees:.1f}, pitch={observation.pitch_degrees:.1f}"
            )
            return False

        if self.preview_size is None or self.target_region is None:
            logger.warning("No valid preview size; containment cannot be evaluated")
            return False

        try:
            return face_in_target(
                observation.bounding_box,
                detector_size if detector_size is not None else self.preview_size,
                self.preview_size,
                self.target_region
            )
        except InvalidGeometryError as e:
            logger.warning(f"Skipping containment check: {e}")
            return False

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _begin_challenge(self, now: float, events: List[VerificationEvent]) -> None:
        session = self.session
        challenge = session.current_challenge
        session.state = VerificationState.AWAITING_POSE
        session.challenge_started_at = now
        session.hold_started_at = None
        session.attempts = 0
        session.affirming = False

        logger.info(
            f"Session {session.generation}: challenge {session.current_index + 1}/"
            f"{len(session.challenges)} '{challenge.instruction}'"
        )
        events.append(self._event(EventType.INSTRUCTION_CHANGED, {
            "direction": challenge.direction.value,
            "instruction": challenge.instruction,
            "index": session.current_index,
            "total": len(session.challenges),
            "border_color": "white",
        }))

    def _accept_hold(self, now: float, events: List[VerificationEvent]) -> None:
        session = self.session
        session.state = VerificationState.POSE_HELD
        session.hold_started_at = now
        self._arm(TimerKind.HOLD, now + self.session_config.hold_duration_seconds)

        events.append(self._event(EventType.HOLD_ACCEPTED, {
            "direction": session.current_challenge.direction.value,
            "index": session.current_index,
            "hold_seconds": self.session_config.hold_duration_seconds,
            "border_color": "green",
        }))

    def _interrupt_hold(self, now: float, events: List[VerificationEvent]) -> None:
        session = self.session
        self._cancel(TimerKind.HOLD)
        session.state = VerificationState.AWAITING_POSE
        session.hold_started_at = None
        session.attempts += 1

        max_retries = self.session_config.max_retries
        terminal = max_retries is not None and session.attempts > max_retries
        logger.debug(
            f"Hold interrupted on {session.current_challenge.direction.value} "
            f"(attempt {session.attempts}, terminal={terminal})"
        )
        events.append(self._event(EventType.CHALLENGE_FAILED, {
            "direction": session.current_challenge.direction.value,
            "index": session.current_index,
            "attempts": session.attempts,
            "terminal": terminal,
            "border_color": "white",
        }))

        if terminal:
            self._fail(FailureReason.RETRIES_EXCEEDED, now, events)

    def _complete_challenge(self, now: float, events: List[VerificationEvent]) -> None:
        session = self.session
        challenge = session.current_challenge
        elapsed = now - session.challenge_started_at
        session.results.append(ChallengeResult(
            challenge=challenge,
            passed=True,
            elapsed_seconds=elapsed
        ))
        session.current_index += 1
        session.hold_started_at = None
        session.challenge_started_at = now

        logger.info(
            f"Session {session.generation}: '{challenge.instruction}' passed in {elapsed:.2f}s"
        )
        events.append(self._event(EventType.CHALLENGE_PASSED, {
            "direction": challenge.direction.value,
            "index": session.current_index - 1,
            "elapsed_seconds": elapsed,
            "border_color": "green",
        }))

        if session.current_index == len(session.challenges):
            self._succeed(now, events)
            return

        delay = self.session_config.affirmation_delay_seconds
        if delay > 0:
            session.state = VerificationState.AWAITING_POSE
            session.affirming = True
            self._arm(TimerKind.AFFIRMATION, now + delay)
        else:
            self._begin_challenge(now, events)

    def _succeed(self, now: float, events: List[VerificationEvent]) -> None:
        session = self.session
        session.state = VerificationState.SUCCESS
        session.report = self.aggregator.finalize(
            session.results, len(session.challenges), completed_at=now
        )
        self._cancel_all_timers()

        logger.info(f"Session {session.generation} succeeded")
        events.append(self._event(EventType.SESSION_SUCCEEDED, {
            "report": session.report.to_dict(),
            "border_color": "green",
        }))

    def _fail(self, reason: FailureReason, now: float, events: List[VerificationEvent]) -> None:
        session = self.session
        challenge = session.current_challenge
        if challenge is not None:
            session.results.append(ChallengeResult(
                challenge=challenge,
                passed=False,
                elapsed_seconds=now - session.challenge_started_at
            ))
        session.state = VerificationState.FAILED
        session.failure_reason = reason
        session.hold_started_at = None
        session.affirming = False
        session.report = self.aggregator.finalize(
            session.results, len(session.challenges), failure_reason=reason,
            completed_at=now
        )
        self._cancel_all_timers()

        logger.info(
            f"Session {session.generation} failed: {reason.value}"
            + (f" on '{challenge.instruction}'" if challenge is not None else "")
        )
        events.append(self._event(EventType.SESSION_FAILED, {
            "reason": reason.value,
            "failed_direction": challenge.direction.value if challenge is not None else None,
            "report": session.report.to_dict(),
            "border_color": "red",
        }))

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm(self, kind: TimerKind, deadline: float) -> None:
        # Replaces any pending timer of the same kind
        self._timers[kind] = Timer(kind=kind, deadline=deadline, generation=self._generation)

    def _cancel(self, kind: TimerKind) -> None:
        self._timers.pop(kind, None)

    def _cancel_all_timers(self) -> None:
        self._timers.clear()

    def _process_timers(self, now: float, events: List[VerificationEvent]) -> None:
        while True:
            due = [t for t in self._timers.values() if t.deadline <= now]
            if not due:
                return
            timer = min(due, key=lambda t: t.deadline)
            del self._timers[timer.kind]

            session = self.session
            if session is None or timer.generation != session.generation:
                logger.debug(f"Ignoring stale {timer.kind.value} timer from session {timer.generation}")
                continue
            self._fire(timer, events)

    def _fire(self, timer: Timer, events: List[VerificationEvent]) -> None:
        session = self.session
        if not session.is_active:
            return

        if timer.kind == TimerKind.HOLD:
            if session.state == VerificationState.POSE_HELD:
                self._complete_challenge(timer.deadline, events)
        elif timer.kind == TimerKind.AFFIRMATION:
            if session.affirming:
                self._begin_challenge(timer.deadline, events)
        elif timer.kind == TimerKind.SESSION_TIMEOUT:
            self._fail(FailureReason.SESSION_TIMEOUT, timer.deadline, events)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _event(self, event_type: EventType, payload: dict) -> VerificationEvent:
        return VerificationEvent(
            type=event_type,
            generation=self.session.generation,
            payload=payload
        )

    def _emit(self, events: List[VerificationEvent]) -> List[VerificationEvent]:
        for event in events:
            logger.debug(f"Emitting {event.type.value} for session {event.generation}")
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"Event subscriber failed on {event.type.value}: {e}")
        return events
