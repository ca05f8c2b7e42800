"""
Frame pipeline connecting a frame source and a pose detector to the
verification engine.

Frames go through a depth-1 slot: a frame that arrives while another is
still waiting replaces it, and at most one detection is in flight. Every
frame handle is closed exactly once, whatever happens to it.
"""
import asyncio
import logging
from typing import List, Optional, Protocol

from ..exceptions import DetectionError
from ..models.data_models import FaceObservation, FrameSize, VerificationEvent
from .verification_engine import VerificationEngine

logger = logging.getLogger(__name__)


class FrameHandle(Protocol):
    """A camera frame that must be released once analysed or skipped"""
    width: int
    height: int
    timestamp: float

    def close(self) -> None:
        ...


class PoseDetector(Protocol):
    async def detect(self, frame: FrameHandle) -> List[FaceObservation]:
        """Return zero or more faces; raise DetectionError on failure"""
        ...


class LatestFrameSlot:
    """Single-slot buffer that overwrites on full"""

    def __init__(self):
        self._frame: Optional[FrameHandle] = None
        self._ready = asyncio.Event()

    def put(self, frame: FrameHandle) -> Optional[FrameHandle]:
        """Store the frame and return the one it replaced, if any"""
        replaced = self._frame
        self._frame = frame
        self._ready.set()
        return replaced

    def take(self) -> Optional[FrameHandle]:
        frame = self._frame
        self._frame = None
        self._ready.clear()
        return frame

    async def get(self) -> FrameHandle:
        while True:
            await self._ready.wait()
            frame = self.take()
            if frame is not None:
                return frame

    def __len__(self) -> int:
        return 0 if self._frame is None else 1


class FramePipeline:
    """
    Runs pose detection on the latest frame and feeds the result to the
    engine.

    Must be used from a single event loop; the engine is only touched from
    that loop.
    """

    def __init__(self, engine: VerificationEngine, detector: PoseDetector):
        self.engine = engine
        self.detector = detector
        self._slot = LatestFrameSlot()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

        self.frames_processed = 0
        self.frames_dropped = 0
        self.detection_errors = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the worker task on the running loop"""
        if self.is_running:
            return
        self._closed = False
        self._task = asyncio.create_task(self._run())

    def submit(self, frame: FrameHandle) -> None:
        """
        Hand a frame to the pipeline.

        Never blocks. A frame still waiting in the slot is dropped and
        released.
        """
        if self._closed:
            logger.warning("Frame submitted after pipeline stopped; releasing it")
            self._release(frame)
            return

        replaced = self._slot.put(frame)
        if replaced is not None:
            self.frames_dropped += 1
            logger.debug(f"Dropping stale frame ({self.frames_dropped} dropped so far)")
            self._release(replaced)

    async def process_frame(self, frame: FrameHandle) -> List[VerificationEvent]:
        """
        Detect faces on one frame, feed the engine and release the frame.

        A DetectionError counts as "no face" for the frame.
        """
        try:
            try:
                observations = await self.detector.detect(frame)
            except DetectionError as e:
                self.detection_errors += 1
                logger.error(f"Pose detection failed: {e}")
                observations = []

            observation = observations[0] if observations else None
            return self.engine.on_observation(
                observation,
                detector_size=FrameSize(width=frame.width, height=frame.height),
                now=frame.timestamp
            )
        finally:
            self.frames_processed += 1
            self._release(frame)

    async def stop(self) -> None:
        """Stop the worker and release any frame still waiting"""
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        leftover = self._slot.take()
        if leftover is not None:
            self._release(leftover)

    async def _run(self) -> None:
        while True:
            frame = await self._slot.get()
            try:
                await self.process_frame(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error processing frame: {e}")

    def _release(self, frame: FrameHandle) -> None:
        try:
            frame.close()
        except Exception as e:
            logger.error(f"Error releasing frame: {e}")
