"""
Shared helpers for verification engine tests
"""
from pose_liveness.models.data_models import BoundingBox, FaceObservation

# A 1000x1000 preview gives a target region of x in [225, 775], y in [300, 700]
PREVIEW_WIDTH = 1000
PREVIEW_HEIGHT = 1000
INSIDE_BOX = BoundingBox(left=300, top=350, right=700, bottom=650)
OUTSIDE_BOX = BoundingBox(left=100, top=350, right=700, bottom=650)

FRAME_INTERVAL = 1.0 / 30


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def make_observation(yaw=0.0, pitch=0.0, timestamp=0.0, box=INSIDE_BOX):
    return FaceObservation(
        bounding_box=box,
        yaw_degrees=yaw,
        pitch_degrees=pitch,
        timestamp=timestamp
    )


def feed(engine, clock, duration, yaw=0.0, pitch=0.0, box=INSIDE_BOX, face=True):
    """
    Feed 30 fps observations for the given duration.

    Returns all events emitted along the way.
    """
    events = []
    frames = int(round(duration / FRAME_INTERVAL))
    for _ in range(frames):
        clock.advance(FRAME_INTERVAL)
        observation = make_observation(yaw, pitch, clock.now, box) if face else None
        events.extend(engine.on_observation(observation, now=clock.now))
    return events


def event_types(events):
    return [event.type for event in events]
