"""
Unit tests for FastAPI main application
"""
import base64

import cv2
import numpy as np
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from pose_liveness.config import VerificationConfig
from pose_liveness.main import create_app
from pose_liveness.models.data_models import BoundingBox, FaceObservation

PREVIEW = {"type": "preview_size", "width": 100, "height": 80}
# Target region for 100x80 is x 22.5..77.5, y 24..56
FACE_BOX = BoundingBox(left=30, top=30, right=70, bottom=50)


class FakeDetector:
    """Reports a face turned to the left inside the target region"""

    def __init__(self, yaw=25.0):
        self.yaw = yaw

    async def detect(self, frame):
        return [FaceObservation(
            bounding_box=FACE_BOX,
            yaw_degrees=self.yaw,
            pitch_degrees=0.0,
            timestamp=frame.timestamp
        )]


class RecordingDetector(FakeDetector):
    """Remembers the timestamp of every frame it sees"""

    def __init__(self):
        super().__init__()
        self.timestamps = []

    async def detect(self, frame):
        self.timestamps.append(frame.timestamp)
        return await super().detect(frame)


def encoded_frame():
    image = np.zeros((80, 100, 3), dtype=np.uint8)
    _, buffer = cv2.imencode('.jpg', image)
    return "data:image/jpeg;base64," + base64.b64encode(buffer).decode('utf-8')


@pytest.fixture
def client():
    app = create_app(
        detector_factory=FakeDetector,
        verification_config=VerificationConfig(session_timeout_seconds=30.0)
    )
    return TestClient(app)


def start_message(**config):
    config.setdefault("directions", ["left"])
    config.setdefault("hold_duration_seconds", 0.05)
    return {"type": "start", "config": config}


def receive_until(websocket, event_type, limit=10):
    """Collect messages until one of the given type arrives"""
    received = []
    for _ in range(limit):
        message = websocket.receive_json()
        received.append(message)
        if message["type"] == event_type:
            return received
    raise AssertionError(f"No {event_type} message in {received}")


def test_root_endpoint(client):
    """Test root endpoint returns correct response"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Guided Pose Liveness API"
    assert data["status"] == "running"
    assert data["version"] == "1.0.0"


def test_health_check_endpoint(client):
    """Test health check endpoint returns healthy status"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["api"] == "operational"
    assert data["services"]["engine"] == "operational"


def test_nonexistent_endpoint(client):
    """Test that nonexistent endpoints return 404"""
    response = client.get("/nonexistent")
    assert response.status_code == 404


class TestVerifyWebSocket:
    """Tests for the /ws/verify session flow"""

    def test_preview_size_acknowledged(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json(PREVIEW)

            message = websocket.receive_json()

        assert message["type"] == "state"
        assert message["data"]["state"] == "idle"

    def test_invalid_preview_size(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json({"type": "preview_size", "width": "wide"})

            message = websocket.receive_json()

        assert message["type"] == "error"

    def test_single_challenge_session_succeeds(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json(PREVIEW)
            websocket.receive_json()

            websocket.send_json(start_message())
            instruction = websocket.receive_json()
            assert instruction["type"] == "instruction_changed"
            assert instruction["message"] == "Look Left"
            assert instruction["data"]["total"] == 1

            websocket.send_json({"type": "video_frame", "frame": encoded_frame()})
            messages = receive_until(websocket, "session_succeeded")

        types = [m["type"] for m in messages]
        assert types == ["hold_accepted", "challenge_passed", "session_succeeded"]
        assert messages[-1]["message"] == "Verification Successful!"
        assert messages[-1]["data"]["report"]["overall_passed"] is True

    def test_start_while_active_is_rejected(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json(start_message())
            websocket.receive_json()

            websocket.send_json(start_message())
            message = websocket.receive_json()

        assert message["type"] == "error"

    def test_start_with_unknown_override_is_rejected(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json(start_message(speed=3))

            message = websocket.receive_json()

        assert message["type"] == "error"
        assert "speed" in message["message"]

    def test_cancel_then_reset(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json(start_message())
            websocket.receive_json()

            websocket.send_json({"type": "cancel"})
            failed = receive_until(websocket, "session_failed")[-1]
            assert failed["data"]["reason"] == "cancelled"
            assert failed["message"] == "Verification Failed"

            websocket.send_json({"type": "reset"})
            state = websocket.receive_json()

        assert state == {"type": "state", "message": "Engine is idle", "data": {"state": "idle"}}

    def test_cancel_when_idle_reports_state(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json({"type": "cancel"})

            message = websocket.receive_json()

        assert message["type"] == "state"
        assert message["data"]["state"] == "idle"

    def test_undecodable_frame(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json({"type": "video_frame", "frame": "aGVsbG8="})

            message = websocket.receive_json()

        assert message == {"type": "error", "message": "Could not decode video frame", "data": {}}

    def test_unknown_message_keeps_connection(self, client):
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_text("{not json")
            assert websocket.receive_json()["type"] == "error"

            websocket.send_json({"type": "blink"})
            assert websocket.receive_json()["type"] == "error"

            websocket.send_json(PREVIEW)
            assert websocket.receive_json()["type"] == "state"

    def test_rejects_string_boolean_override(self, client):
        """A "false" string must not silently enable shuffling"""
        with client.websocket_connect("/ws/verify") as websocket:
            websocket.send_json(start_message(randomize_order="false"))
            error = websocket.receive_json()

            websocket.send_json({"type": "cancel"})
            state = websocket.receive_json()

        assert error["type"] == "error"
        assert "randomize_order" in error["message"]
        assert state["data"]["state"] == "idle"

    def test_frames_stamped_with_app_clock(self):
        detector = RecordingDetector()
        app = create_app(
            detector_factory=lambda: detector,
            verification_config=VerificationConfig(session_timeout_seconds=30.0),
            clock=lambda: 1000.0
        )

        with TestClient(app).websocket_connect("/ws/verify") as websocket:
            websocket.send_json(PREVIEW)
            websocket.receive_json()
            websocket.send_json(start_message())
            websocket.receive_json()

            websocket.send_json({"type": "video_frame", "frame": encoded_frame()})
            hold = websocket.receive_json()

        assert hold["type"] == "hold_accepted"
        assert detector.timestamps == [1000.0]

    def test_server_error_closes_with_internal_error_code(self):
        def broken_detector():
            raise RuntimeError("no camera backend")

        app = create_app(
            detector_factory=broken_detector,
            verification_config=VerificationConfig()
        )

        with TestClient(app).websocket_connect("/ws/verify") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 1011
