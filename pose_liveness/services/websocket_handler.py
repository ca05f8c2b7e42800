"""
WebSocket handler for real-time guided liveness verification.

This module provides the WebSocketHandler class that manages WebSocket connections,
video frame decoding, client command parsing and delivery of engine events.
"""
from fastapi import WebSocket
from fastapi.websockets import WebSocketState
from typing import Any, Callable, Dict, Optional
import logging
import json
import base64
import time
import numpy as np
import cv2

from ..models.data_models import VerificationEvent

logger = logging.getLogger(__name__)

# Client -> server message types
MESSAGE_TYPES = ("preview_size", "start", "video_frame", "cancel", "reset")


class DecodedFrame:
    """
    Frame handle for an image decoded from a client message.

    close() drops the pixel buffer; closing twice is a bug in the caller
    and raises RuntimeError.
    """

    def __init__(self, image: np.ndarray, timestamp: Optional[float] = None):
        self.image = image
        self.height, self.width = image.shape[:2]
        self.timestamp = timestamp if timestamp is not None else time.monotonic()
        self.closed = False

    def close(self) -> None:
        if self.closed:
            raise RuntimeError("Frame already released")
        self.closed = True
        self.image = None


class WebSocketHandler:
    """
    Manages WebSocket communication for real-time verification.

    This class encapsulates all WebSocket-related functionality including:
    - Connection lifecycle management
    - Client message reception and validation
    - Video frame decoding
    - Event and error delivery
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Stamps decoded frames; must be the engine's clock
        """
        self.clock = clock

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Accept the WebSocket connection.

        Args:
            websocket: FastAPI WebSocket connection object
        """
        await websocket.accept()
        logger.info("WebSocket connection established for verification")

    async def receive_message(self, websocket: WebSocket) -> Optional[Dict[str, Any]]:
        """
        Receive one JSON message from the client.

        Returns:
            The parsed message, or None if it is not valid JSON, not an
            object, or has an unknown type. An error message is sent back
            to the client in those cases.

        Raises:
            WebSocketDisconnect: If the client disconnected
        """
        data = await websocket.receive_text()

        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON received: {e}")
            await self.send_error(websocket, "Invalid JSON message")
            return None

        if not isinstance(message, dict) or message.get("type") not in MESSAGE_TYPES:
            logger.warning(f"Unknown message received: {data[:100]}")
            await self.send_error(websocket, "Unknown message type")
            return None

        return message

    def decode_frame(self, message: Dict[str, Any]) -> Optional[DecodedFrame]:
        """
        Build a frame handle from a video_frame message.

        Returns:
            DecodedFrame, or None if the frame is missing or undecodable
        """
        frame_data = message.get("frame")
        if not frame_data:
            return None
        image = self._decode_frame(frame_data)
        if image is None:
            return None
        return DecodedFrame(image, timestamp=self.clock())

    async def send_event(self, websocket: WebSocket, event: VerificationEvent) -> None:
        """
        Send an engine event to the client as {type, message, data}.

        Args:
            websocket: FastAPI WebSocket connection object
            event: Event emitted by the verification engine
        """
        try:
            await websocket.send_json(event.to_feedback())
            logger.debug(f"Sent event: {event.type.value}")
        except Exception as e:
            logger.error(f"Error sending event: {e}")
            raise

    async def send_error(self, websocket: WebSocket, message: str) -> None:
        """Send an error message to the client"""
        await websocket.send_json({
            "type": "error",
            "message": message,
            "data": {}
        })

    async def send_state(self, websocket: WebSocket, state: str) -> None:
        """Acknowledge a command that produced no engine event"""
        await websocket.send_json({
            "type": "state",
            "message": f"Engine is {state}",
            "data": {"state": state}
        })

    async def close_connection(self, websocket: WebSocket, code: int, reason: str) -> bool:
        """
        Close the connection from the server side.

        Args:
            websocket: FastAPI WebSocket connection object
            code: WebSocket close code sent to the client
            reason: Human-readable reason for closure

        Returns:
            False if the client had already gone away
        """
        if websocket.client_state == WebSocketState.DISCONNECTED:
            logger.debug(f"Not closing ({reason}): client already disconnected")
            return False
        try:
            await websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            # Starlette refuses to close a socket whose close already started
            logger.warning(f"Close raced a disconnect: {e}")
            return False
        logger.info(f"WebSocket closed by server: {reason} (code: {code})")
        return True

    def _decode_frame(self, frame_data: str) -> Optional[np.ndarray]:
        """
        Decode base64-encoded video frame.

        Args:
            frame_data: Base64-encoded image data (may include data URL prefix)

        Returns:
            Decoded frame as numpy array (BGR format), or None if decoding fails
        """
        try:
            # Remove data URL prefix if present (e.g., "data:image/jpeg;base64,")
            if "," in frame_data:
                frame_data = frame_data.split(",")[1]

            img_bytes = base64.b64decode(frame_data)
            nparr = np.frombuffer(img_bytes, np.uint8)
            frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

            if frame is None:
                logger.error("Failed to decode frame: cv2.imdecode returned None")
                return None

            return frame

        except Exception as e:
            logger.error(f"Error decoding frame: {e}")
            return None

