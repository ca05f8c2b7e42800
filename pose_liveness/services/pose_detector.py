"""
Pose detector backed by MediaPipe FaceLandmarker
"""
import asyncio
import logging
import os
from typing import List, Optional, Tuple

import cv2
import numpy as np

from ..exceptions import DetectionError
from ..models.data_models import BoundingBox, FaceObservation

logger = logging.getLogger(__name__)


def rotation_to_euler(matrix: np.ndarray) -> Tuple[float, float, float]:
    """
    Extract (pitch, yaw, roll) in degrees from a rotation matrix.

    Accepts a 3x3 rotation or a 4x4 transform (the translation is ignored).
    Uses the R = Rz(roll) @ Ry(yaw) @ Rx(pitch) decomposition.
    """
    rotation = np.asarray(matrix, dtype=float)[:3, :3]

    pitch = np.arctan2(rotation[2, 1], rotation[2, 2])
    yaw = np.arcsin(np.clip(-rotation[2, 0], -1.0, 1.0))
    roll = np.arctan2(rotation[1, 0], rotation[0, 0])

    return (
        float(np.degrees(pitch)),
        float(np.degrees(yaw)),
        float(np.degrees(roll)),
    )


def landmarks_to_box(landmarks: np.ndarray, width: int, height: int) -> BoundingBox:
    """
    Bounding box of normalized landmarks, in pixel coordinates.

    Args:
        landmarks: Array of shape (N, 2+) with x, y in [0, 1]
        width: Frame width in pixels
        height: Frame height in pixels
    """
    points = np.asarray(landmarks, dtype=float)
    if points.ndim != 2 or points.shape[0] == 0:
        raise DetectionError("No landmarks to build a bounding box from")

    xs = np.clip(points[:, 0], 0.0, 1.0) * width
    ys = np.clip(points[:, 1], 0.0, 1.0) * height
    return BoundingBox(
        left=float(xs.min()),
        top=float(ys.min()),
        right=float(xs.max()),
        bottom=float(ys.max())
    )


class MediaPipePoseDetector:
    """
    Produces FaceObservations from frames using MediaPipe FaceLandmarker.

    The FaceLandmarker is initialized lazily on first detection so the
    model file (and the mediapipe package) are only needed when frames are
    actually analysed.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        mirror: bool = True,
        invert_pitch: bool = False
    ):
        """
        Args:
            model_path: Path to the face_landmarker.task model file
            mirror: Negate yaw, for front cameras shown mirrored, so that
                turning to the user's left gives positive yaw
            invert_pitch: Negate pitch if the camera reports looking down
                as negative
        """
        self.model_path = model_path
        self.mirror = mirror
        self.invert_pitch = invert_pitch
        self._face_landmarker = None

    @property
    def face_landmarker(self):
        """
        Lazy initialization of MediaPipe FaceLandmarker.

        Raises:
            DetectionError: If the model is missing or cannot be loaded
        """
        if self._face_landmarker is None:
            if self.model_path is None or not os.path.exists(self.model_path):
                raise DetectionError(
                    f"MediaPipe model not found at {self.model_path}. "
                    "Download it using: python download_mediapipe_model.py"
                )

            try:
                import mediapipe as mp

                base_options = mp.tasks.BaseOptions(model_asset_path=self.model_path)
                options = mp.tasks.vision.FaceLandmarkerOptions(
                    base_options=base_options,
                    running_mode=mp.tasks.vision.RunningMode.IMAGE,
                    num_faces=1,
                    min_face_detection_confidence=0.5,
                    min_face_presence_confidence=0.5,
                    output_face_blendshapes=False,
                    output_facial_transformation_matrixes=True
                )
                self._face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
            except Exception as e:
                logger.error(f"Failed to initialize MediaPipe FaceLandmarker: {e}")
                raise DetectionError(f"Face landmarker unavailable: {e}") from e

        return self._face_landmarker

    def preprocess_frame(self, image: np.ndarray) -> np.ndarray:
        """Convert a BGR frame (OpenCV default) to RGB for MediaPipe"""
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

    def to_observation(
        self,
        landmarks: np.ndarray,
        transform: np.ndarray,
        width: int,
        height: int,
        timestamp: float
    ) -> FaceObservation:
        """Build a FaceObservation from one face's landmarks and transform"""
        pitch, yaw, _ = rotation_to_euler(transform)
        if self.mirror:
            yaw = -yaw
        if self.invert_pitch:
            pitch = -pitch

        return FaceObservation(
            bounding_box=landmarks_to_box(landmarks, width, height),
            yaw_degrees=yaw,
            pitch_degrees=pitch,
            timestamp=timestamp
        )

    def detect_sync(self, frame) -> List[FaceObservation]:
        """Run detection on the calling thread"""
        landmarker = self.face_landmarker

        import mediapipe as mp

        rgb_frame = self.preprocess_frame(frame.image)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        try:
            result = landmarker.detect(mp_image)
        except Exception as e:
            raise DetectionError(f"FaceLandmarker failed: {e}") from e

        if not result.face_landmarks:
            return []
        if not result.facial_transformation_matrixes:
            raise DetectionError("FaceLandmarker returned no transformation matrix")

        landmarks = np.array([[lm.x, lm.y] for lm in result.face_landmarks[0]])
        observation = self.to_observation(
            landmarks,
            np.asarray(result.facial_transformation_matrixes[0]),
            frame.width,
            frame.height,
            frame.timestamp
        )
        logger.debug(
            f"Face detected: yaw={observation.yaw_degrees:.1f}, "
            f"pitch={observation.pitch_degrees:.1f}"
        )
        return [observation]

    async def detect(self, frame) -> List[FaceObservation]:
        """Run detection in the default executor so the loop is not blocked"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.detect_sync, frame)

    def __del__(self):
        """Clean up MediaPipe resources"""
        if self._face_landmarker is not None:
            self._face_landmarker.close()
