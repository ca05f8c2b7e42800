#!/usr/bin/env python3
"""
Download the MediaPipe Face Landmarker model used for head pose estimation.

The model is saved to MEDIAPIPE_MODEL_PATH (from the environment or .env),
which is where MediaPipePoseDetector looks for it.
"""
import sys
import urllib.request
from pathlib import Path

from pose_liveness.config import config

MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/latest/face_landmarker.task"
)


def download_model(model_path: Path) -> bool:
    """Download the model unless it is already present."""
    if model_path.exists():
        print(f"✓ Model already exists at {model_path}")
        print(f"✓ Model size: {model_path.stat().st_size / 1024 / 1024:.2f} MB")
        return True

    model_path.parent.mkdir(parents=True, exist_ok=True)
    print(f"Downloading MediaPipe Face Landmarker from {MODEL_URL}...")
    print(f"Saving to {model_path}")

    def report_progress(block_num, block_size, total_size):
        if total_size > 0:
            percent = min(100, block_num * block_size * 100 / total_size)
            print(f"\rProgress: {percent:.1f}%", end="")

    try:
        urllib.request.urlretrieve(MODEL_URL, model_path, reporthook=report_progress)
    except OSError as e:
        print(f"\n✗ Download failed: {e}")
        if model_path.exists():
            model_path.unlink()
        return False

    print("\n✓ Download complete!")
    print(f"✓ Model size: {model_path.stat().st_size / 1024 / 1024:.2f} MB")
    return True


def main() -> int:
    model_path = Path(config.MEDIAPIPE_MODEL_PATH)

    print("=" * 60)
    print("MediaPipe Face Landmarker Model Downloader")
    print("=" * 60)

    if not download_model(model_path):
        print("\nPlease check your internet connection and try again.")
        return 1

    print("\nMediaPipePoseDetector will load the model from:")
    print(f"  MEDIAPIPE_MODEL_PATH={model_path}")
    print("\nInstall the detector backend with:")
    print("  pip install -e .[mediapipe]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
