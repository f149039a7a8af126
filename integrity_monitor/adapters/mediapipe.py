"""MediaPipeAdapter: MediaPipe Tasks face landmarker + object detector.

Expected raw format:
{
    "source_type": "mediapipe",
    "image_width": 640,
    "image_height": 480,
    "face_landmarks": [[{"x": 0.51, "y": 0.42, "z": -0.03}, ...]],
    "detections": [
        {
            "categories": [{"category_name": "cell phone", "score": 0.77}],
            "bounding_box": {"origin_x": 10, "origin_y": 20, "width": 80, "height": 140}
        }
    ]
}

Landmarks are normalised to [0, 1] and scaled to pixels here; bounding
boxes are already in pixels.
"""

from __future__ import annotations

from functools import partial
from typing import Any

from integrity_monitor.adapters.base import FrameAdapter
from integrity_monitor.adapters.face_mesh import MESH_LANDMARKS
from integrity_monitor.domain.detection import (
    DetectionFrame,
    FaceObservation,
    ObjectObservation,
    Point,
)


def _face_from_landmarks(landmarks: list[dict[str, Any]], width: float, height: float) -> FaceObservation:
    keypoints: dict[str, Point] = {}
    for name, index in MESH_LANDMARKS.items():
        if index < len(landmarks):
            lm = landmarks[index]
            keypoints[name] = Point(x=float(lm["x"]) * width, y=float(lm["y"]) * height)
    return FaceObservation(keypoints=keypoints)


def _object_from_detection(det: dict[str, Any]) -> ObjectObservation:
    # The detector ranks categories; the first one is the best guess
    best = det["categories"][0]
    box = det["bounding_box"]
    return ObjectObservation(
        label=str(best["category_name"]),
        score=float(best["score"]),
        bbox=(box["origin_x"], box["origin_y"], box["width"], box["height"]),
    )


class MediaPipeAdapter(FrameAdapter):
    """Maps MediaPipe Tasks payloads to DetectionFrames."""

    @property
    def source_name(self) -> str:
        return "mediapipe"

    def can_handle(self, raw: dict[str, Any]) -> bool:
        return raw.get("source_type") == "mediapipe"

    def adapt(self, raw: dict[str, Any]) -> DetectionFrame:
        width = self._dimension(raw, "image_width", "width")
        height = self._dimension(raw, "image_height", "height")
        return DetectionFrame(
            faces=self._section(
                raw,
                "face_landmarks",
                partial(_face_from_landmarks, width=width, height=height),
            ),
            objects=self._section(raw, "detections", _object_from_detection),
            frame_width=width,
            frame_height=height,
            captured_at=raw.get("timestamp"),
        )
