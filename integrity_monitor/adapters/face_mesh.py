"""FaceMeshAdapter: browser face-landmarks + COCO-SSD payloads.

Expected raw format:
{
    "source_type": "face_mesh",
    "video_width": 1280,
    "video_height": 720,
    "faces": [{"scaledMesh": [[x, y, z], ...]}],
    "predictions": [{"class": "cell phone", "score": 0.81, "bbox": [x, y, w, h]}]
}

Mesh coordinates are already in pixels.  ``predictions`` is omitted on
ticks where the object detector did not run.
"""

from __future__ import annotations

from typing import Any

from integrity_monitor.adapters.base import FrameAdapter
from integrity_monitor.domain.detection import (
    LEFT_EYE,
    NOSE,
    RIGHT_EYE,
    DetectionFrame,
    FaceObservation,
    ObjectObservation,
    Point,
)

# Face-mesh topology indices for the gaze landmarks.
MESH_LANDMARKS: dict[str, int] = {LEFT_EYE: 33, RIGHT_EYE: 263, NOSE: 1}


def _face_from_mesh(face: dict[str, Any]) -> FaceObservation:
    mesh = face["scaledMesh"]
    keypoints: dict[str, Point] = {}
    for name, index in MESH_LANDMARKS.items():
        # Truncated meshes simply lack landmarks; the focus tracker skips them
        if index < len(mesh):
            x, y = mesh[index][0], mesh[index][1]
            keypoints[name] = Point(x=float(x), y=float(y))
    return FaceObservation(keypoints=keypoints, score=face.get("faceInViewConfidence"))


def _object_from_prediction(pred: dict[str, Any]) -> ObjectObservation:
    x, y, w, h = pred["bbox"]
    return ObjectObservation(label=str(pred["class"]), score=float(pred["score"]), bbox=(x, y, w, h))


class FaceMeshAdapter(FrameAdapter):
    """Maps face-mesh / COCO-SSD payloads to DetectionFrames."""

    @property
    def source_name(self) -> str:
        return "face_mesh"

    def can_handle(self, raw: dict[str, Any]) -> bool:
        return raw.get("source_type") == "face_mesh"

    def adapt(self, raw: dict[str, Any]) -> DetectionFrame:
        width = self._dimension(raw, "video_width", "width")
        height = self._dimension(raw, "video_height", "height")
        return DetectionFrame(
            faces=self._section(raw, "faces", _face_from_mesh),
            objects=self._section(raw, "predictions", _object_from_prediction),
            frame_width=width,
            frame_height=height,
            captured_at=raw.get("timestamp"),
        )
