"""Detection frame models: the classifier's ephemeral input.

A DetectionFrame is what the external inference engines reported for one
sampling tick.  It is never persisted.  Coordinates are in pixels of a
frame of ``frame_width`` x ``frame_height``.

``faces`` / ``objects`` set to ``None`` mean "this detector produced no
usable output this tick" (as opposed to an empty list: "looked, found
nothing").  The classifier skips the affected sub-machines for that tick.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

# Landmark names the focus tracker needs.
LEFT_EYE = "left_eye"
RIGHT_EYE = "right_eye"
NOSE = "nose"
GAZE_LANDMARKS = (LEFT_EYE, RIGHT_EYE, NOSE)


class Point(BaseModel):
    x: float
    y: float

    model_config = {"frozen": True}


class FaceObservation(BaseModel):
    """One detected face and its named landmark positions."""

    keypoints: dict[str, Point] = Field(default_factory=dict)
    score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    model_config = {"frozen": True}

    def has_gaze_landmarks(self) -> bool:
        return all(name in self.keypoints for name in GAZE_LANDMARKS)


class ObjectObservation(BaseModel):
    """One detected object: label, confidence and [x, y, w, h] box."""

    label: str = Field(..., min_length=1)
    score: float = Field(..., ge=0.0, le=1.0)
    bbox: tuple[float, float, float, float]

    model_config = {"frozen": True}


class DetectionFrame(BaseModel):
    """Everything the detection collaborator reported for one tick."""

    faces: Optional[list[FaceObservation]] = Field(default_factory=list)
    objects: Optional[list[ObjectObservation]] = Field(default_factory=list)
    frame_width: float = Field(..., gt=0)
    frame_height: float = Field(..., gt=0)
    captured_at: Optional[datetime] = Field(
        default=None,
        description="Capture time reported by the source, informational only",
    )

    model_config = {"frozen": True}

    @property
    def face_count(self) -> int:
        return len(self.faces) if self.faces is not None else 0
