"""
Detection result variants shared by every detector, plus the post-capture outcome.

Each variant exposes the same composite-eligible surface (criteria() and composite)
so the stability logic never has to know which detector produced a result.
Geometry (face box, document corners) rides along for display only.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass(frozen=True)
class Corners:
    """Document quadrilateral in source pixel coordinates."""

    top_left: tuple[float, float]
    top_right: tuple[float, float]
    bottom_right: tuple[float, float]
    bottom_left: tuple[float, float]

    def as_list(self) -> list[tuple[float, float]]:
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]


@dataclass(frozen=True)
class DetectionResult:
    """Generic per-frame result. Subclasses add kind-specific criteria."""

    kind: ClassVar[str] = "generic"

    detected: bool = False

    def criteria(self) -> dict[str, bool]:
        """Boolean criteria that must all hold for the frame to count as a success."""
        return {"detected": self.detected}

    @property
    def composite(self) -> bool:
        return all(self.criteria().values())

    @classmethod
    def empty(cls) -> DetectionResult:
        """Neutral 'not detected' result for this kind."""
        return cls()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind
        data["composite"] = self.composite
        return data


@dataclass(frozen=True)
class FaceDetectionResult(DetectionResult):
    kind: ClassVar[str] = "face"

    centered: bool = False
    frontal: bool = False
    proper_size: bool = False
    box: BoundingBox | None = None

    def criteria(self) -> dict[str, bool]:
        return {
            "detected": self.detected,
            "centered": self.centered,
            "frontal": self.frontal,
            "proper_size": self.proper_size,
        }


@dataclass(frozen=True)
class DocumentDetectionResult(DetectionResult):
    kind: ClassVar[str] = "document"

    # True when the document fills enough of the frame
    confidence: bool = False
    corners: Corners | None = None

    def criteria(self) -> dict[str, bool]:
        return {"detected": self.detected, "confidence": self.confidence}


class ValidationOutcome(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FAILURE = "failure"


@dataclass(frozen=True)
class Validation:
    """Outcome of the one-shot detection pass over a captured still."""

    outcome: ValidationOutcome
    result: DetectionResult

    def to_dict(self) -> dict[str, Any]:
        return {"outcome": self.outcome.value, "result": self.result.to_dict()}
