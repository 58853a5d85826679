import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple


def _round(v: float) -> int:
    # half away from zero, python's round() is banker's rounding
    return int(math.copysign(math.floor(abs(v) + 0.5), v))


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    width: int
    height: int


class BoundingBox:
    """Normalized center/size box resolved against the image it was read from.

    ``box`` is ``[center_x, center_y, width, height]`` as fractions of the
    image size. The pixel rectangle is computed once, on construction.
    """

    __slots__ = ("center_per_x", "center_per_y", "per_width", "per_height",
                 "image_dimensions", "pixel_coords")

    def __init__(self, box: Optional[Sequence[float]], image_dimensions: Optional[Sequence[int]]):
        if not box:
            raise ValueError("Bounding box not set")
        if not image_dimensions or len(image_dimensions) != 2:
            raise ValueError("Image dimensions not set")

        self.image_dimensions: Tuple[int, int] = (image_dimensions[0], image_dimensions[1])
        self.center_per_x = box[0]
        self.center_per_y = box[1]
        self.per_width = box[2]
        self.per_height = box[3]
        self.pixel_coords = self._to_pixel_coords()

    def _to_pixel_coords(self) -> PixelRect:
        img_w, img_h = self.image_dimensions

        width = self.per_width * img_w
        height = self.per_height * img_h
        x = self.center_per_x * img_w - width / 2
        y = self.center_per_y * img_h - height / 2

        return PixelRect(x=_round(x), y=_round(y), width=_round(width), height=_round(height))

    def __eq__(self, other):
        if not isinstance(other, BoundingBox):
            return NotImplemented
        return (self.normalized, self.image_dimensions) == (other.normalized, other.image_dimensions)

    def __hash__(self):
        return hash((self.normalized, self.image_dimensions))

    @property
    def normalized(self) -> Tuple[float, float, float, float]:
        return (self.center_per_x, self.center_per_y, self.per_width, self.per_height)

    def __repr__(self):
        return f"BoundingBox(normalized={self.normalized!r}, pixel_coords={self.pixel_coords!r})"

    def to_dict(self) -> Dict[str, Any]:
        p = self.pixel_coords
        return {
            "centerPerX": self.center_per_x,
            "centerPerY": self.center_per_y,
            "perWidth": self.per_width,
            "perHeight": self.per_height,
            "pixelCoords": {"x": p.x, "y": p.y, "width": p.width, "height": p.height},
        }


@dataclass(frozen=True)
class Segment:
    text: str
    bounding_box: BoundingBox

    @classmethod
    def from_region(cls, text: str, region, image_dimensions) -> "Segment":
        return cls(text, BoundingBox(region, image_dimensions))

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "boundingBox": self.bounding_box.to_dict()}


@dataclass(frozen=True)
class LensResult:
    language: Optional[str]
    segments: Tuple[Segment, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        return "\n".join(s.text for s in self.segments)

    def to_dict(self) -> Dict[str, Any]:
        segs: List[Dict[str, Any]] = [s.to_dict() for s in self.segments]
        return {"language": self.language, "segments": segs}


class LensError(Exception):
    """Service-side failure: bad status, unresolved consent, or unreadable payload.

    Keeps the response context so the caller can inspect what the service
    actually sent without repeating the request.
    """

    def __init__(self, message: str, code: Optional[int] = None, headers=None, body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.headers = headers
        self.body = body

    def __str__(self):
        if self.code is None:
            return self.message
        return f"{self.message} (status={self.code})"
