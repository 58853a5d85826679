from .config import LensConfig
from .cookies import Cookie, CookieJar
from .core import SUPPORTED_MIMES, Lens, LensCore
from .models import BoundingBox, LensError, LensResult, PixelRect, Segment

__all__ = [
    "BoundingBox",
    "Cookie",
    "CookieJar",
    "Lens",
    "LensConfig",
    "LensCore",
    "LensError",
    "LensResult",
    "PixelRect",
    "Segment",
    "SUPPORTED_MIMES",
]

__version__ = "0.1.0"
