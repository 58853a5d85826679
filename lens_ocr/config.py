import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

LOGGER = logging.getLogger("lens_ocr.config")

LENS_ENDPOINT = os.getenv("LENS_ENDPOINT", "https://lens.google.com/v3/upload").strip()
LENS_API_ENDPOINT = os.getenv("LENS_API_ENDPOINT", "https://lens.google.com/uploadbyurl").strip()
LENS_CHROME_VERSION = os.getenv("LENS_CHROME_VERSION", "124.0.6367.60").strip()
LENS_USER_AGENT = os.getenv(
    "LENS_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
).strip()
LENS_CONSENT_DELAY_SEC = float(os.getenv("LENS_CONSENT_DELAY_SEC", "0.5"))
LENS_HTTP_TIMEOUT_SEC = float(os.getenv("LENS_HTTP_TIMEOUT_SEC", "60"))

VIEWPORT = (1920, 1080)


def _major(version: str) -> str:
    return (version or "").split(".")[0]


def normalize_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in (headers or {}).items():
        if not v:
            continue
        out[k.lower()] = v
    return out


@dataclass(frozen=True)
class LensConfig:
    chrome_version: str = LENS_CHROME_VERSION
    major_chrome_version: str = ""
    user_agent: str = LENS_USER_AGENT
    endpoint: str = LENS_ENDPOINT
    viewport: Tuple[int, int] = VIEWPORT
    headers: Dict[str, Any] = field(default_factory=dict)
    fetch_options: Dict[str, Any] = field(default_factory=dict)
    consent_delay: float = LENS_CONSENT_DELAY_SEC

    def __post_init__(self):
        if not self.major_chrome_version:
            object.__setattr__(self, "major_chrome_version", _major(self.chrome_version))
        object.__setattr__(self, "headers", normalize_headers(self.headers))
        object.__setattr__(self, "viewport", tuple(self.viewport))
        object.__setattr__(self, "fetch_options", dict(self.fetch_options or {}))

    @property
    def cookie_seed(self):
        return self.headers.get("cookie")

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "LensConfig":
        if options is None:
            return cls()
        if isinstance(options, LensConfig):
            return options
        if not isinstance(options, Mapping):
            raise TypeError(f"Lens config expects a mapping, got {type(options).__name__}")
        return cls(**_known(options))

    def merged(self, options: Mapping[str, Any]) -> "LensConfig":
        opts = _known(options)
        # a new chrome_version must not keep the previous derived major
        if "chrome_version" in opts and "major_chrome_version" not in opts:
            opts["major_chrome_version"] = ""
        return dataclasses.replace(self, **opts)


def _known(options: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in dataclasses.fields(LensConfig)}
    out = {}
    for k, v in options.items():
        if k not in names:
            LOGGER.warning("ignoring unknown lens option %r", k)
            continue
        out[k] = v
    return out
