import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Iterator, List, Mapping, Optional, Union

LOGGER = logging.getLogger("lens_ocr.cookies")

# a comma starts a new cookie only when a "name=" follows it,
# so "Expires=Wed, 21 Oct 2015 ..." stays in one piece
_COOKIE_SPLIT_RE = re.compile(r",\s*(?=[^;,=\s]+=)")


@dataclass
class Cookie:
    name: str
    value: str
    expires: float = math.inf

    def expired(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = time.time()
        return self.expires <= now


def split_cookies_string(header: Optional[str]) -> List[str]:
    if not header:
        return []
    return [p.strip() for p in _COOKIE_SPLIT_RE.split(header) if p.strip()]


def _parse_expires(raw: str) -> Optional[float]:
    try:
        dt = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def parse_set_cookie(raw: str, now: Optional[float] = None) -> Optional[Cookie]:
    parts = [p.strip() for p in raw.split(";")]
    head = parts[0]
    if "=" not in head:
        return None
    name, value = head.split("=", 1)
    name = name.strip()
    if not name:
        return None

    if now is None:
        now = time.time()

    expires = math.inf
    max_age = None
    for attr in parts[1:]:
        key, _, val = attr.partition("=")
        key = key.strip().lower()
        val = val.strip()
        if key == "max-age":
            try:
                max_age = int(val)
            except ValueError:
                continue
        elif key == "expires":
            ts = _parse_expires(val)
            if ts is not None:
                expires = ts

    if max_age is not None:
        expires = now + max_age

    return Cookie(name=name, value=value.strip(), expires=expires)


def parse_cookie_string(raw: str) -> Dict[str, Cookie]:
    out: Dict[str, Cookie] = {}
    for part in raw.split("; "):
        if not part:
            continue
        name, _, value = part.partition("=")
        out[name] = Cookie(name=name, value=value)
    return out


CookieSeed = Union[None, str, Mapping[str, Union[Cookie, str]]]


class CookieJar:
    """Cookies the service handed out, keyed by name.

    Expiry is checked lazily, when the ``Cookie`` header is built.
    """

    def __init__(self, seed: CookieSeed = None):
        self._cookies: Dict[str, Cookie] = {}
        self.seed(seed)

    def seed(self, seed: CookieSeed) -> None:
        if not seed:
            return
        if isinstance(seed, str):
            self._cookies.update(parse_cookie_string(seed))
            return
        jar: Dict[str, Cookie] = {}
        for name, c in seed.items():
            if isinstance(c, Cookie):
                jar[name] = c
            else:
                jar[name] = Cookie(name=name, value=str(c))
        self._cookies = jar

    def ingest(self, header_value: Optional[str], now: Optional[float] = None) -> None:
        for raw in split_cookies_string(header_value):
            cookie = parse_set_cookie(raw, now)
            if cookie is None:
                LOGGER.debug("skipping malformed set-cookie: %r", raw)
                continue
            self._cookies[cookie.name] = cookie

    def ingest_response(self, headers) -> None:
        values = headers.get_list("set-cookie") if hasattr(headers, "get_list") else [headers.get("set-cookie")]
        self.ingest(", ".join(v for v in values if v))

    def to_header_value(self, now: Optional[float] = None) -> Optional[str]:
        if not self._cookies:
            return None
        if now is None:
            now = time.time()
        self._cookies = {k: c for k, c in self._cookies.items() if not c.expired(now)}
        if not self._cookies:
            return None
        return "; ".join(f"{k}={c.value}" for k, c in self._cookies.items())

    def get(self, name: str) -> Optional[Cookie]:
        return self._cookies.get(name)

    def __contains__(self, name) -> bool:
        return name in self._cookies

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self):
        return f"CookieJar({sorted(self._cookies)!r})"
