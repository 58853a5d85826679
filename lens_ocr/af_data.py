"""Pull the OCR payload out of a Lens results page.

The page bootstraps itself through a series of ``AF_initDataCallback({...})``
calls. One of them carries the detection result as a positional, unnamed
array tree. The layout is owned by Google and changes without notice, so the
readers below treat every index access as something that may fail.
"""
import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from .models import LensResult, Segment

LOGGER = logging.getLogger("lens_ocr.af_data")

CALLBACK_RE = re.compile(r"AF_initDataCallback\(")
RESULT_MARKER = "DetectedObject"

_SCHEMA_ERRORS = (IndexError, KeyError, TypeError, AttributeError, ValueError)


class LiteralSyntaxError(ValueError):
    def __init__(self, msg: str, pos: int):
        super().__init__(f"{msg} at offset {pos}")
        self.pos = pos


class CallbackNotFound(ValueError):
    def __init__(self, candidates: List[str]):
        super().__init__(f"Could not find matching AF_initDataCallback ({len(candidates)} candidates)")
        self.candidates = candidates


class SchemaMismatch(LookupError):
    pass


# ---------------------------------------------------------------------------
# callback scanning

def _literal_end(text: str, start: int) -> Optional[int]:
    """Index one past the bracketed literal starting at ``start``, or None."""
    depth = 0
    i, n = start, len(text)
    while i < n:
        ch = text[i]
        if ch in "'\"`":
            i += 1
            while i < n and text[i] != ch:
                i += 2 if text[i] == "\\" else 1
            if i >= n:
                return None
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def find_callbacks(html: str) -> List[str]:
    out: List[str] = []
    for m in CALLBACK_RE.finditer(html):
        start = m.end()
        while start < len(html) and html[start].isspace():
            start += 1
        if start >= len(html) or html[start] not in "{[":
            continue
        end = _literal_end(html, start)
        if end is None:
            LOGGER.debug("unterminated AF_initDataCallback at %d", m.start())
            continue
        out.append(html[start:end])
    return out


def get_af_data(html: str) -> Any:
    candidates = find_callbacks(html)
    literal = next((c for c in candidates if RESULT_MARKER in c), None)
    if literal is None:
        LOGGER.error("no AF_initDataCallback carries %s, candidates: %r", RESULT_MARKER, candidates)
        raise CallbackNotFound(candidates)
    return parse_literal(literal)


# ---------------------------------------------------------------------------
# literal parser

_NUMBER_RE = re.compile(r"[+-]?(?:0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_IDENT_RE = re.compile(r"[A-Za-z_$][\w$]*")
_WS = " \t\r\n\u00a0\ufeff\u2028\u2029"

_SIMPLE_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0",
}
MAX_DEPTH = 100

_KEYWORDS = {
    "true": True, "false": False, "null": None, "undefined": None,
    "NaN": float("nan"), "Infinity": float("inf"),
}


class _LiteralParser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.depth = 0

    def fail(self, msg: str):
        raise LiteralSyntaxError(msg, self.pos)

    def skip_ws(self):
        text, n = self.text, len(self.text)
        while self.pos < n and text[self.pos] in _WS:
            self.pos += 1

    def peek(self) -> str:
        self.skip_ws()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str):
        if self.peek() != ch:
            self.fail(f"expected {ch!r}")
        self.pos += 1

    def parse(self) -> Any:
        value = self.value()
        if self.peek():
            self.fail("trailing data")
        return value

    def value(self) -> Any:
        ch = self.peek()
        if ch and ch in "{[":
            return self.nested(self.obj if ch == "{" else self.array)
        if ch in ("'", '"'):
            return self.string()
        if ch and (ch.isdigit() or ch in "+-."):
            return self.number()
        m = _IDENT_RE.match(self.text, self.pos)
        if m and m.group(0) in _KEYWORDS:
            self.pos = m.end()
            return _KEYWORDS[m.group(0)]
        self.fail("unexpected token" if ch else "unexpected end of input")

    def nested(self, parse):
        self.depth += 1
        if self.depth > MAX_DEPTH:
            self.fail(f"nesting deeper than {MAX_DEPTH}")
        try:
            return parse()
        finally:
            self.depth -= 1

    def obj(self) -> dict:
        self.expect("{")
        out = {}
        while True:
            ch = self.peek()
            if ch == "}":
                self.pos += 1
                return out
            if ch in ("'", '"'):
                key = self.string()
            else:
                m = _IDENT_RE.match(self.text, self.pos) or _NUMBER_RE.match(self.text, self.pos)
                if not m:
                    self.fail("bad object key")
                key = m.group(0)
                self.pos = m.end()
            self.expect(":")
            out[key] = self.value()
            ch = self.peek()
            if ch == ",":
                self.pos += 1
            elif ch != "}":
                self.fail("expected ',' or '}'")

    def array(self) -> list:
        self.expect("[")
        out = []
        while True:
            ch = self.peek()
            if ch == "]":
                self.pos += 1
                return out
            if ch == ",":
                # hole, e.g. [1,,2]
                out.append(None)
                self.pos += 1
                continue
            out.append(self.value())
            ch = self.peek()
            if ch == ",":
                self.pos += 1
            elif ch != "]":
                self.fail("expected ',' or ']'")

    def number(self):
        text = self.text
        if text[self.pos] in "+-":
            m = _IDENT_RE.match(text, self.pos + 1)
            if m and m.group(0) == "Infinity":
                sign = text[self.pos]
                self.pos = m.end()
                return float(sign + "inf")
        m = _NUMBER_RE.match(text, self.pos)
        if not m:
            self.fail("bad number")
        self.pos = m.end()
        raw = m.group(0)
        body = raw.lstrip("+-")
        if body[:2] in ("0x", "0X"):
            v = int(body, 16)
            return -v if raw.startswith("-") else v
        if any(c in body for c in ".eE"):
            return float(raw)
        return int(raw)

    def string(self) -> str:
        text, n = self.text, len(self.text)
        quote = text[self.pos]
        self.pos += 1
        buf: List[str] = []
        while True:
            if self.pos >= n:
                self.fail("unterminated string")
            ch = text[self.pos]
            if ch == quote:
                self.pos += 1
                break
            if ch == "\\":
                self.pos += 1
                buf.append(self.escape())
                continue
            if ch == "\n":
                self.fail("newline in string")
            buf.append(ch)
            self.pos += 1
        s = "".join(buf)
        if any("\ud800" <= c <= "\udfff" for c in s):
            s = s.encode("utf-16", "surrogatepass").decode("utf-16", "replace")
        return s

    def escape(self) -> str:
        text = self.text
        if self.pos >= len(text):
            self.fail("unterminated escape")
        ch = text[self.pos]
        self.pos += 1
        if ch in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[ch]
        if ch == "x":
            return chr(self.hex_digits(2))
        if ch == "u":
            if text[self.pos:self.pos + 1] == "{":
                end = text.find("}", self.pos)
                if end < 0:
                    self.fail("bad unicode escape")
                try:
                    decoded = chr(int(text[self.pos + 1:end], 16))
                except (ValueError, OverflowError):
                    self.fail("bad unicode escape")
                self.pos = end + 1
                return decoded
            return chr(self.hex_digits(4))
        if ch == "\r":
            if text[self.pos:self.pos + 1] == "\n":
                self.pos += 1
            return ""
        if ch in "\n\u2028\u2029":
            return ""
        return ch

    def hex_digits(self, count: int) -> int:
        raw = self.text[self.pos:self.pos + count]
        if len(raw) != count:
            self.fail("bad hex escape")
        try:
            v = int(raw, 16)
        except ValueError:
            self.fail("bad hex escape")
        self.pos += count
        return v


def parse_literal(text: str) -> Any:
    """Parse the JS object/array literal subset the Lens page emits."""
    return _LiteralParser(text).parse()


# ---------------------------------------------------------------------------
# result layouts

Regions = Tuple[List[str], List[Sequence[float]]]


def primary_regions(data) -> Regions:
    """Full-text lines at data[3][4][0][0], boxes in the ``text:`` detections."""
    try:
        texts = data[3][4][0][0]
        if not isinstance(texts, list):
            raise TypeError(f"text list is {type(texts).__name__}")
        regions = [x[1] for x in data[2][3][0] if x[11].startswith("text:")]
    except _SCHEMA_ERRORS as e:
        raise SchemaMismatch(f"primary layout: {e!r}") from e
    return list(texts), regions


def fallback_regions(data) -> Regions:
    """Paragraph -> line -> word tree at data[3][2][0].

    Each word is ``[text, ..., ..., separator]``; line boxes come as
    ``[y, x, width, height]`` and are converted to center form.
    """
    texts: List[str] = []
    regions: List[Sequence[float]] = []
    try:
        for paragraph in data[3][2][0]:
            for line in paragraph[0]:
                words = line[0]
                text = "".join(w[0] + (w[3] if len(w) > 3 and w[3] is not None else "") for w in words)
                y, x, width, height = line[1][:4]
                texts.append(text)
                regions.append([x + width / 2, y + height / 2, width, height])
    except _SCHEMA_ERRORS as e:
        raise SchemaMismatch(f"fallback layout: {e!r}") from e
    return texts, regions


LAYOUTS = (primary_regions, fallback_regions)


def read_regions(data) -> Regions:
    errors = []
    for layout in LAYOUTS:
        try:
            return layout(data)
        except SchemaMismatch as e:
            LOGGER.debug("%s did not match: %s", layout.__name__, e)
            errors.append(str(e))
    raise SchemaMismatch("; ".join(errors))


def parse_result(af_data, image_dimensions) -> LensResult:
    try:
        data = af_data["data"]
        language = data[3][3]
    except _SCHEMA_ERRORS as e:
        raise SchemaMismatch(f"no result payload: {e!r}") from e

    texts, regions = read_regions(data)

    segments = []
    for i, text in enumerate(texts):
        region = regions[i] if i < len(regions) else None
        segments.append(Segment.from_region(text, region, image_dimensions))

    return LensResult(language, tuple(segments))
