import asyncio
import logging
import os
import time
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import httpx

from . import images
from .af_data import get_af_data, parse_result
from .config import LENS_API_ENDPOINT, LENS_HTTP_TIMEOUT_SEC, LensConfig
from .cookies import CookieJar
from .models import LensError, LensResult

LOGGER = logging.getLogger("lens_ocr.core")

# ico, bmp, jfif, pjpeg, jpeg, pjp, jpg, png, tif, tiff, webp, heic
SUPPORTED_MIMES = {
    "image/x-icon": "ico",
    "image/bmp": "bmp",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/tiff": "tiff",
    "image/webp": "webp",
    "image/heic": "heic",
}

CONSENT_ORIGIN = "https://consent.google.com"
CONSENT_SAVE_URL = "https://consent.google.com/save"
CONSENT_PARAMS = (
    ("x", "6"),
    ("set_eom", "true"),
    ("bl", "boq_identityfrontenduiserver_20240129.02_p0"),
    ("app", "0"),
)

X_CLIENT_DATA = (
    "CIW2yQEIorbJAQipncoBCIH+ygEIlaHLAQj1mM0BCIWgzQEI3ezNAQji+s0BCOmFzgEIponOAQj1ic4BCIeLzgEY1d3NARjS/s0BGNiGzgE="
)


@dataclass(frozen=True)
class ScanRequest:
    endpoint: str
    method: str = "GET"
    data: Optional[Dict[str, str]] = None
    files: Optional[Dict[str, Any]] = None


class LensCore:
    """Talks to the Lens upload endpoints and turns the result page into a LensResult.

    ``client`` is the transport. When omitted an ``httpx.AsyncClient`` is
    created on first use and closed by :meth:`aclose`.
    """

    def __init__(self, config: Union[None, Mapping[str, Any], LensConfig] = None,
                 client: Optional[httpx.AsyncClient] = None):
        if config is not None and not isinstance(config, (Mapping, LensConfig)):
            raise TypeError("Lens constructor expects a mapping")
        self._config = LensConfig.from_options(config)
        self._client = client
        self._owns_client = client is None
        self.cookies = CookieJar(self._config.cookie_seed)

    @property
    def config(self) -> LensConfig:
        return self._config

    def update_options(self, options: Optional[Mapping[str, Any]] = None, **kwargs) -> None:
        opts = dict(options or {})
        opts.update(kwargs)
        self._config = self._config.merged(opts)
        self.cookies.seed(self._config.cookie_seed)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=LENS_HTTP_TIMEOUT_SEC, follow_redirects=False)
        return self._client

    # -- requests ---------------------------------------------------------

    def _browser_headers(self) -> httpx.Headers:
        cfg = self._config
        major = cfg.major_chrome_version
        return httpx.Headers({
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
                      "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7",
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "max-age=0",
            "Origin": "https://lens.google.com",
            "Referer": "https://lens.google.com/",
            "Sec-Ch-Ua": f'"Not A(Brand";v="99", "Google Chrome";v="{major}", "Chromium";v="{major}"',
            "Sec-Ch-Ua-Arch": '"x86"',
            "Sec-Ch-Ua-Bitness": '"64"',
            "Sec-Ch-Ua-Full-Version": f'"{cfg.chrome_version}"',
            "Sec-Ch-Ua-Full-Version-List": f'"Not A(Brand";v="99.0.0.0", "Google Chrome";v="{major}", "Chromium";v="{major}"',
            "Sec-Ch-Ua-Mobile": "?0",
            "Sec-Ch-Ua-Model": '""',
            "Sec-Ch-Ua-Platform": '"Windows"',
            "Sec-Ch-Ua-Platform-Version": '"15.0.0"',
            "Sec-Ch-Ua-Wow64": "?0",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
            "User-Agent": cfg.user_agent,
            "X-Client-Data": X_CLIENT_DATA,
        })

    def _apply_cookie_header(self, headers: httpx.Headers) -> None:
        ck = self.cookies.to_header_value()
        if ck:
            headers["cookie"] = ck

    def _scan_headers(self) -> httpx.Headers:
        headers = self._browser_headers()
        for k, v in self._config.headers.items():
            # the configured cookie only seeds the jar
            if k == "cookie":
                continue
            headers[k] = v
        self._apply_cookie_header(headers)
        return headers

    def _scan_url(self, endpoint: str) -> httpx.URL:
        vpw, vph = self._config.viewport
        return httpx.URL(endpoint).copy_merge_params({
            "s": "4",  # Surface.CHROMIUM
            "re": "df",  # DesktopWebFullscreen
            "stcs": str(int(time.time() * 1000)),
            "vpw": str(vpw),
            "vph": str(vph),
            "ep": "subb",  # entry point
        })

    async def _send(self, method: str, url, headers: httpx.Headers, **kwargs) -> httpx.Response:
        extra = dict(self._config.fetch_options)
        extra_headers = extra.pop("headers", None)
        if extra_headers:
            for k, v in httpx.Headers(extra_headers).items():
                headers[k] = v
        opts = {**kwargs, **extra}
        # redirects are inspected here, never followed by the transport
        opts["follow_redirects"] = False
        resp = await self._get_client().request(method, url, headers=headers, **opts)
        LOGGER.debug("%s %s -> %s", method, url, resp.status_code)
        return resp

    async def _send_scan(self, request: ScanRequest) -> httpx.Response:
        kwargs: Dict[str, Any] = {}
        if request.data is not None:
            kwargs["data"] = request.data
        if request.files is not None:
            kwargs["files"] = request.files
        return await self._send(request.method, self._scan_url(request.endpoint), self._scan_headers(), **kwargs)

    # -- consent ----------------------------------------------------------

    async def _save_consent(self, response: httpx.Response) -> bool:
        location = response.headers.get("location")
        if not location:
            raise LensError("Location header not found", response.status_code, response.headers, response.text)

        params = httpx.URL(location).params
        for k, v in CONSENT_PARAMS:
            params = params.add(k, v)

        headers = self._browser_headers()
        headers["Content-Type"] = "application/x-www-form-urlencoded"
        headers["Referer"] = CONSENT_ORIGIN + "/"
        headers["Origin"] = CONSENT_ORIGIN
        self._apply_cookie_header(headers)

        LOGGER.warning("Lens redirected to cookie consent, saving consent")
        await asyncio.sleep(self._config.consent_delay)
        saved = await self._send("POST", CONSENT_SAVE_URL, headers, content=str(params))

        if saved.status_code != 303:
            LOGGER.warning("consent save returned %s", saved.status_code)
            return False

        self.cookies.ingest_response(saved.headers)
        LOGGER.info("consent saved, retrying request")
        await asyncio.sleep(self._config.consent_delay)
        return True

    # -- scan -------------------------------------------------------------

    async def fetch(self, request: ScanRequest, original_dimensions: Sequence[int] = (0, 0)) -> LensResult:
        consent_tried = False
        while True:
            response = await self._send_scan(request)
            self.cookies.ingest_response(response.headers)

            # some EU countries get a cookie consent interstitial first
            if response.status_code != 302:
                break
            if consent_tried:
                raise LensError("Lens returned a 302 status code twice",
                                response.status_code, response.headers, response.text)
            consent_tried = True
            if not await self._save_consent(response):
                break

        if response.status_code != 200:
            raise LensError("Lens returned a non-200 status code",
                            response.status_code, response.headers, response.text)

        try:
            af_data = get_af_data(response.text)
            return parse_result(af_data, original_dimensions)
        except (ValueError, LookupError, TypeError, ArithmeticError, RecursionError) as e:
            raise LensError(f"Could not parse response: {traceback.format_exc()}",
                            response.status_code, response.headers, response.text) from e

    async def scan_by_url(self, url, dimensions: Sequence[int] = (0, 0)) -> LensResult:
        endpoint = httpx.URL(LENS_API_ENDPOINT).copy_set_param("url", str(url))
        return await self.fetch(ScanRequest(str(endpoint), "GET"), dimensions)

    async def scan_by_data(self, data: bytes, mime: str, original_dimensions: Sequence[int]) -> LensResult:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"scan_by_data expects bytes, got {type(data).__name__}")
        if mime not in SUPPORTED_MIMES:
            raise ValueError("File type not supported")
        if not original_dimensions or len(original_dimensions) != 2:
            raise ValueError("Original dimensions not set")

        width, height = images.image_dimensions(bytes(data))
        # Lens does not accept images larger than 1000x1000
        if images.is_oversized((width, height)):
            raise ValueError("Image dimensions are larger than 1000x1000")

        request = ScanRequest(
            endpoint=self._config.endpoint,
            method="POST",
            data={
                "original_width": str(width),
                "original_height": str(height),
                "processed_image_dimensions": f"{width},{height}",
            },
            files={"encoded_image": (f"image.{SUPPORTED_MIMES[mime]}", bytes(data), mime)},
        )
        return await self.fetch(request, original_dimensions)


class Lens(LensCore):
    """LensCore plus local files and arbitrary-size buffers."""

    def __init__(self, config: Union[None, Mapping[str, Any], LensConfig] = None,
                 client: Optional[httpx.AsyncClient] = None):
        if config is not None and not isinstance(config, (Mapping, LensConfig)):
            LOGGER.warning("Lens constructor expects a mapping, got %s", type(config).__name__)
            config = None
        super().__init__(config, client)

    async def scan_by_file(self, path: Union[str, os.PathLike]) -> LensResult:
        if not isinstance(path, (str, os.PathLike)):
            raise TypeError(f"scan_by_file expects a path, got {type(path).__name__}")
        data = images.read_file(path)
        return await self.scan_by_buffer(data)

    async def scan_by_buffer(self, buffer: Union[bytes, bytearray, memoryview]) -> LensResult:
        data = bytes(buffer)
        mime = images.sniff_mime(data)
        dimensions = images.image_dimensions(data)

        if images.is_oversized(dimensions):
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, images.fit_within, data)
            mime = "image/jpeg"

        return await self.scan_by_data(data, mime, dimensions)
