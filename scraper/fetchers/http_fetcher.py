"""
HTTP Fetcher - async httpx with size caps and a fixed status vocabulary.

Product pages are fetched once, without retries. SSRF validation is the
caller's job; this fetcher does not resolve or check hosts.

Result statuses:
- ok: 2xx with a body within the size cap
- timeout: the request, body included, did not complete within the timeout
- http-error: non-2xx response (``error="blocked"`` for captcha/deny pages)
- network-error: connection, DNS or protocol failure
- too-large: Content-Length or streamed bytes exceeded the cap
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_TIMEOUT = "timeout"
STATUS_HTTP_ERROR = "http-error"
STATUS_NETWORK_ERROR = "network-error"
STATUS_TOO_LARGE = "too-large"

DEFAULT_USER_AGENT = "IronScout/1.0 (+https://ironscout.ai/bot; bot@ironscout.ai)"
JSON_ACCEPT = "application/json,text/plain,*/*"

BLOCK_MARKERS = (
    "captcha",
    "recaptcha",
    "hcaptcha",
    "challenge-form",
    "challenge-running",
    "cf-browser-verification",
    "please verify you are a human",
    "access denied",
)


@dataclass
class FetchResult:
    """Outcome of a single fetch. Never raised."""

    status: str
    url: str
    text: str = ""
    content: bytes = b""
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0
    content_hash: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    final_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def prefers_json(url: str) -> bool:
    """Heuristic: does this URL look like a JSON API endpoint?"""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    path = parts.path.lower()
    if "/api/" in path or path.endswith(".json"):
        return True
    params = parse_qs(parts.query)
    return "fieldset" in params or "include" in params


def looks_blocked(status_code: Optional[int], body: str) -> bool:
    """Captcha or access-denied page served with 403/503."""
    if status_code not in (403, 503) or not body:
        return False
    lower = body.lower()
    return any(marker in lower for marker in BLOCK_MARKERS)


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]


class HttpFetcher:
    """
    Async HTTP fetcher for product pages, sitemaps and listings.

    Features:
    - Shared httpx.AsyncClient with connection pooling
    - Bot User-Agent so robots.txt rules for our agent apply
    - Response size cap on Content-Length and on streamed bytes
    - JSON Accept header for API-looking URLs
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds (default from settings)
            max_bytes: Maximum response size (default from settings)
            user_agent: Custom User-Agent string
            client: Pre-built client, e.g. one using httpx.MockTransport
        """
        self.timeout = timeout or getattr(settings, "SCRAPER_FETCH_TIMEOUT", 30)
        self.max_bytes = max_bytes or getattr(
            settings, "SCRAPER_MAX_RESPONSE_BYTES", 5 * 1024 * 1024
        )
        self.user_agent = user_agent or getattr(
            settings, "SCRAPER_USER_AGENT", DEFAULT_USER_AGENT
        )

        self._http_client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def __aenter__(self):
        await self._init_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_http_client(self):
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
            self._owns_client = True

    async def close(self):
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def build_headers(self, url: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        request_headers = {**self.DEFAULT_HEADERS, "User-Agent": self.user_agent}
        caller_headers = headers or {}
        caller_sets_accept = any(key.lower() == "accept" for key in caller_headers)
        if prefers_json(url) and not caller_sets_accept:
            request_headers["Accept"] = JSON_ACCEPT
        request_headers.update(caller_headers)
        return request_headers

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResult:
        """
        Fetch a URL once.

        Args:
            url: URL already validated by the caller
            headers: Extra headers, e.g. a source's customHeaders

        Returns:
            FetchResult; network problems are reported, never raised
        """
        await self._init_http_client()
        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            # httpx timeouts are per read; the deadline covers the whole body
            return await asyncio.wait_for(
                self._stream(url, headers, elapsed), timeout=self.timeout
            )

        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.warning(f"Timeout fetching {url}: {str(e) or type(e).__name__}")
            return FetchResult(
                status=STATUS_TIMEOUT,
                url=url,
                error=f"Request timed out after {self.timeout}s",
                duration_ms=elapsed(),
            )

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Network error fetching {url}: {e}")
            return FetchResult(
                status=STATUS_NETWORK_ERROR,
                url=url,
                error=str(e) or type(e).__name__,
                duration_ms=elapsed(),
            )

    async def _stream(self, url: str, headers: Optional[Dict[str, str]], elapsed) -> FetchResult:
        async with self._http_client.stream(
            "GET",
            url,
            headers=self.build_headers(url, headers),
            timeout=self.timeout,
        ) as response:
            response_headers = dict(response.headers)
            final_url = str(response.url)

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                logger.warning(f"Response too large for {url}: {declared} bytes")
                return FetchResult(
                    status=STATUS_TOO_LARGE,
                    url=url,
                    status_code=response.status_code,
                    error=f"Response too large: {declared} bytes",
                    duration_ms=elapsed(),
                    headers=response_headers,
                    final_url=final_url,
                )

            chunks = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > self.max_bytes:
                    logger.warning(f"Response exceeded {self.max_bytes} bytes for {url}")
                    return FetchResult(
                        status=STATUS_TOO_LARGE,
                        url=url,
                        status_code=response.status_code,
                        error="Response exceeded size limit",
                        duration_ms=elapsed(),
                        headers=response_headers,
                        final_url=final_url,
                    )
                chunks.append(chunk)

            body = b"".join(chunks)
            text = body.decode(response.encoding or "utf-8", errors="replace")

            if not response.is_success:
                blocked = looks_blocked(response.status_code, text)
                logger.warning(
                    f"HTTP {response.status_code} for {url}" + (" (blocked)" if blocked else "")
                )
                return FetchResult(
                    status=STATUS_HTTP_ERROR,
                    url=url,
                    text=text,
                    content=body,
                    status_code=response.status_code,
                    error="blocked" if blocked else f"HTTP {response.status_code}",
                    duration_ms=elapsed(),
                    headers=response_headers,
                    final_url=final_url,
                )

            return FetchResult(
                status=STATUS_OK,
                url=url,
                text=text,
                content=body,
                status_code=response.status_code,
                duration_ms=elapsed(),
                content_hash=content_hash(text),
                headers=response_headers,
                final_url=final_url,
            )
