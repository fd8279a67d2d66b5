"""
URL canonicalization and identity utilities.

Canonical form rules (used as the deduplication key for scrape targets):
- Scheme forced to https
- Hostname lowercased, default ports dropped
- Tracking parameters removed (utm_*, fbclid, gclid, ref, source, campaign)
- Empty-valued query parameters removed
- Remaining parameters sorted by key
- Fragment removed
- Trailing slash removed except for the root path
"""

import hashlib
import logging
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "fbclid",
        "gclid",
        "ref",
        "source",
        "campaign",
    }
)

IDENTITY_KEY_TYPES = ("PID", "SKU", "URL")
MAX_IDENTITY_KEY_LENGTH = 255


def _is_tracking_param(key: str) -> bool:
    return key in TRACKING_PARAMS or key.startswith("utm_")


def _build_netloc(hostname: str, port: Optional[int]) -> str:
    host = hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port and port not in (80, 443):
        return f"{host}:{port}"
    return host


def canonicalize_url(url: str) -> str:
    """
    Canonicalize a URL for deduplication.

    Args:
        url: Absolute http(s) URL

    Returns:
        The canonical URL string

    Raises:
        ValueError: If the URL is not an absolute http(s) URL

    Example:
        >>> canonicalize_url("HTTP://WWW.Example.com/Path/?utm_source=x&b=2&a=1")
        'https://www.example.com/Path?a=1&b=2'
    """
    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise ValueError(f"Not an absolute http(s) URL: {url}")

    netloc = _build_netloc(parts.hostname, parts.port)

    params = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if value != "" and not _is_tracking_param(key)
    ]
    # sorted() is stable, so repeated keys keep their relative order
    params = sorted(params, key=lambda item: item[0])

    path = parts.path or "/"
    if path != "/":
        path = path.rstrip("/") or "/"

    return urlunsplit(("https", netloc, path, urlencode(params), ""))


def is_valid_url(url: str) -> bool:
    """Return True for absolute http/https URLs with a host."""
    try:
        parts = urlsplit(url)
        return parts.scheme in ("http", "https") and bool(parts.hostname)
    except ValueError:
        return False


def normalize_domain(host: str) -> str:
    """Lowercase a hostname and strip a leading 'www.'."""
    lower = host.strip().lower()
    if lower.startswith("www."):
        return lower[4:]
    return lower


def get_registrable_domain(url: str) -> str:
    """
    Get the domain used to group robots and rate-limit state.

    Returns an empty string when the URL has no parsable host.
    """
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return ""
    if not hostname:
        return ""
    return normalize_domain(hostname)


def is_same_domain(url: str, expected_domain: str) -> bool:
    """
    Check whether a URL belongs to the expected source domain.

    Subdomains match in either direction, so 'shop.example.com' is accepted
    for 'example.com' and vice versa.
    """
    domain = get_registrable_domain(url)
    expected = normalize_domain(expected_domain)
    if not domain or not expected:
        return False
    return (
        domain == expected
        or domain.endswith(f".{expected}")
        or expected.endswith(f".{domain}")
    )


def hash_url(url: str) -> str:
    """First 16 hex characters of the SHA-256 of a (canonical) URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]


def generate_identity_key(
    retailer_product_id: Optional[str],
    retailer_sku: Optional[str],
    canonical_url: str,
) -> str:
    """
    Build an offer identity key.

    Priority: retailer product id, then retailer SKU, then URL hash.

    Returns:
        Key in the form ``{PID|SKU|URL}:{value}``
    """
    if retailer_product_id and retailer_product_id.strip():
        return f"PID:{retailer_product_id.strip()}"
    if retailer_sku and retailer_sku.strip():
        return f"SKU:{retailer_sku.strip()}"
    return f"URL:{hash_url(canonical_url)}"


def parse_identity_key(identity_key: str) -> Tuple[str, str]:
    """
    Split an identity key into (type, value).

    Raises:
        ValueError: If the key is malformed
    """
    if len(identity_key) > MAX_IDENTITY_KEY_LENGTH:
        raise ValueError(
            f"Invalid identity key: exceeds {MAX_IDENTITY_KEY_LENGTH} characters"
        )

    id_type, sep, id_value = identity_key.partition(":")
    if not sep:
        raise ValueError("Invalid identity key format: missing colon separator")
    if id_type not in IDENTITY_KEY_TYPES:
        raise ValueError(f"Invalid identity key type: {id_type}")
    if not id_value:
        raise ValueError("Invalid identity key: empty value")
    if ":" in id_value:
        raise ValueError("Invalid identity key: value cannot contain ':'")

    return id_type, id_value
