"""
SSRF Guard - validates URLs before any server-side fetch.

Blocks:
- Private IP ranges (RFC 1918), loopback, link-local and "this network"
- Cloud metadata endpoints
- localhost and *.localhost
- Protocols other than http/https (ftp/sftp only when allowed)
- Credentials embedded in the URL

Hostnames are resolved and every A/AAAA record is checked, so a hostname
that points at an internal address is rejected. Resolution errors fail
closed.

Usage:
    result = await validate_url("https://example.com/sitemap.xml")
    if not result.safe:
        logger.warning(result.error)

    guard = PublicHostGuard()
    await guard.ensure_public("https://example.com/p/1")  # raises SSRFError
"""

import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALLOWED_HTTP_SCHEMES = ("http", "https")
ALLOWED_FTP_SCHEMES = ("ftp", "sftp")

BLOCKED_HOSTS = frozenset(
    {
        "169.254.169.254",  # AWS/GCP/Azure metadata
        "metadata.google.internal",
        "metadata.goog",
        "169.254.170.2",  # AWS ECS task metadata
        "fd00:ec2::254",  # AWS IMDS IPv6
    }
)

PRIVATE_IPV4_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
    )
)

PRIVATE_IPV6_NETWORKS = tuple(
    ipaddress.ip_network(net) for net in ("::1/128", "fe80::/10", "fc00::/7")
)

# Rejected only by the discovery guard
CARRIER_NAT_NETWORK = ipaddress.ip_network("100.64.0.0/10")
MULTICAST_AND_RESERVED = ipaddress.ip_network("224.0.0.0/3")


class SSRFError(ValueError):
    """Raised when a URL must not be fetched from the server side."""


@dataclass
class SSRFValidationResult:
    safe: bool
    error: Optional[str] = None
    normalized_url: Optional[str] = None


def is_private_ip(address: str) -> bool:
    """
    Whether an IP literal is private, loopback, link-local or unspecified.

    Non-IP strings return False.
    """
    try:
        ip = ipaddress.ip_address(address.strip("[]").split("%")[0])
    except ValueError:
        return False

    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is not None:
            return is_private_ip(str(ip.ipv4_mapped))
        return any(ip in net for net in PRIVATE_IPV6_NETWORKS)

    return any(ip in net for net in PRIVATE_IPV4_NETWORKS)


def is_blocked_host(host: str) -> bool:
    host = host.lower().strip("[]")
    if host in BLOCKED_HOSTS:
        return True
    try:
        return str(ipaddress.ip_address(host)) in BLOCKED_HOSTS
    except ValueError:
        return False


def is_localhost(host: str) -> bool:
    host = host.lower()
    return host in ("localhost", "localhost.localdomain") or host.endswith(".localhost")


async def resolve_host(host: str) -> Tuple[List[str], Optional[str]]:
    """
    Resolve a hostname to its addresses.

    IP literals are returned as-is without a lookup.

    Returns:
        (addresses, error). ``error`` is set when resolution failed.
    """
    literal = host.strip("[]")
    try:
        ipaddress.ip_address(literal)
        return [literal], None
    except ValueError:
        pass

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, OSError, UnicodeError) as e:
        return [], f"DNS resolution failed: {e}"

    addresses = []
    for info in infos:
        address = info[4][0]
        if address not in addresses:
            addresses.append(address)
    return addresses, None


async def validate_url(
    url: str,
    allow_ftp: bool = False,
    skip_dns_resolution: bool = False,
) -> SSRFValidationResult:
    """
    Validate a URL for SSRF safety.

    Args:
        url: URL supplied by an operator, config or a crawled page
        allow_ftp: Also accept ftp/sftp (and URL credentials)
        skip_dns_resolution: Only run the static checks

    Returns:
        SSRFValidationResult with ``safe`` and, on success, the normalized URL
    """
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
        # Accessing .port validates it
        parts.port
    except (ValueError, AttributeError):
        return SSRFValidationResult(safe=False, error="Invalid URL format")

    scheme = parts.scheme.lower()
    allowed = ALLOWED_HTTP_SCHEMES + (ALLOWED_FTP_SCHEMES if allow_ftp else ())
    if scheme not in allowed:
        return SSRFValidationResult(
            safe=False,
            error=f"Protocol '{scheme}:' not allowed. Allowed: {', '.join(allowed)}",
        )

    if not host:
        return SSRFValidationResult(safe=False, error="Invalid URL format")

    if (parts.username or parts.password) and not allow_ftp:
        return SSRFValidationResult(safe=False, error="URL credentials not allowed in HTTP URLs")

    host = host.lower()

    if is_blocked_host(host):
        logger.warning(f"SSRF blocked: metadata endpoint {host}")
        return SSRFValidationResult(safe=False, error="Access to this host is not allowed")

    if is_localhost(host):
        return SSRFValidationResult(safe=False, error="Localhost access not allowed")

    if not skip_dns_resolution:
        addresses, dns_error = await resolve_host(host)
        if dns_error:
            return SSRFValidationResult(safe=False, error=dns_error)
        if not addresses:
            return SSRFValidationResult(
                safe=False, error="Hostname does not resolve to any IP address"
            )

        for address in addresses:
            if is_private_ip(address):
                logger.warning(f"SSRF blocked: {host} resolves to private IP {address}")
                return SSRFValidationResult(
                    safe=False, error="Access to private/internal networks not allowed"
                )
            if is_blocked_host(address):
                logger.warning(f"SSRF blocked: {host} resolves to blocked IP {address}")
                return SSRFValidationResult(safe=False, error="Access to this host is not allowed")
    elif is_private_ip(host):
        return SSRFValidationResult(
            safe=False, error="Access to private/internal networks not allowed"
        )

    return SSRFValidationResult(safe=True, normalized_url=parts.geturl())


async def assert_safe_url(
    url: str,
    allow_ftp: bool = False,
    skip_dns_resolution: bool = False,
) -> str:
    """
    Validate a URL and return its normalized form.

    Raises:
        SSRFError: If the URL is unsafe
    """
    result = await validate_url(url, allow_ftp=allow_ftp, skip_dns_resolution=skip_dns_resolution)
    if not result.safe:
        raise SSRFError(result.error or "URL validation failed")
    return result.normalized_url


def _is_public_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.strip("[]").split("%")[0])
    except ValueError:
        return False

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    if is_private_ip(str(ip)) or is_blocked_host(str(ip)):
        return False
    if isinstance(ip, ipaddress.IPv4Address):
        return ip not in CARRIER_NAT_NETWORK and ip not in MULTICAST_AND_RESERVED
    return not (ip.is_multicast or ip.is_reserved or ip.is_unspecified)


class PublicHostGuard:
    """
    Run-scoped public-host check used by discovery.

    Stricter than validate_url (also rejects 100.64/10 and 224.0.0.0 and
    above) and remembers hosts already verified as public for the lifetime
    of the guard.
    """

    def __init__(self, resolver=None):
        self._resolver = resolver or resolve_host
        self._public_hosts: Dict[str, bool] = {}

    async def ensure_public(self, url: str) -> str:
        """
        Raises:
            SSRFError: If the URL is not http(s) or any address is not public
        """
        try:
            parts = urlsplit(url)
            host = (parts.hostname or "").lower()
        except ValueError:
            raise SSRFError(f"Invalid URL: {url}") from None

        if parts.scheme not in ALLOWED_HTTP_SCHEMES or not host:
            raise SSRFError(f"Only http(s) URLs are allowed: {url}")
        if parts.username or parts.password:
            raise SSRFError(f"URL credentials not allowed: {url}")
        if self._public_hosts.get(host):
            return url
        if is_localhost(host) or is_blocked_host(host):
            raise SSRFError(f"Blocked host: {host}")

        addresses, dns_error = await self._resolver(host)
        if dns_error or not addresses:
            raise SSRFError(f"Could not resolve host {host}: {dns_error or 'no addresses'}")

        for address in addresses:
            if not _is_public_address(address):
                raise SSRFError(f"Host {host} resolves to non-public address {address}")

        self._public_hosts[host] = True
        return url
