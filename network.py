"""Caller identity and host authority.

Everything here is a plain function of addresses so it can be exercised
without a running server.
"""
import re
import socket
import logging
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

IPV4_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
IPV6_PATTERN = re.compile(r"^([0-9a-fA-F]{0,4}:){2,7}[0-9a-fA-F]{0,4}$")
IPV4_MAPPED_PREFIX = "::ffff:"
LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")


def normalize_address(address: Optional[str]) -> str:
    """Strip whitespace, lower-case and turn ``::ffff:a.b.c.d`` into ``a.b.c.d``."""
    if not address:
        return ""
    address = address.strip().lower()
    if address.startswith(IPV4_MAPPED_PREFIX):
        mapped = address[len(IPV4_MAPPED_PREFIX):]
        if IPV4_PATTERN.match(mapped):
            return mapped
    return address


def resolve_caller_address(
    remote_addr: Optional[str],
    headers: Optional[Mapping[str, str]] = None,
    trust_proxy: bool = False,
) -> str:
    """Return the canonical address of whoever sent the request.

    ``X-Forwarded-For`` is only consulted when ``trust_proxy`` is set, and
    then only its rightmost entry, the one our own proxy appended. Entries
    left of it are written by the client and can be forged. Otherwise the
    transport peer address is the only source.
    """
    if trust_proxy and headers:
        forwarded = headers.get("X-Forwarded-For", "")
        last = forwarded.split(",")[-1].strip()
        if last:
            return normalize_address(last)
    return normalize_address(remote_addr)


def is_ip_literal(value: str) -> bool:
    return bool(IPV4_PATTERN.match(value) or IPV6_PATTERN.match(value))


def resolve_host_address(configured_value: str) -> str:
    """Resolve the configured host to an address, once, at startup.

    Hostnames are looked up and the first address is used. A failed lookup
    is not fatal: the configured string is kept as-is and a warning logged.
    """
    configured_value = configured_value.strip()
    if is_ip_literal(configured_value):
        return normalize_address(configured_value)

    try:
        _, _, addresses = socket.gethostbyname_ex(configured_value)
    except (OSError, UnicodeError) as e:
        logger.warning(f'Could not resolve hostname "{configured_value}": {e}')
        logger.warning(f'Will use "{configured_value}" as-is for comparison')
        return configured_value

    if not addresses:
        logger.warning(f'Hostname "{configured_value}" resolved to no addresses, using it as-is')
        return configured_value

    logger.info(f'Resolved hostname "{configured_value}" to IP: {addresses[0]}')
    return addresses[0]


def is_host(caller_address: str, host_address: str) -> bool:
    """True for the configured host and for either loopback address."""
    caller = normalize_address(caller_address)
    if not caller:
        return False
    return caller in LOOPBACK_ADDRESSES or caller == normalize_address(host_address)


def get_local_ip() -> str:
    """Best guess at this machine's LAN address (no packets are sent)."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()
