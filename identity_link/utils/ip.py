"""
Client address helpers for the consent audit trail.

``extract_client_ip`` picks the originating address of a request and
``anonymize_ip`` masks its low-order part before it is stored.  Both are
total: malformed input degrades, it never raises.
"""

from __future__ import annotations

from typing import Optional

from identity_link.models.profile import RequestContext

__all__ = ["anonymize_ip", "extract_client_ip", "is_anonymizable_ip"]

DEFAULT_FORWARDED_FOR_HEADER: str = "X-Forwarded-For"

_IPV6_MASKED_SEGMENTS: int = 4


def extract_client_ip(
    context: Optional[RequestContext],
    header_name: str = DEFAULT_FORWARDED_FOR_HEADER,
) -> Optional[str]:
    """Return the best-available client address, or ``None``.

    The first comma-separated token of the forwarded-for header wins;
    an empty or blank token falls back to the connection's peer address.
    """
    if context is None:
        return None

    forwarded = context.header(header_name)
    if isinstance(forwarded, str):
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first

    peer = context.peer_address
    if isinstance(peer, str) and peer.strip():
        return peer.strip()
    return None


def _is_ipv4_shape(address: str) -> bool:
    return "." in address and len(address.split(".")) == 4


def is_anonymizable_ip(address: Optional[str]) -> bool:
    """``True`` when :func:`anonymize_ip` recognizes the address format."""
    if address is None:
        return False
    return _is_ipv4_shape(address) or ":" in address


def anonymize_ip(address: Optional[str]) -> Optional[str]:
    """Mask the host part of *address*.

    - IPv4: the 4th octet becomes ``0``.
    - IPv6: the last four colon-separated segments become ``0000``
      (all of them when there are fewer than four).
    - Anything else is returned unchanged.

    Examples::

        >>> anonymize_ip("192.168.1.42")
        '192.168.1.0'
        >>> anonymize_ip("2001:db8:85a3:0:0:8a2e:370:7334")
        '2001:db8:85a3:0:0000:0000:0000:0000'
    """
    if address is None:
        return None

    # IPv4-mapped IPv6 ("::ffff:10.0.0.7") has four dot parts and is
    # masked as IPv4.
    if _is_ipv4_shape(address):
        octets = address.split(".")
        octets[3] = "0"
        return ".".join(octets)

    if ":" in address:
        segments = address.split(":")
        keep = max(len(segments) - _IPV6_MASKED_SEGMENTS, 0)
        masked = segments[:keep] + ["0000"] * (len(segments) - keep)
        return ":".join(masked)

    return address
