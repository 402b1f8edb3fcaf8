"""Client address resolution for the IP gate.

Forwarded-for style headers are client controlled. They are only honoured
when the directly connected peer sits on a private or reserved network,
i.e. when it is plausibly our own reverse proxy.
"""
from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from .ipacl import IPAddress, parse_address

log = logging.getLogger(__name__)

PEER_KEYS = ("REMOTE_ADDR", "remote_addr")
FORWARDED_KEYS = ("x_forwarded_for", "x_real_ip")


def _normalize_key(key: str) -> str:
    key = key.strip().lower().replace("-", "_")
    if key.startswith("http_"):
        key = key[len("http_"):]
    return key


def _peer_text(header_sources: Mapping[str, Optional[str]]) -> str:
    # Only the transport-level key counts; HTTP_REMOTE_ADDR and a
    # "Remote-Addr" header are client controlled.
    for key in PEER_KEYS:
        value = header_sources.get(key)
        if value is not None:
            return str(value).strip()
    return ""


def _forwarded_sources(header_sources: Mapping[str, Optional[str]]) -> Dict[str, str]:
    forwarded: Dict[str, str] = {}
    for key, value in header_sources.items():
        if value is None:
            continue
        name = _normalize_key(str(key))
        if name in FORWARDED_KEYS:
            forwarded.setdefault(name, str(value))
    return forwarded


def is_private_address(address: IPAddress) -> bool:
    """True for private, loopback, link-local and reserved addresses.

    IPv4-mapped IPv6 peers (``::ffff:a.b.c.d`` from a dual-stack listener)
    are judged by their IPv4 address.
    """
    mapped = getattr(address, "ipv4_mapped", None)
    if mapped is not None:
        address = mapped
    return (
        address.is_private
        or address.is_reserved
        or address.is_loopback
        or address.is_link_local
    )


def _first_hop(value: str) -> str:
    # X-Forwarded-For is "client, proxy1, proxy2"; the client is leftmost.
    return value.split(",", 1)[0].strip()


def resolve_client_address(header_sources: Mapping[str, Optional[str]]) -> str:
    """Return the client address to check, or an empty string.

    The peer address is read from ``REMOTE_ADDR`` only. Forwarded headers
    may use CGI names (``HTTP_X_FORWARDED_FOR``) or header names
    (``X-Forwarded-For``); those keys are matched case-insensitively.
    """
    sources = _forwarded_sources(header_sources)

    peer_text = _peer_text(header_sources)
    peer = parse_address(peer_text) if peer_text else None
    if peer is None:
        if sources:
            log.debug("Ignoring forwarded headers without a valid peer address")
        return ""

    if not is_private_address(peer):
        return peer_text

    for key in FORWARDED_KEYS:
        raw = sources.get(key)
        if not raw:
            continue
        candidate = _first_hop(raw)
        if parse_address(candidate) is not None:
            return candidate
        log.debug("Ignoring invalid %s value %r", key, candidate)

    return peer_text


__all__ = ["is_private_address", "resolve_client_address"]
