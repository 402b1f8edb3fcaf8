"""Allow-list ACL checks for staging access.

The allow list is plain text, one token per line. A token is either an exact
address (``203.0.113.7``), a CIDR block (``10.0.0.0/8``, ``2001:db8::/32``) or
an inclusive IPv4 range (``192.168.1.1-192.168.1.10``). The loopback
addresses are always allowed so a bad list can never lock out local callers.
"""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import List, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

DEFAULT_ALLOWED = ("127.0.0.1", "::1")


@dataclass(frozen=True, slots=True)
class ExactEntry:
    address: str


@dataclass(frozen=True, slots=True)
class CidrEntry:
    subnet: str
    prefix: str


@dataclass(frozen=True, slots=True)
class RangeEntry:
    start: str
    end: str


AllowListEntry = Union[ExactEntry, CidrEntry, RangeEntry]


@dataclass(frozen=True, slots=True)
class AllowListProblem:
    """A configured line that can never match anything."""

    line: int
    token: str
    reason: str


def parse_address(value: str) -> Optional[IPAddress]:
    """Return the address object for a literal, or None if it is not one."""
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


def is_valid_address(value: str) -> bool:
    return parse_address(value) is not None


def parse_entry(token: str) -> AllowListEntry:
    """Classify a token by its shape; no address validation happens here."""
    token = token.strip()
    if "/" in token:
        subnet, prefix = token.split("/", 1)
        return CidrEntry(subnet=subnet.strip(), prefix=prefix.strip())
    if "-" in token:
        start, end = token.split("-", 1)
        return RangeEntry(start=start.strip(), end=end.strip())
    return ExactEntry(address=token)


def split_allow_list(raw: str) -> List[str]:
    """Return the non-empty, trimmed lines of a raw allow list."""
    return [line.strip() for line in raw.splitlines() if line.strip()]


def parse_allow_list(raw: str) -> List[AllowListEntry]:
    tokens = list(DEFAULT_ALLOWED) + split_allow_list(raw)
    return [parse_entry(token) for token in tokens]


def _parse_prefix(value: str, max_prefix: int) -> Optional[int]:
    if not (value.isascii() and value.isdigit()):
        return None
    prefix = int(value)
    if prefix > max_prefix:
        return None
    return prefix


def _in_cidr(candidate: IPAddress, entry: CidrEntry) -> bool:
    subnet = parse_address(entry.subnet)
    if subnet is None or subnet.version != candidate.version:
        return False
    prefix = _parse_prefix(entry.prefix, subnet.max_prefixlen)
    if prefix is None:
        return False
    shift = subnet.max_prefixlen - prefix
    return (int(candidate) >> shift) == (int(subnet) >> shift)


def _in_range(candidate: IPAddress, entry: RangeEntry) -> bool:
    # Ranges are IPv4 only.
    if candidate.version != 4:
        return False
    start = parse_address(entry.start)
    end = parse_address(entry.end)
    if start is None or end is None:
        return False
    if start.version != 4 or end.version != 4:
        return False
    return int(start) <= int(candidate) <= int(end)


def entry_matches(entry: AllowListEntry, candidate: str) -> bool:
    """Test a single entry against a candidate address string.

    Exact entries compare the literal text, so ``::0001`` does not match
    ``::1`` here. CIDR and range entries compare numerically.
    """
    candidate = candidate.strip()
    if isinstance(entry, ExactEntry):
        return candidate == entry.address
    address = parse_address(candidate)
    if address is None:
        return False
    if isinstance(entry, CidrEntry):
        return _in_cidr(address, entry)
    return _in_range(address, entry)


def is_allowed(remote_ip: str, raw_allow_list: str) -> bool:
    """Return True if the address is permitted by the raw allow list.

    Malformed lines are skipped; they never raise and never grant access.
    """
    if parse_address(remote_ip) is None:
        return False
    return any(entry_matches(entry, remote_ip) for entry in parse_allow_list(raw_allow_list))


def _entry_problem(entry: AllowListEntry) -> Optional[str]:
    if isinstance(entry, ExactEntry):
        if parse_address(entry.address) is None:
            return "not an IP address"
        return None

    if isinstance(entry, CidrEntry):
        subnet = parse_address(entry.subnet)
        if subnet is None:
            return "invalid CIDR subnet address"
        if _parse_prefix(entry.prefix, subnet.max_prefixlen) is None:
            return f"prefix length must be between 0 and {subnet.max_prefixlen}"
        return None

    start = parse_address(entry.start)
    end = parse_address(entry.end)
    if start is None or end is None:
        return "invalid range bound"
    if start.version != 4 or end.version != 4:
        return "ranges are only supported for IPv4"
    if int(start) > int(end):
        return "range start is after range end"
    return None


def validate_allow_list(raw: str) -> List[AllowListProblem]:
    """Report configured lines that can never match.

    Meant for save time; ``is_allowed`` silently skips the same lines.
    """
    problems: List[AllowListProblem] = []
    for number, line in enumerate(raw.splitlines(), start=1):
        token = line.strip()
        if not token:
            continue
        reason = _entry_problem(parse_entry(token))
        if reason is not None:
            problems.append(AllowListProblem(line=number, token=token, reason=reason))
    return problems


__all__ = [
    "AllowListEntry",
    "AllowListProblem",
    "CidrEntry",
    "DEFAULT_ALLOWED",
    "ExactEntry",
    "RangeEntry",
    "entry_matches",
    "is_allowed",
    "is_valid_address",
    "parse_address",
    "parse_allow_list",
    "parse_entry",
    "split_allow_list",
    "validate_allow_list",
]
