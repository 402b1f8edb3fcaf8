"""Request-level IP gate for a staging site."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlencode, urlsplit

from .clientaddr import resolve_client_address
from .config import AccessConfig
from .ipacl import is_allowed
from .log import ActionLog

log = logging.getLogger(__name__)

DENIAL_TEMPLATE = "Access denied. Your IP address ({address}) is not allowed to view this staging site."


@dataclass(slots=True)
class AccessDecision:
    allowed: bool
    client_address: str
    reason: Optional[str] = None
    login_required: bool = False
    redirect_to: Optional[str] = None


class AccessGuard:
    """Decides whether a request may see the staging site.

    The host calls ``check`` early in request handling with the transport
    sources (peer address and forwarded headers) and acts on the result.
    A decision with ``login_required`` set should send the visitor to the
    login page (see ``login_redirect``) instead of refusing outright.
    """

    def __init__(self, settings: AccessConfig, action_log: Optional[ActionLog] = None):
        self._settings = settings
        self._action_log = action_log

    def refresh(self, settings: AccessConfig) -> None:
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return self._settings.ip_restriction or self._settings.password_protection

    def check(
        self,
        header_sources: Mapping[str, Optional[str]],
        authenticated: bool = False,
        *,
        path: Optional[str] = None,
        login_path: Optional[str] = None,
        exempt: bool = False,
    ) -> AccessDecision:
        """Evaluate one request.

        ``path`` is the requested path (with query), ``login_path`` the host's
        login page. Requests for the login page and ``exempt`` requests
        (scheduled jobs) skip the password gate; the IP gate still applies.
        """
        settings = self._settings
        if authenticated:
            return AccessDecision(allowed=True, client_address="", reason="authenticated")
        if settings.password_protection and not exempt and not _is_login_request(path, login_path):
            return AccessDecision(
                allowed=False,
                client_address="",
                reason="login required",
                login_required=True,
                redirect_to=path,
            )
        if not settings.ip_restriction:
            return AccessDecision(allowed=True, client_address="", reason="ip restriction disabled")

        address = resolve_client_address(header_sources)
        if not address:
            self._deny_logged(address, "client address unavailable")
            return AccessDecision(allowed=False, client_address="", reason="client address unavailable")

        if is_allowed(address, settings.allowed_ips):
            return AccessDecision(allowed=True, client_address=address, reason="address allowed")

        self._deny_logged(address, "address not in allow list")
        return AccessDecision(allowed=False, client_address=address, reason="address not in allow list")

    def _deny_logged(self, address: str, reason: str) -> None:
        shown = address or "<unknown>"
        log.warning("Denied staging access for %s: %s", shown, reason)
        if self._action_log is None:
            return
        try:
            self._action_log.record(f"Access denied for {shown}")
        except OSError:
            log.exception("Failed to record denial in action log")


def _is_login_request(path: Optional[str], login_path: Optional[str]) -> bool:
    if not path or not login_path:
        return False
    request_path = urlsplit(path).path
    login = urlsplit(login_path).path
    prefix = login.rstrip("/")
    if request_path == login or not prefix:
        return request_path == login
    return request_path == prefix or request_path.startswith(prefix + "/")


def login_redirect(decision: AccessDecision, login_url: str) -> str:
    """Login URL carrying ``redirect_to`` so the visitor returns afterwards."""
    if not decision.redirect_to:
        return login_url
    separator = "&" if urlsplit(login_url).query else "?"
    return f"{login_url}{separator}{urlencode({'redirect_to': decision.redirect_to})}"


def denial_message(decision: AccessDecision) -> str:
    """User-facing refusal text; only echoes the caller's own address."""
    return DENIAL_TEMPLATE.format(address=decision.client_address or "unknown")


__all__ = ["AccessDecision", "AccessGuard", "DENIAL_TEMPLATE", "denial_message", "login_redirect"]
