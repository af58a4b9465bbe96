"""Error taxonomy for the room session client.

Every failure a caller can observe is a ``SessionError``. Server refusals are
classified once, from the acknowledgement's error text, by
``rejection_from_reason``.
"""
from typing import Optional

TERMINAL_SESSION_MESSAGE = 'Session expired, enter your name to rejoin if seats are open.'

UNBOUND_MARKER = 'not bound to this connection'

# Substring (lowercase) -> terminal kind
TERMINAL_MARKERS = (
    ('session expired', 'expired'),
    ('seat no longer available', 'seat-unavailable'),
    ('grace period expired', 'grace-expired'),
)


class SessionError(Exception):
    """Base class for failures surfaced by the session layer."""


class ConnectionUnavailable(SessionError):
    pass


class NotConnected(SessionError):
    pass


class AckTimeout(SessionError):
    pass


class SessionMissing(SessionError):
    pass


class ServerRejected(SessionError):
    """The server acknowledged the request with ``success: false``."""

    def __init__(self, reason: str, payload: Optional[dict] = None):
        super().__init__(reason)
        self.reason = reason
        self.payload = payload or {}


class SessionUnbound(ServerRejected):
    pass


class VersionConflict(ServerRejected):
    def __init__(self, reason: str, expected_version: int, payload: Optional[dict] = None):
        super().__init__(reason, payload)
        self.expected_version = expected_version


class TerminalSessionError(ServerRejected):
    def __init__(self, reason: str, kind: str, payload: Optional[dict] = None):
        super().__init__(reason, payload)
        self.kind = kind


def terminal_kind(reason: str) -> Optional[str]:
    lowered = (reason or '').lower()
    for marker, kind in TERMINAL_MARKERS:
        if marker in lowered:
            return kind
    return None


def is_terminal(error: BaseException) -> bool:
    return isinstance(error, TerminalSessionError)


def rejection_from_reason(reason: str, payload: Optional[dict] = None) -> ServerRejected:
    """Map a server refusal to the most specific ``ServerRejected`` subclass."""
    payload = payload or {}
    kind = terminal_kind(reason)
    if kind:
        return TerminalSessionError(reason, kind, payload)
    if UNBOUND_MARKER in (reason or '').lower():
        return SessionUnbound(reason, payload)
    expected = payload.get('expectedVersion')
    if isinstance(expected, int) and not isinstance(expected, bool):
        return VersionConflict(reason, expected, payload)
    return ServerRejected(reason, payload)


def user_message(error: BaseException) -> str:
    """Text shown to the player for ``error``."""
    if is_terminal(error):
        return TERMINAL_SESSION_MESSAGE
    return str(error)
