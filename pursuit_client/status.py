import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .models import PlayerPresence, RoomPlayer

logger = logging.getLogger(__name__)

CONNECTION_ERROR_PREFIX = 'Unable to reach the server'


@dataclass
class ClientStatus:
    """Read-only view handed to the presentation layer."""
    online: bool = False
    connected: bool = False
    binder_state: str = 'unbound'
    rejoining: bool = False
    room_code: Optional[str] = None
    room_id: Optional[str] = None
    player_id: Optional[str] = None
    players: List[RoomPlayer] = field(default_factory=list)
    presence: Dict[str, PlayerPresence] = field(default_factory=dict)
    host_player_id: Optional[str] = None
    is_host: bool = False
    started: bool = False
    state_version: int = 0
    current_turn_player_id: Optional[str] = None
    is_my_turn: bool = False
    address: Optional[str] = None
    error: Optional[str] = None


class StatusBoard:
    """Holds the single user-visible error line and change listeners."""

    def __init__(self):
        self.error: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def set_error(self, message: Optional[str]) -> None:
        if message == self.error:
            return
        self.error = message
        self.notify()

    def clear_error(self) -> None:
        self.set_error(None)

    def report_connection_error(self, url: str, detail: str) -> None:
        # Replaces, never appends: identical messages are a no-op
        self.set_error(f'{CONNECTION_ERROR_PREFIX} at {url}. {detail}')

    def connection_restored(self) -> None:
        if self.error and self.error.startswith(CONNECTION_ERROR_PREFIX):
            logger.info("[connection-restored] clearing standing connection error")
            self.set_error(None)
