import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


def canonical_room_code(room_code: Optional[str]) -> str:
    """Room codes are compared and stored trimmed and uppercased."""
    return (room_code or '').strip().upper()


class PresenceStatus(str, Enum):
    CONNECTED = 'connected'
    RECONNECTING = 'reconnecting'
    DISCONNECTED = 'disconnected'


@dataclass
class RoomPlayer:
    id: str
    name: str = ''
    color: str = ''

    def clone(self) -> 'RoomPlayer':
        return replace(self)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'color': self.color}


@dataclass
class PlayerPresence:
    player_id: str
    status: PresenceStatus = PresenceStatus.DISCONNECTED
    connected: bool = False
    disconnected_at: Optional[int] = None
    grace_expires_at: Optional[int] = None

    def clone(self) -> 'PlayerPresence':
        return replace(self)


@dataclass
class Session:
    room_code: str
    session_token: str
    player_id: str

    def matches(self, other: Optional['Session']) -> bool:
        return (
            other is not None
            and canonical_room_code(other.room_code) == canonical_room_code(self.room_code)
            and other.session_token == self.session_token
        )


@dataclass
class StoredSession:
    room_code: str
    session_token: str
    player_id: str

    def to_session(self) -> Session:
        return Session(room_code=self.room_code, session_token=self.session_token, player_id=self.player_id)


@dataclass
class RoomSnapshot:
    room_code: str
    room_id: Optional[str]
    state_version: int
    players: List[RoomPlayer] = field(default_factory=list)
    presence: Dict[str, PlayerPresence] = field(default_factory=dict)
    host_player_id: Optional[str] = None
    self_player_id: Optional[str] = None
    started: bool = False
    game_state: Any = None

    def clone(self) -> 'RoomSnapshot':
        return replace(
            self,
            players=[p.clone() for p in self.players],
            presence={pid: p.clone() for pid, p in self.presence.items()},
            game_state=copy.deepcopy(self.game_state),
        )


class BindAttempt(NamedTuple):
    connection_identity: str
    room_code: str
    session_token: str
