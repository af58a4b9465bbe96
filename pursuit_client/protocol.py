"""Wire protocol: event names, acknowledgement decoding, wire <-> model.

All camelCase field probing lives here. Everything past this module works
with the dataclasses in ``pursuit_client.models``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .errors import ServerRejected
from .models import (
    PlayerPresence,
    PresenceStatus,
    RoomPlayer,
    RoomSnapshot,
    canonical_room_code,
)

# Request/ack operations
CREATE_ROOM = 'create-room'
JOIN_ROOM = 'join-room'
REJOIN_ROOM = 'rejoin-room'
START_GAME = 'start-game'
UPDATE_PLAYER_COLOR = 'update-player-color'
SUBMIT_ACTION = 'submit-action'
REQUEST_SYNC = 'request-sync'
LEAVE_ROOM = 'leave-room'

# Server pushes
PRESENCE_UPDATED = 'presence-updated'
PLAYER_JOINED = 'player-joined'
GAME_STARTED = 'game-started'
PLAYER_COLOR_UPDATED = 'player-color-updated'
ROOM_SNAPSHOT = 'room-snapshot'
ACTION_REJECTED = 'action-rejected'
HOST_UPDATED = 'host-updated'

PUSH_EVENTS = (
    PRESENCE_UPDATED,
    PLAYER_JOINED,
    GAME_STARTED,
    PLAYER_COLOR_UPDATED,
    ROOM_SNAPSHOT,
    ACTION_REJECTED,
    HOST_UPDATED,
)


def event_name(name: str, suffix: str = '') -> str:
    return f"{name}{suffix or ''}"


@dataclass
class AckSuccess:
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AckFailure:
    reason: str
    payload: Dict[str, Any] = field(default_factory=dict)


AckResult = Union[AckSuccess, AckFailure]


def decode_ack(operation: str, raw: Any) -> AckResult:
    """Turn a raw acknowledgement into a tagged result."""
    if not isinstance(raw, dict):
        return AckFailure(f'{operation} failed.')
    if not raw.get('success'):
        return AckFailure(raw.get('error') or f'{operation} failed.', dict(raw))
    return AckSuccess(dict(raw))


# ---- typed operation results ----

@dataclass
class RoomMembership:
    """Success shape shared by create-room, join-room and rejoin-room."""
    room_code: str
    player_id: str
    room_id: Optional[str] = None
    session_token: Optional[str] = None
    players: List[RoomPlayer] = field(default_factory=list)
    presence: Dict[str, PlayerPresence] = field(default_factory=dict)
    state_version: int = 0
    is_host: bool = False
    started: bool = False


def _int_or(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def parse_membership(ack: AckSuccess, require_token: bool = True, default_version: int = 1) -> RoomMembership:
    data = ack.payload
    room_code = canonical_room_code(data.get('roomCode'))
    player_id = data.get('playerId')
    token = data.get('sessionToken')
    if not room_code or not player_id or (require_token and not token):
        raise ServerRejected('Server did not return room identity.', data)
    return RoomMembership(
        room_code=room_code,
        player_id=str(player_id),
        room_id=data.get('roomId') or None,
        session_token=token or None,
        players=players_from_wire(data.get('players')),
        presence=presence_from_wire(data.get('playersPresence')),
        state_version=_int_or(data.get('stateVersion'), default_version),
        is_host=bool(data.get('isHost')),
        started=bool(data.get('isGameStarted')),
    )


def parse_version(ack: AckSuccess) -> Optional[int]:
    """``stateVersion`` from a version-bearing ack, or None when absent."""
    value = ack.payload.get('stateVersion')
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


# ---- wire -> model ----

def players_from_wire(raw: Any) -> List[RoomPlayer]:
    players = []
    for entry in raw or []:
        if not isinstance(entry, dict) or entry.get('id') is None:
            continue
        players.append(RoomPlayer(
            id=str(entry['id']),
            name=entry.get('name') or '',
            color=entry.get('color') or '',
        ))
    return players


def presence_from_wire(raw: Any) -> Dict[str, PlayerPresence]:
    presence: Dict[str, PlayerPresence] = {}
    if not isinstance(raw, dict):
        return presence
    for key, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        player_id = str(entry.get('playerId') or key)
        try:
            status = PresenceStatus(entry.get('status'))
        except ValueError:
            status = PresenceStatus.CONNECTED if entry.get('connected') else PresenceStatus.DISCONNECTED
        presence[player_id] = PlayerPresence(
            player_id=player_id,
            status=status,
            connected=bool(entry.get('connected', status is PresenceStatus.CONNECTED)),
            disconnected_at=entry.get('disconnectedAt'),
            grace_expires_at=entry.get('graceExpiresAt'),
        )
    return presence


def snapshot_from_wire(raw: Any) -> Optional[RoomSnapshot]:
    if not isinstance(raw, dict) or not raw.get('roomCode'):
        return None
    version = raw.get('stateVersion')
    if isinstance(version, bool) or not isinstance(version, (int, float)):
        return None
    return RoomSnapshot(
        room_code=canonical_room_code(raw['roomCode']),
        room_id=raw.get('roomId') or None,
        state_version=int(version),
        players=players_from_wire(raw.get('players')),
        presence=presence_from_wire(raw.get('playersPresence')),
        host_player_id=raw.get('hostPlayerId') or None,
        self_player_id=raw.get('selfPlayerId') or None,
        started=bool(raw.get('isStarted')),
        game_state=raw.get('gameState'),
    )
