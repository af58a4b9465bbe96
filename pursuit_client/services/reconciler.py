import copy
import logging
from typing import Any, Dict, List, Optional

from ..models import PlayerPresence, RoomPlayer, RoomSnapshot, canonical_room_code
from ..protocol import RoomMembership

logger = logging.getLogger(__name__)


class RoomReconciler:
    """Latest accepted view of the bound room.

    Snapshots are applied when their version is at least the known one;
    equal versions are re-applied so a corrective snapshot can overwrite
    optimistic local state. Host and turn ownership are derived on read.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.room_code: Optional[str] = None
        self.room_id: Optional[str] = None
        self.state_version = 0
        self.players: List[RoomPlayer] = []
        self.presence: Dict[str, PlayerPresence] = {}
        self.host_player_id: Optional[str] = None
        self.self_player_id: Optional[str] = None
        self.started = False
        self.game_state: Any = None
        self.snapshot: Optional[RoomSnapshot] = None

    def in_scope(self, room_code: Optional[str]) -> bool:
        if not self.room_code:
            return True
        return canonical_room_code(room_code) == self.room_code

    # ---- pushed inputs ----

    def apply_snapshot(self, snapshot: RoomSnapshot) -> bool:
        if not self.in_scope(snapshot.room_code):
            logger.debug(f"[snapshot-skip] foreign room={snapshot.room_code} bound={self.room_code}")
            return False
        if snapshot.state_version < self.state_version:
            logger.info(f"[snapshot-stale] room={snapshot.room_code} version={snapshot.state_version} known={self.state_version}")
            return False

        accepted = snapshot.clone()
        self.snapshot = accepted
        self.room_code = accepted.room_code
        if accepted.room_id:
            self.room_id = accepted.room_id
        self.state_version = max(self.state_version, accepted.state_version)
        self.players = [p.clone() for p in accepted.players]
        self.presence = {pid: p.clone() for pid, p in accepted.presence.items()}
        if accepted.host_player_id:
            self.host_player_id = accepted.host_player_id
        if accepted.self_player_id and accepted.self_player_id != self.self_player_id:
            logger.info(f"[self-identity] adopting player={accepted.self_player_id} previous={self.self_player_id}")
            self.self_player_id = accepted.self_player_id
        self.started = bool(accepted.started or accepted.game_state is not None)
        self.game_state = copy.deepcopy(accepted.game_state)
        return True

    def apply_roster(self, room_code: str, players: List[RoomPlayer], host_player_id: Optional[str] = None, started: bool = False) -> bool:
        if not self.in_scope(room_code):
            return False
        self.players = [p.clone() for p in players]
        if host_player_id:
            self.host_player_id = host_player_id
        if started:
            self.started = True
        return True

    def apply_presence(self, room_code: str, presence: Dict[str, PlayerPresence]) -> bool:
        if not self.in_scope(room_code):
            return False
        self.presence = {pid: p.clone() for pid, p in presence.items()}
        return True

    def apply_player_color(self, room_code: str, player_id: str, color: str) -> bool:
        if not self.in_scope(room_code):
            return False
        self.set_player_color(player_id, color)
        return True

    def apply_host(self, room_code: str, host_player_id: str) -> bool:
        if not self.in_scope(room_code) or not host_player_id:
            return False
        self.host_player_id = host_player_id
        return True

    # ---- local inputs ----

    def raise_version(self, version: Optional[int]) -> None:
        if version is not None and version > self.state_version:
            self.state_version = version

    def apply_local_game_state(self, game_state: Any) -> None:
        """Optimistic update; the version is left for the server to move."""
        self.game_state = copy.deepcopy(game_state)
        if game_state is not None:
            self.started = True

    def set_player_color(self, player_id: str, color: str) -> None:
        self.players = [
            RoomPlayer(id=p.id, name=p.name, color=color) if p.id == player_id else p
            for p in self.players
        ]

    def adopt_membership(self, membership: RoomMembership, host_player_id: Optional[str] = None) -> None:
        same_room = self.room_code == membership.room_code
        self.room_code = membership.room_code
        self.room_id = membership.room_id or (self.room_id if same_room else None)
        self.self_player_id = membership.player_id
        self.players = [p.clone() for p in membership.players]
        self.presence = {pid: p.clone() for pid, p in membership.presence.items()}
        if membership.is_host:
            self.host_player_id = membership.player_id
        elif host_player_id:
            self.host_player_id = host_player_id
        elif not same_room or self.host_player_id == membership.player_id:
            self.host_player_id = None
        self.started = membership.started or (same_room and self.started)
        if same_room:
            self.state_version = max(self.state_version, membership.state_version)
        else:
            self.state_version = membership.state_version
            self.game_state = None
            self.snapshot = None

    # ---- derived ----

    @property
    def is_host(self) -> bool:
        return bool(self.self_player_id) and self.host_player_id == self.self_player_id

    @property
    def current_turn_player_id(self) -> Optional[str]:
        state = self.game_state
        if not isinstance(state, dict):
            return None
        players = state.get('players')
        index = state.get('currentPlayerIndex')
        if not isinstance(players, list) or isinstance(index, bool) or not isinstance(index, int):
            return None
        if index < 0 or index >= len(players) or not isinstance(players[index], dict):
            return None
        player_id = players[index].get('id')
        return str(player_id) if player_id is not None else None

    @property
    def is_my_turn(self) -> bool:
        current = self.current_turn_player_id
        return current is not None and current == self.self_player_id

    def player_name(self, player_id: Optional[str]) -> Optional[str]:
        for player in self.players:
            if player.id == player_id:
                return player.name or None
        return None
