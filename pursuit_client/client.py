import logging
from typing import Any, Callable, Dict, Optional

from .ack import Requester
from .config import Config
from .errors import SessionError, SessionMissing, user_message
from .models import canonical_room_code
from .protocol import (
    ACTION_REJECTED,
    CREATE_ROOM,
    GAME_STARTED,
    HOST_UPDATED,
    JOIN_ROOM,
    LEAVE_ROOM,
    PLAYER_COLOR_UPDATED,
    PLAYER_JOINED,
    PRESENCE_UPDATED,
    ROOM_SNAPSHOT,
    START_GAME,
    UPDATE_PLAYER_COLOR,
    RoomMembership,
    event_name,
    parse_membership,
    parse_version,
    players_from_wire,
    presence_from_wire,
    snapshot_from_wire,
)
from .session_store import SessionStore
from .services import ActionPipeline, BinderState, RoomReconciler, SessionBinder
from .status import ClientStatus, StatusBoard
from .transport import Channel

logger = logging.getLogger(__name__)

ACTION_REJECTED_FALLBACK = 'Action rejected. Sync requested.'


class RoomClient:
    """Operation set and reactive status offered to the presentation layer."""

    def __init__(self, store: SessionStore, channel: Optional[Channel] = None,
                 config_class=Config, address: Optional[str] = None):
        self.config = config_class
        self.store = store
        self.board = StatusBoard()
        self.reconciler = RoomReconciler()
        self.requester = Requester(None, timeout=config_class.ACK_TIMEOUT_SEC, event_suffix=config_class.EVENT_SUFFIX)
        self.binder = SessionBinder(self.requester, store, self.reconciler, self.board, address=address)
        self.pipeline = ActionPipeline(self.requester, self.binder, self.reconciler)
        self.online = False
        self.channel: Optional[Channel] = None
        if channel is not None:
            self.attach(channel)

    # ---- wiring ----

    def attach(self, channel: Channel) -> None:
        """Route a channel's pushes and connection events into this client."""
        self.channel = channel
        self.requester.channel = channel
        handlers = {
            PRESENCE_UPDATED: self._on_presence_updated,
            PLAYER_JOINED: self._on_player_joined,
            GAME_STARTED: self._on_game_started,
            PLAYER_COLOR_UPDATED: self._on_player_color_updated,
            ROOM_SNAPSHOT: self._on_room_snapshot,
            ACTION_REJECTED: self._on_action_rejected,
            HOST_UPDATED: self._on_host_updated,
        }
        for name, handler in handlers.items():
            channel.on(event_name(name, self.config.EVENT_SUFFIX), handler)
        channel.add_connection_listener(self.handle_connection)
        channel.add_error_listener(self.handle_connection_error)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self.board.subscribe(listener)

    async def handle_connection(self, identity: Optional[str]) -> None:
        if identity is None:
            self.binder.connection_lost()
            self.board.notify()
            return
        self.board.connection_restored()
        if await self.binder.evaluate():
            self.online = True
        self.board.notify()

    def handle_connection_error(self, message: str) -> None:
        url = self.channel.url if self.channel is not None else self.config.SOCKET_URL
        self.board.report_connection_error(url, message)

    # ---- pushes ----

    def _changed(self, applied: bool) -> None:
        if applied:
            self.board.notify()

    def _on_presence_updated(self, data: Any) -> None:
        if isinstance(data, dict):
            self._changed(self.reconciler.apply_presence(data.get('roomCode'), presence_from_wire(data.get('playersPresence'))))

    def _on_player_joined(self, data: Any) -> None:
        if isinstance(data, dict):
            self._changed(self.reconciler.apply_roster(
                data.get('roomCode'), players_from_wire(data.get('players')), data.get('hostPlayerId')))

    def _on_game_started(self, data: Any) -> None:
        if isinstance(data, dict):
            self._changed(self.reconciler.apply_roster(
                data.get('roomCode'), players_from_wire(data.get('players')), data.get('hostPlayerId'), started=True))

    def _on_player_color_updated(self, data: Any) -> None:
        if isinstance(data, dict) and data.get('playerId'):
            self._changed(self.reconciler.apply_player_color(data.get('roomCode'), str(data['playerId']), data.get('color') or ''))

    def _on_host_updated(self, data: Any) -> None:
        if isinstance(data, dict):
            self._changed(self.reconciler.apply_host(data.get('roomCode'), data.get('hostPlayerId')))

    def _on_room_snapshot(self, data: Any) -> None:
        snapshot = snapshot_from_wire(data)
        if snapshot is None:
            logger.debug(f"[snapshot-malformed] {data!r}")
            return
        if self.reconciler.apply_snapshot(snapshot):
            if snapshot.self_player_id:
                self.binder.adopt_player_id(self.reconciler.self_player_id)
            self.board.notify()

    def _on_action_rejected(self, data: Any) -> None:
        data = data if isinstance(data, dict) else {}
        self.board.set_error(data.get('reason') or ACTION_REJECTED_FALLBACK)
        snapshot = snapshot_from_wire(data.get('snapshot'))
        if snapshot is not None:
            self._changed(self.reconciler.apply_snapshot(snapshot))

    # ---- operations ----

    async def _surface(self, coro):
        """Run an operation, mirroring any failure onto the status board."""
        try:
            return await coro
        except SessionError as exc:
            self.board.set_error(user_message(exc))
            raise

    def _require_session(self):
        session = self.binder.session
        if session is None:
            raise SessionMissing('Missing multiplayer session context.')
        return session

    async def create_room(self, player_name: str) -> RoomMembership:
        return await self._surface(self._enter(CREATE_ROOM, {'playerName': (player_name or '').strip()}, player_name, host=True))

    async def join_room(self, room_code: str, player_name: str) -> RoomMembership:
        payload = {'roomCode': canonical_room_code(room_code), 'playerName': (player_name or '').strip()}
        return await self._surface(self._enter(JOIN_ROOM, payload, player_name))

    async def _enter(self, operation: str, payload: Dict[str, Any], player_name: str, host: bool = False) -> RoomMembership:
        self.online = True
        ack = await self.requester.call(operation, payload)
        membership = parse_membership(ack)
        if host:
            membership.is_host = True
        membership.started = False
        self.binder.establish(membership, (player_name or '').strip() or None)
        logger.info(f"[{operation}] room={membership.room_code} player={membership.player_id}")
        return membership

    async def resume(self, address: Optional[str] = None) -> bool:
        """Bind from the shareable address and the stored seat, if any."""
        if address is not None:
            self.binder.address = address
        await self.binder.evaluate()
        bound = self.binder.state is BinderState.BOUND
        if bound:
            self.online = True
        self.board.notify()
        return bound

    async def start_game(self) -> Optional[int]:
        async def run():
            session = self._require_session()
            ack = await self.requester.call(START_GAME, {
                'roomCode': session.room_code,
                'sessionToken': session.session_token,
            })
            version = parse_version(ack)
            self.reconciler.started = True
            self.reconciler.raise_version(version)
            self.board.clear_error()
            self.board.notify()
            return version
        return await self._surface(run())

    async def update_player_color(self, color: str) -> None:
        async def run():
            session = self._require_session()
            await self.requester.call(UPDATE_PLAYER_COLOR, {
                'roomCode': session.room_code,
                'sessionToken': session.session_token,
                'color': color,
            })
            self.reconciler.set_player_color(session.player_id, color)
            self.board.clear_error()
            self.board.notify()
        await self._surface(run())

    async def submit_action(self, base_version: int, action: Dict[str, Any]) -> Optional[int]:
        version = await self._surface(self.pipeline.submit(base_version, action))
        self.board.notify()
        return version

    async def request_sync(self) -> Optional[int]:
        version = await self._surface(self.pipeline.request_sync())
        self.board.notify()
        return version

    def apply_local_game_state(self, game_state: Any) -> None:
        self.reconciler.apply_local_game_state(game_state)
        self.board.notify()

    async def leave_room(self) -> None:
        session = self.binder.session or self.binder.pending
        if session is not None and self.channel is not None and self.channel.connected:
            try:
                await self.requester.call(LEAVE_ROOM, {
                    'roomCode': session.room_code,
                    'sessionToken': session.session_token,
                })
            except SessionError as exc:
                logger.warning(f"[leave-room] notify failed room={session.room_code} error={exc}")
        self.binder.forget()
        self.online = False
        self.board.clear_error()
        self.board.notify()

    def clear_error(self) -> None:
        self.board.clear_error()

    # ---- status ----

    @property
    def status(self) -> ClientStatus:
        r = self.reconciler
        return ClientStatus(
            online=self.online,
            connected=bool(self.channel is not None and self.channel.connected),
            binder_state=self.binder.state.value,
            rejoining=self.binder.binding,
            room_code=r.room_code,
            room_id=r.room_id,
            player_id=r.self_player_id,
            players=[p.clone() for p in r.players],
            presence={pid: p.clone() for pid, p in r.presence.items()},
            host_player_id=r.host_player_id,
            is_host=r.is_host,
            started=r.started,
            state_version=r.state_version,
            current_turn_player_id=r.current_turn_player_id,
            is_my_turn=r.is_my_turn,
            address=self.binder.address,
            error=self.board.error,
        )
