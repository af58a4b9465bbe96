import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Optional, Set

from ..ack import Requester
from ..address import normalize_address, room_code_from_address
from ..errors import (
    TERMINAL_SESSION_MESSAGE,
    NotConnected,
    SessionError,
    SessionMissing,
    TerminalSessionError,
)
from ..models import BindAttempt, Session, canonical_room_code
from ..protocol import REJOIN_ROOM, RoomMembership, parse_membership
from ..session_store import SessionStore
from ..status import StatusBoard
from .reconciler import RoomReconciler

logger = logging.getLogger(__name__)


class BinderState(str, Enum):
    UNBOUND = 'unbound'
    BINDING = 'binding'
    BOUND = 'bound'


class SessionBinder:
    """Associates the held session token with the current connection.

    Owns the bound-connection flag and the registry of attempted
    (connection, room, token) keys. Automatic binds never repeat a key;
    manual rebinds share whatever bind is already in flight.
    """

    def __init__(self, requester: Requester, store: SessionStore, reconciler: RoomReconciler,
                 board: StatusBoard, address: Optional[str] = None):
        self.requester = requester
        self.store = store
        self.reconciler = reconciler
        self.board = board
        self.address = address
        self.session: Optional[Session] = None
        self.player_name: Optional[str] = None
        self.state = BinderState.UNBOUND
        self.bound_identity: Optional[str] = None
        self._attempted: Set[BindAttempt] = set()
        self._inflight: Optional[asyncio.Future] = None
        # Session the in-flight bind targets
        self.pending: Optional[Session] = None
        # Bumped by forget(); a bind started under an older value is not adopted
        self._generation = 0

    def _identity(self) -> Optional[str]:
        channel = self.requester.channel
        return channel.identity if channel is not None else None

    @property
    def binding(self) -> bool:
        return self._inflight is not None

    def candidate(self) -> Optional[Session]:
        if self.session is not None:
            return self.session
        stored = self.store.read(room_code_from_address(self.address))
        return stored.to_session() if stored else None

    # ---- triggers ----

    async def evaluate(self) -> bool:
        """Bind automatically when the connection is not yet bound.

        Covers both the first connection with a candidate session and a
        reconnection under a new identity. Returns True if a bind succeeded.
        """
        waited = False
        while self._inflight is not None:
            # The pending bind may belong to an older connection identity
            waited = True
            try:
                await asyncio.shield(self._inflight)
            except SessionError:
                pass
        identity = self._identity()
        if identity is None:
            return False
        if self.state is BinderState.BOUND and self.bound_identity == identity:
            return waited
        candidate = self.candidate()
        if candidate is None:
            return False
        key = BindAttempt(identity, canonical_room_code(candidate.room_code), candidate.session_token)
        if key in self._attempted:
            logger.debug(f"[bind-skip] room={key.room_code} sid={identity} already attempted")
            return False
        try:
            await self._bind(candidate, identity)
        except SessionError as exc:
            logger.warning(f"[auto-bind-failed] room={key.room_code} sid={identity} error={exc}")
            return False
        return self.state is BinderState.BOUND and self.bound_identity == identity

    async def rebind(self) -> RoomMembership:
        if self._inflight is not None:
            logger.info("[rebind-coalesced] awaiting in-flight bind")
            return await asyncio.shield(self._inflight)
        if self.session is None:
            raise SessionMissing('Missing multiplayer session context.')
        identity = self._identity()
        if identity is None:
            raise NotConnected('Not connected to server. Please verify the Socket.IO backend URL and try again.')
        return await self._bind(self.session, identity)

    def connection_lost(self) -> None:
        if self.state is BinderState.BOUND:
            self.state = BinderState.UNBOUND
            self.board.notify()

    # ---- bind round trip ----

    async def _bind(self, candidate: Session, identity: str) -> RoomMembership:
        self._attempted.add(BindAttempt(identity, canonical_room_code(candidate.room_code), candidate.session_token))
        self.pending = candidate
        self._inflight = asyncio.ensure_future(self._run_bind(candidate, identity))
        return await asyncio.shield(self._inflight)

    async def _run_bind(self, candidate: Session, identity: str) -> RoomMembership:
        room_code = canonical_room_code(candidate.room_code)
        generation = self._generation
        self.state = BinderState.BINDING
        self.board.notify()
        logger.info(f"[bind-start] room={room_code} sid={identity}")
        try:
            ack = await self.requester.call(REJOIN_ROOM, {
                'roomCode': room_code,
                'sessionToken': candidate.session_token,
            })
            membership = parse_membership(ack, require_token=False, default_version=0)
        except TerminalSessionError as exc:
            if generation == self._generation:
                self._fail_terminal(candidate, exc)
            raise
        except SessionError as exc:
            if generation == self._generation:
                self._fail_transient(candidate, exc)
            raise
        finally:
            self._inflight = None
            self.pending = None

        if generation != self._generation:
            logger.info(f"[bind-abandoned] room={room_code} sid={identity} left while binding")
            return membership
        if self.session is not None and not self.session.matches(candidate):
            logger.info(f"[bind-superseded] room={room_code} held={self.session.room_code}")
            return membership
        self._adopt(membership, candidate.session_token, identity)
        logger.info(f"[bind-ok] room={room_code} sid={identity} player={membership.player_id}")
        return membership

    def _fail_terminal(self, candidate: Session, exc: TerminalSessionError) -> None:
        logger.warning(f"[bind-terminal] room={candidate.room_code} kind={exc.kind} reason={exc.reason}")
        self.store.clear(candidate.room_code)
        if self.session is None or self.session.matches(candidate):
            self._hard_reset()
        self.board.set_error(TERMINAL_SESSION_MESSAGE)
        self.board.notify()

    def _fail_transient(self, candidate: Session, exc: SessionError) -> None:
        logger.warning(f"[bind-transient] room={candidate.room_code} error={exc}")
        if self.session is None or self.session.matches(candidate):
            self.state = BinderState.UNBOUND
            self.bound_identity = None
        self.board.set_error(str(exc))
        self.board.notify()

    def _hard_reset(self) -> None:
        self.session = None
        self.state = BinderState.UNBOUND
        self.bound_identity = None
        self.reconciler.reset()

    def _adopt(self, membership: RoomMembership, session_token: str, identity: Optional[str]) -> None:
        self.session = Session(
            room_code=membership.room_code,
            session_token=session_token,
            player_id=membership.player_id,
        )
        self.store.write(membership.room_code, session_token, membership.player_id)
        self.reconciler.adopt_membership(membership)
        self.state = BinderState.BOUND
        self.bound_identity = identity
        if identity is not None:
            # Keys for earlier connections can never be attempted again
            self._attempted = {key for key in self._attempted if key.connection_identity == identity}
        self.player_name = self.reconciler.player_name(membership.player_id) or self.player_name
        self.address = normalize_address(self.address, membership.room_code, self.player_name)
        self.board.clear_error()
        self.board.notify()

    # ---- session lifecycle ----

    def establish(self, membership: RoomMembership, player_name: Optional[str] = None) -> None:
        """Adopt a session the server created for this connection (create/join)."""
        if player_name:
            self.player_name = player_name
        self._adopt(membership, membership.session_token, self._identity())

    def adopt_player_id(self, player_id: Optional[str]) -> None:
        if not player_id or self.session is None or self.session.player_id == player_id:
            return
        logger.info(f"[session-player] room={self.session.room_code} player={player_id} previous={self.session.player_id}")
        self.session = replace(self.session, player_id=player_id)
        self.store.write(self.session.room_code, self.session.session_token, player_id)

    def forget(self) -> Optional[Session]:
        """Drop the held seat, including one a pending bind is about to adopt."""
        session = self.session or self.pending
        rooms = {canonical_room_code(held.room_code) for held in (self.session, self.pending, self.candidate()) if held is not None}
        for room_code in rooms:
            self.store.clear(room_code)
        self._generation += 1
        self._hard_reset()
        self.player_name = None
        return session
