import logging
from typing import Any, Dict, Optional

from ..ack import Requester
from ..errors import SessionMissing, SessionUnbound
from ..protocol import REQUEST_SYNC, SUBMIT_ACTION, parse_version
from .binder import SessionBinder
from .reconciler import RoomReconciler

logger = logging.getLogger(__name__)


class ActionPipeline:
    """Versioned action submission.

    A ``SessionUnbound`` refusal costs one rebind (shared with any rebind
    already in flight) and one retry. Everything else, including version
    conflicts, goes straight back to the caller.
    """

    def __init__(self, requester: Requester, binder: SessionBinder, reconciler: RoomReconciler):
        self.requester = requester
        self.binder = binder
        self.reconciler = reconciler

    def _session_payload(self) -> Dict[str, Any]:
        session = self.binder.session
        if session is None:
            raise SessionMissing('Missing multiplayer session context.')
        return {'roomCode': session.room_code, 'sessionToken': session.session_token}

    async def _call_with_rebind(self, operation: str, extra: Dict[str, Any]) -> Optional[int]:
        payload = dict(self._session_payload(), **extra)
        try:
            ack = await self.requester.call(operation, payload)
        except SessionUnbound:
            logger.info(f"[rebind-retry] op={operation} room={payload['roomCode']}")
            await self.binder.rebind()
            # The rebind may have refreshed the session; resend with it
            payload = dict(self._session_payload(), **extra)
            ack = await self.requester.call(operation, payload)
        version = parse_version(ack)
        self.reconciler.raise_version(version)
        return version

    async def submit(self, base_version: int, action: Dict[str, Any]) -> Optional[int]:
        return await self._call_with_rebind(SUBMIT_ACTION, {'baseVersion': base_version, 'action': action})

    async def request_sync(self) -> Optional[int]:
        return await self._call_with_rebind(REQUEST_SYNC, {})
