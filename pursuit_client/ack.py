import asyncio
import logging
from typing import Any, Dict, Optional

from .config import Config
from .errors import AckTimeout, ConnectionUnavailable, NotConnected, rejection_from_reason
from .protocol import AckFailure, AckSuccess, decode_ack, event_name
from .transport import Channel

logger = logging.getLogger(__name__)


class Requester:
    """Timeout-bounded call-and-response over a fire-and-forget channel.

    Each ``call`` emits once and resolves exactly once: with the success
    payload, with a classified ``ServerRejected``, or with ``AckTimeout``.
    An acknowledgement arriving after the timeout is dropped. Retrying is the
    caller's decision.
    """

    def __init__(self, channel: Optional[Channel], timeout: float = Config.ACK_TIMEOUT_SEC, event_suffix: str = Config.EVENT_SUFFIX):
        self.channel = channel
        self.timeout = timeout
        self.event_suffix = event_suffix

    async def call(self, operation: str, payload: Dict[str, Any]) -> AckSuccess:
        if self.channel is None:
            raise ConnectionUnavailable('Socket connection not available. Please try again later.')
        if not self.channel.connected:
            raise NotConnected('Not connected to server. Please verify the Socket.IO backend URL and try again.')

        loop = asyncio.get_running_loop()
        pending = loop.create_future()

        def on_ack(response=None, *extra):
            if pending.done():
                logger.debug(f"[ack-late] op={operation} discarded")
                return
            pending.set_result(response)

        logger.debug(f"[ack-send] op={operation}")
        await self.channel.emit(event_name(operation, self.event_suffix), payload, on_ack)
        try:
            raw = await asyncio.wait_for(pending, self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[ack-timeout] op={operation} after={self.timeout}s")
            raise AckTimeout(f'Timed out waiting for {operation} response.') from None

        result = decode_ack(operation, raw)
        if isinstance(result, AckFailure):
            logger.info(f"[ack-fail] op={operation} reason={result.reason}")
            raise rejection_from_reason(result.reason, result.payload)
        return result
