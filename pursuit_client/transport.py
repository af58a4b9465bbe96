"""Transport channel.

The session layer only needs two primitives from the realtime connection:
emit-with-acknowledgement and subscribe-to-push. ``Channel`` holds the
listener bookkeeping; ``SocketIOChannel`` binds it to a python-socketio
``AsyncClient``. Reconnection backoff stays inside python-socketio.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from urllib.parse import urlsplit, urlunsplit

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from .config import Config
from .errors import ConnectionUnavailable

logger = logging.getLogger(__name__)

PushHandler = Callable[[Any], None]
ConnectionListener = Callable[[Optional[str]], Awaitable[None]]
ErrorListener = Callable[[str], None]
AckCallback = Callable[..., None]


def normalize_server_url(raw_value: Optional[str], default: str = Config.SOCKET_URL) -> str:
    """Scheme defaults to https, path is dropped, no trailing slash."""
    trimmed = (raw_value or '').strip()
    if not trimmed:
        return default.rstrip('/')
    candidate = trimmed if re.match(r'^https?://', trimmed, re.I) else f'https://{trimmed}'
    parts = urlsplit(candidate)
    if not parts.netloc:
        logger.warning(f"[socket-url] unable to parse {candidate!r}, reverting to default")
        return default.rstrip('/')
    return urlunsplit((parts.scheme, parts.netloc, '', '', '')).rstrip('/')


class Channel(ABC):
    """Connection as seen by the session layer."""

    def __init__(self, url: str = ''):
        self.url = url
        self._push_handlers: Dict[str, List[PushHandler]] = {}
        self._connection_listeners: List[ConnectionListener] = []
        self._error_listeners: List[ErrorListener] = []

    @property
    @abstractmethod
    def identity(self) -> Optional[str]:
        """Ephemeral id of the current connection, None while disconnected."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @abstractmethod
    async def emit(self, event: str, payload: Dict[str, Any], callback: AckCallback) -> None:
        ...

    def on(self, event: str, handler: PushHandler) -> None:
        self._push_handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: PushHandler) -> None:
        handlers = self._push_handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        self._connection_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def dispatch_push(self, event: str, data: Any) -> None:
        for handler in list(self._push_handlers.get(event, [])):
            handler(data)

    async def notify_connection(self, identity: Optional[str]) -> None:
        for listener in list(self._connection_listeners):
            await listener(identity)

    def notify_error(self, message: str) -> None:
        for listener in list(self._error_listeners):
            listener(message)


class SocketIOChannel(Channel):
    def __init__(self, config_class=Config, url: Optional[str] = None):
        super().__init__(normalize_server_url(url or config_class.SOCKET_URL))
        self.namespace = config_class.SOCKETIO_NAMESPACE
        self._connect_timeout = config_class.CONNECT_TIMEOUT_SEC
        self._sio = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=config_class.RECONNECTION_ATTEMPTS,
            reconnection_delay=config_class.RECONNECTION_DELAY_SEC,
        )
        self._registered: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._sio.on('connect', self._handle_connect, namespace=self.namespace)
        self._sio.on('disconnect', self._handle_disconnect, namespace=self.namespace)
        self._sio.on('connect_error', self._handle_connect_error, namespace=self.namespace)
        self._sio.on('debug', self._handle_debug, namespace=self.namespace)

    @property
    def identity(self) -> Optional[str]:
        return self._sio.get_sid(self.namespace)

    @property
    def connected(self) -> bool:
        return self.identity is not None

    async def connect(self) -> None:
        try:
            await self._sio.connect(self.url, namespaces=[self.namespace], wait_timeout=self._connect_timeout)
        except SocketConnectionError as exc:
            message = str(exc) or 'Unable to establish a Socket.IO connection.'
            self.notify_error(message)
            raise ConnectionUnavailable(message) from exc

    async def disconnect(self) -> None:
        await self._sio.disconnect()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def emit(self, event: str, payload: Dict[str, Any], callback: AckCallback) -> None:
        await self._sio.emit(event, payload, namespace=self.namespace, callback=callback)

    def on(self, event: str, handler: PushHandler) -> None:
        super().on(event, handler)
        if event not in self._registered:
            self._registered.add(event)
            self._sio.on(event, self._push_forwarder(event), namespace=self.namespace)

    def _push_forwarder(self, event: str):
        def forward(data=None):
            self.dispatch_push(event, data)
        return forward

    def _spawn_connection_notice(self, identity: Optional[str]) -> None:
        # Listeners may issue acked calls; run them outside the reader task
        task = asyncio.ensure_future(self.notify_connection(identity))
        self._tasks.add(task)
        task.add_done_callback(self._connection_notice_done)

    def _connection_notice_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[socket-listener-failed] url={self.url} error={exc!r}", exc_info=exc)

    async def _handle_connect(self):
        identity = self.identity
        logger.info(f"[socket-connect] url={self.url} sid={identity}")
        self._spawn_connection_notice(identity)

    async def _handle_disconnect(self, *args):
        logger.info(f"[socket-disconnect] url={self.url} reason={args[0] if args else None}")
        self._spawn_connection_notice(None)

    async def _handle_connect_error(self, data=None):
        if isinstance(data, dict):
            message = data.get('message') or str(data)
        else:
            message = str(data or 'Unable to establish a Socket.IO connection.')
        logger.warning(f"[socket-connect-error] url={self.url} error={message}")
        self.notify_error(message)

    async def _handle_debug(self, data=None):
        logger.debug(f"[socket-debug] {data}")
