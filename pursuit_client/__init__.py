import logging

from .client import RoomClient
from .config import Config
from .session_store import SessionStore
from .transport import SocketIOChannel

logging.getLogger(__name__).addHandler(logging.NullHandler())


def create_client(config_class=Config, channel=None, store=None, address=None):
    """Build a RoomClient wired to a Socket.IO channel and the seat store.

    ``channel`` and ``store`` may be supplied to reuse existing ones (tests
    pass an in-memory channel and store).
    """
    if store is None:
        store = SessionStore(config_class.SESSION_DATABASE_URL, config_class.CONTEXT_ID)
    if channel is None:
        channel = SocketIOChannel(config_class)
    return RoomClient(store, channel=channel, config_class=config_class, address=address)


__all__ = ['Config', 'RoomClient', 'SessionStore', 'SocketIOChannel', 'create_client']
