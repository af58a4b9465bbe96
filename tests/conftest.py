import asyncio
import os
import sys
from collections import defaultdict, deque

import pytest

# Ensure the project root (containing the `pursuit_client` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from pursuit_client.client import RoomClient
from pursuit_client.config import Config
from pursuit_client.session_store import SessionStore
from pursuit_client.transport import Channel


class TestConfig(Config):
    __test__ = False
    SOCKET_URL = 'http://test.local'
    SOCKETIO_NAMESPACE = '/'
    EVENT_SUFFIX = '-v2'
    ACK_TIMEOUT_SEC = 0.2
    SESSION_DATABASE_URL = 'sqlite://'
    CONTEXT_ID = 'tab-1'


def wire(name):
    return f'{name}{TestConfig.EVENT_SUFFIX}'


class FakeChannel(Channel):
    """In-memory channel: scripted acks, manual pushes and reconnects.

    Replies queued with ``reply`` are consumed one per emit of that
    operation. An emit with nothing queued is held until ``release``.
    """

    def __init__(self, identity='sid-1'):
        super().__init__(TestConfig.SOCKET_URL)
        self._identity = identity
        self.sent = []
        self.replies = defaultdict(deque)
        self.held = []

    @property
    def identity(self):
        return self._identity

    @property
    def connected(self):
        return self._identity is not None

    async def emit(self, event, payload, callback):
        self.sent.append((event, payload))
        queue = self.replies.get(event)
        if queue:
            callback(queue.popleft())
        else:
            self.held.append((event, payload, callback))

    def reply(self, operation, *responses):
        self.replies[wire(operation)].extend(responses)

    def release(self, operation, response):
        for index, (event, _payload, callback) in enumerate(self.held):
            if event == wire(operation):
                del self.held[index]
                callback(response)
                return
        raise AssertionError(f'no held {operation} request')

    def sent_for(self, operation):
        return [payload for event, payload in self.sent if event == wire(operation)]

    def push(self, name, data):
        self.dispatch_push(wire(name), data)

    async def reconnect(self, identity):
        self._identity = identity
        await self.notify_connection(identity)

    async def drop(self):
        self._identity = None
        await self.notify_connection(None)


def run(coro):
    return asyncio.run(coro)


def ok(**fields):
    return dict(success=True, **fields)


def failed(error, **fields):
    return dict(success=False, error=error, **fields)


def membership(room_code='ABC123', player_id='p1', token='tok-1', players=None, version=1, **extra):
    players = players if players is not None else [{'id': player_id, 'name': 'Host Player', 'color': ''}]
    return ok(roomId='room-1', roomCode=room_code, playerId=player_id, sessionToken=token,
              players=players, stateVersion=version, **extra)


def snapshot(version, current_index=0, room_code='ABC123', self_player_id=None, players=None, presence=None, **extra):
    players = players if players is not None else [
        {'id': 'p1', 'name': 'Host Player', 'color': 'red'},
        {'id': 'p2', 'name': 'Guest', 'color': 'blue'},
    ]
    data = {
        'roomCode': room_code,
        'roomId': 'room-1',
        'stateVersion': version,
        'players': players,
        'playersPresence': presence if presence is not None else {
            p['id']: {'playerId': p['id'], 'status': 'connected', 'connected': True} for p in players
        },
        'hostPlayerId': 'p1',
        'isStarted': True,
        'gameState': {'players': players, 'currentPlayerIndex': current_index},
    }
    if self_player_id:
        data['selfPlayerId'] = self_player_id
    data.update(extra)
    return data


@pytest.fixture()
def store():
    return SessionStore(TestConfig.SESSION_DATABASE_URL, TestConfig.CONTEXT_ID)


@pytest.fixture()
def channel():
    return FakeChannel('sid-1')


@pytest.fixture()
def client(store, channel):
    return RoomClient(store, channel=channel, config_class=TestConfig)
