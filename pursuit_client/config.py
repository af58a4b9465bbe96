import os

class Config:
    SOCKET_URL = os.environ.get('SOCKET_URL') or 'http://localhost:8080'
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE') or '/'
    # Appended to every operation and push event name on the wire
    EVENT_SUFFIX = os.environ.get('EVENT_SUFFIX', '-v2')
    # Request/ack round trip bound (seconds)
    ACK_TIMEOUT_SEC = float(os.environ.get('ACK_TIMEOUT_SEC', '15'))
    # Reconnection policy handed to the Socket.IO client
    RECONNECTION_ATTEMPTS = int(os.environ.get('RECONNECTION_ATTEMPTS', '5'))
    RECONNECTION_DELAY_SEC = float(os.environ.get('RECONNECTION_DELAY_SEC', '1'))
    CONNECT_TIMEOUT_SEC = float(os.environ.get('CONNECT_TIMEOUT_SEC', '10'))
    SESSION_DATABASE_URL = os.environ.get('SESSION_DATABASE_URL') or 'sqlite:///pursuit_sessions.db'
    # Identifies one browsing context ("tab"); stored seats are scoped to it
    CONTEXT_ID = os.environ.get('CONTEXT_ID') or 'default'
