from flask_socketio import join_room, leave_room, emit
from flask import current_app
from processmaster import socketio

NAMESPACE = '/ws'


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


def emit_session_event(event: str, session_id: str, payload=None) -> None:
    """Tell every client watching a session to re-read it.

    Uses socketio.emit since this may be called from a background task.
    """
    data = {'session_id': session_id}
    data.update(payload or {})
    socketio.emit(event, data, to=session_room(session_id), namespace=NAMESPACE)


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Rooms are dropped by Socket.IO; sessions live on without their watchers
    current_app.logger.debug("[ws] client disconnected")


def handle_join_session(data):
    session_id = (data or {}).get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    room = session_room(str(session_id))
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_session(data):
    session_id = (data or {}).get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    room = session_room(str(session_id))
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for ns in namespaces:
        socketio.on_event('connect', handle_connect, namespace=ns)
        socketio.on_event('disconnect', handle_disconnect, namespace=ns)
        socketio.on_event('join_session', handle_join_session, namespace=ns)
        socketio.on_event('leave_session', handle_leave_session, namespace=ns)
        socketio.on_event('ping', handle_ping, namespace=ns)
