from flask_socketio import join_room, leave_room, emit
from flask import request
from wordmatrix import orchestrator, socketio
from wordmatrix.errors import GameError
from wordmatrix.services.games.broadcast import room_channel
from wordmatrix.services.games.orchestrator import SessionContext
from typing import Dict
import logging
import uuid

logger = logging.getLogger(__name__)

# Socket id -> explicit session context for the player behind it
_sid_to_ctx: Dict[str, SessionContext] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _fail(exc: GameError):
    emit('commandFailed', exc.to_dict())
    return {'ok': False, 'errorCode': exc.code}


def _current_ctx():
    return _sid_to_ctx.get(_get_sid())


def _not_in_room():
    emit('commandFailed', {'errorCode': 'NOT_IN_ROOM', 'message': 'Join a room first'})
    return {'ok': False, 'errorCode': 'NOT_IN_ROOM'}


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    # Points and recorded submissions stay; the player only drops from the member list.
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    try:
        orchestrator.leave(ctx)
    except GameError as exc:
        logger.error('[disconnect] room=%s session=%s leave failed: %s', ctx.room_code, ctx.session_id, exc.message)


def handle_join(data=None):
    payload = data or {}
    room_code = str(payload.get('roomCode') or '').strip().upper()
    if not room_code:
        emit('commandFailed', {'errorCode': 'INVALID_INPUT', 'message': 'roomCode is required'})
        return {'ok': False, 'errorCode': 'INVALID_INPUT'}
    session_id = str(payload.get('sessionId') or '').strip()[:64] or uuid.uuid4().hex

    previous = _sid_to_ctx.pop(_get_sid(), None)
    if previous:
        leave_room(room_channel(previous.room_code))
        try:
            orchestrator.leave(previous)
        except GameError:
            logger.warning('[join] could not leave previous room %s', previous.room_code)

    ctx = SessionContext(room_code=room_code, session_id=session_id)
    channel = room_channel(room_code)
    join_room(channel)
    try:
        player = orchestrator.join(ctx, payload.get('displayName'))
    except GameError as exc:
        leave_room(channel)
        return _fail(exc)

    _sid_to_ctx[_get_sid()] = ctx
    emit('joined', {'roomCode': room_code, 'sessionId': session_id, 'player': player})
    return {'ok': True, 'sessionId': session_id}


def handle_leave(data=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return {'ok': True}
    leave_room(room_channel(ctx.room_code))
    try:
        orchestrator.leave(ctx)
    except GameError as exc:
        return _fail(exc)
    emit('left', {'roomCode': ctx.room_code})
    return {'ok': True}


def handle_host_configure(data=None):
    ctx = _current_ctx()
    if not ctx:
        return _not_in_room()
    payload = data or {}
    try:
        room = orchestrator.configure(
            ctx.room_code,
            payload.get('hostCredential'),
            payload.get('rounds'),
            payload.get('durationSeconds'),
        )
    except GameError as exc:
        return _fail(exc)
    return {'ok': True, 'room': room}


def handle_host_start(data=None):
    ctx = _current_ctx()
    if not ctx:
        return _not_in_room()
    try:
        orchestrator.start(ctx.room_code, (data or {}).get('hostCredential'))
    except GameError as exc:
        return _fail(exc)
    return {'ok': True}


def handle_submit_word(data=None):
    ctx = _current_ctx()
    if not ctx:
        return _not_in_room()
    word = (data or {}).get('word')
    try:
        ack = orchestrator.submit(ctx, word)
    except GameError as exc:
        emit('submissionRejected', {'word': word, 'reasonCode': exc.code, 'message': exc.message})
        return {'ok': False, 'reasonCode': exc.code}
    emit('submissionAcknowledged', ack)
    return {'ok': True, **ack}


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = (
        ('connect', handle_connect),
        ('disconnect', handle_disconnect),
        ('join', handle_join),
        ('leave', handle_leave),
        ('hostConfigure', handle_host_configure),
        ('hostStart', handle_host_start),
        ('submitWord', handle_submit_word),
        ('ping', handle_ping),
    )
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers:
            socketio.on_event(event, handler, namespace=namespace)
