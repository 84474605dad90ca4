"""Opening sessions, player registration and the student join link."""
import random
import time
import uuid
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from processmaster import db
from processmaster.errors import Conflict, StoreUnavailable, ValidationError
from processmaster.models import GameSession, Instructor, Player, generate_session_id
from .levels import DEFAULT_LEVEL_ID, build_playlist
from .state_machine import OPEN_LOBBY, apply_command

AVATARS = [
    '🐶', '🐱', '🐭', '🐹', '🐰', '🦊', '🐻', '🐼', '🐨', '🐯',
    '🦁', '🐮', '🐷', '🐸', '🐵', '🦄', '🐙', '👾', '🤖', '👻',
]
DEFAULT_TIME_PARAM = '60'
AVATAR_MAX_LENGTH = 16

# Players cannot join a session that has not opened or has already finished
JOINABLE_PHASES = ('waiting', 'playing', 'review', 'leaderboard')


def open_session(app, host: Instructor, playlist_items, now: Optional[float] = None) -> GameSession:
    """Snapshot the playlist and open a new session in the waiting phase."""
    now = time.time() if now is None else now
    entries = build_playlist(
        playlist_items,
        default_time_limit=int(app.config.get('DEFAULT_ROUND_TIME_LIMIT_SEC', 60)),
        max_time_limit=int(app.config.get('MAX_ROUND_TIME_LIMIT_SEC', 3600)),
    )
    session = GameSession(id=generate_session_id(now), host_id=host.id, created_at=now)
    session.set_playlist(entries)
    transition = apply_command(session, OPEN_LOBBY, now=now)
    try:
        db.session.add(session)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception(f"[open-fail] host={host.id}")
        raise StoreUnavailable('Could not open the lobby, try again')
    app.logger.info(
        f"[phase] session={session.id} {transition.from_phase} -> {transition.to_phase} "
        f"command={OPEN_LOBBY} rounds={len(entries)} host={host.id}"
    )
    return session


def clean_nickname(nickname, max_length: int = 12) -> str:
    if not isinstance(nickname, str) or not nickname.strip():
        raise ValidationError('Please enter a nickname')
    nickname = nickname.strip()
    if len(nickname) > max_length:
        raise ValidationError(f'Nickname must be at most {max_length} characters')
    return nickname


def join_session(app, session: GameSession, nickname, avatar=None, player_token: Optional[str] = None,
                 now: Optional[float] = None) -> Tuple[Player, bool]:
    """Register a player. Returns ``(player, created)``.

    A player returning with their token gets the existing registration back.
    """
    from processmaster.socketio_events import emit_session_event

    now = time.time() if now is None else now
    nickname = clean_nickname(nickname, int(app.config.get('NICKNAME_MAX_LENGTH', 12)))
    if session.status not in JOINABLE_PHASES:
        raise Conflict('This session is not accepting players')

    existing = Player.query.filter_by(session_id=session.id, nickname=nickname).first()
    if existing:
        if player_token and player_token == existing.player_token:
            return existing, False
        raise Conflict('Name already taken! Please choose another.')

    if not isinstance(avatar, str) or not avatar.strip() or len(avatar.strip()) > AVATAR_MAX_LENGTH:
        avatar = random.choice(AVATARS)
    player = Player(
        session_id=session.id,
        nickname=nickname,
        avatar=avatar.strip(),
        player_token=uuid.uuid4().hex,
        joined_at=now,
    )
    try:
        db.session.add(player)
        db.session.commit()
    except IntegrityError:
        # Another device registered the same nickname between check and write
        db.session.rollback()
        raise Conflict('Name already taken! Please choose another.')
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception(f"[join-fail] session={session.id} player={nickname}")
        raise StoreUnavailable('Could not join the session, try again')

    app.logger.info(f"[join] session={session.id} player={nickname} status={session.status}")
    emit_session_event('players_update', session.id, {'nickname': nickname, 'count': len(session.players)})
    return player, True


def build_join_url(base_url: str, session_id: str, level: Optional[str] = None, time_limit=None,
                   nickname: Optional[str] = None, avatar: Optional[str] = None) -> str:
    params = {}
    if nickname:
        params['nickname'] = nickname
    if avatar:
        params['avatar'] = avatar
    params['level'] = level or DEFAULT_LEVEL_ID
    params['session'] = session_id
    params['time'] = str(time_limit) if time_limit is not None else DEFAULT_TIME_PARAM
    separator = '&' if '?' in base_url else '?'
    return f'{base_url}{separator}{urlencode(params)}'


def parse_join_params(args) -> Dict[str, str]:
    """Read the join link's query parameters, applying the entry page defaults."""
    return {
        'nickname': (args.get('nickname') or '').strip(),
        'avatar': args.get('avatar') or '',
        'level': args.get('level') or DEFAULT_LEVEL_ID,
        'session': args.get('session') or '',
        'time': args.get('time') or DEFAULT_TIME_PARAM,
    }
