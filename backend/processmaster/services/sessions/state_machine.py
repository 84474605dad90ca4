"""Session phase machine.

Phases run ``setup -> waiting -> playing -> review -> leaderboard`` and then
either loop back to ``playing`` for the next playlist entry or finish on
``final_podium``. Every change is an explicit command; applying one bumps the
session ``version`` so hosts can detect that they acted on a stale view.
"""
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from processmaster import db
from processmaster.errors import InvalidTransition, StaleVersion, StoreUnavailable, ValidationError
from processmaster.models import GameSession

OPEN_LOBBY = 'open_lobby'
START_ROUND = 'start_round'
STOP_ROUND = 'stop_round'
EXPIRE_ROUND = 'expire_round'
AUTO_ADVANCE = 'auto_advance'
SHOW_LEADERBOARD = 'show_leaderboard'
NEXT_ROUND = 'next_round'
TERMINATE = 'terminate'

# Valid transitions: {phase: {command: next_phase}}. next_round is resolved
# against the playlist length in next_phase_after_leaderboard().
TRANSITIONS = {
    'setup': {OPEN_LOBBY: 'waiting'},
    'waiting': {START_ROUND: 'playing'},
    'playing': {
        STOP_ROUND: 'review',
        EXPIRE_ROUND: 'review',
        AUTO_ADVANCE: 'review',
    },
    'review': {SHOW_LEADERBOARD: 'leaderboard'},
    'leaderboard': {NEXT_ROUND: None},
    'final_podium': {TERMINATE: 'setup'},
}


@dataclass
class Transition:
    command: str
    from_phase: str
    to_phase: str
    round_index: int
    version: int

    def to_dict(self):
        return {
            'command': self.command,
            'from': self.from_phase,
            'to': self.to_phase,
            'round_index': self.round_index,
            'version': self.version,
        }


def can_apply(session: GameSession, command: str) -> bool:
    return command in TRANSITIONS.get(session.status, {})


def next_phase_after_leaderboard(current_index: int, playlist_length: int) -> str:
    if current_index + 1 < playlist_length:
        return 'playing'
    return 'final_podium'


def deadline_passed(session: GameSession, now: float) -> bool:
    return session.status == 'playing' and session.end_time is not None and now >= session.end_time


def round_complete(joined: Iterable[str], submitted: Iterable[str]) -> bool:
    """True once every joined player has a submission for the round."""
    joined = set(joined)
    return bool(joined) and joined.issubset(set(submitted))


def _arm_round(session: GameSession, now: float) -> None:
    entry = session.current_round
    if entry is None:
        raise ValidationError(f'Playlist has no round {session.current_level_index}')
    session.start_time = now
    session.end_time = now + int(entry['time_limit'])


def apply_command(session: GameSession, command: str, now: Optional[float] = None,
                  expected_version: Optional[int] = None) -> Transition:
    """Apply ``command`` to ``session`` in memory. The caller commits."""
    now = time.time() if now is None else now
    if expected_version is not None and int(expected_version) != session.version:
        raise StaleVersion(int(expected_version), session.version)

    from_phase = session.status
    if not can_apply(session, command):
        raise InvalidTransition(command, from_phase)

    to_phase = TRANSITIONS[from_phase][command]
    if command == OPEN_LOBBY:
        if not session.get_playlist():
            raise ValidationError('Add at least one level to the playlist')
        session.current_level_index = 0
        session.start_time = None
        session.end_time = None
    elif command == START_ROUND:
        _arm_round(session, now)
    elif command == NEXT_ROUND:
        to_phase = next_phase_after_leaderboard(session.current_level_index, len(session.get_playlist()))
        if to_phase == 'playing':
            session.current_level_index += 1
            _arm_round(session, now)
        else:
            session.end_time = None

    session.status = to_phase
    session.version = (session.version or 0) + 1
    return Transition(command, from_phase, to_phase, session.current_level_index, session.version)


def run_command(app, session: GameSession, command: str, now: Optional[float] = None,
                expected_version: Optional[int] = None) -> Transition:
    """Apply, persist and broadcast a transition; arm the round timer on entering play."""
    from processmaster.socketio_events import emit_session_event

    transition = apply_command(session, command, now=now, expected_version=expected_version)
    try:
        db.session.add(session)
        db.session.commit()
    except StaleDataError:
        # Another writer (host tab or timer) committed a newer version first
        db.session.rollback()
        app.logger.info(
            f"[phase-stale] session={session.id} command={command} expected_v={transition.version - 1}"
        )
        raise StaleVersion(transition.version - 1, session.version)
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception(f"[phase-fail] session={session.id} command={command}")
        raise StoreUnavailable('Could not save the session, try again')

    app.logger.info(
        f"[phase] session={session.id} {transition.from_phase} -> {transition.to_phase} "
        f"command={command} round={transition.round_index} v={transition.version}"
    )
    emit_session_event('state_update', session.id, {
        'status': session.status,
        'version': session.version,
        'current_level_index': session.current_level_index,
    })
    if transition.to_phase == 'playing':
        from .scheduler import schedule_round_timer
        schedule_round_timer(app, session)
    elif command == TERMINATE:
        emit_session_event('session_ended', session.id)
    return transition


def expire_if_due(app, session: GameSession, now: Optional[float] = None) -> Optional[Transition]:
    """Close the round if its deadline has passed and nobody closed it yet."""
    now = time.time() if now is None else now
    if not deadline_passed(session, now):
        return None
    return run_command(app, session, EXPIRE_ROUND, now=now)
