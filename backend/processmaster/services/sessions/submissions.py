"""Round submissions: score one player's ordering and store it at most once.

The unique constraint on (session, nickname, round) is the authoritative
guard. A repeat submission, whether from a retry, a second tab or a
concurrent request that lost the insert race, gets the stored record back
and never changes the score.
"""
import math
import time
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from processmaster import db
from processmaster.errors import Conflict, NotFound, StoreUnavailable
from processmaster.models import GameSession, Player, Score
from .scheduler import maybe_auto_advance
from .scoring import score_ordering, seconds_remaining_at, validate_ordering
from .state_machine import expire_if_due

# Per player, per round
UNSUBMITTED = 'unsubmitted'
SUBMITTED = 'submitted'

# Once the round has closed, whatever the player has ordered is taken as a
# forced submission (no bonus, gaps allowed) until the next round starts.
FORCED_PHASES = ('playing', 'review', 'leaderboard')


def submission_state(session: GameSession, nickname: str, round_index: Optional[int] = None) -> str:
    idx = session.current_level_index if round_index is None else round_index
    exists = Score.query.filter_by(session_id=session.id, nickname=nickname, round_index=idx).first()
    return SUBMITTED if exists else UNSUBMITTED


def _existing(session_id: str, nickname: str, round_index: int) -> Optional[Score]:
    return Score.query.filter_by(session_id=session_id, nickname=nickname, round_index=round_index).first()


def submit_round(app, session: GameSession, nickname: str, ordering, round_index: Optional[int] = None,
                 forced: bool = False, now: Optional[float] = None) -> Tuple[Score, bool]:
    """Record a round result. Returns ``(record, duplicate)``."""
    from processmaster.socketio_events import emit_session_event

    now = time.time() if now is None else now
    # A client reporting after the deadline closes the round if no timer has
    expire_if_due(app, session, now)

    player = Player.query.filter_by(session_id=session.id, nickname=nickname).first()
    if not player:
        raise NotFound(f'{nickname} has not joined this session')

    idx = session.current_level_index
    if round_index is not None and int(round_index) != idx:
        raise Conflict(f'Round {int(round_index) + 1} is no longer accepting submissions')

    existing = _existing(session.id, nickname, idx)
    if existing:
        app.logger.info(f"[submit-dup] session={session.id} player={nickname} round={idx} kept={existing.id}")
        return existing, True

    if session.status != 'playing':
        if session.status not in FORCED_PHASES:
            raise Conflict('This round is not accepting submissions')
        forced = True
    entry = session.current_round
    if not entry:
        raise Conflict('This round is not accepting submissions')

    correct_order = entry['level_data']['correct_order']
    slots = validate_ordering(correct_order, ordering, allow_gaps=forced)
    remaining = 0 if forced else seconds_remaining_at(session.end_time, now)
    result = score_ordering(
        correct_order,
        slots,
        remaining,
        points_per_step=int(app.config.get('POINTS_PER_CORRECT_STEP', 100)),
        bonus_per_second=int(app.config.get('TIME_BONUS_PER_SECOND', 10)),
    )
    time_limit = int(entry['time_limit'])
    elapsed = math.ceil(now - session.start_time) if session.start_time is not None else time_limit
    record = Score(
        session_id=session.id,
        nickname=nickname,
        avatar=player.avatar,
        level_id=entry['level_id'],
        round_index=idx,
        score=result.score,
        correct_count=result.correct_count,
        time_taken=min(max(0, elapsed), time_limit),
        seconds_remaining=result.seconds_remaining,
        forced=bool(forced),
        timestamp=now,
    )
    try:
        db.session.add(record)
        db.session.commit()
    except IntegrityError:
        # Lost the race against another write for the same player and round
        db.session.rollback()
        existing = _existing(session.id, nickname, idx)
        if existing:
            app.logger.info(f"[submit-dup] session={session.id} player={nickname} round={idx} kept={existing.id}")
            return existing, True
        raise Conflict('Submission conflicted with another write')
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception(f"[submit-fail] session={session.id} player={nickname} round={idx}")
        raise StoreUnavailable('Could not save your answer, try again')

    app.logger.info(
        f"[submit] session={session.id} player={nickname} round={idx} score={result.score} "
        f"correct={result.correct_count}/{result.total_steps} remaining={result.seconds_remaining}s forced={forced}"
    )
    emit_session_event('scores_update', session.id, {'round_index': idx, 'nickname': nickname})
    maybe_auto_advance(app, session)
    return record, False
