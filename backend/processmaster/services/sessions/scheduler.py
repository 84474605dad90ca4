import time
from contextlib import nullcontext
from typing import Set, Tuple

from flask import has_app_context

from processmaster import db, socketio
from processmaster.errors import Conflict
from processmaster.models import GameSession
from .state_machine import AUTO_ADVANCE, EXPIRE_ROUND, round_complete, run_command


_scheduled_keys: Set[Tuple[str, str, int]] = set()


def _app_scope(app):
    # Synchronous (test) runs already sit inside the request's app context
    return nullcontext() if has_app_context() else app.app_context()


def _dispatch(app, worker, *args) -> None:
    if app.config.get('TESTING'):
        worker(*args)
    else:
        socketio.start_background_task(worker, *args)


def _sleep(app, delay: float, label: str) -> None:
    try:
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
    except (TypeError, ValueError):
        hb = 0
    if hb <= 0:
        if delay > 0:
            time.sleep(delay)
        return
    slept = 0.0
    while slept < delay:
        step = min(hb, delay - slept)
        time.sleep(step)
        slept += step
        app.logger.info(f"[timer-heartbeat] {label} remaining={max(0, delay - slept):.0f}s")


def schedule_round_timer(app, session: GameSession) -> None:
    """Close the current round when its deadline passes.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (session, phase, round)
    - Clients may already have closed the round (stop, auto-advance, lazy
      expiry); the worker re-reads the session and aborts on any mismatch
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    if session.status != 'playing' or session.end_time is None:
        return

    round_idx = int(session.current_level_index or 0)
    key = (session.id, 'playing', round_idx)
    if key in _scheduled_keys:
        app.logger.info(f"[timer-skip] session={session.id} round={round_idx} already scheduled")
        return
    _scheduled_keys.add(key)

    delay = max(0.0, session.end_time - time.time())
    app.logger.info(
        f"[timer-set] session={session.id} round={round_idx} duration={delay:.1f}s deadline={session.end_time}"
    )
    _dispatch(app, _round_timer_worker, app, session.id, round_idx, delay)


def _round_timer_worker(app, session_id: str, expected_round: int, delay: float) -> None:
    _sleep(app, delay, f"session={session_id} round={expected_round}")
    with _app_scope(app):
        _scheduled_keys.discard((session_id, 'playing', expected_round))
        s = db.session.get(GameSession, session_id)
        if not s:
            return
        app.logger.info(
            f"[timer-fire] session={session_id} expected_round={expected_round} "
            f"actual_status={s.status} actual_round={s.current_level_index}"
        )
        if s.status != 'playing' or s.current_level_index != expected_round:
            app.logger.info(f"[timer-abort] session={session_id} mismatch status/round")
            return
        try:
            run_command(app, s, EXPIRE_ROUND)
        except Conflict as exc:
            app.logger.info(f"[timer-abort] session={session_id} {exc.message}")


def schedule_auto_advance(app, session: GameSession) -> None:
    """Close the round after a settle delay once everyone has submitted.

    Always runs synchronously under TESTING so tests see the transition.
    """
    if session.status != 'playing':
        return
    round_idx = int(session.current_level_index or 0)
    key = (session.id, AUTO_ADVANCE, round_idx)
    if key in _scheduled_keys:
        return
    _scheduled_keys.add(key)

    delay = float(app.config.get('AUTO_ADVANCE_SETTLE_SEC', 1.5))
    app.logger.info(f"[auto-advance-set] session={session.id} round={round_idx} settle={delay}s")
    _dispatch(app, _auto_advance_worker, app, session.id, round_idx, delay)


def _auto_advance_worker(app, session_id: str, expected_round: int, delay: float) -> None:
    _sleep(app, delay, f"session={session_id} round={expected_round} auto-advance")
    with _app_scope(app):
        _scheduled_keys.discard((session_id, AUTO_ADVANCE, expected_round))
        s = db.session.get(GameSession, session_id)
        if not s or s.status != 'playing' or s.current_level_index != expected_round:
            app.logger.info(f"[auto-advance-abort] session={session_id} round already closed")
            return
        # Players may have joined during the settle delay
        if not round_complete({p.nickname for p in s.players}, s.submitted_nicknames()):
            app.logger.info(f"[auto-advance-abort] session={session_id} waiting on new players")
            return
        app.logger.info(f"[auto-advance] session={session_id} round={expected_round} all players submitted")
        try:
            run_command(app, s, AUTO_ADVANCE)
        except Conflict as exc:
            app.logger.info(f"[auto-advance-abort] session={session_id} {exc.message}")


def maybe_auto_advance(app, session: GameSession) -> bool:
    if session.status != 'playing':
        return False
    if not round_complete({p.nickname for p in session.players}, session.submitted_nicknames()):
        return False
    schedule_auto_advance(app, session)
    return True
