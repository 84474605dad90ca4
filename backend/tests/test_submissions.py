import pytest

from conftest import BPR_CORRECT
from processmaster import db
from processmaster.errors import Conflict, NotFound
from processmaster.models import Score
from processmaster.services.sessions import scheduler, submissions
from processmaster.services.sessions.leaderboard import session_standings
from processmaster.services.sessions.lobby import join_session, open_session
from processmaster.services.sessions.state_machine import START_ROUND, STOP_ROUND, run_command
from processmaster.services.sessions.submissions import SUBMITTED, UNSUBMITTED, submission_state, submit_round

PLAYLIST = [{'level_id': 'bpr', 'time_limit': 10}, {'level_id': 'dmaic', 'time_limit': 30}]


@pytest.fixture()
def playing(flask_app, host):
    """Two players in round 0, which started at t=1001 and ends at t=1011."""
    s = open_session(flask_app, host, PLAYLIST, now=1000.0)
    join_session(flask_app, s, 'ann', avatar='🐶', now=1000.5)
    join_session(flask_app, s, 'bo', avatar='🐱', now=1000.6)
    run_command(flask_app, s, START_ROUND, now=1001.0)
    return s


def test_perfect_round_with_four_seconds_left(flask_app, playing):
    record, duplicate = submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1007.0)
    assert not duplicate
    assert record.correct_count == 4
    assert record.seconds_remaining == 4
    assert record.time_taken == 6
    assert record.score == 400 + 4 * 10
    assert record.avatar == '🐶'
    assert record.level_id == 'bpr'
    assert submission_state(playing, 'ann') == SUBMITTED
    assert submission_state(playing, 'bo') == UNSUBMITTED


def test_imperfect_round_gets_no_bonus(flask_app, playing):
    record, _ = submit_round(flask_app, playing, 'bo', ['bpr2', 'bpr1', 'bpr3', 'bpr4'], now=1002.0)
    assert record.correct_count == 2
    assert record.score == 200


def test_repeat_submission_is_a_no_op(flask_app, playing):
    first, _ = submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1002.0)
    again, duplicate = submit_round(flask_app, playing, 'ann', ['bpr4', 'bpr3', 'bpr2', 'bpr1'], now=1003.0)
    assert duplicate
    assert again.id == first.id
    assert again.score == first.score
    assert Score.query.filter_by(session_id=playing.id, nickname='ann').count() == 1


def test_lost_insert_race_returns_stored_record(flask_app, playing, monkeypatch):
    # A second tab with no local memory of the first submission
    first, _ = submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1002.0)

    real_existing = submissions._existing
    calls = {'n': 0}

    def blind_first_lookup(*args):
        calls['n'] += 1
        return None if calls['n'] == 1 else real_existing(*args)

    monkeypatch.setattr(submissions, '_existing', blind_first_lookup)
    record, duplicate = submit_round(flask_app, playing, 'ann', ['bpr2', 'bpr1', 'bpr3', 'bpr4'], now=1003.0)
    assert duplicate
    assert record.id == first.id

    standings = {s.nickname: s.total_score for s in session_standings(playing)}
    assert standings == {'ann': first.score, 'bo': 0}


def test_round_closes_once_every_player_submits(flask_app, playing):
    submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1002.0)
    assert playing.status == 'playing'
    submit_round(flask_app, playing, 'bo', BPR_CORRECT, now=1003.0)
    assert playing.status == 'review'


def test_late_player_joining_holds_the_round_open(flask_app, playing):
    join_session(flask_app, playing, 'cy', now=1001.5)
    submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1002.0)
    submit_round(flask_app, playing, 'bo', BPR_CORRECT, now=1003.0)
    assert playing.status == 'playing'


def test_full_answer_just_after_deadline_counts_without_bonus(flask_app, playing):
    record, duplicate = submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1011.2)
    assert playing.status == 'review'
    assert not duplicate
    assert record.forced
    assert record.seconds_remaining == 0
    assert record.score == 400

    # The other phone sends a half-finished ordering once the round has closed
    record, _ = submit_round(flask_app, playing, 'bo', ['bpr1', None, None, None], now=1012.5)
    assert record.forced
    assert record.score == 100


def test_forced_submission_after_host_stops_has_no_bonus(flask_app, playing):
    run_command(flask_app, playing, STOP_ROUND, now=1003.0)
    record, _ = submit_round(flask_app, playing, 'bo', BPR_CORRECT, forced=True, now=1003.5)
    assert record.score == 400
    assert record.seconds_remaining == 0


def test_submission_for_another_round_is_rejected(flask_app, playing):
    with pytest.raises(Conflict):
        submit_round(flask_app, playing, 'ann', BPR_CORRECT, round_index=1, now=1002.0)


def test_unknown_player_cannot_submit(flask_app, playing):
    with pytest.raises(NotFound):
        submit_round(flask_app, playing, 'ghost', BPR_CORRECT, now=1002.0)
    assert db.session.query(Score).count() == 0


def test_player_joining_during_settle_delay_keeps_round_open(flask_app, playing, monkeypatch):
    flask_app.config['AUTO_ADVANCE_SETTLE_SEC'] = 1.5
    delays = []

    def settle(app, delay, label):
        delays.append(delay)
        if len(delays) == 1:
            join_session(app, playing, 'cy', now=1003.5)

    monkeypatch.setattr(scheduler, '_sleep', settle)
    submit_round(flask_app, playing, 'ann', BPR_CORRECT, now=1002.0)
    submit_round(flask_app, playing, 'bo', BPR_CORRECT, now=1003.0)
    assert delays == [1.5]
    assert playing.status == 'playing'

    submit_round(flask_app, playing, 'cy', BPR_CORRECT, now=1004.0)
    assert delays == [1.5, 1.5]
    assert playing.status == 'review'
