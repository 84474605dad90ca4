from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
import time

from processmaster import db
from processmaster.errors import NotAuthorized, NotFound, ProcessMasterError, ValidationError
from processmaster.models import GameSession, Player
from processmaster.services.sessions.leaderboard import rank_of, session_round_results, session_standings
from processmaster.services.sessions.lobby import (
    build_join_url,
    clean_nickname,
    join_session,
    open_session,
    parse_join_params,
)
from processmaster.services.sessions.state_machine import (
    NEXT_ROUND,
    SHOW_LEADERBOARD,
    START_ROUND,
    STOP_ROUND,
    TERMINATE,
    expire_if_due,
    run_command,
)
from processmaster.services.sessions.submissions import submission_state, submit_round


sessions = Blueprint('sessions', __name__)

_last_controller_action: dict[str, float] = {}


@sessions.errorhandler(ProcessMasterError)
def handle_domain_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _get_session(session_id: str) -> GameSession:
    session = db.session.get(GameSession, session_id)
    if not session:
        raise NotFound('Session not found')
    return session


def _require_host(session: GameSession) -> None:
    if current_user.id != session.host_id:
        raise NotAuthorized('Only the host may control this session')


def _debounced(action: str, session_id: str) -> bool:
    try:
        debounce_ms = int(current_app.config.get('CONTROLLER_DEBOUNCE_MS', 0))
    except (TypeError, ValueError):
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    key = f"{action}:{session_id}:{current_user.get_id()}"
    now = time.time() * 1000.0
    last = _last_controller_action.get(key, 0)
    if now - last < debounce_ms:
        return True
    _last_controller_action[key] = now
    return False


def _expected_version(data):
    raw = data.get('expected_version')
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError('expected_version must be an integer')


def _host_command(session_id: str, command: str):
    data = request.get_json(silent=True) or {}
    if _debounced(command, session_id):
        return jsonify({'message': 'debounced'}), 202

    session = _get_session(session_id)
    _require_host(session)
    app = current_app._get_current_object()
    now = time.time()
    transition = None
    if command == STOP_ROUND:
        # Past the deadline the round closes as expired rather than stopped
        transition = expire_if_due(app, session, now)
    if transition is None:
        transition = run_command(app, session, command, now=now, expected_version=_expected_version(data))
    payload = session.to_dict(now)
    payload['transition'] = transition.to_dict()
    return jsonify(payload)


@sessions.route('/', methods=['POST'])
@login_required
def create_session():
    data = request.get_json(silent=True) or {}
    app = current_app._get_current_object()
    session = open_session(app, current_user, data.get('playlist'))
    first = session.current_round
    payload = session.to_dict()
    payload['join_url'] = build_join_url(
        app.config.get('JOIN_BASE_URL', '/'),
        session.id,
        level=first['level_id'],
        time_limit=first['time_limit'],
    )
    return jsonify(payload), 201


@sessions.route('/join-check', methods=['GET'])
def check_join_link():
    """Resolve a join link and pre-check the nickname before joining."""
    params = parse_join_params(request.args)
    result = {'params': params, 'session_found': False, 'status': None, 'nickname_taken': False}
    if params['session']:
        session = db.session.get(GameSession, params['session'])
        if session:
            result['session_found'] = True
            result['status'] = session.status
            if params['nickname']:
                result['nickname_taken'] = Player.query.filter_by(
                    session_id=session.id, nickname=params['nickname']
                ).first() is not None
    return jsonify(result)


@sessions.route('/<string:session_id>/state', methods=['GET'])
def get_session_state(session_id):
    session = _get_session(session_id)
    now = time.time()
    expire_if_due(current_app._get_current_object(), session, now)
    payload = session.to_dict(now)
    nickname = request.args.get('nickname')
    if nickname:
        payload['my_submission'] = submission_state(session, nickname)
    return jsonify(payload)


@sessions.route('/<string:session_id>/start', methods=['POST'])
@login_required
def start_session(session_id):
    return _host_command(session_id, START_ROUND)


@sessions.route('/<string:session_id>/stop', methods=['POST'])
@login_required
def stop_round(session_id):
    return _host_command(session_id, STOP_ROUND)


@sessions.route('/<string:session_id>/leaderboard', methods=['POST'])
@login_required
def show_leaderboard(session_id):
    return _host_command(session_id, SHOW_LEADERBOARD)


@sessions.route('/<string:session_id>/next', methods=['POST'])
@login_required
def next_round(session_id):
    return _host_command(session_id, NEXT_ROUND)


@sessions.route('/<string:session_id>/terminate', methods=['POST'])
@login_required
def terminate_session(session_id):
    return _host_command(session_id, TERMINATE)


@sessions.route('/<string:session_id>/join', methods=['POST'])
def join(session_id):
    data = request.get_json(silent=True) or {}
    session = _get_session(session_id)
    player, created = join_session(
        current_app._get_current_object(),
        session,
        data.get('nickname'),
        avatar=data.get('avatar'),
        player_token=data.get('player_token'),
    )
    payload = player.to_dict()
    payload['player_token'] = player.player_token
    payload['status'] = session.status
    return jsonify(payload), 201 if created else 200


@sessions.route('/<string:session_id>/players', methods=['GET'])
def get_players(session_id):
    session = _get_session(session_id)
    return jsonify([p.to_dict() for p in session.players])


@sessions.route('/<string:session_id>/submit', methods=['POST'])
def submit(session_id):
    data = request.get_json(silent=True) or {}
    session = _get_session(session_id)
    nickname = clean_nickname(data.get('nickname'), int(current_app.config.get('NICKNAME_MAX_LENGTH', 12)))
    round_index = data.get('round_index')
    if round_index is not None:
        try:
            round_index = int(round_index)
        except (TypeError, ValueError):
            raise ValidationError('round_index must be an integer')
    record, duplicate = submit_round(
        current_app._get_current_object(),
        session,
        nickname,
        data.get('ordering'),
        round_index=round_index,
        forced=data.get('forced') is True,
    )
    return jsonify({
        'submission': record.to_dict(),
        'duplicate': duplicate,
        'status': session.status,
    }), 200 if duplicate else 201


@sessions.route('/<string:session_id>/leaderboard', methods=['GET'])
def get_leaderboard(session_id):
    session = _get_session(session_id)
    standings = session_standings(session)
    payload = {
        'session_id': session.id,
        'status': session.status,
        'current_level_index': session.current_level_index,
        'standings': [s.to_dict() for s in standings],
    }
    nickname = request.args.get('nickname')
    if nickname:
        payload['my_rank'] = rank_of(standings, nickname)
    return jsonify(payload)


@sessions.route('/<string:session_id>/rounds/<int:round_index>/results', methods=['GET'])
def get_round_results(session_id, round_index):
    session = _get_session(session_id)
    if not 0 <= round_index < len(session.get_playlist()):
        raise NotFound(f'Round {round_index} not found')
    return jsonify({
        'session_id': session.id,
        'round_index': round_index,
        'results': session_round_results(session, round_index),
    })
