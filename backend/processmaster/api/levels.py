from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError

from processmaster import db
from processmaster.errors import ProcessMasterError, StoreUnavailable
from processmaster.services.sessions.levels import create_custom_level, get_level, list_levels


levels = Blueprint('levels', __name__)


@levels.errorhandler(ProcessMasterError)
def handle_domain_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


@levels.route('/', methods=['GET'])
def get_levels():
    return jsonify(list_levels())


@levels.route('/<string:level_id>', methods=['GET'])
def get_one_level(level_id):
    return jsonify(get_level(level_id))


@levels.route('/', methods=['POST'])
@login_required
def create_level():
    data = request.get_json(silent=True) or {}
    try:
        row = create_custom_level(data.get('title'), data.get('steps'), author_id=current_user.id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(f"[level-fail] author={current_user.id}")
        raise StoreUnavailable('Could not save the level, try again')
    current_app.logger.info(f"[level] created {row.level_id} title={row.title!r} author={current_user.id}")
    return jsonify(row.to_level()), 201
