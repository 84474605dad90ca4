from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from .models import db, GameSession, Instructor
from flask_login import login_user, logout_user, login_required, current_user

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Process Master game server!'})

@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    instructor = Instructor.query.filter_by(username=data.get('username')).first()
    if instructor and instructor.check_password(data.get('password') or ''):
        login_user(instructor, remember=True)
        return jsonify({"success": True, "user": instructor.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401

@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not username or not password:
        return jsonify({"success": False, "message": "Username and password are required"}), 400
    if Instructor.query.filter_by(username=username).first():
        return jsonify({"success": False, "message": "Username already exists"}), 400

    new_instructor = Instructor(username=username)
    new_instructor.set_password(password)
    db.session.add(new_instructor)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"success": False, "message": "Username already exists"}), 400
    login_user(new_instructor)
    return jsonify({"success": True, "user": new_instructor.to_dict()}), 201

@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({"success": True, "user": current_user.to_dict()})

    return protected_check()

@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})

@main.route('/sessions/mine')
@login_required
def get_my_sessions():
    # Sessions hosted by the current instructor, newest first
    rows = current_user.sessions.order_by(GameSession.created_at.desc()).limit(20).all()
    return jsonify([s.to_dict(include_players=False) for s in rows])
