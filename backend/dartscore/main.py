from flask import Blueprint, request, jsonify
from .models import User
from flask_login import login_user, logout_user, login_required, current_user

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'service': 'dartscore', 'status': 'ok'})

@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user)
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401

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
