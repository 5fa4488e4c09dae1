from flask import Blueprint, current_app, g, jsonify, request, session

from .. import accounts
from ..errors import NotFound, ValidationError
from ..schemas import LoginRequest, ProfileUpdate, RegisterRequest
from ..sessions import create_session, issue_token, revoke_session
from ..utils.decorators import login_required

auth_bp = Blueprint('auth', __name__, url_prefix='/api')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected JSON payload.')
    return data


@auth_bp.post('/auth/register')
def register():
    payload = RegisterRequest.model_validate(_json_body())
    user = accounts.create_user(payload.model_dump())
    return jsonify({
        "message": "User registered successfully",
        "user": accounts.user_payload(user),
        "token": issue_token(user),
    }), 201


@auth_bp.post('/auth/login')
def login():
    payload = LoginRequest.model_validate(_json_body())
    user = accounts.authenticate(payload.login, payload.password)
    if not user:
        current_app.logger.info('Failed login for %s', payload.login)
        return jsonify({"message": "Invalid email or password"}), 401

    previous = session.get('session_token')
    if previous:
        revoke_session(previous)
    record = create_session(user)
    session.clear()
    session['session_token'] = record.session_token
    session.permanent = True

    return jsonify({
        "message": "Login successful",
        "user": accounts.user_payload(user),
        "token": issue_token(user),
    })


@auth_bp.post('/auth/logout')
def logout():
    revoke_session(session.get('session_token'))
    session.clear()
    return jsonify({"message": "Logged out."})


@auth_bp.get('/auth/me')
@login_required
def me():
    user = accounts.get_user_by_id(g.identity.id)
    if not user:
        raise NotFound('User not found')
    return jsonify(accounts.user_payload(user))


@auth_bp.put('/user/profile')
@login_required
def update_profile():
    payload = ProfileUpdate.model_validate(_json_body())
    user = accounts.update_profile(g.identity.id, payload.model_dump(exclude_unset=True))
    return jsonify(accounts.user_payload(user))
