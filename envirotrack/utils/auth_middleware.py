from datetime import datetime, timezone
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request
from flask_login import current_user

from envirotrack.models.token_blacklist import TokenBlacklist
from envirotrack.models.user import User
from envirotrack.utils.logging_config import get_logger

logger = get_logger('envirotrack.auth')

NO_TOKEN_MESSAGE = 'No authentication token, access denied'


def bearer_token(req=None):
    """Token from an 'Authorization: Bearer <token>' header, or None"""
    header = (req or request).headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def _issued_at(payload):
    """Naive UTC issue time of a decoded token, or None when it carries no iat"""
    iat = payload.get('iat')
    if not isinstance(iat, (int, float)):
        return None
    return datetime.fromtimestamp(iat, timezone.utc).replace(tzinfo=None)


def _reject(message, new_token=None):
    g.auth_error = message
    g.new_token = new_token
    return None


def load_user_from_request(req):
    """flask-login request loader: resolve the bearer JWT into an active user.

    Failures leave a reason on ``g`` for the unauthorized handler. When the
    token has merely expired and its user still exists, a fresh token is
    issued so the client can retry.
    """
    token = bearer_token(req)
    if not token:
        return _reject(NO_TOKEN_MESSAGE)

    if TokenBlacklist.is_blacklisted(token):
        return _reject('Token has been invalidated, please log in again')

    secret = current_app.config['JWT_SECRET']
    try:
        payload = jwt.decode(token, secret, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        payload = jwt.decode(token, secret, algorithms=['HS256'], options={'verify_exp': False})
        user = User.find_by_id(payload.get('id'))
        if not user or not user.is_active:
            return _reject('Token expired and user not found')
        if TokenBlacklist.user_tokens_revoked(user.id, _issued_at(payload)):
            return _reject('Token has been invalidated, please log in again')
        logger.info('Issued replacement token for user %s after expiry', user.id)
        return _reject('Token expired, please retry with new token', user.generate_auth_token())
    except jwt.InvalidTokenError:
        return _reject('Token is not valid')

    user = User.find_by_id(payload.get('id'))
    if not user:
        return _reject('User not found')
    if not user.is_active:
        return _reject('Account is deactivated')
    if TokenBlacklist.user_tokens_revoked(user.id, _issued_at(payload)):
        return _reject('Token has been invalidated, please log in again')
    return user


def unauthorized_response():
    body = {'error': g.get('auth_error') or NO_TOKEN_MESSAGE}
    if g.get('new_token'):
        body['new_token'] = g.new_token
    return jsonify(body), 401


def validate_json_data(required_fields):
    """Reject requests whose JSON body is missing any of required_fields"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({'error': 'No JSON data provided'}), 400
            missing = [field for field in required_fields if data.get(field) in (None, '')]
            if missing:
                return jsonify({'error': f"Missing required fields: {', '.join(missing)}"}), 400
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def permission_required(*permissions):
    """Require an authenticated user whose role grants every listed permission.

    Usage:
        @permission_required('invoices.view')
        def list_invoices():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return current_app.login_manager.unauthorized()
            if not current_user.has_permission(*permissions):
                logger.warning('User %s (%s) denied %s', current_user.id, current_user.role,
                               ', '.join(permissions))
                return jsonify({
                    'error': 'Permission denied',
                    'required_permissions': list(permissions)
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
