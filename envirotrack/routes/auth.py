from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from envirotrack.models.token_blacklist import TokenBlacklist
from envirotrack.models.user import User, default_notifications
from envirotrack.services import mailer
from envirotrack.utils.auth_middleware import bearer_token, permission_required, validate_json_data
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.auth')

auth_bp = Blueprint('auth', __name__)


def auth_response(user, status=200):
    return jsonify({
        'token': user.generate_auth_token(),
        'user': user.to_dict()
    }), status


@auth_bp.route('/register', methods=['POST'])
@validate_json_data(['email', 'password', 'first_name', 'last_name'])
def register():
    """Register a new employee account"""
    try:
        data = request.get_json()

        if User.find_by_email(data['email']):
            return jsonify({'error': 'User with this email already exists'}), 400

        user = User(
            email=data['email'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            phone=data.get('phone')
        )
        user.set_password(data['password'])
        user.save()
        logger.info('Registered user %s', user.id)

        return auth_response(user, 201)

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Registration failed')
        return jsonify({'error': 'Registration failed'}), 500


@auth_bp.route('/login', methods=['POST'])
@validate_json_data(['email', 'password'])
def login():
    """Exchange email and password for a bearer token"""
    try:
        data = request.get_json()
        user = User.find_by_email(data['email'])

        if not user or not user.check_password(data['password']):
            return jsonify({'error': 'Invalid email or password'}), 401

        if not user.is_active:
            return jsonify({'error': 'Account is inactive'}), 403

        if not user.password_set:
            return jsonify({'error': 'Please check your email and set up your password before logging in'}), 403

        return auth_response(user)

    except Exception:
        logger.exception('Login failed')
        return jsonify({'error': 'Login failed'}), 500


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Invalidate the presented token"""
    try:
        TokenBlacklist.blacklist_token(bearer_token(), current_user.id, 'manual_logout')
        return jsonify({'message': 'Logout successful'}), 200

    except Exception:
        logger.exception('Logout failed for user %s', current_user.id)
        return jsonify({'error': 'Logout failed'}), 500


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict()), 200


@auth_bp.route('/update-profile', methods=['PATCH'])
@login_required
def update_profile():
    """Update phone, notification preferences and (optionally) password"""
    try:
        data = request.get_json(silent=True) or {}
        user = User.find_by_id(current_user.id)

        if 'phone' in data:
            user.phone = data['phone']

        if data.get('password'):
            user.set_password(data['password'])

        if isinstance(data.get('notifications'), dict):
            user.notifications = {
                key: bool(data['notifications'].get(key, user.notifications.get(key, False)))
                for key in default_notifications()
            }

        user.save()
        return jsonify(user.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Failed to update profile for user %s', current_user.id)
        return jsonify({'error': 'Failed to update profile'}), 500


@auth_bp.route('/change-password', methods=['POST'])
@login_required
@validate_json_data(['current_password', 'new_password'])
def change_password():
    """Change password and invalidate the token used for the request"""
    try:
        data = request.get_json()
        user = User.find_by_id(current_user.id)

        if not user.check_password(data['current_password']):
            return jsonify({'error': 'Current password is incorrect'}), 400

        user.set_password(data['new_password'])
        user.save()
        TokenBlacklist.blacklist_token(bearer_token(), user.id, 'password_reset')
        logger.info('Password changed for user %s', user.id)

        return jsonify({
            'message': 'Password changed successfully',
            'token': user.generate_auth_token()
        }), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Failed to change password for user %s', current_user.id)
        return jsonify({'error': 'Failed to change password'}), 500


RESET_REQUESTED_MESSAGE = 'If this email is registered, you will receive a password reset link.'
INVALID_TOKEN_MESSAGE = 'Invalid or expired token.'


def _email_from(data):
    email = data.get('email')
    return email.strip().lower() if isinstance(email, str) and email.strip() else None


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    """Email a reset link; the response never reveals whether the account exists"""
    try:
        data = request.get_json(silent=True) or {}
        email = _email_from(data)
        if not email:
            return jsonify({'error': 'Email is required'}), 400

        user = User.find_by_email(email)
        if user and user.is_active:
            token = user.issue_password_token('reset')
            user.save()
            mailer.send_password_link(user, token, 'reset')
            logger.info('Password reset requested for user %s', user.id)

        return jsonify({'message': RESET_REQUESTED_MESSAGE}), 200

    except Exception:
        logger.exception('Forgot password request failed')
        return jsonify({'error': 'Error processing password reset request'}), 500


@auth_bp.route('/validate-reset-token', methods=['POST'])
def validate_reset_token():
    data = request.get_json(silent=True) or {}
    email = _email_from(data)
    if not email or not data.get('token'):
        return jsonify({'error': 'Email and token are required'}), 400

    user = User.find_by_email(email)
    if not user or not user.check_password_token(data['token'], 'reset'):
        return jsonify({'error': INVALID_TOKEN_MESSAGE, 'expired': True}), 400
    return jsonify({'message': 'Token is valid.', 'valid': True}), 200


@auth_bp.route('/reset-password', methods=['POST'])
@validate_json_data(['email', 'token', 'password'])
def reset_password():
    """Set a new password from an emailed token and end every existing session"""
    try:
        data = request.get_json()
        user = User.find_by_email(_email_from(data))
        if not user or not user.check_password_token(data['token'], 'reset'):
            return jsonify({'error': INVALID_TOKEN_MESSAGE, 'expired': True}), 400

        user.set_password(data['password'])
        user.clear_password_token('reset')
        user.password_set = True
        user.save()
        TokenBlacklist.invalidate_user_tokens(user.id, 'password_reset')
        logger.info('Password reset completed for user %s', user.id)

        return jsonify({'message': 'Password has been reset successfully. Please log in with your new password.'}), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Password reset failed')
        return jsonify({'error': 'Error resetting password'}), 500


@auth_bp.route('/setup-password', methods=['POST'])
@validate_json_data(['email', 'token', 'password'])
def setup_password():
    """First password for an account created by an administrator"""
    try:
        data = request.get_json()
        user = User.find_by_email(_email_from(data))
        if not user or not user.check_password_token(data['token'], 'setup'):
            return jsonify({'error': 'Invalid or expired setup token.'}), 400
        if user.password_set:
            return jsonify({'error': 'Password has already been set for this account.'}), 400

        user.set_password(data['password'])
        user.clear_password_token('setup')
        user.password_set = True
        user.save()
        logger.info('Initial password set for user %s', user.id)

        return jsonify({'message': 'Password has been set successfully. You can now log in.'}), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Password setup failed')
        return jsonify({'error': 'Error setting up password'}), 500


@auth_bp.route('/admin-reset-password', methods=['POST'])
@permission_required('users.edit')
def admin_reset_password():
    """Send another user a reset link and sign them out everywhere"""
    try:
        data = request.get_json(silent=True) or {}
        email = _email_from(data)
        if not email:
            return jsonify({'error': 'Email is required'}), 400
        if email == current_user.email:
            return jsonify({'error': 'Please use the regular password reset for your own account.'}), 400

        user = User.find_by_email(email)
        if not user:
            return jsonify({'message': 'If this email is registered, a password reset link will be sent.'}), 200
        if not user.is_active:
            return jsonify({'error': 'Cannot send password reset to inactive users.'}), 400

        token = user.issue_password_token('reset')
        user.save()
        TokenBlacklist.invalidate_user_tokens(user.id, 'admin_reset')
        sent, _ = mailer.send_password_link(user, token, 'reset')
        logger.info('Password reset for user %s triggered by %s', user.id, current_user.id)

        return jsonify({
            'message': f'Password reset link sent to {user.email}.',
            'email_sent': sent
        }), 200

    except Exception:
        logger.exception('Admin password reset failed')
        return jsonify({'error': 'Error processing password reset request'}), 500
