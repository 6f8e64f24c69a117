import secrets

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from envirotrack.models.token_blacklist import TokenBlacklist
from envirotrack.models.user import User, default_notifications
from envirotrack.services import mailer
from envirotrack.utils.auth_middleware import permission_required, validate_json_data
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.users')

users_bp = Blueprint('users', __name__)

ADMIN_EDITABLE = ('first_name', 'last_name', 'phone', 'role', 'licences', 'signature', 'is_active')


def _apply_user_fields(user, data):
    for key in ADMIN_EDITABLE:
        if key not in data:
            continue
        if key == 'is_active':
            user.active = bool(data[key])
        elif key == 'licences':
            if not isinstance(data[key], list):
                raise ValidationError('licences must be a list')
            user.licences = data[key]
        else:
            setattr(user, key, data[key].strip() if isinstance(data[key], str) else data[key])


@users_bp.route('/', methods=['GET'])
@permission_required('users.view')
def list_users():
    try:
        include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'
        return jsonify([user.to_dict() for user in User.find_all(include_inactive)]), 200
    except Exception:
        logger.exception('Failed to list users')
        return jsonify({'error': 'Failed to fetch users'}), 500


@users_bp.route('/preferences/me', methods=['GET'])
@login_required
def get_preferences():
    return jsonify({'notifications': current_user.notifications}), 200


@users_bp.route('/preferences/me', methods=['PUT'])
@login_required
def update_preferences():
    try:
        data = request.get_json(silent=True) or {}
        notifications = data.get('notifications', data)
        if not isinstance(notifications, dict):
            return jsonify({'error': 'notifications must be an object'}), 400

        user = User.find_by_id(current_user.id)
        user.notifications = {
            key: bool(notifications.get(key, user.notifications.get(key, False)))
            for key in default_notifications()
        }
        user.save()
        return jsonify({'notifications': user.notifications}), 200

    except Exception:
        logger.exception('Failed to update preferences for user %s', current_user.id)
        return jsonify({'error': 'Failed to update preferences'}), 500


@users_bp.route('/<user_id>', methods=['GET'])
@login_required
def get_user(user_id):
    if user_id != current_user.id and not current_user.has_permission('users.view'):
        return jsonify({'error': 'Permission denied', 'required_permissions': ['users.view']}), 403

    user = User.find_by_id(user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(user.to_dict()), 200


@users_bp.route('/', methods=['POST'])
@permission_required('users.create')
@validate_json_data(['email', 'first_name', 'last_name'])
def create_user():
    """Create a user. Without a password the user is emailed a link to set one."""
    try:
        data = request.get_json()
        if User.find_by_email(data['email']):
            return jsonify({'error': 'User with this email already exists'}), 400

        user = User(email=data['email'], first_name=data['first_name'], last_name=data['last_name'])
        _apply_user_fields(user, data)
        setup_token = None
        if data.get('password'):
            user.set_password(data['password'])
        else:
            user.set_password(secrets.token_urlsafe(24))
            user.password_set = False
            setup_token = user.issue_password_token('setup')
        user.save()
        if setup_token:
            mailer.send_password_link(user, setup_token, 'setup')
        logger.info('User %s created by %s', user.id, current_user.id)
        return jsonify(user.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Failed to create user')
        return jsonify({'error': 'Failed to create user'}), 500


@users_bp.route('/<user_id>', methods=['PUT'])
@permission_required('users.edit')
def update_user(user_id):
    try:
        user = User.find_by_id(user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 404

        data = request.get_json(silent=True) or {}
        if 'email' in data and not isinstance(data['email'], str):
            return jsonify({'error': 'A valid email is required'}), 400
        if 'email' in data and data['email'].lower().strip() != user.email:
            if User.find_by_email(data['email']):
                return jsonify({'error': 'Email already taken'}), 400
            user.email = data['email'].lower().strip()
        _apply_user_fields(user, data)
        user.save()
        return jsonify(user.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Failed to update user %s', user_id)
        return jsonify({'error': 'Failed to update user'}), 500


@users_bp.route('/<user_id>', methods=['DELETE'])
@permission_required('users.delete')
def delete_user(user_id):
    """Deactivate a user; their records keep referencing them"""
    try:
        user = User.find_by_id(user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 404
        if user.id == current_user.id:
            return jsonify({'error': 'You cannot deactivate your own account'}), 400

        user.active = False
        user.save()
        logger.info('User %s deactivated by %s', user.id, current_user.id)
        return jsonify({'message': 'User deactivated'}), 200

    except Exception:
        logger.exception('Failed to deactivate user %s', user_id)
        return jsonify({'error': 'Failed to deactivate user'}), 500


@users_bp.route('/<user_id>/reset-password', methods=['POST'])
@permission_required('users.edit')
@validate_json_data(['password'])
def reset_password(user_id):
    """Set a new password for another user"""
    try:
        user = User.find_by_id(user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 404

        user.set_password(request.get_json()['password'])
        user.save()
        TokenBlacklist.invalidate_user_tokens(user.id, 'admin_reset')

        logger.info('Password for user %s reset by %s', user.id, current_user.id)
        return jsonify({'message': 'Password reset successfully'}), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Failed to reset password for user %s', user_id)
        return jsonify({'error': 'Failed to reset password'}), 500
