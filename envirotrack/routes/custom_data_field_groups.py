from flask import Blueprint, request, jsonify
from flask_login import current_user

from envirotrack.models.custom_data_field import CustomDataFieldGroup, GROUP_TYPES
from envirotrack.utils.auth_middleware import permission_required
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.custom_data_field_groups')

custom_data_field_groups_bp = Blueprint('custom_data_field_groups', __name__)


@custom_data_field_groups_bp.route('/', methods=['GET'])
@permission_required('admin.view')
def list_groups():
    try:
        return jsonify([group.to_dict() for group in CustomDataFieldGroup.find_active()]), 200
    except Exception:
        logger.exception('Error fetching custom data field groups')
        return jsonify({'error': 'Failed to fetch custom data field groups'}), 500


@custom_data_field_groups_bp.route('/type/<group_type>', methods=['GET'])
@permission_required('admin.view')
def get_group_by_type(group_type):
    group = CustomDataFieldGroup.find_active_by_type(group_type)
    if not group:
        return jsonify({'error': f'No group found for type {group_type}'}), 404
    return jsonify(group.to_dict()), 200


@custom_data_field_groups_bp.route('/project-statuses', methods=['GET'])
@permission_required('projects.view')
def project_statuses():
    """Project statuses split into active and inactive lists"""
    try:
        return jsonify(CustomDataFieldGroup.get_project_statuses()), 200
    except Exception:
        logger.exception('Error fetching project statuses')
        return jsonify({'error': 'Failed to fetch project statuses'}), 500


@custom_data_field_groups_bp.route('/fields/<group_type>', methods=['GET'])
@permission_required('admin.view')
def fields_by_type(group_type):
    try:
        return jsonify(CustomDataFieldGroup.get_fields_by_type(group_type)), 200
    except Exception:
        logger.exception('Error fetching %s fields', group_type)
        return jsonify({'error': 'Failed to fetch fields'}), 500


@custom_data_field_groups_bp.route('/', methods=['POST'])
@permission_required('admin.edit')
def create_group():
    try:
        data = request.get_json(silent=True) or {}
        name, group_type, fields = data.get('name'), data.get('type'), data.get('fields')
        if not name or not group_type or not isinstance(fields, list):
            return jsonify({'error': 'Name, type, and fields array are required'}), 400
        if group_type not in GROUP_TYPES:
            return jsonify({'error': 'Invalid type parameter'}), 400
        if CustomDataFieldGroup.find_active_by_type(group_type):
            return jsonify({'error': f'A group already exists for type {group_type}'}), 409

        group = CustomDataFieldGroup(
            name=name,
            type=group_type,
            description=data.get('description'),
            created_by=current_user.id,
            fields=CustomDataFieldGroup.build_fields(fields, current_user.id)
        )
        group.save()
        logger.info('Custom data field group %s created for %s', group.id, group_type)
        return jsonify(group.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error creating custom data field group')
        return jsonify({'error': 'Failed to create custom data field group'}), 500


@custom_data_field_groups_bp.route('/<group_id>', methods=['PUT'])
@permission_required('admin.edit')
def update_group(group_id):
    try:
        group = CustomDataFieldGroup.find_by_id(group_id)
        if not group:
            return jsonify({'error': 'Group not found'}), 404

        data = request.get_json(silent=True) or {}
        if data.get('name'):
            group.name = data['name'].strip()
        if 'description' in data:
            group.description = data['description'].strip() if data['description'] else None
        if isinstance(data.get('fields'), list):
            group.fields = CustomDataFieldGroup.build_fields(data['fields'], current_user.id, group.fields)
        group.save()
        return jsonify(group.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error updating custom data field group %s', group_id)
        return jsonify({'error': 'Failed to update custom data field group'}), 500


@custom_data_field_groups_bp.route('/<group_id>', methods=['DELETE'])
@permission_required('admin.edit')
def delete_group(group_id):
    try:
        group = CustomDataFieldGroup.find_by_id(group_id)
        if not group:
            return jsonify({'error': 'Group not found'}), 404
        group.is_active = False
        group.save()
        return jsonify({'message': 'Group deleted successfully'}), 200

    except Exception:
        logger.exception('Error deleting custom data field group %s', group_id)
        return jsonify({'error': 'Failed to delete custom data field group'}), 500
