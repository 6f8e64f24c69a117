from flask import Blueprint, request, jsonify
from flask_login import current_user
from pymongo.errors import DuplicateKeyError

from envirotrack.models.custom_data_field import CustomDataField, FIELD_TYPES
from envirotrack.utils.auth_middleware import permission_required
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.custom_data_fields')

custom_data_fields_bp = Blueprint('custom_data_fields', __name__)

DUPLICATE_MESSAGE = 'This field already exists'


def _strip(value):
    return value.strip() if isinstance(value, str) else value


@custom_data_fields_bp.route('/', methods=['GET'])
@permission_required('admin.view')
def list_fields():
    """Every active field, grouped by type then text"""
    try:
        return jsonify([field.to_dict() for field in CustomDataField.find_active()]), 200
    except Exception:
        logger.exception('Error fetching custom data fields')
        return jsonify({'error': 'Failed to fetch custom data fields'}), 500


@custom_data_fields_bp.route('/<field_type>', methods=['GET'])
@permission_required('admin.view')
def list_fields_by_type(field_type):
    if field_type not in FIELD_TYPES:
        return jsonify({'error': 'Invalid type parameter'}), 400
    try:
        return jsonify([field.to_dict() for field in CustomDataField.find_active(field_type)]), 200
    except Exception:
        logger.exception('Error fetching %s custom data fields', field_type)
        return jsonify({'error': 'Failed to fetch custom data fields'}), 500


@custom_data_fields_bp.route('/', methods=['POST'])
@permission_required('admin.edit')
def create_field():
    try:
        data = request.get_json(silent=True) or {}
        field_type, text = data.get('type'), _strip(data.get('text'))
        if not field_type or not text:
            return jsonify({'error': 'Type and text are required'}), 400
        if field_type not in FIELD_TYPES:
            return jsonify({'error': 'Invalid type parameter'}), 400
        if CustomDataField.find_duplicate(field_type, text, data.get('jurisdiction')):
            return jsonify({'error': DUPLICATE_MESSAGE}), 409

        field = CustomDataField(
            type=field_type,
            text=text,
            created_by=current_user.id,
            legislation_title=data.get('legislation_title') or None,
            jurisdiction=data.get('jurisdiction') or None
        )
        if field_type == 'project_status':
            if 'is_active_status' in data:
                field.is_active_status = bool(data['is_active_status'])
            if data.get('status_color'):
                field.status_color = data['status_color']
        field.save()
        return jsonify(field.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except DuplicateKeyError:
        return jsonify({'error': DUPLICATE_MESSAGE}), 409
    except Exception:
        logger.exception('Error creating custom data field')
        return jsonify({'error': 'Failed to create custom data field'}), 500


@custom_data_fields_bp.route('/<field_id>', methods=['PUT'])
@permission_required('admin.edit')
def update_field(field_id):
    try:
        data = request.get_json(silent=True) or {}
        text = _strip(data.get('text'))
        if not text:
            return jsonify({'error': 'Text is required'}), 400

        field = CustomDataField.find_by_id(field_id)
        if not field:
            return jsonify({'error': 'Field not found'}), 404

        if field.type == 'legislation' and (not data.get('legislation_title') or not data.get('jurisdiction')):
            return jsonify({
                'error': 'Legislation Title and Jurisdiction are required for legislation items'
            }), 400

        jurisdiction = data.get('jurisdiction', field.jurisdiction)
        if CustomDataField.find_duplicate(field.type, text, jurisdiction, exclude_id=field.id):
            return jsonify({'error': DUPLICATE_MESSAGE}), 409

        field.text = text
        if 'legislation_title' in data:
            field.legislation_title = _strip(data['legislation_title'])
        if 'jurisdiction' in data:
            field.jurisdiction = _strip(data['jurisdiction'])
        if field.type == 'project_status':
            if 'is_active_status' in data:
                field.is_active_status = bool(data['is_active_status'])
            if data.get('status_color'):
                field.status_color = data['status_color']
        field.save()
        return jsonify(field.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error updating custom data field %s', field_id)
        return jsonify({'error': 'Failed to update custom data field'}), 500


@custom_data_fields_bp.route('/<field_id>', methods=['DELETE'])
@permission_required('admin.edit')
def delete_field(field_id):
    """Soft delete: the field stops appearing in lists"""
    try:
        field = CustomDataField.find_by_id(field_id)
        if not field:
            return jsonify({'error': 'Field not found'}), 404
        field.is_active = False
        field.save()
        return jsonify({'message': 'Field deleted successfully'}), 200

    except Exception:
        logger.exception('Error deleting custom data field %s', field_id)
        return jsonify({'error': 'Failed to delete custom data field'}), 500
