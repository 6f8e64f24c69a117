#routes/report_templates.py
from flask import Blueprint, request, jsonify
from flask_login import current_user
from pymongo.errors import DuplicateKeyError

from envirotrack.models.report_template import ReportTemplate, TEMPLATE_TYPES
from envirotrack.services import template_service
from envirotrack.utils.auth_middleware import permission_required, validate_json_data
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError, to_object_id

logger = get_logger('envirotrack.report_templates')

report_templates_bp = Blueprint('report_templates', __name__)

UPDATABLE_FIELDS = ('company_details', 'report_headers', 'standard_sections', 'selected_legislation')


@report_templates_bp.route('/', methods=['GET'])
@permission_required('admin.view')
def list_templates():
    """All report templates, newest first"""
    try:
        return jsonify([template.to_dict() for template in ReportTemplate.find_all()]), 200
    except Exception:
        logger.exception('Error fetching report templates')
        return jsonify({'error': 'Failed to fetch report templates'}), 500


@report_templates_bp.route('/defaults', methods=['POST'])
@permission_required('admin.create')
def create_defaults():
    try:
        created = template_service.create_default_templates(current_user.id)
        return jsonify({'created': created}), 201 if created else 200
    except Exception:
        logger.exception('Error creating default report templates')
        return jsonify({'error': 'Failed to create default templates'}), 500


@report_templates_bp.route('/<template_type>', methods=['GET'])
@permission_required('admin.view')
def get_template(template_type):
    template = ReportTemplate.find_by_type(template_type)
    if not template:
        return jsonify({'error': 'Template not found'}), 404
    return jsonify(template.to_dict()), 200


@report_templates_bp.route('/', methods=['POST'])
@permission_required('admin.create')
@validate_json_data(['template_type', 'report_headers'])
def create_template():
    try:
        data = request.get_json()
        template_type = data['template_type']
        if template_type not in TEMPLATE_TYPES:
            return jsonify({'error': f'Invalid template type: {template_type}'}), 400
        if ReportTemplate.find_by_type(template_type):
            return jsonify({'error': 'Template already exists for this type'}), 400

        template = ReportTemplate(
            template_type=template_type,
            report_headers=data['report_headers'],
            created_by=current_user.id,
            company_details=data.get('company_details'),
            standard_sections=data.get('standard_sections'),
            selected_legislation=data.get('selected_legislation')
        )
        template.save()
        logger.info('Report template %s created by %s', template_type, current_user.id)
        return jsonify(template.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except DuplicateKeyError:
        return jsonify({'error': 'Template already exists for this type'}), 400
    except Exception:
        logger.exception('Error creating report template')
        return jsonify({'error': 'Failed to create template'}), 500


@report_templates_bp.route('/<template_type>', methods=['PUT'])
@permission_required('admin.edit')
def update_template(template_type):
    try:
        template = ReportTemplate.find_by_type(template_type)
        if not template:
            return jsonify({'error': 'Template not found'}), 404

        data = request.get_json(silent=True) or {}
        for field in UPDATABLE_FIELDS:
            if field in data:
                setattr(template, field, data[field])
        template.updated_by = to_object_id(current_user.id)
        template.save()
        return jsonify(template.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error updating report template %s', template_type)
        return jsonify({'error': 'Failed to update template'}), 500


@report_templates_bp.route('/<template_type>', methods=['DELETE'])
@permission_required('admin.delete')
def delete_template(template_type):
    try:
        template = ReportTemplate.find_by_type(template_type)
        if not template:
            return jsonify({'error': 'Template not found'}), 404
        template.delete()
        logger.info('Report template %s deleted by %s', template_type, current_user.id)
        return jsonify({'message': 'Template deleted successfully'}), 200

    except Exception:
        logger.exception('Error deleting report template %s', template_type)
        return jsonify({'error': 'Failed to delete template'}), 500


@report_templates_bp.route('/<template_type>/render', methods=['POST'])
@permission_required('asbestos.view')
def render_template(template_type):
    """Render the template's sections against posted clearance data"""
    try:
        if template_type not in TEMPLATE_TYPES:
            return jsonify({'error': f'Invalid template type: {template_type}'}), 400
        template = template_service.get_template_by_type(template_type)
        if not template:
            return jsonify({'error': 'Template not found'}), 404

        data = request.get_json(silent=True) or {}
        return jsonify({
            'template_type': template_type,
            'report_headers': template.report_headers,
            'sections': template_service.render_template_sections(template, data)
        }), 200

    except Exception:
        logger.exception('Error rendering report template %s', template_type)
        return jsonify({'error': 'Failed to render template'}), 500
