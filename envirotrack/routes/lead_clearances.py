from flask import Blueprint, request, jsonify
from flask_login import current_user

from envirotrack.models.lead_clearance import LeadClearance, DEFAULT_JURISDICTION, STATUSES
from envirotrack.services import template_service
from envirotrack.utils.auth_middleware import permission_required, validate_json_data
from envirotrack.utils.image_compressor import compress_base64_image
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError, parse_datetime, to_object_id

logger = get_logger('envirotrack.lead_clearances')

lead_clearances_bp = Blueprint('lead_clearances', __name__)

SORTABLE_FIELDS = ('created_at', 'updated_at', 'clearance_date', 'status', 'sequence_number')
NOT_FOUND = 'Lead clearance not found'
ITEM_NOT_FOUND = 'Clearance item not found'
PHOTO_NOT_FOUND = 'Photo not found'


def _positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _list_filters(args):
    filters = {}
    if args.get('status'):
        filters['status'] = {'$in': [s.strip() for s in args['status'].split(',') if s.strip()]}
    for key in ('project_id', 'lead_removal_job_id'):
        if args.get(key):
            filters[key] = to_object_id(args[key])
    return filters


def _load_item(clearance_id, item_id):
    """(clearance, item, error_response) for an item route"""
    clearance = LeadClearance.find_by_id(clearance_id)
    if not clearance:
        return None, None, (jsonify({'error': NOT_FOUND}), 404)
    item = clearance.find_item(item_id)
    if not item:
        return clearance, None, (jsonify({'error': ITEM_NOT_FOUND}), 404)
    return clearance, item, None


@lead_clearances_bp.route('/', methods=['GET'])
@permission_required('asbestos.view')
def list_clearances():
    try:
        page = _positive_int(request.args.get('page'), 1)
        limit = _positive_int(request.args.get('limit'), 10)
        sort_by = request.args.get('sort_by', 'created_at')
        if sort_by not in SORTABLE_FIELDS:
            sort_by = 'created_at'
        sort_order = 'asc' if request.args.get('sort_order') == 'asc' else 'desc'

        clearances, total = LeadClearance.find(
            _list_filters(request.args), sort_by, sort_order, page, limit
        )
        return jsonify({
            'clearances': [clearance.to_dict() for clearance in clearances],
            'total_pages': (total + limit - 1) // limit,
            'current_page': page,
            'total_count': total
        }), 200

    except Exception:
        logger.exception('Error fetching lead clearances')
        return jsonify({'error': 'Failed to fetch lead clearances'}), 500


@lead_clearances_bp.route('/<clearance_id>', methods=['GET'])
@permission_required('asbestos.view')
def get_clearance(clearance_id):
    clearance = LeadClearance.find_by_id(clearance_id)
    if not clearance:
        return jsonify({'error': NOT_FOUND}), 404
    return jsonify(clearance.to_dict()), 200


@lead_clearances_bp.route('/', methods=['POST'])
@permission_required('asbestos.create')
@validate_json_data(['project_id', 'clearance_date', 'inspection_time'])
def create_clearance():
    """Create a clearance, numbering it within its project and day"""
    try:
        data = request.get_json()
        clearance = LeadClearance(
            project_id=data['project_id'],
            clearance_date=None,
            inspection_time=data['inspection_time'],
            created_by=current_user.id
        )
        clearance.apply(data)

        if not clearance.jurisdiction:
            clearance.jurisdiction = (
                LeadClearance.lookup_job_jurisdiction(clearance.lead_removal_job_id)
                or DEFAULT_JURISDICTION
            )
        clearance.sequence_number = LeadClearance.next_sequence_number(
            clearance.project_id, clearance.clearance_date
        )
        clearance.save()
        logger.info('Lead clearance %s created for project %s (sequence %s)',
                    clearance.id, clearance.project_id, clearance.sequence_number)
        return jsonify(clearance.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error creating lead clearance')
        return jsonify({'error': 'Failed to create lead clearance'}), 500


@lead_clearances_bp.route('/<clearance_id>', methods=['PUT'])
@permission_required('asbestos.edit')
def update_clearance(clearance_id):
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        clearance.apply(request.get_json(silent=True) or {})
        clearance.save(current_user.id)
        return jsonify(clearance.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error updating lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to update lead clearance'}), 500


@lead_clearances_bp.route('/<clearance_id>', methods=['PATCH'])
@permission_required('asbestos.edit')
def mark_report_viewed(clearance_id):
    """Record (or clear, with null) when the report was last viewed"""
    try:
        data = request.get_json(silent=True) or {}
        if 'report_viewed_at' not in data:
            return jsonify({'error': 'report_viewed_at is required'}), 400

        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        clearance.report_viewed_at = parse_datetime(data['report_viewed_at'], 'report_viewed_at')
        clearance.save(current_user.id)
        return jsonify(clearance.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error updating report_viewed_at for lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to update lead clearance'}), 500


@lead_clearances_bp.route('/<clearance_id>/status', methods=['PATCH'])
@permission_required('asbestos.edit')
@validate_json_data(['status'])
def update_status(clearance_id):
    try:
        status = request.get_json()['status']
        if status not in STATUSES:
            return jsonify({'error': f"Status must be one of: {', '.join(STATUSES)}"}), 400

        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        clearance.status = status
        clearance.save(current_user.id)
        logger.info('Lead clearance %s status set to %s', clearance.id, status)
        return jsonify(clearance.to_dict()), 200

    except Exception:
        logger.exception('Error updating status of lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to update lead clearance status'}), 500


@lead_clearances_bp.route('/<clearance_id>', methods=['DELETE'])
@permission_required('asbestos.delete')
def delete_clearance(clearance_id):
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404
        clearance.delete()
        logger.info('Lead clearance %s deleted by %s', clearance_id, current_user.id)
        return jsonify({'message': 'Lead clearance deleted successfully'}), 200

    except Exception:
        logger.exception('Error deleting lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to delete lead clearance'}), 500


@lead_clearances_bp.route('/<clearance_id>/authorise', methods=['POST'])
@permission_required('asbestos.edit')
def authorise_report(clearance_id):
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        clearance.authorise(current_user)
        clearance.save(current_user.id)
        logger.info('Lead clearance %s authorised by %s', clearance.id, clearance.report_approved_by)
        return jsonify(clearance.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error authorising lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to authorise report'}), 500


@lead_clearances_bp.route('/<clearance_id>/send-for-authorisation', methods=['POST'])
@permission_required('asbestos.edit')
def send_for_authorisation(clearance_id):
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        clearance.request_authorisation(current_user)
        clearance.save(current_user.id)
        return jsonify(clearance.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error sending lead clearance %s for authorisation', clearance_id)
        return jsonify({'error': 'Failed to send for authorisation'}), 500


@lead_clearances_bp.route('/<clearance_id>/sampling', methods=['GET'])
@permission_required('asbestos.view')
def get_sampling(clearance_id):
    clearance = LeadClearance.find_by_id(clearance_id)
    if not clearance:
        return jsonify({'error': NOT_FOUND}), 404
    return jsonify({
        'pre_works_samples': clearance.sampling.get('pre_works_samples', []),
        'validation_samples': clearance.sampling.get('validation_samples', [])
    }), 200


@lead_clearances_bp.route('/<clearance_id>/sampling', methods=['PATCH'])
@permission_required('asbestos.edit')
def update_sampling(clearance_id):
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        data = request.get_json(silent=True) or {}
        sampling = dict(clearance.sampling)
        for key in ('pre_works_samples', 'validation_samples'):
            if key in data:
                if not isinstance(data[key], list):
                    return jsonify({'error': f'{key} must be a list'}), 400
                sampling[key] = data[key]
        clearance.sampling = sampling
        clearance.save(current_user.id)
        return jsonify(clearance.sampling), 200

    except Exception:
        logger.exception('Error updating sampling for lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to update sampling'}), 500


# Items

@lead_clearances_bp.route('/<clearance_id>/items', methods=['GET'])
@permission_required('asbestos.view')
def list_items(clearance_id):
    clearance = LeadClearance.find_by_id(clearance_id)
    if not clearance:
        return jsonify({'error': NOT_FOUND}), 404
    return jsonify(clearance.items), 200


@lead_clearances_bp.route('/<clearance_id>/items', methods=['POST'])
@permission_required('asbestos.edit')
def add_item(clearance_id):
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404

        clearance.add_item(request.get_json(silent=True) or {})
        clearance.save(current_user.id)
        return jsonify(clearance.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error adding item to lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to add clearance item'}), 500


@lead_clearances_bp.route('/<clearance_id>/items/<item_id>', methods=['PUT'])
@permission_required('asbestos.edit')
def update_item(clearance_id, item_id):
    try:
        clearance, item, error = _load_item(clearance_id, item_id)
        if error:
            return error

        clearance.update_item(item, request.get_json(silent=True) or {})
        clearance.save(current_user.id)
        return jsonify(clearance.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception('Error updating item %s of lead clearance %s', item_id, clearance_id)
        return jsonify({'error': 'Failed to update clearance item'}), 500


@lead_clearances_bp.route('/<clearance_id>/items/<item_id>', methods=['DELETE'])
@permission_required('asbestos.edit')
def delete_item(clearance_id, item_id):
    try:
        clearance, item, error = _load_item(clearance_id, item_id)
        if error:
            return error

        clearance.remove_item(item)
        clearance.save(current_user.id)
        return jsonify(clearance.to_dict()), 200

    except Exception:
        logger.exception('Error deleting item %s of lead clearance %s', item_id, clearance_id)
        return jsonify({'error': 'Failed to delete clearance item'}), 500


# Photographs

@lead_clearances_bp.route('/<clearance_id>/items/<item_id>/photos', methods=['POST'])
@permission_required('asbestos.edit')
def add_photo(clearance_id, item_id):
    try:
        data = request.get_json(silent=True) or {}
        if not data.get('photo_data'):
            return jsonify({'error': 'Photo data is required'}), 400

        clearance, item, error = _load_item(clearance_id, item_id)
        if error:
            return error

        photo = LeadClearance.add_photo(
            item,
            compress_base64_image(data['photo_data']),
            include_in_report=data.get('include_in_report', True),
            description=data.get('description')
        )
        clearance.save(current_user.id)
        logger.debug('Photo %s added to item %s', photo['id'], item_id)
        return jsonify(item), 201

    except Exception:
        logger.exception('Error adding photo to item %s of lead clearance %s', item_id, clearance_id)
        return jsonify({'error': 'Failed to add photo'}), 500


@lead_clearances_bp.route('/<clearance_id>/items/<item_id>/photos/<photo_id>', methods=['DELETE'])
@permission_required('asbestos.edit')
def delete_photo(clearance_id, item_id, photo_id):
    try:
        clearance, item, error = _load_item(clearance_id, item_id)
        if error:
            return error
        photo = LeadClearance.find_photo(item, photo_id)
        if not photo:
            return jsonify({'error': PHOTO_NOT_FOUND}), 404

        LeadClearance.remove_photo(item, photo)
        clearance.save(current_user.id)
        return jsonify({'message': 'Photo deleted successfully', 'item': item}), 200

    except Exception:
        logger.exception('Error deleting photo %s', photo_id)
        return jsonify({'error': 'Failed to delete photo'}), 500


@lead_clearances_bp.route('/<clearance_id>/items/<item_id>/photos/<photo_id>/toggle', methods=['PATCH'])
@permission_required('asbestos.edit')
def toggle_photo(clearance_id, item_id, photo_id):
    """Flip whether the photo appears in the report"""
    try:
        clearance, item, error = _load_item(clearance_id, item_id)
        if error:
            return error
        photo = LeadClearance.find_photo(item, photo_id)
        if not photo:
            return jsonify({'error': PHOTO_NOT_FOUND}), 404

        photo['include_in_report'] = not photo.get('include_in_report', True)
        clearance.save(current_user.id)
        return jsonify({'message': 'Photo inclusion toggled successfully', 'item': item}), 200

    except Exception:
        logger.exception('Error toggling photo %s', photo_id)
        return jsonify({'error': 'Failed to toggle photo'}), 500


@lead_clearances_bp.route('/<clearance_id>/items/<item_id>/photos/<photo_id>/description', methods=['PATCH'])
@permission_required('asbestos.edit')
def update_photo_description(clearance_id, item_id, photo_id):
    try:
        clearance, item, error = _load_item(clearance_id, item_id)
        if error:
            return error
        photo = LeadClearance.find_photo(item, photo_id)
        if not photo:
            return jsonify({'error': PHOTO_NOT_FOUND}), 404

        data = request.get_json(silent=True) or {}
        if 'description' in data:
            photo['description'] = data['description']
        clearance.save(current_user.id)
        return jsonify({'message': 'Photo description updated', 'item': item}), 200

    except Exception:
        logger.exception('Error updating description of photo %s', photo_id)
        return jsonify({'error': 'Failed to update photo description'}), 500


@lead_clearances_bp.route('/<clearance_id>/render', methods=['POST'])
@permission_required('asbestos.view')
def render_report(clearance_id):
    """Render the lead clearance report template for this clearance"""
    try:
        clearance = LeadClearance.find_by_id(clearance_id)
        if not clearance:
            return jsonify({'error': NOT_FOUND}), 404
        template = template_service.get_template_by_type('leadClearance')
        if not template:
            return jsonify({'error': 'Template not found'}), 404

        data = template_service.lead_clearance_report_data(clearance.to_dict())
        return jsonify({
            'template_type': 'leadClearance',
            'report_headers': template.report_headers,
            'sections': template_service.render_template_sections(template, data)
        }), 200

    except Exception:
        logger.exception('Error rendering lead clearance %s', clearance_id)
        return jsonify({'error': 'Failed to render report'}), 500
