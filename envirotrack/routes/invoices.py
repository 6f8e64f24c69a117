from flask import Blueprint, request, jsonify
from flask_login import current_user
from pymongo.errors import DuplicateKeyError

from envirotrack.models.invoice import Invoice
from envirotrack.utils.auth_middleware import permission_required, validate_json_data
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError, parse_datetime

logger = get_logger('envirotrack.invoices')

invoices_bp = Blueprint('invoices', __name__)

DUPLICATE_MESSAGE = 'An invoice with this invoice_id already exists'
UPDATABLE_FIELDS = ('invoice_id', 'amount', 'status', 'project', 'client', 'description',
                    'xero_contact_id', 'xero_client_name', 'xero_reference')


def _include_deleted():
    return request.args.get('include_deleted', 'false').lower() == 'true'


@invoices_bp.route('/', methods=['GET'])
@permission_required('invoices.view')
def list_invoices():
    try:
        invoices = Invoice.find(
            status=request.args.get('status'),
            search=request.args.get('search'),
            include_deleted=_include_deleted()
        )
        return jsonify([invoice.to_dict() for invoice in invoices]), 200
    except Exception:
        logger.exception('Error fetching invoices')
        return jsonify({'error': 'Failed to fetch invoices'}), 500


@invoices_bp.route('/<invoice_id>', methods=['GET'])
@permission_required('invoices.view')
def get_invoice(invoice_id):
    invoice = Invoice.find_by_id(invoice_id, include_deleted=_include_deleted())
    if not invoice:
        return jsonify({'error': 'Invoice not found'}), 404
    return jsonify(invoice.to_dict()), 200


@invoices_bp.route('/', methods=['POST'])
@permission_required('invoices.edit')
@validate_json_data(['invoice_id', 'amount', 'date', 'due_date'])
def create_invoice():
    try:
        data = request.get_json()
        invoice = Invoice.from_request(data)
        if invoice.status == 'paid' and not current_user.has_permission('invoices.approve'):
            return jsonify({'error': 'Permission denied', 'required_permissions': ['invoices.approve']}), 403
        if Invoice.find_by_invoice_id(invoice.invoice_id):
            return jsonify({'error': DUPLICATE_MESSAGE}), 400

        invoice.save()
        logger.info('Invoice %s created by %s', invoice.invoice_id, current_user.id)
        return jsonify(invoice.to_dict()), 201

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except DuplicateKeyError:
        return jsonify({'error': DUPLICATE_MESSAGE}), 400
    except Exception:
        logger.exception('Error creating invoice')
        return jsonify({'error': 'Failed to create invoice'}), 500


@invoices_bp.route('/<invoice_id>', methods=['PUT'])
@permission_required('invoices.edit')
def update_invoice(invoice_id):
    """Update an invoice; marking it paid needs invoices.approve"""
    try:
        invoice = Invoice.find_by_id(invoice_id)
        if not invoice:
            return jsonify({'error': 'Invoice not found'}), 404

        data = request.get_json(silent=True) or {}
        if data.get('status') == 'paid' and invoice.status != 'paid' \
                and not current_user.has_permission('invoices.approve'):
            return jsonify({'error': 'Permission denied', 'required_permissions': ['invoices.approve']}), 403

        if 'invoice_id' in data and not isinstance(data['invoice_id'], str):
            return jsonify({'error': 'invoice_id must be a string'}), 400
        if data.get('invoice_id') and data['invoice_id'].strip() != invoice.invoice_id:
            if Invoice.find_by_invoice_id(data['invoice_id'].strip()):
                return jsonify({'error': DUPLICATE_MESSAGE}), 400

        updated = Invoice.from_document({**invoice.to_document(), '_id': invoice.id,
                                         **{k: data[k] for k in UPDATABLE_FIELDS if k in data}})
        for key in ('date', 'due_date'):
            if key in data:
                setattr(updated, key, parse_datetime(data[key], key))
        updated.save()
        return jsonify(updated.to_dict()), 200

    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except DuplicateKeyError:
        return jsonify({'error': DUPLICATE_MESSAGE}), 400
    except Exception:
        logger.exception('Error updating invoice %s', invoice_id)
        return jsonify({'error': 'Failed to update invoice'}), 500


@invoices_bp.route('/<invoice_id>', methods=['DELETE'])
@permission_required('invoices.edit')
def delete_invoice(invoice_id):
    """Soft delete, keeping the record for Xero reconciliation"""
    try:
        invoice = Invoice.find_by_id(invoice_id)
        if not invoice:
            return jsonify({'error': 'Invoice not found'}), 404

        data = request.get_json(silent=True) or {}
        invoice.soft_delete(data.get('reason'))
        logger.info('Invoice %s soft deleted by %s', invoice.invoice_id, current_user.id)
        return jsonify({'message': 'Invoice deleted successfully'}), 200

    except Exception:
        logger.exception('Error deleting invoice %s', invoice_id)
        return jsonify({'error': 'Failed to delete invoice'}), 500


@invoices_bp.route('/<invoice_id>/restore', methods=['POST'])
@permission_required('invoices.edit')
def restore_invoice(invoice_id):
    try:
        invoice = Invoice.find_by_id(invoice_id, include_deleted=True)
        if not invoice:
            return jsonify({'error': 'Invoice not found'}), 404
        if not invoice.is_deleted:
            return jsonify({'error': 'Invoice is not deleted'}), 400

        invoice.restore()
        return jsonify(invoice.to_dict()), 200

    except Exception:
        logger.exception('Error restoring invoice %s', invoice_id)
        return jsonify({'error': 'Failed to restore invoice'}), 500
