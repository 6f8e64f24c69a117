import secrets
from urllib.parse import quote

from flask import Blueprint, current_app, jsonify, redirect, request, session
from flask_login import login_required

from envirotrack.models.xero_token import XeroToken
from envirotrack.services.xero_exceptions import XeroAuthError, XeroError
from envirotrack.services.xero_service import XeroService
from envirotrack.utils.auth_middleware import permission_required
from envirotrack.utils.logging_config import get_logger

logger = get_logger('envirotrack.xero')

xero_bp = Blueprint('xero', __name__)

STATE_SESSION_KEY = 'xero_oauth_state'


def get_service():
    return XeroService.for_app(current_app)


def _frontend_redirect(query):
    base = current_app.config.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')
    return redirect(f'{base}/invoices?{query}')


def _xero_error(e):
    body = {'error': e.message}
    if isinstance(e, XeroAuthError):
        body['connected'] = False
    if e.details:
        body['details'] = e.details
    return jsonify(body), e.status_code


def _not_connected():
    if XeroToken.get() is None:
        return jsonify({'error': 'Please connect to Xero first', 'connected': False}), 401
    return None


@xero_bp.route('/status', methods=['GET'])
@login_required
def connection_status():
    try:
        return jsonify(get_service().status()), 200
    except XeroError as e:
        logger.warning('Xero status check failed: %s', e)
        return jsonify({'connected': False, 'error': e.message}), 200
    except Exception:
        logger.exception('Error checking Xero connection status')
        return jsonify({'error': 'Failed to check Xero status'}), 500


@xero_bp.route('/auth-url', methods=['GET'])
@permission_required('xero.manage')
def auth_url():
    """Consent URL for the OAuth flow; the state is kept in the session"""
    try:
        state = secrets.token_urlsafe(24)
        session[STATE_SESSION_KEY] = state
        return jsonify({'url': get_service().client.build_consent_url(state)}), 200
    except XeroError as e:
        return _xero_error(e)
    except Exception:
        logger.exception('Error building Xero consent URL')
        return jsonify({'error': 'Failed to generate Xero auth URL'}), 500


@xero_bp.route('/callback', methods=['GET'])
def callback():
    if request.args.get('error'):
        logger.warning('Xero returned an OAuth error: %s', request.args['error'])
        return _frontend_redirect(f"xero_error={quote(request.args['error'])}")

    expected_state = session.pop(STATE_SESSION_KEY, None)
    if not expected_state or request.args.get('state') != expected_state:
        logger.warning('Xero callback state mismatch')
        return _frontend_redirect('xero_error=invalid_state')

    code = request.args.get('code')
    if not code:
        return _frontend_redirect('xero_error=missing_code')

    try:
        token = get_service().client.connect(code)
        logger.info('Connected to Xero tenant %s', token.tenant_id)
        return _frontend_redirect('xero_connected=true')
    except XeroError as e:
        logger.error('Xero connection failed: %s', e)
        return _frontend_redirect(f'xero_error={quote(e.message)}')


@xero_bp.route('/contacts', methods=['GET'])
@permission_required('invoices.view')
def contacts():
    error = _not_connected()
    if error:
        return error
    try:
        return jsonify(get_service().get_contacts()), 200
    except XeroError as e:
        return _xero_error(e)
    except Exception:
        logger.exception('Error fetching Xero contacts')
        return jsonify({'error': 'Failed to fetch Xero contacts'}), 500


@xero_bp.route('/invoices', methods=['GET'])
@permission_required('invoices.view')
def xero_invoices():
    error = _not_connected()
    if error:
        return error
    try:
        return jsonify(get_service().list_invoices()), 200
    except XeroError as e:
        return _xero_error(e)
    except Exception:
        logger.exception('Error fetching Xero invoices')
        return jsonify({'error': 'Failed to fetch Xero invoices'}), 500


@xero_bp.route('/disconnect', methods=['POST'])
@permission_required('xero.manage')
def disconnect():
    try:
        get_service().disconnect()
        return jsonify({'message': 'Disconnected from Xero'}), 200
    except Exception:
        logger.exception('Error disconnecting from Xero')
        return jsonify({'error': 'Failed to disconnect from Xero'}), 500


@xero_bp.route('/sync-invoices', methods=['POST'])
@permission_required('xero.manage')
def sync_invoices():
    """Pull open invoices from Xero into the local collection"""
    error = _not_connected()
    if error:
        return error
    try:
        result = get_service().sync_invoices()
        return jsonify({
            'message': 'Invoices synced successfully',
            'total_retrieved': result['total_retrieved'],
            'valid': result['valid'],
            'processed': result['processed'],
            'errors': result['errors'],
            'refreshed': result['refreshed'],
        }), 200
    except XeroError as e:
        return _xero_error(e)
    except Exception:
        logger.exception('Error syncing invoices from Xero')
        return jsonify({'error': 'Failed to sync invoices'}), 500


@xero_bp.route('/invoices/<invoice_id>/sync', methods=['POST'])
@permission_required('invoices.edit')
def sync_invoice(invoice_id):
    error = _not_connected()
    if error:
        return error
    try:
        invoice = get_service().sync_invoice_status(invoice_id)
        return jsonify(invoice.to_dict()), 200
    except XeroError as e:
        return _xero_error(e)
    except Exception:
        logger.exception('Error syncing invoice %s', invoice_id)
        return jsonify({'error': 'Failed to sync invoice'}), 500


@xero_bp.route('/create-invoice', methods=['POST'])
@permission_required('invoices.edit')
def create_invoice():
    error = _not_connected()
    if error:
        return error
    try:
        data = request.get_json(silent=True) or {}
        if not data.get('amount') or not (data.get('xero_contact_id') or data.get('client')):
            return jsonify({'error': 'amount and a Xero contact are required'}), 400
        return jsonify(get_service().create_invoice(data)), 201
    except XeroError as e:
        return _xero_error(e)
    except Exception:
        logger.exception('Error creating Xero invoice')
        return jsonify({'error': 'Failed to create invoice in Xero'}), 500


@xero_bp.route('/cleanup-paid-invoices', methods=['POST'])
@permission_required('xero.manage')
def cleanup_paid_invoices():
    """Soft delete every visible invoice already marked paid"""
    try:
        result = XeroService.soft_delete_paid_invoices()
        logger.info('Paid invoice cleanup: %s', result)
        return jsonify({'message': 'Cleanup completed', **result}), 200
    except Exception:
        logger.exception('Error cleaning up paid invoices')
        return jsonify({'error': 'Failed to clean up paid invoices'}), 500
