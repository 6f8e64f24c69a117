"""Tests for the Xero client, invoice sync and the /api/xero routes (HTTP mocked)."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from bson import ObjectId

from conftest import mock_response
from envirotrack.models.invoice import Invoice
from envirotrack.models.xero_token import XeroToken
from envirotrack.services.xero_client import XeroClient
from envirotrack.services.xero_exceptions import XeroAPIError, XeroAuthError, XeroError
from envirotrack.services.xero_service import XeroService


def xero_invoice(number='INV-0001', xero_id='x-1', status='AUTHORISED', **overrides):
    invoice = {
        'InvoiceID': xero_id,
        'InvoiceNumber': number,
        'Type': 'ACCREC',
        'Status': status,
        'Total': 550.0,
        'Date': '/Date(1740787200000+0000)/',
        'DueDate': '2025-03-31T00:00:00',
        'Reference': 'LDJ01234',
        'Contact': {'ContactID': 'c-1', 'Name': 'ACME Property'},
        'LineItems': [{'Description': 'Lead clearance'}],
    }
    invoice.update(overrides)
    return invoice


def existing_invoice(**fields):
    values = {
        'invoice_id': 'INV-0001',
        'amount': 100,
        'date': datetime(2025, 1, 1),
        'due_date': datetime(2025, 1, 31),
        'status': 'unpaid',
        'xero_invoice_id': 'x-1',
        'xero_status': 'AUTHORISED',
    }
    values.update(fields)
    return Invoice(**values).save()


@pytest.fixture
def service(app, xero_http, xero_connected):
    return XeroService.for_app(app)


class TestStatusAndDates:

    @pytest.mark.parametrize('xero_status,expected', [
        ('PAID', 'paid'),
        ('AUTHORISED', 'unpaid'),
        ('SUBMITTED', 'awaiting_approval'),
        ('DRAFT', 'draft'),
        ('VOIDED', 'unpaid'),
        (None, 'unpaid'),
        ('', 'unpaid'),
    ])
    def test_map_xero_status(self, xero_status, expected):
        assert XeroService.map_xero_status(xero_status) == expected

    @pytest.mark.parametrize('value,expected', [
        ('/Date(1740787200000+0000)/', datetime(2025, 3, 1)),
        ('2025-03-31T00:00:00', datetime(2025, 3, 31)),
        ('31/03/2025', datetime(2025, 3, 31)),
        (1740787200000, datetime(2025, 3, 1)),
        (datetime(2025, 3, 1, 5, 0), datetime(2025, 3, 1, 5, 0)),
    ])
    def test_parse_xero_date(self, value, expected):
        assert XeroService.parse_xero_date(value) == expected

    def test_parse_xero_date_fallback(self):
        fallback = datetime(2000, 1, 1)
        assert XeroService.parse_xero_date('garbage', fallback) == fallback
        assert XeroService.parse_xero_date(None, fallback) == fallback


class TestShouldSync:

    def test_accepts_open_receivable(self):
        assert XeroService.should_sync(xero_invoice())
        assert XeroService.should_sync(xero_invoice(status='SUBMITTED'))

    @pytest.mark.parametrize('overrides', [
        {'Type': 'ACCPAY'},
        {'InvoiceNumber': None},
        {'InvoiceNumber': 'Expense Claims'},
        {'Status': 'PAID'},
        {'Status': 'DRAFT'},
        {'Reference': 'Staff expense reimbursement'},
        {'Reference': 'Travel CLAIM'},
        {'Reference': 'Bill 22'},
    ])
    def test_rejects(self, overrides):
        assert not XeroService.should_sync(xero_invoice(**overrides))


class TestClient:

    def test_consent_url(self, app, xero_http):
        url = app.extensions['xero_client'].build_consent_url('state-123')
        query = parse_qs(urlparse(url).query)
        assert query['state'] == ['state-123']
        assert query['response_type'] == ['code']
        assert 'offline_access' in query['scope'][0].split()
        assert 'accounting.transactions' in query['scope'][0].split()

    def test_missing_credentials(self, app):
        with pytest.raises(XeroAuthError):
            XeroClient(None, None, None, http=MagicMock()).build_consent_url('s')

    def test_app_reuses_one_client(self, app):
        client = app.extensions['xero_client']
        assert isinstance(client, XeroClient)
        assert XeroService.for_app(app).client is client
        assert XeroService.for_app(app).client is XeroService.for_app(app).client

    def test_connect_stores_token_and_first_tenant(self, app, xero_http):
        xero_http.post.return_value = mock_response(200, {
            'access_token': 'new-access', 'refresh_token': 'new-refresh',
            'expires_in': 1800, 'token_type': 'Bearer',
        })
        xero_http.get.return_value = mock_response(200, [{'tenantId': 't-1'}, {'tenantId': 't-2'}])

        token = app.extensions['xero_client'].connect('auth-code')
        assert token.access_token == 'new-access'
        assert token.tenant_id == 't-1'
        assert token.expires_at > datetime.utcnow() + timedelta(minutes=25)

    def test_connect_without_tenants(self, app, xero_http):
        xero_http.post.return_value = mock_response(200, {
            'access_token': 'a', 'refresh_token': 'r', 'expires_in': 1800, 'token_type': 'Bearer',
        })
        xero_http.get.return_value = mock_response(200, [])
        with pytest.raises(XeroAuthError):
            app.extensions['xero_client'].connect('auth-code')

    def test_token_exchange_failure(self, app, xero_http):
        xero_http.post.return_value = mock_response(400, text='invalid_grant')
        with pytest.raises(XeroAuthError):
            app.extensions['xero_client'].exchange_code('bad-code')

    def test_refreshes_near_expiry(self, app, xero_http, db):
        XeroToken.store({
            'access_token': 'old', 'refresh_token': 'old-refresh', 'token_type': 'Bearer',
            'expires_at': datetime.utcnow() + timedelta(seconds=30),
        }, tenant_id='tenant-1')
        xero_http.post.return_value = mock_response(200, {
            'access_token': 'fresh', 'expires_in': 1800, 'token_type': 'Bearer',
        })

        token = app.extensions['xero_client'].current_token()
        assert token.access_token == 'fresh'
        assert token.refresh_token == 'old-refresh'
        assert token.tenant_id == 'tenant-1'
        assert db.xero_tokens.count_documents({}) == 1

    def test_request_headers(self, service, xero_http):
        xero_http.request.return_value = mock_response(200, {'Contacts': []})
        service.client.get('Contacts')
        kwargs = xero_http.request.call_args.kwargs
        assert kwargs['headers']['Authorization'] == 'Bearer access-token'
        assert kwargs['headers']['Xero-tenant-id'] == 'tenant-1'

    def test_upstream_unauthorised(self, service, xero_http):
        xero_http.request.return_value = mock_response(401)
        with pytest.raises(XeroAuthError):
            service.client.get('Contacts')

    def test_upstream_error(self, service, xero_http):
        xero_http.request.return_value = mock_response(500, text='boom')
        with pytest.raises(XeroAPIError) as excinfo:
            service.client.get('Contacts')
        assert excinfo.value.upstream_status == 500

    def test_network_error(self, service, xero_http):
        xero_http.request.side_effect = requests.ConnectionError('down')
        with pytest.raises(XeroAPIError):
            service.client.get('Contacts')

    def test_not_connected(self, app, xero_http):
        with pytest.raises(XeroAuthError):
            XeroService.for_app(app).client.get('Contacts')


class TestSync:

    def test_sync_creates_and_filters(self, service, xero_http):
        xero_http.request.return_value = mock_response(200, {'Invoices': [
            xero_invoice(),
            xero_invoice('INV-0002', 'x-2', status='SUBMITTED'),
            xero_invoice('INV-0003', 'x-3', Type='ACCPAY'),
            xero_invoice('INV-0004', 'x-4', Reference='expense claim'),
        ]})

        result = service.sync_invoices()
        assert result['total_retrieved'] == 4
        assert result['valid'] == 2
        assert result['processed'] == 2
        assert result['errors'] == 0

        first = Invoice.find_by_xero_id('x-1')
        assert first.invoice_id == 'INV-0001'
        assert first.status == 'unpaid'
        assert first.amount == 550.0
        assert first.date == datetime(2025, 3, 1)
        assert first.xero_client_name == 'ACME Property'
        assert first.description == 'Lead clearance'
        assert Invoice.find_by_xero_id('x-2').status == 'awaiting_approval'

    def test_sync_updates_existing(self, service, xero_http):
        existing_invoice(amount=1)
        xero_http.request.return_value = mock_response(200, {'Invoices': [xero_invoice(Total=777.0)]})
        service.sync_invoices()
        invoices = Invoice.find()
        assert len(invoices) == 1
        assert invoices[0].amount == 777.0
        assert invoices[0].last_synced is not None

    def test_renumbered_invoice_replaced(self, service, xero_http):
        old = existing_invoice(invoice_id='INV-OLD')
        xero_http.request.return_value = mock_response(200, {'Invoices': [xero_invoice('INV-NEW')]})
        service.sync_invoices()
        assert Invoice.find_by_id(old.id, include_deleted=True) is None
        assert Invoice.find_by_xero_id('x-1').invoice_id == 'INV-NEW'

    def test_paginates_until_short_page(self, service, xero_http):
        full_page = [xero_invoice(f'INV-{i:04d}', f'x-{i}') for i in range(100)]
        xero_http.request.side_effect = [
            mock_response(200, {'Invoices': full_page}),
            mock_response(200, {'Invoices': [xero_invoice('INV-9999', 'x-9999')]}),
        ]
        result = service.sync_invoices()
        assert result['total_retrieved'] == 101
        pages = [c.kwargs['params']['page'] for c in xero_http.request.call_args_list]
        assert pages == [1, 2]

    def test_stops_at_page_limit(self, service, xero_http):
        full_page = [xero_invoice(f'INV-{i:04d}', f'x-{i}') for i in range(100)]
        xero_http.request.return_value = mock_response(200, {'Invoices': full_page})
        invoices = service.fetch_invoices()
        assert xero_http.request.call_count == 50
        assert len(invoices) == 5000
        assert xero_http.request.call_args.kwargs['params']['page'] == 50

    def test_summary_logged_with_counts(self, service, xero_http, monkeypatch):
        logged = []
        monkeypatch.setattr('envirotrack.services.xero_service.log_with_context',
                            lambda logger, level, message, **context: logged.append(context))
        xero_http.request.return_value = mock_response(200, {'Invoices': [xero_invoice()]})
        service.sync_invoices()
        assert logged == [{'processed': 1, 'errors': 0, 'refreshed': 0, 'retrieved': 1}]

    def test_per_invoice_failure_is_counted(self, service, xero_http, monkeypatch):
        xero_http.request.return_value = mock_response(200, {'Invoices': [
            xero_invoice(), xero_invoice('INV-0002', 'x-2'),
        ]})
        original = service.process_and_save_invoice

        def flaky(invoice):
            if invoice['InvoiceID'] == 'x-1':
                raise XeroError('bad invoice')
            return original(invoice)

        monkeypatch.setattr(service, 'process_and_save_invoice', flaky)
        result = service.sync_invoices()
        assert result['processed'] == 1
        assert result['errors'] == 1

    def test_refreshes_missing_awaiting_approval(self, service, xero_http):
        existing_invoice(invoice_id='INV-0005', xero_invoice_id='x-5', status='awaiting_approval',
                         xero_status='SUBMITTED')
        xero_http.request.side_effect = [
            mock_response(200, {'Invoices': []}),
            mock_response(200, {'Invoices': [xero_invoice('INV-0005', 'x-5', status='PAID')]}),
        ]
        result = service.sync_invoices()
        assert result['refreshed'] == 1
        refreshed = Invoice.find_by_xero_id('x-5')
        assert refreshed.status == 'paid'
        assert refreshed.xero_status == 'PAID'

    def test_invalid_response(self, service, xero_http):
        xero_http.request.return_value = mock_response(200, {'Unexpected': True})
        with pytest.raises(XeroAPIError):
            service.sync_invoices()


class TestSingleInvoiceAndCleanup:

    def test_sync_invoice_status(self, service, xero_http):
        invoice = existing_invoice()
        xero_http.request.return_value = mock_response(200, {'Invoices': [
            xero_invoice(status='PAID', Reference='NEWREF', Contact={'Name': 'Renamed Client'}),
        ]})
        updated = service.sync_invoice_status(invoice.id)
        assert updated.status == 'paid'
        assert updated.xero_reference == 'NEWREF'
        assert updated.xero_client_name == 'Renamed Client'
        assert updated.last_synced is not None

    def test_sync_invoice_status_errors(self, service):
        with pytest.raises(XeroError) as excinfo:
            service.sync_invoice_status(str(ObjectId()))
        assert excinfo.value.status_code == 404

        unlinked = existing_invoice(xero_invoice_id=None)
        with pytest.raises(XeroError) as excinfo:
            service.sync_invoice_status(unlinked.id)
        assert excinfo.value.status_code == 400

    def test_cleanup_paid_invoices(self, app):
        paid = existing_invoice(invoice_id='INV-1', xero_invoice_id='x-1', status='paid')
        still_open = existing_invoice(invoice_id='INV-2', xero_invoice_id='x-2', status='paid')
        unpaid = existing_invoice(invoice_id='INV-3', xero_invoice_id='x-3', status='unpaid')
        local_only = existing_invoice(invoice_id='INV-4', xero_invoice_id=None, status='paid')

        dry = XeroService.cleanup_paid_invoices([{'InvoiceID': 'x-2'}], dry_run=True)
        assert dry == {'total_found': 1, 'soft_deleted': 0}

        result = XeroService.cleanup_paid_invoices([{'InvoiceID': 'x-2'}])
        assert result == {'total_found': 1, 'soft_deleted': 1}
        assert Invoice.find_by_id(paid.id) is None
        for kept in (still_open, unpaid, local_only):
            assert Invoice.find_by_id(kept.id) is not None

    def test_create_invoice_payload(self, service, xero_http):
        xero_http.request.return_value = mock_response(200, {'Invoices': [{'InvoiceID': 'x-new'}]})
        created = service.create_invoice({'xero_contact_id': 'c-1', 'amount': 300, 'description': 'Assessment'})
        assert created == {'InvoiceID': 'x-new'}
        payload = xero_http.request.call_args.kwargs['json']['Invoices'][0]
        assert payload['Type'] == 'ACCREC'
        assert payload['Status'] == 'DRAFT'
        assert payload['LineItems'][0]['AccountCode'] == '200'
        assert payload['Contact'] == {'ContactID': 'c-1'}


class TestRoutes:

    def test_requires_connection(self, client, admin_headers, xero_http):
        response = client.post('/api/xero/sync-invoices', headers=admin_headers)
        assert response.status_code == 401
        assert response.get_json() == {'error': 'Please connect to Xero first', 'connected': False}

    def test_status(self, client, employee_headers, xero_http, xero_connected):
        body = client.get('/api/xero/status', headers=employee_headers).get_json()
        assert body['connected'] is True
        assert body['tenant_id'] == 'tenant-1'

    def test_status_disconnected(self, client, employee_headers, xero_http):
        assert client.get('/api/xero/status', headers=employee_headers).get_json()['connected'] is False

    def test_employee_cannot_sync(self, client, employee_headers, xero_http, xero_connected):
        assert client.post('/api/xero/sync-invoices', headers=employee_headers).status_code == 403

    def test_sync_route(self, client, admin_headers, xero_http, xero_connected):
        xero_http.request.return_value = mock_response(200, {'Invoices': [xero_invoice()]})
        body = client.post('/api/xero/sync-invoices', headers=admin_headers).get_json()
        assert body['processed'] == 1
        assert 'invoices' not in body

    def test_upstream_error_mapped(self, client, admin_headers, xero_http, xero_connected):
        xero_http.request.return_value = mock_response(503, text='down')
        response = client.get('/api/xero/contacts', headers=admin_headers)
        assert response.status_code == 502

    def test_oauth_round_trip(self, client, admin_headers, xero_http):
        url = client.get('/api/xero/auth-url', headers=admin_headers).get_json()['url']
        state = parse_qs(urlparse(url).query)['state'][0]

        xero_http.post.return_value = mock_response(200, {
            'access_token': 'a', 'refresh_token': 'r', 'expires_in': 1800, 'token_type': 'Bearer',
        })
        xero_http.get.return_value = mock_response(200, [{'tenantId': 't-1'}])
        response = client.get(f'/api/xero/callback?code=abc&state={state}')
        assert response.status_code == 302
        assert response.headers['Location'] == 'http://frontend.test/invoices?xero_connected=true'
        assert XeroToken.get().tenant_id == 't-1'

    def test_callback_rejects_bad_state(self, client, admin_headers, xero_http):
        client.get('/api/xero/auth-url', headers=admin_headers)
        response = client.get('/api/xero/callback?code=abc&state=forged')
        assert response.headers['Location'] == 'http://frontend.test/invoices?xero_error=invalid_state'
        xero_http.post.assert_not_called()

    def test_callback_oauth_error(self, client, xero_http):
        response = client.get('/api/xero/callback?error=access_denied')
        assert response.headers['Location'] == 'http://frontend.test/invoices?xero_error=access_denied'

    def test_disconnect(self, client, admin_headers, xero_http, xero_connected):
        xero_http.post.return_value = mock_response(200)
        assert client.post('/api/xero/disconnect', headers=admin_headers).status_code == 200
        assert XeroToken.get() is None

    def test_cleanup_route_soft_deletes_paid(self, client, admin_headers, xero_http):
        existing_invoice(status='paid')
        existing_invoice(invoice_id='INV-2', xero_invoice_id='x-2', status='unpaid')
        body = client.post('/api/xero/cleanup-paid-invoices', headers=admin_headers).get_json()
        assert body['total_found'] == 1
        assert body['success_count'] == 1
        assert len(Invoice.find()) == 1
