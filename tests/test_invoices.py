"""Tests for invoice CRUD and soft deletion."""

from envirotrack.config import permissions
from envirotrack.models.invoice import Invoice

BASE = '/api/invoices'


def _payload(**overrides):
    payload = {
        'invoice_id': 'INV-1001',
        'amount': 1250.5,
        'date': '2025-03-01',
        'due_date': '2025-03-31',
        'description': 'Clearance inspection',
    }
    payload.update(overrides)
    return payload


class TestInvoiceRoutes:

    def test_create_and_get(self, client, manager_headers):
        response = client.post(f'{BASE}/', headers=manager_headers, json=_payload())
        assert response.status_code == 201
        invoice = response.get_json()
        assert invoice['status'] == 'draft'
        assert invoice['is_deleted'] is False

        fetched = client.get(f"{BASE}/{invoice['id']}", headers=manager_headers).get_json()
        assert fetched['invoice_id'] == 'INV-1001'

    def test_required_fields(self, client, manager_headers):
        response = client.post(f'{BASE}/', headers=manager_headers, json={'invoice_id': 'INV-1'})
        assert response.status_code == 400

    def test_amount_must_be_numeric(self, client, manager_headers):
        response = client.post(f'{BASE}/', headers=manager_headers, json=_payload(amount='lots'))
        assert response.status_code == 400

    def test_invoice_id_must_be_text(self, client, manager_headers):
        assert client.post(f'{BASE}/', headers=manager_headers, json=_payload(invoice_id=123)).status_code == 400

        invoice = client.post(f'{BASE}/', headers=manager_headers, json=_payload()).get_json()
        response = client.put(f"{BASE}/{invoice['id']}", headers=manager_headers, json={'invoice_id': 123})
        assert response.status_code == 400
        assert Invoice.find_by_id(invoice['id']).invoice_id == 'INV-1001'

    def test_invoice_id_unique(self, client, manager_headers):
        client.post(f'{BASE}/', headers=manager_headers, json=_payload())
        response = client.post(f'{BASE}/', headers=manager_headers, json=_payload())
        assert response.status_code == 400

    def test_employee_read_only(self, client, employee_headers, manager_headers):
        client.post(f'{BASE}/', headers=manager_headers, json=_payload())
        assert client.get(f'{BASE}/', headers=employee_headers).status_code == 200
        assert client.post(f'{BASE}/', headers=employee_headers, json=_payload(invoice_id='X')).status_code == 403

    def test_filters(self, client, manager_headers):
        client.post(f'{BASE}/', headers=manager_headers, json=_payload(invoice_id='INV-1', status='unpaid'))
        client.post(f'{BASE}/', headers=manager_headers, json=_payload(invoice_id='INV-2', status='draft'))
        client.post(f'{BASE}/', headers=manager_headers, json=_payload(invoice_id='OTHER-3', status='awaiting_approval'))

        unpaid = client.get(f'{BASE}/?status=unpaid,awaiting_approval', headers=manager_headers).get_json()
        assert sorted(i['invoice_id'] for i in unpaid) == ['INV-1', 'OTHER-3']

        found = client.get(f'{BASE}/?search=inv-', headers=manager_headers).get_json()
        assert sorted(i['invoice_id'] for i in found) == ['INV-1', 'INV-2']

    def test_update(self, client, manager_headers):
        invoice = client.post(f'{BASE}/', headers=manager_headers, json=_payload()).get_json()
        response = client.put(f"{BASE}/{invoice['id']}", headers=manager_headers,
                              json={'amount': 99, 'due_date': '2025-04-30'})
        assert response.status_code == 200
        stored = Invoice.find_by_id(invoice['id'])
        assert stored.amount == 99
        assert stored.due_date.month == 4

    def test_marking_paid_requires_approve(self, client, manager_headers, monkeypatch):
        invoice = client.post(f'{BASE}/', headers=manager_headers, json=_payload()).get_json()
        assert client.put(f"{BASE}/{invoice['id']}", headers=manager_headers,
                          json={'status': 'paid'}).status_code == 200

        monkeypatch.setitem(permissions.ROLE_PERMISSIONS, 'manager',
                            [p for p in permissions.ROLE_PERMISSIONS['manager'] if p != 'invoices.approve'])
        other = client.post(f'{BASE}/', headers=manager_headers, json=_payload(invoice_id='INV-2')).get_json()
        response = client.put(f"{BASE}/{other['id']}", headers=manager_headers, json={'status': 'paid'})
        assert response.status_code == 403
        assert response.get_json()['required_permissions'] == ['invoices.approve']


class TestSoftDelete:

    def test_deleted_invoices_hidden(self, client, manager_headers):
        invoice = client.post(f'{BASE}/', headers=manager_headers, json=_payload()).get_json()
        response = client.delete(f"{BASE}/{invoice['id']}", headers=manager_headers,
                                 json={'reason': 'Raised in error'})
        assert response.status_code == 200

        assert client.get(f'{BASE}/', headers=manager_headers).get_json() == []
        assert client.get(f"{BASE}/{invoice['id']}", headers=manager_headers).status_code == 404

        listed = client.get(f'{BASE}/?include_deleted=true', headers=manager_headers).get_json()
        assert listed[0]['delete_reason'] == 'Raised in error'
        assert listed[0]['deleted_at']

    def test_deleted_invoice_id_still_reserved(self, client, manager_headers):
        invoice = client.post(f'{BASE}/', headers=manager_headers, json=_payload()).get_json()
        client.delete(f"{BASE}/{invoice['id']}", headers=manager_headers)
        assert client.post(f'{BASE}/', headers=manager_headers, json=_payload()).status_code == 400

    def test_restore(self, client, manager_headers):
        invoice = client.post(f'{BASE}/', headers=manager_headers, json=_payload()).get_json()
        url = f"{BASE}/{invoice['id']}/restore"
        assert client.post(url, headers=manager_headers).status_code == 400

        client.delete(f"{BASE}/{invoice['id']}", headers=manager_headers)
        restored = client.post(url, headers=manager_headers).get_json()
        assert restored['is_deleted'] is False
        assert restored['delete_reason'] is None
        assert len(client.get(f'{BASE}/', headers=manager_headers).get_json()) == 1
