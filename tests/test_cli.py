"""Tests for the ``flask maintenance`` commands."""

from datetime import datetime

import pytest

from conftest import mock_response
from envirotrack.models.custom_data_field import CustomDataFieldGroup
from envirotrack.models.invoice import Invoice
from envirotrack.models.report_template import ReportTemplate
from envirotrack.models.user import User
from envirotrack.services.template_service import create_default_templates


@pytest.fixture
def run(app):
    runner = app.test_cli_runner()

    def _run(*args, **kwargs):
        return runner.invoke(args=['maintenance', *args], **kwargs)
    return _run


def save_invoice(invoice_id, xero_invoice_id, status='paid', **fields):
    return Invoice(invoice_id=invoice_id, amount=10, date=datetime(2025, 1, 1), due_date=datetime(2025, 2, 1),
                   status=status, xero_invoice_id=xero_invoice_id, **fields).save()


class TestLicenceMigration:

    def seed(self, db):
        db.users.insert_many([
            {'email': 'old@example.com', 'laa_licences': [{'state': 'ACT', 'licence_number': 'AA00112'}]},
            {'email': 'bare@example.com'},
            {'email': 'new@example.com', 'licences': []},
        ])

    def test_migrates(self, db, run):
        self.seed(db)
        result = run('migrate-laa-licences')
        assert result.exit_code == 0
        assert 'Migrated 1 users' in result.output

        old = db.users.find_one({'email': 'old@example.com'})
        assert 'laa_licences' not in old
        assert old['licences'] == [{'state': 'ACT', 'licence_number': 'AA00112', 'licence_type': 'LAA'}]
        assert db.users.find_one({'email': 'bare@example.com'})['licences'] == []

    def test_dry_run(self, db, run):
        self.seed(db)
        result = run('migrate-laa-licences', '--dry-run')
        assert result.output.startswith('[dry run]')
        assert 'laa_licences' in db.users.find_one({'email': 'old@example.com'})
        assert 'licences' not in db.users.find_one({'email': 'bare@example.com'})


class TestInvoiceCommands:

    def test_restore_invoices(self, app, run):
        linked = save_invoice('INV-1', 'x-1').soft_delete('cleanup')
        local = save_invoice('INV-2', None).soft_delete('typo')

        result = run('restore-invoices')
        assert 'Restored 1' in result.output
        restored = Invoice.find_by_id(linked.id)
        assert restored is not None
        assert restored.delete_reason is None
        assert Invoice.find_by_id(local.id) is None

    def test_cleanup_paid_invoices(self, app, run, xero_http, xero_connected):
        save_invoice('INV-1', 'x-1', status='unpaid', xero_status='AUTHORISED')
        gone = save_invoice('INV-2', 'x-2', status='paid', xero_status='PAID')
        xero_http.request.return_value = mock_response(200, {'Invoices': [{
            'InvoiceID': 'x-1', 'InvoiceNumber': 'INV-1', 'Type': 'ACCREC', 'Status': 'AUTHORISED',
            'Total': 10, 'Date': '2025-01-01', 'DueDate': '2025-02-01',
        }]})

        result = run('cleanup-paid-invoices')
        assert result.exit_code == 0
        assert '1 soft deleted' in result.output
        assert Invoice.find_by_id(gone.id) is None
        assert Invoice.find_by_xero_id('x-1', include_deleted=False) is not None

    def test_cleanup_without_connection(self, run, xero_http):
        result = run('cleanup-paid-invoices')
        assert result.exit_code != 0
        assert 'Xero sync failed' in result.output


class TestTemplateCommands:

    def test_create_default_templates(self, app, run):
        assert 'leadClearance' in run('create-default-templates', '--dry-run').output
        assert ReportTemplate.find_by_type('leadClearance') is None

        run('create-default-templates')
        assert ReportTemplate.find_by_type('leadClearance') is not None
        assert 'Created templates: none' in run('create-default-templates').output

    def test_fix_bullet_formatting(self, app, run, admin):
        create_default_templates(admin.id)
        template = ReportTemplate.find_by_type('leadClearance')
        template.standard_sections['inspectionDetails'] = 'Checked:\n• Floors\n  - Sills\nNot-a-bullet'
        template.save()

        result = run('fix-bullet-formatting')
        assert 'leadClearance' in result.output
        fixed = ReportTemplate.find_by_type('leadClearance').standard_sections['inspectionDetails']
        assert fixed == 'Checked:\n[BULLET]Floors\n[BULLET]Sills\nNot-a-bullet'


class TestCustomFieldMigration:

    def test_groups_fields_by_type(self, db, run, admin):
        db.custom_data_fields.insert_many([
            {'type': 'room_area', 'text': 'Kitchen', 'is_active': True, 'created_by': admin.id,
             'created_at': datetime(2025, 1, 1)},
            {'type': 'room_area', 'text': 'Bathroom', 'is_active': True, 'created_by': admin.id,
             'created_at': datetime(2025, 1, 2), 'status_color': '#ff0000'},
            {'type': 'room_area', 'text': 'Old', 'is_active': False, 'created_by': admin.id,
             'created_at': datetime(2025, 1, 3)},
        ])

        run('migrate-custom-fields-to-groups')
        group = CustomDataFieldGroup.find_active_by_type('room_area')
        assert group.name == 'Room Area Fields'
        assert [f['text'] for f in group.fields] == ['Kitchen', 'Bathroom']
        assert group.fields[1]['status_color'] == '#ff0000'

        result = run('migrate-custom-fields-to-groups')
        assert 'already grouped: room_area' in result.output
        assert db.custom_data_field_groups.count_documents({}) == 1


class TestCreateAdmin:

    def test_create_admin(self, app, run):
        result = run('create-admin', '--email', 'boss@example.com', '--first-name', 'Bo',
                     '--last-name', 'Boss', '--password', 'password123')
        assert result.exit_code == 0
        user = User.find_by_email('boss@example.com')
        assert user.role == 'admin'
        assert user.check_password('password123')

    def test_existing_email(self, run, admin):
        result = run('create-admin', '--email', admin.email, '--first-name', 'A',
                     '--last-name', 'B', '--password', 'password123')
        assert result.exit_code != 0
        assert 'already exists' in result.output

    def test_short_password(self, app, run):
        result = run('create-admin', '--email', 'x@example.com', '--first-name', 'A',
                     '--last-name', 'B', '--password', 'abc')
        assert result.exit_code != 0
        assert User.find_by_email('x@example.com') is None
