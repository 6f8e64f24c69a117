# services/xero_service.py
import logging
import re
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

from envirotrack.models.invoice import Invoice
from envirotrack.models.xero_token import XeroToken
from envirotrack.services.xero_client import XeroClient
from envirotrack.services.xero_exceptions import XeroAPIError, XeroError
from envirotrack.utils.logging_config import get_logger, log_with_context
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.xero')

# Which Xero documents are mirrored locally
SYNC_CONFIG = {
    # Accounts receivable only (invoices sent to customers)
    'include_types': ['ACCREC'],
    # Awaiting approval and awaiting payment
    'include_statuses': ['SUBMITTED', 'AUTHORISED'],
    'exclude_reference_keywords': ['expense', 'claim', 'bill'],
    'page_size': 100,
    'max_pages': 50,
}

# Local statuses that cleanup never touches
PROTECTED_STATUSES = ['draft', 'awaiting_approval', 'unpaid']

XERO_DATE = re.compile(r'/Date\((-?\d+)([+-]\d{4})?\)/')
ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})')

STATUS_MAP = {
    'PAID': 'paid',
    'AUTHORISED': 'unpaid',
    'SUBMITTED': 'awaiting_approval',
    'DRAFT': 'draft',
}


def _from_epoch_ms(value):
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)


class XeroService:
    def __init__(self, client):
        self.client = client

    @classmethod
    def from_config(cls, config):
        return cls(XeroClient.from_config(config))

    @classmethod
    def for_app(cls, app):
        """Service bound to the Xero client cached on the app by create_app"""
        client = app.extensions.get('xero_client')
        return cls(client) if client is not None else cls.from_config(app.config)

    @staticmethod
    def map_xero_status(xero_status):
        """Map a Xero invoice status onto the app's invoice status"""
        if not xero_status or not isinstance(xero_status, str):
            return 'unpaid'
        return STATUS_MAP.get(xero_status.upper(), 'unpaid')

    @staticmethod
    def parse_xero_date(value, fallback=None):
        """Normalise the date formats Xero returns into a naive UTC datetime"""
        if fallback is None:
            fallback = datetime.utcnow()
        if value is None or value == '':
            return fallback

        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                return _from_epoch_ms(value)
            except (OverflowError, OSError, ValueError):
                return fallback

        if not isinstance(value, str):
            return fallback

        match = XERO_DATE.search(value)
        if match:
            try:
                return _from_epoch_ms(int(match.group(1)))
            except (OverflowError, OSError, ValueError):
                pass

        match = ISO_DATE.match(value)
        if match:
            try:
                return datetime(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            except ValueError:
                pass

        parts = value.split('/')
        if len(parts) == 3 and all(p.strip().isdigit() for p in parts):
            first, second, third = (int(p) for p in parts)
            for day, month in ((first, second), (second, first)):
                try:
                    return datetime(third, month, day)
                except ValueError:
                    continue

        return fallback

    @staticmethod
    def should_sync(xero_invoice):
        """True when a Xero document should be mirrored as a local invoice"""
        if xero_invoice.get('Type') not in SYNC_CONFIG['include_types']:
            return False
        number = xero_invoice.get('InvoiceNumber')
        if not number or number == 'Expense Claims':
            return False
        if xero_invoice.get('Status') not in SYNC_CONFIG['include_statuses']:
            return False
        reference = (xero_invoice.get('Reference') or '').lower()
        return not any(keyword in reference for keyword in SYNC_CONFIG['exclude_reference_keywords'])

    def fetch_invoices(self):
        """Page through Xero invoices awaiting approval or payment"""
        page_size = SYNC_CONFIG['page_size']
        invoices = []
        for page in range(1, SYNC_CONFIG['max_pages'] + 1):
            data = self.client.get('Invoices', params={
                'statuses': ','.join(SYNC_CONFIG['include_statuses']),
                'page': page,
                'pageSize': page_size,
            })
            if not isinstance(data, dict) or not isinstance(data.get('Invoices'), list):
                raise XeroAPIError('Invalid response from Xero API')
            page_invoices = data['Invoices']
            invoices.extend(page_invoices)
            logger.debug('Xero invoices page %s returned %s records', page, len(page_invoices))
            if len(page_invoices) < page_size:
                break
        else:
            logger.warning('Reached maximum page limit (%s), stopping pagination', SYNC_CONFIG['max_pages'])
        return invoices

    def sync_invoices(self):
        """Mirror Xero's open invoices into the invoices collection"""
        invoices = self.fetch_invoices()
        valid = [invoice for invoice in invoices if self.should_sync(invoice)]
        logger.info('Processing %s valid invoices out of %s Xero records', len(valid), len(invoices))

        processed, errors = 0, 0
        for xero_invoice in valid:
            try:
                self.process_and_save_invoice(xero_invoice)
                processed += 1
            except (XeroError, ValidationError, PyMongoError) as e:
                errors += 1
                logger.error('Error processing Xero invoice %s: %s', xero_invoice.get('InvoiceID'), e)

        synced_ids = sorted({inv.get('InvoiceID') for inv in valid if inv.get('InvoiceID')})
        refreshed = 0
        stale = Invoice.find(extra={
            'status': 'awaiting_approval',
            'xero_invoice_id': {'$nin': synced_ids + [None, '']},
        })
        for invoice in stale:
            try:
                self.sync_invoice_status(invoice.id)
                refreshed += 1
            except (XeroError, ValidationError, PyMongoError) as e:
                logger.error('Error refreshing invoice %s: %s', invoice.invoice_id, e)

        log_with_context(logger, logging.INFO,
                         f'Xero sync complete: {processed} processed, {errors} errors, {refreshed} refreshed',
                         processed=processed, errors=errors, refreshed=refreshed, retrieved=len(invoices))
        return {
            'invoices': invoices,
            'total_retrieved': len(invoices),
            'valid': len(valid),
            'processed': processed,
            'errors': errors,
            'refreshed': refreshed,
        }

    def process_and_save_invoice(self, xero_invoice):
        """Create or update the local invoice for one Xero invoice"""
        xero_id = xero_invoice.get('InvoiceID')
        number = xero_invoice.get('InvoiceNumber')
        contact = xero_invoice.get('Contact') or {}
        line_items = xero_invoice.get('LineItems') or []
        description = line_items[0].get('Description') if line_items else None

        existing = Invoice.find_by_xero_id(xero_id)
        if existing and existing.invoice_id != number:
            logger.info('Xero invoice %s renumbered %s -> %s; replacing local record',
                        xero_id, existing.invoice_id, number)
            existing.delete()
            existing = None

        if existing:
            existing.amount = xero_invoice.get('Total') or 0
            existing.status = self.map_xero_status(xero_invoice.get('Status'))
            if xero_invoice.get('Date'):
                existing.date = self.parse_xero_date(xero_invoice['Date'])
            if xero_invoice.get('DueDate'):
                existing.due_date = self.parse_xero_date(xero_invoice['DueDate'])
            existing.description = description or existing.description
            existing.xero_status = xero_invoice.get('Status')
            existing.xero_reference = xero_invoice.get('Reference') or existing.xero_reference
            if contact.get('Name'):
                existing.xero_client_name = contact['Name']
            existing.last_synced = datetime.utcnow()
            return existing.save()

        if not xero_invoice.get('Date') or not xero_invoice.get('DueDate'):
            logger.warning('Missing date fields in Xero invoice %s, using defaults', xero_id)

        invoice = Invoice(
            invoice_id=number if number and number != 'Expense Claims' else f'XERO-{xero_id}',
            amount=xero_invoice.get('Total') or 0,
            status=self.map_xero_status(xero_invoice.get('Status')),
            date=self.parse_xero_date(xero_invoice.get('Date')),
            due_date=self.parse_xero_date(xero_invoice.get('DueDate')),
            description=description or '',
            xero_invoice_id=xero_id,
            xero_contact_id=contact.get('ContactID'),
            xero_client_name=contact.get('Name'),
            xero_reference=xero_invoice.get('Reference'),
            xero_status=xero_invoice.get('Status'),
            last_synced=datetime.utcnow(),
        )
        return invoice.save()

    def sync_invoice_status(self, invoice_id):
        """Refresh one local invoice from its Xero counterpart"""
        invoice = Invoice.find_by_id(invoice_id)
        if not invoice:
            raise XeroError('Invoice not found', status_code=404)
        if not invoice.xero_invoice_id:
            raise XeroError('Invoice is not linked to a Xero invoice', status_code=400)

        data = self.client.get(f'Invoices/{invoice.xero_invoice_id}')
        xero_invoice = (data.get('Invoices') or [None])[0] if isinstance(data, dict) and 'Invoices' in data else data
        if not isinstance(xero_invoice, dict) or not xero_invoice.get('Status'):
            raise XeroAPIError('Invalid invoice data returned from Xero')

        invoice.status = self.map_xero_status(xero_invoice['Status'])
        invoice.xero_status = xero_invoice['Status']
        total = xero_invoice.get('Total')
        if isinstance(total, (int, float)) and not isinstance(total, bool):
            invoice.amount = total
        if xero_invoice.get('Date'):
            invoice.date = self.parse_xero_date(xero_invoice['Date'], invoice.date)
        if xero_invoice.get('DueDate'):
            invoice.due_date = self.parse_xero_date(xero_invoice['DueDate'], invoice.due_date)
        line_items = xero_invoice.get('LineItems') or []
        if line_items and line_items[0].get('Description'):
            invoice.description = line_items[0]['Description']
        if xero_invoice.get('Reference'):
            invoice.xero_reference = xero_invoice['Reference']
        contact_name = (xero_invoice.get('Contact') or {}).get('Name')
        if contact_name:
            invoice.xero_client_name = contact_name
        invoice.last_synced = datetime.utcnow()
        return invoice.save()

    @staticmethod
    def cleanup_paid_invoices(current_xero_invoices, dry_run=False):
        """Soft delete Xero-linked invoices that dropped out of the open set"""
        current_ids = [inv.get('InvoiceID') for inv in current_xero_invoices if inv.get('InvoiceID')]
        candidates = Invoice.find(extra={
            'xero_invoice_id': {'$nin': current_ids + [None, '']},
            'status': {'$nin': PROTECTED_STATUSES},
        })
        soft_deleted = 0
        for invoice in candidates:
            if dry_run:
                continue
            try:
                invoice.soft_delete('Invoice no longer in Xero unpaid results (likely marked as paid)')
                soft_deleted += 1
            except (ValidationError, PyMongoError) as e:
                logger.error('Error soft deleting invoice %s: %s', invoice.invoice_id, e)
        return {'total_found': len(candidates), 'soft_deleted': soft_deleted}

    @staticmethod
    def soft_delete_paid_invoices():
        """Hide every visible invoice already marked paid"""
        paid = Invoice.find(status='paid')
        success, errors = 0, 0
        for invoice in paid:
            try:
                invoice.soft_delete('Manual cleanup: Invoice marked as paid in Xero')
                success += 1
            except (ValidationError, PyMongoError) as e:
                errors += 1
                logger.error('Error soft deleting invoice %s: %s', invoice.invoice_id, e)
        return {'total_found': len(paid), 'success_count': success, 'error_count': errors}

    def get_contacts(self):
        data = self.client.get('Contacts')
        if not isinstance(data, dict) or 'Contacts' not in data:
            raise XeroAPIError('Invalid response from Xero')
        contacts = []
        for contact in data['Contacts']:
            phone = next((p.get('PhoneNumber') for p in contact.get('Phones') or []
                          if p.get('PhoneType') == 'DEFAULT'), None)
            contacts.append({
                'id': contact.get('ContactID'),
                'name': contact.get('Name'),
                'email': contact.get('EmailAddress'),
                'phone': phone,
                'status': 'archived' if contact.get('IsArchived') else 'active',
                'type': contact.get('ContactStatus'),
            })
        return contacts

    def list_invoices(self):
        data = self.client.get('Invoices')
        return data.get('Invoices', []) if isinstance(data, dict) else []

    def create_invoice(self, data):
        """Create a single-line ACCREC draft invoice in Xero"""
        payload = {
            'Type': 'ACCREC',
            'Contact': {'ContactID': data.get('xero_contact_id') or data.get('client')},
            'LineItems': [{
                'Description': data.get('description') or 'Invoice line item',
                'Quantity': 1,
                'UnitAmount': data.get('amount'),
                'AccountCode': '200',
            }],
            'Date': data.get('date'),
            'DueDate': data.get('due_date'),
            'Reference': data.get('xero_reference') or data.get('invoice_id'),
            'Status': 'DRAFT',
        }
        if data.get('invoice_number'):
            payload['InvoiceNumber'] = data['invoice_number']

        response = self.client.post('Invoices', json={'Invoices': [payload]})
        invoices = response.get('Invoices') if isinstance(response, dict) else None
        if not invoices:
            raise XeroAPIError('Invalid response from Xero API')
        return invoices[0]

    def status(self):
        token = self.client.current_token()
        connected = bool(token and token.access_token)
        return {
            'connected': connected,
            'tenant_id': token.tenant_id if token else None,
            'details': {
                'has_token': token is not None,
                'has_access_token': connected,
                'has_tenant_id': bool(token and token.tenant_id),
                'token_expiry': token.expires_at.isoformat() if token else None,
            },
        }

    def disconnect(self):
        token = XeroToken.get()
        if token:
            self.client.revoke(token.access_token)
        removed = XeroToken.delete_all()
        logger.info('Disconnected from Xero (%s token documents removed)', removed)
        return removed
