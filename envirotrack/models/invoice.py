# models/invoice.py
import re
from datetime import datetime

from envirotrack.config.database import db_instance
from envirotrack.utils.mongo import ValidationError, parse_datetime, to_object_id

STATUSES = ('draft', 'unpaid', 'paid', 'awaiting_approval')
XERO_STATUSES = ('DRAFT', 'SUBMITTED', 'AUTHORISED', 'PAID', 'VOIDED', 'DELETED')

NOT_DELETED = {'is_deleted': {'$ne': True}}


def _visible(query, include_deleted=False):
    if include_deleted:
        return dict(query)
    return {**query, **NOT_DELETED}


class Invoice:
    def __init__(self, invoice_id, amount, date, due_date, status='draft', project=None,
                 client=None, description=None, xero_invoice_id=None, xero_contact_id=None,
                 xero_client_name=None, xero_reference=None, xero_status='DRAFT', last_synced=None,
                 is_deleted=False, delete_reason=None, deleted_at=None,
                 _id=None, created_at=None, updated_at=None):
        self.id = str(_id) if _id else None
        self.invoice_id = invoice_id.strip() if isinstance(invoice_id, str) else invoice_id
        self.amount = amount
        self.date = date
        self.due_date = due_date
        self.status = status or 'draft'
        self.project = to_object_id(project)
        self.client = to_object_id(client)
        self.description = description
        self.xero_invoice_id = xero_invoice_id
        self.xero_contact_id = xero_contact_id
        self.xero_client_name = xero_client_name.strip() if isinstance(xero_client_name, str) else xero_client_name
        self.xero_reference = xero_reference
        self.xero_status = xero_status or 'DRAFT'
        self.last_synced = last_synced
        self.is_deleted = is_deleted
        self.delete_reason = delete_reason
        self.deleted_at = deleted_at
        self.created_at = created_at or datetime.utcnow()
        self.updated_at = updated_at or datetime.utcnow()

    @staticmethod
    def from_request(data):
        """Build an invoice from API input; dates accept ISO strings"""
        return Invoice(
            invoice_id=data.get('invoice_id'),
            amount=data.get('amount'),
            date=parse_datetime(data.get('date'), 'date'),
            due_date=parse_datetime(data.get('due_date'), 'due_date'),
            status=data.get('status') or 'draft',
            project=data.get('project'),
            client=data.get('client'),
            description=data.get('description'),
        )

    def validate(self):
        if not self.invoice_id:
            raise ValidationError('invoice_id is required')
        if not isinstance(self.invoice_id, str):
            raise ValidationError('invoice_id must be a string')
        if isinstance(self.amount, bool) or not isinstance(self.amount, (int, float)):
            raise ValidationError('amount must be a number')
        if not isinstance(self.date, datetime):
            raise ValidationError('date is required')
        if not isinstance(self.due_date, datetime):
            raise ValidationError('due_date is required')
        if self.status not in STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
        if self.xero_status not in XERO_STATUSES:
            raise ValidationError(f"xero_status must be one of: {', '.join(XERO_STATUSES)}")

    def to_document(self):
        return {
            'invoice_id': self.invoice_id,
            'project': self.project,
            'client': self.client,
            'amount': self.amount,
            'status': self.status,
            'date': self.date,
            'due_date': self.due_date,
            'description': self.description,
            'xero_invoice_id': self.xero_invoice_id,
            'xero_contact_id': self.xero_contact_id,
            'xero_client_name': self.xero_client_name,
            'xero_reference': self.xero_reference,
            'xero_status': self.xero_status,
            'last_synced': self.last_synced,
            'is_deleted': self.is_deleted,
            'delete_reason': self.delete_reason,
            'deleted_at': self.deleted_at,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    def save(self):
        """Save invoice to database"""
        self.validate()
        db = db_instance.get_db()
        self.updated_at = datetime.utcnow()
        data = self.to_document()

        if self.id:
            db.invoices.update_one({'_id': to_object_id(self.id)}, {'$set': data})
        else:
            result = db.invoices.insert_one(data)
            self.id = str(result.inserted_id)

        return self

    def soft_delete(self, reason=None):
        """Hide the invoice from the app without removing it"""
        self.is_deleted = True
        self.delete_reason = reason.strip() if isinstance(reason, str) and reason.strip() else None
        self.deleted_at = datetime.utcnow()
        return self.save()

    def restore(self):
        self.is_deleted = False
        self.delete_reason = None
        self.deleted_at = None
        return self.save()

    def delete(self):
        db_instance.get_db().invoices.delete_one({'_id': to_object_id(self.id)})

    @staticmethod
    def from_document(data):
        fields = dict(data)
        return Invoice(
            invoice_id=fields.pop('invoice_id'),
            amount=fields.pop('amount', 0),
            date=fields.pop('date', None),
            due_date=fields.pop('due_date', None),
            **fields
        )

    @staticmethod
    def find_by_id(invoice_id, include_deleted=False):
        oid = to_object_id(invoice_id)
        if oid is None:
            return None
        data = db_instance.get_db().invoices.find_one(_visible({'_id': oid}, include_deleted))
        return Invoice.from_document(data) if data else None

    @staticmethod
    def find_by_invoice_id(invoice_id, include_deleted=True):
        data = db_instance.get_db().invoices.find_one(_visible({'invoice_id': invoice_id}, include_deleted))
        return Invoice.from_document(data) if data else None

    @staticmethod
    def find_by_xero_id(xero_invoice_id, include_deleted=True):
        if not xero_invoice_id:
            return None
        data = db_instance.get_db().invoices.find_one(
            _visible({'xero_invoice_id': xero_invoice_id}, include_deleted)
        )
        return Invoice.from_document(data) if data else None

    @staticmethod
    def find(status=None, search=None, include_deleted=False, extra=None):
        """List invoices newest first, optionally filtered by status and a search term"""
        query = dict(extra or {})
        if status:
            statuses = [s.strip() for s in status.split(',') if s.strip()]
            query['status'] = {'$in': statuses}
        if search:
            pattern = re.escape(search.strip())
            query['$or'] = [
                {'invoice_id': {'$regex': pattern, '$options': 'i'}},
                {'xero_client_name': {'$regex': pattern, '$options': 'i'}},
            ]
        cursor = db_instance.get_db().invoices.find(_visible(query, include_deleted)).sort('date', -1)
        return [Invoice.from_document(data) for data in cursor]

    def _reference(self, collection):
        oid = self.project if collection == 'projects' else self.client
        if not oid:
            return None
        doc = db_instance.get_db()[collection].find_one({'_id': oid}, {'name': 1})
        return {'id': str(oid), 'name': doc.get('name') if doc else None}

    def to_dict(self, populate=True):
        data = self.to_document()
        data['id'] = self.id
        if populate:
            data['project'] = self._reference('projects')
            data['client'] = self._reference('clients')
        else:
            data['project'] = str(self.project) if self.project else None
            data['client'] = str(self.client) if self.client else None
        return data
