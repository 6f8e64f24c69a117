# models/report_template.py
from datetime import datetime

from envirotrack.config.database import db_instance
from envirotrack.models.user import populate_users
from envirotrack.utils.mongo import ValidationError, to_object_id

TEMPLATE_TYPES = (
    'asbestosClearanceFriable',
    'asbestosClearanceNonFriable',
    'asbestosClearanceFriableNonFriableConditions',
    'asbestosClearanceVehicle',
    'leadAssessment',
    'asbestosAssessment',
    'leadClearance',
)

DEFAULT_COMPANY_DETAILS = {
    'name': 'Lancaster & Dickenson Consulting Pty Ltd',
    'address': '4/6 Dacre Street, Mitchell ACT 2911',
    'email': 'enquiries@landd.com.au',
    'phone': '(02) 6241 2779',
    'website': 'www.landd.com.au',
    'abn': '74 169 785 915',
}


class ReportTemplate:
    def __init__(self, template_type, report_headers, created_by, company_details=None,
                 standard_sections=None, selected_legislation=None, updated_by=None,
                 _id=None, created_at=None, updated_at=None):
        self.id = str(_id) if _id else None
        self.template_type = template_type
        self.company_details = {**DEFAULT_COMPANY_DETAILS, **(company_details or {})}
        self.report_headers = report_headers or {}
        self.standard_sections = standard_sections or {}
        self.selected_legislation = selected_legislation or []
        self.created_by = to_object_id(created_by)
        self.updated_by = to_object_id(updated_by)
        self.created_at = created_at or datetime.utcnow()
        self.updated_at = updated_at or datetime.utcnow()

    def validate(self):
        if self.template_type not in TEMPLATE_TYPES:
            raise ValidationError(f'Invalid template type: {self.template_type}')
        if not isinstance(self.report_headers, dict) or not self.report_headers.get('title'):
            raise ValidationError('report_headers.title is required')
        if not isinstance(self.standard_sections, dict):
            raise ValidationError('standard_sections must be an object')
        if not isinstance(self.selected_legislation, list):
            raise ValidationError('selected_legislation must be a list')
        if self.created_by is None:
            raise ValidationError('created_by is required')

    def save(self):
        """Save template to database"""
        self.validate()
        db = db_instance.get_db()
        self.updated_at = datetime.utcnow()
        template_data = {
            'template_type': self.template_type,
            'company_details': self.company_details,
            'report_headers': self.report_headers,
            'standard_sections': self.standard_sections,
            'selected_legislation': self.selected_legislation,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

        if self.id:
            db.report_templates.update_one(
                {'_id': to_object_id(self.id)},
                {'$set': template_data}
            )
        else:
            result = db.report_templates.insert_one(template_data)
            self.id = str(result.inserted_id)

        return self

    def delete(self):
        db = db_instance.get_db()
        db.report_templates.delete_one({'_id': to_object_id(self.id)})

    @staticmethod
    def from_document(data):
        return ReportTemplate(
            template_type=data['template_type'],
            report_headers=data.get('report_headers'),
            created_by=data.get('created_by'),
            company_details=data.get('company_details'),
            standard_sections=data.get('standard_sections'),
            selected_legislation=data.get('selected_legislation'),
            updated_by=data.get('updated_by'),
            _id=data['_id'],
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at')
        )

    @staticmethod
    def find_all():
        db = db_instance.get_db()
        cursor = db.report_templates.find().sort('created_at', -1)
        return [ReportTemplate.from_document(data) for data in cursor]

    @staticmethod
    def find_by_type(template_type):
        db = db_instance.get_db()
        data = db.report_templates.find_one({'template_type': template_type})
        return ReportTemplate.from_document(data) if data else None

    def to_dict(self, populate=True):
        """Convert template to dictionary"""
        data = {
            'id': self.id,
            'template_type': self.template_type,
            'company_details': self.company_details,
            'report_headers': self.report_headers,
            'standard_sections': self.standard_sections,
            'selected_legislation': self.selected_legislation,
            'created_by': str(self.created_by) if self.created_by else None,
            'updated_by': str(self.updated_by) if self.updated_by else None,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }
        return populate_users(data) if populate else data
