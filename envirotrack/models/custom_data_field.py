import re
from datetime import datetime

from bson import ObjectId

from envirotrack.config.database import db_instance
from envirotrack.models.user import populate_users
from envirotrack.utils.mongo import ValidationError, to_object_id

FIELD_TYPES = (
    'asbestos_removalist',
    'location_description',
    'materials_description',
    'room_area',
    'legislation',
    'project_status',
)
GROUP_TYPES = FIELD_TYPES + ('recommendation',)
ASBESTOS_TYPES = ('Friable', 'Non-friable')
DEFAULT_STATUS_COLOR = '#1976d2'


def _clean(value):
    return value.strip() if isinstance(value, str) else value


class CustomDataField:
    """A single selectable value (removalist, room, legislation item, ...)"""

    def __init__(self, type, text, created_by, legislation_title=None, jurisdiction=None,
                 is_active_status=None, status_color=None, is_active=True,
                 _id=None, created_at=None, updated_at=None):
        self.id = str(_id) if _id else None
        self.type = type
        self.text = _clean(text)
        self.legislation_title = _clean(legislation_title)
        self.jurisdiction = _clean(jurisdiction)
        self.is_active_status = is_active_status
        self.status_color = status_color
        self.is_active = is_active
        self.created_by = to_object_id(created_by)
        self.created_at = created_at or datetime.utcnow()
        self.updated_at = updated_at or datetime.utcnow()

    def validate(self):
        if self.type not in FIELD_TYPES:
            raise ValidationError('Invalid type parameter')
        if not self.text:
            raise ValidationError('Text is required')

    def save(self):
        self.validate()
        db = db_instance.get_db()
        self.updated_at = datetime.utcnow()
        field_data = {
            'type': self.type,
            'text': self.text,
            'legislation_title': self.legislation_title,
            'jurisdiction': self.jurisdiction,
            'is_active_status': self.is_active_status,
            'status_color': self.status_color,
            'is_active': self.is_active,
            'created_by': self.created_by,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

        if self.id:
            db.custom_data_fields.update_one({'_id': to_object_id(self.id)}, {'$set': field_data})
        else:
            result = db.custom_data_fields.insert_one(field_data)
            self.id = str(result.inserted_id)

        return self

    @staticmethod
    def from_document(data):
        return CustomDataField(
            type=data['type'],
            text=data['text'],
            created_by=data.get('created_by'),
            legislation_title=data.get('legislation_title'),
            jurisdiction=data.get('jurisdiction'),
            is_active_status=data.get('is_active_status'),
            status_color=data.get('status_color'),
            is_active=data.get('is_active', True),
            _id=data['_id'],
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at')
        )

    @staticmethod
    def find_by_id(field_id):
        oid = to_object_id(field_id)
        if oid is None:
            return None
        data = db_instance.get_db().custom_data_fields.find_one({'_id': oid})
        return CustomDataField.from_document(data) if data else None

    @staticmethod
    def find_duplicate(type, text, jurisdiction=None, exclude_id=None):
        """Active field of the same type with the same text (case-insensitive)"""
        query = {
            'type': type,
            'is_active': True,
            'text': {'$regex': f'^{re.escape(_clean(text) or "")}$', '$options': 'i'},
        }
        if type == 'legislation':
            query['jurisdiction'] = _clean(jurisdiction)
        if exclude_id:
            query['_id'] = {'$ne': to_object_id(exclude_id)}
        data = db_instance.get_db().custom_data_fields.find_one(query)
        return CustomDataField.from_document(data) if data else None

    @staticmethod
    def find_active(type=None):
        query = {'is_active': True}
        sort = [('text', 1)]
        if type:
            query['type'] = type
        else:
            sort = [('type', 1), ('text', 1)]
        cursor = db_instance.get_db().custom_data_fields.find(query).sort(sort)
        return [CustomDataField.from_document(data) for data in cursor]

    def to_dict(self):
        data = {
            'id': self.id,
            'type': self.type,
            'text': self.text,
            'legislation_title': self.legislation_title,
            'jurisdiction': self.jurisdiction,
            'is_active_status': self.is_active_status,
            'status_color': self.status_color,
            'is_active': self.is_active,
            'created_by': str(self.created_by) if self.created_by else None,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }
        return populate_users(data, fields=('created_by',))


class CustomDataFieldGroup:
    """All selectable values of one type, kept in display order"""

    def __init__(self, name, type, created_by, fields=None, description=None, is_active=True,
                 _id=None, created_at=None, updated_at=None):
        self.id = str(_id) if _id else None
        self.name = _clean(name)
        self.description = _clean(description)
        self.type = type
        self.created_by = to_object_id(created_by)
        self.fields = fields or []
        self.is_active = is_active
        self.created_at = created_at or datetime.utcnow()
        self.updated_at = updated_at or datetime.utcnow()

    @staticmethod
    def build_fields(raw_fields, created_by, existing=None):
        """Normalise request field dicts; list position becomes the display order"""
        if not isinstance(raw_fields, list):
            raise ValidationError('Fields must be a list')
        existing = {str(f['id']): f for f in (existing or [])}
        built = []
        for index, raw in enumerate(raw_fields):
            if not isinstance(raw, dict) or not _clean(raw.get('text')):
                raise ValidationError('All fields must have text')
            previous = existing.get(str(raw.get('id') or raw.get('_id')), {})
            asbestos_type = _clean(raw.get('asbestos_type'))
            if asbestos_type and asbestos_type not in ASBESTOS_TYPES:
                raise ValidationError(f"asbestos_type must be one of: {', '.join(ASBESTOS_TYPES)}")
            built.append({
                'id': previous.get('id') or ObjectId(),
                'text': _clean(raw['text']),
                'is_active': raw.get('is_active', previous.get('is_active', True)),
                'is_active_status': raw.get('is_active_status', previous.get('is_active_status', True)),
                'status_color': _clean(raw.get('status_color')) or previous.get('status_color') or DEFAULT_STATUS_COLOR,
                'legislation_title': _clean(raw.get('legislation_title')),
                'jurisdiction': _clean(raw.get('jurisdiction')),
                'asbestos_type': asbestos_type,
                'name': _clean(raw.get('name')),
                'order': index,
                'created_by': previous.get('created_by') or to_object_id(created_by),
                'created_at': previous.get('created_at') or datetime.utcnow(),
            })
        return built

    def validate(self):
        if not self.name:
            raise ValidationError('Name is required')
        if self.type not in GROUP_TYPES:
            raise ValidationError('Invalid type parameter')

    def save(self):
        self.validate()
        db = db_instance.get_db()
        self.updated_at = datetime.utcnow()
        group_data = {
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'fields': self.fields,
            'is_active': self.is_active,
            'created_by': self.created_by,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

        if self.id:
            db.custom_data_field_groups.update_one({'_id': to_object_id(self.id)}, {'$set': group_data})
        else:
            result = db.custom_data_field_groups.insert_one(group_data)
            self.id = str(result.inserted_id)

        return self

    @staticmethod
    def from_document(data):
        return CustomDataFieldGroup(
            name=data['name'],
            type=data['type'],
            created_by=data.get('created_by'),
            fields=data.get('fields', []),
            description=data.get('description'),
            is_active=data.get('is_active', True),
            _id=data['_id'],
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at')
        )

    @staticmethod
    def find_by_id(group_id):
        oid = to_object_id(group_id)
        if oid is None:
            return None
        data = db_instance.get_db().custom_data_field_groups.find_one({'_id': oid})
        return CustomDataFieldGroup.from_document(data) if data else None

    @staticmethod
    def find_active(type=None):
        query = {'is_active': True}
        if type:
            query['type'] = type
        cursor = db_instance.get_db().custom_data_field_groups.find(query).sort([('type', 1), ('name', 1)])
        return [CustomDataFieldGroup.from_document(data) for data in cursor]

    @staticmethod
    def find_active_by_type(type):
        groups = CustomDataFieldGroup.find_active(type)
        return groups[0] if groups else None

    def active_fields(self):
        return sorted((f for f in self.fields if f.get('is_active', True)), key=lambda f: f.get('order', 0))

    @staticmethod
    def get_fields_by_type(type):
        group = CustomDataFieldGroup.find_active_by_type(type)
        if not group:
            return []
        keys = ('id', 'text', 'is_active', 'is_active_status', 'status_color',
                'legislation_title', 'jurisdiction', 'asbestos_type', 'name')
        return [{key: field.get(key) for key in keys} for field in group.active_fields()]

    @staticmethod
    def get_project_statuses():
        group = CustomDataFieldGroup.find_active_by_type('project_status')
        if not group:
            return {'active_statuses': [], 'inactive_statuses': []}

        keys = ('id', 'text', 'is_active', 'is_active_status', 'status_color', 'order',
                'created_by', 'created_at')
        fields = group.active_fields()
        return {
            'active_statuses': [{k: f.get(k) for k in keys} for f in fields if f.get('is_active_status', True)],
            'inactive_statuses': [{k: f.get(k) for k in keys} for f in fields if not f.get('is_active_status', True)],
        }

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'fields': sorted(self.fields, key=lambda f: f.get('order', 0)),
            'is_active': self.is_active,
            'created_by': str(self.created_by) if self.created_by else None,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }
        return populate_users(data, fields=('created_by',))
