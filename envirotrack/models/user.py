import re
import secrets
from datetime import datetime, timedelta

import jwt
from flask import current_app
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from envirotrack.config.database import db_instance
from envirotrack.config.permissions import ROLES, has_permission
from envirotrack.utils.mongo import ValidationError, to_object_id

MIN_PASSWORD_LENGTH = 6
PASSWORD_TOKEN_HOURS = 1
PASSWORD_TOKEN_KINDS = ('reset', 'setup')
LAA_LICENCE_TYPES = ('Asbestos Assessor', 'LAA')


def default_notifications():
    return {'email': False, 'sms': False, 'system_updates': False}


class User(UserMixin):
    def __init__(self, email, first_name, last_name, password_hash=None, phone=None,
                 role='employee', is_active=True, notifications=None, licences=None,
                 signature=None, password_set=True, password_tokens=None, _id=None,
                 created_at=None, updated_at=None):
        self.id = str(_id) if _id else None
        self.email = email.lower().strip() if isinstance(email, str) else ''
        self.first_name = first_name.strip() if isinstance(first_name, str) else ''
        self.last_name = last_name.strip() if isinstance(last_name, str) else ''
        self.password_hash = password_hash
        self.phone = phone
        self.role = role
        self.active = is_active
        self.notifications = notifications or default_notifications()
        self.licences = licences or []  # [{"state", "licence_number", "licence_type"}]
        self.signature = signature
        self.password_set = password_set
        # {"reset"|"setup": {"hash", "expires"}}; only hashes of emailed tokens are stored
        self.password_tokens = password_tokens or {}
        self.created_at = created_at or datetime.utcnow()
        self.updated_at = updated_at or datetime.utcnow()

    @property
    def is_active(self):
        return self.active

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    def set_password(self, password):
        """Hash and set password"""
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check if password is correct"""
        if not self.password_hash or password is None:
            return False
        return check_password_hash(self.password_hash, password)

    def has_permission(self, *permissions):
        return has_permission(self.role, *permissions)

    def generate_auth_token(self):
        """Sign a JWT carrying the user's id, email and role"""
        expires = datetime.utcnow() + timedelta(days=current_app.config['JWT_EXPIRE_DAYS'])
        payload = {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'iat': datetime.utcnow(),
            'exp': expires,
            # Unique per token so a reissued token never matches a blacklisted one
            'jti': secrets.token_hex(8),
        }
        return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm='HS256')

    def issue_password_token(self, kind='reset'):
        """Create a one-hour reset or setup token; returns the raw token to email.

        Issuing a token replaces any earlier one of the same kind. The caller
        saves the user.
        """
        if kind not in PASSWORD_TOKEN_KINDS:
            raise ValueError(f'Unknown password token kind: {kind}')
        token = secrets.token_hex(32)
        self.password_tokens[kind] = {
            'hash': generate_password_hash(token),
            'expires': datetime.utcnow() + timedelta(hours=PASSWORD_TOKEN_HOURS),
        }
        return token

    def check_password_token(self, token, kind='reset'):
        stored = self.password_tokens.get(kind)
        if not stored or not isinstance(token, str) or not token:
            return False
        if not stored.get('expires') or stored['expires'] <= datetime.utcnow():
            return False
        return check_password_hash(stored['hash'], token)

    def clear_password_token(self, kind='reset'):
        self.password_tokens.pop(kind, None)

    def laa_licence_number(self):
        """Licence number of the user's Asbestos Assessor licence, if any"""
        for licence in self.licences:
            if licence.get('licence_type') in LAA_LICENCE_TYPES:
                return licence.get('licence_number')
        return None

    def validate(self):
        if not self.email or '@' not in self.email:
            raise ValidationError('A valid email is required')
        if not self.first_name or not self.last_name:
            raise ValidationError('First name and last name are required')
        if self.role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        if not self.password_hash:
            raise ValidationError('Password is required')
        for licence in self.licences:
            if not isinstance(licence, dict) or not licence.get('licence_number'):
                raise ValidationError('Each licence needs a licence_number')

    def save(self):
        """Save user to database"""
        self.validate()
        db = db_instance.get_db()
        self.updated_at = datetime.utcnow()
        user_data = {
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'password_hash': self.password_hash,
            'phone': self.phone,
            'role': self.role,
            'is_active': self.active,
            'notifications': self.notifications,
            'licences': self.licences,
            'signature': self.signature,
            'password_set': self.password_set,
            'password_tokens': self.password_tokens,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

        if self.id:
            db.users.update_one(
                {'_id': to_object_id(self.id)},
                {'$set': user_data}
            )
        else:
            result = db.users.insert_one(user_data)
            self.id = str(result.inserted_id)

        return self

    @staticmethod
    def from_document(user_data):
        return User(
            email=user_data['email'],
            first_name=user_data.get('first_name'),
            last_name=user_data.get('last_name'),
            password_hash=user_data.get('password_hash'),
            phone=user_data.get('phone'),
            role=user_data.get('role', 'employee'),
            is_active=user_data.get('is_active', True),
            notifications=user_data.get('notifications'),
            licences=user_data.get('licences', []),
            signature=user_data.get('signature'),
            password_set=user_data.get('password_set', True),
            password_tokens=user_data.get('password_tokens'),
            _id=user_data['_id'],
            created_at=user_data.get('created_at'),
            updated_at=user_data.get('updated_at')
        )

    @staticmethod
    def find_by_email(email):
        """Find user by email"""
        if not isinstance(email, str) or not email.strip():
            return None
        db = db_instance.get_db()
        user_data = db.users.find_one({'email': email.lower().strip()})
        return User.from_document(user_data) if user_data else None

    @staticmethod
    def find_by_id(user_id):
        """Find user by ID"""
        oid = to_object_id(user_id)
        if oid is None:
            return None
        db = db_instance.get_db()
        user_data = db.users.find_one({'_id': oid})
        return User.from_document(user_data) if user_data else None

    @staticmethod
    def find_all(include_inactive=False):
        db = db_instance.get_db()
        query = {} if include_inactive else {'is_active': {'$ne': False}}
        cursor = db.users.find(query).sort([('first_name', 1), ('last_name', 1)])
        return [User.from_document(user_data) for user_data in cursor]

    @staticmethod
    def find_first_admin():
        db = db_instance.get_db()
        user_data = db.users.find_one({'role': 'admin', 'is_active': {'$ne': False}})
        return User.from_document(user_data) if user_data else None

    @staticmethod
    def find_by_display_name(name):
        """Find a user from a free-text name such as a clearance's LAA"""
        if not name or not name.strip():
            return None
        db = db_instance.get_db()
        parts = name.strip().split()
        first = re.escape(parts[0])
        last = re.escape(parts[1]) if len(parts) > 1 else ''
        whole = re.escape(name.strip())
        query = {'$or': [
            {'first_name': {'$regex': first, '$options': 'i'},
             'last_name': {'$regex': last, '$options': 'i'}},
            {'first_name': {'$regex': whole, '$options': 'i'}},
            {'last_name': {'$regex': whole, '$options': 'i'}},
        ]}
        user_data = db.users.find_one(query)
        return User.from_document(user_data) if user_data else None

    @staticmethod
    def summaries(user_ids):
        """Map of id -> {id, first_name, last_name} used to populate references"""
        oids = [oid for oid in (to_object_id(u) for u in user_ids) if oid]
        if not oids:
            return {}
        db = db_instance.get_db()
        cursor = db.users.find({'_id': {'$in': oids}}, {'first_name': 1, 'last_name': 1})
        return {
            str(doc['_id']): {
                'id': str(doc['_id']),
                'first_name': doc.get('first_name'),
                'last_name': doc.get('last_name'),
            }
            for doc in cursor
        }

    def to_dict(self):
        """Convert user to dictionary"""
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'role': self.role,
            'is_active': self.active,
            'notifications': self.notifications,
            'licences': self.licences,
            'signature': self.signature,
            'password_set': self.password_set,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }


def populate_users(document, fields=('created_by', 'updated_by')):
    """Replace user id references in a serialised document with name summaries"""
    ids = [document.get(field) for field in fields if document.get(field)]
    summaries = User.summaries(ids)
    for field in fields:
        ref = document.get(field)
        if ref:
            document[field] = summaries.get(str(ref), {'id': str(ref)})
    return document
