from datetime import datetime, timedelta

from envirotrack.config.database import db_instance
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError, to_object_id

logger = get_logger('envirotrack.xero')


class XeroToken:
    """The stored Xero OAuth token set. Only one document is kept."""

    def __init__(self, access_token, refresh_token, expires_in, expires_at=None, token_type='Bearer',
                 scope='', id_token=None, tenant_id=None, _id=None, created_at=None, updated_at=None):
        self.id = str(_id) if _id else None
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_in = expires_in
        self.expires_at = expires_at or datetime.utcnow() + timedelta(seconds=int(expires_in or 0))
        self.token_type = token_type or 'Bearer'
        self.scope = scope or ''
        self.id_token = id_token
        self.tenant_id = tenant_id
        self.created_at = created_at or datetime.utcnow()
        self.updated_at = updated_at or datetime.utcnow()

    def expires_within(self, seconds):
        return self.expires_at <= datetime.utcnow() + timedelta(seconds=seconds)

    def validate(self):
        if not self.access_token:
            raise ValidationError('Invalid token set: missing access_token')
        if not self.refresh_token:
            raise ValidationError('Invalid token set: missing refresh_token')
        if self.token_type != 'Bearer':
            raise ValidationError('token_type must be Bearer')

    @staticmethod
    def from_document(data):
        return XeroToken(
            access_token=data['access_token'],
            refresh_token=data['refresh_token'],
            expires_in=data.get('expires_in'),
            expires_at=data.get('expires_at'),
            token_type=data.get('token_type'),
            scope=data.get('scope'),
            id_token=data.get('id_token'),
            tenant_id=data.get('tenant_id'),
            _id=data['_id'],
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at')
        )

    @staticmethod
    def get():
        """Newest stored token, or None when Xero is not connected"""
        db = db_instance.get_db()
        data = db.xero_tokens.find_one(sort=[('created_at', -1)])
        return XeroToken.from_document(data) if data else None

    @staticmethod
    def store(token_set, tenant_id=None):
        """Replace any stored token with token_set (a Xero token response dict)"""
        previous = XeroToken.get()
        token = XeroToken(
            access_token=token_set.get('access_token'),
            refresh_token=token_set.get('refresh_token') or (previous.refresh_token if previous else None),
            expires_in=token_set.get('expires_in'),
            expires_at=token_set.get('expires_at'),
            token_type=token_set.get('token_type'),
            scope=token_set.get('scope'),
            id_token=token_set.get('id_token'),
            tenant_id=tenant_id or (previous.tenant_id if previous else None),
        )
        token.validate()

        db = db_instance.get_db()
        db.xero_tokens.delete_many({})
        result = db.xero_tokens.insert_one({
            'access_token': token.access_token,
            'refresh_token': token.refresh_token,
            'expires_in': token.expires_in,
            'expires_at': token.expires_at,
            'token_type': token.token_type,
            'scope': token.scope,
            'id_token': token.id_token,
            'tenant_id': token.tenant_id,
            'created_at': token.created_at,
            'updated_at': token.updated_at
        })
        token.id = str(result.inserted_id)
        logger.info('Stored Xero token set expiring at %s', token.expires_at.isoformat())
        return token

    @staticmethod
    def set_tenant_id(tenant_id):
        db = db_instance.get_db()
        token = XeroToken.get()
        if token:
            db.xero_tokens.update_one(
                {'_id': to_object_id(token.id)},
                {'$set': {'tenant_id': tenant_id, 'updated_at': datetime.utcnow()}}
            )

    @staticmethod
    def delete_all():
        return db_instance.get_db().xero_tokens.delete_many({}).deleted_count
