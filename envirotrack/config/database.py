from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import OperationFailure
from pymongo.uri_parser import parse_uri

from envirotrack.utils.logging_config import get_logger

logger = get_logger('envirotrack.database')

DEFAULT_DB_NAME = 'envirotrack'


class Database:
    def __init__(self):
        self.client = None
        self.db = None

    def initialize(self, app, client=None):
        """Initialize database connection and indexes"""
        uri = app.config['MONGODB_URI']
        self.client = client or MongoClient(uri)
        self.db = self.client[self._database_name(app.config.get('MONGODB_DB'), uri)]
        self.create_indexes(token_ttl_days=app.config.get('JWT_EXPIRE_DAYS', 7))
        logger.info('Connected to MongoDB database %s', self.db.name)

    @staticmethod
    def _database_name(configured, uri):
        if configured:
            return configured
        try:
            return parse_uri(uri).get('database') or DEFAULT_DB_NAME
        except Exception:
            return DEFAULT_DB_NAME

    def create_indexes(self, token_ttl_days=7):
        db = self.db
        db.users.create_index('email', unique=True)
        db.token_blacklist.create_index('token', unique=True)
        db.token_blacklist.create_index([('user_id', ASCENDING), ('invalidated_at', ASCENDING)])
        self._ensure_blacklist_ttl(token_ttl_days * 24 * 60 * 60)
        db.report_templates.create_index('template_type', unique=True)
        db.report_templates.create_index([('template_type', ASCENDING), ('created_at', DESCENDING)])
        db.custom_data_fields.create_index([('type', ASCENDING), ('is_active', ASCENDING)])
        db.custom_data_field_groups.create_index([('type', ASCENDING), ('is_active', ASCENDING)])
        db.lead_clearances.create_index([('project_id', ASCENDING), ('status', ASCENDING)])
        db.lead_clearances.create_index('clearance_date')
        db.lead_clearances.create_index('lead_removal_job_id')
        db.lead_clearances.create_index([('project_id', ASCENDING), ('clearance_date', ASCENDING)])
        db.invoices.create_index('invoice_id', unique=True)
        db.invoices.create_index('xero_invoice_id')
        db.xero_tokens.create_index('created_at')

    def _ensure_blacklist_ttl(self, seconds):
        """Blacklist entries expire once every token they could match has expired"""
        try:
            self.db.token_blacklist.create_index('invalidated_at', expireAfterSeconds=seconds)
        except OperationFailure:
            # JWT_EXPIRE_DAYS changed since the index was built
            self.db.command('collMod', 'token_blacklist',
                            index={'keyPattern': {'invalidated_at': 1}, 'expireAfterSeconds': seconds})

    def get_db(self):
        """Get database instance"""
        return self.db

    def close(self):
        """Close database connection"""
        if self.client:
            self.client.close()


# Global database instance
db_instance = Database()
