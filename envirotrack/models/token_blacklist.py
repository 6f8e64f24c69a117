import secrets
from datetime import datetime

from pymongo.errors import DuplicateKeyError

from envirotrack.config.database import db_instance
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import to_object_id

logger = get_logger('envirotrack.auth')

REASONS = ('password_reset', 'admin_reset', 'manual_logout', 'security_breach')


class TokenBlacklist:
    @staticmethod
    def is_blacklisted(token):
        db = db_instance.get_db()
        return db.token_blacklist.find_one({'token': token}) is not None

    @staticmethod
    def blacklist_token(token, user_id, reason='password_reset'):
        """Invalidate a token; blacklisting the same token twice is a no-op"""
        if reason not in REASONS:
            reason = 'password_reset'
        db = db_instance.get_db()
        try:
            db.token_blacklist.insert_one({
                'token': token,
                'user_id': to_object_id(user_id),
                'reason': reason,
                'invalidated_at': datetime.utcnow()
            })
        except DuplicateKeyError:
            logger.debug('Token for user %s was already blacklisted', user_id)
        return True

    @staticmethod
    def invalidate_user_tokens(user_id, reason='password_reset'):
        """Revoke every token issued to a user up to now.

        Recorded as a marker entry rather than per token, since issued tokens
        are not stored. The timestamp is truncated to whole seconds to match
        the JWT ``iat`` claim, so a token issued in the same second survives.
        """
        if reason not in REASONS:
            reason = 'password_reset'
        db = db_instance.get_db()
        db.token_blacklist.insert_one({
            'token': f'user:{user_id}:{secrets.token_hex(8)}',
            'scope': 'user',
            'user_id': to_object_id(user_id),
            'reason': reason,
            'invalidated_at': datetime.utcnow().replace(microsecond=0)
        })
        logger.info('Revoked all sessions for user %s (%s)', user_id, reason)

    @staticmethod
    def user_tokens_revoked(user_id, issued_at):
        """True when the user's sessions were revoked after ``issued_at``"""
        db = db_instance.get_db()
        query = {'scope': 'user', 'user_id': to_object_id(user_id)}
        if issued_at is not None:
            query['invalidated_at'] = {'$gt': issued_at}
        return db.token_blacklist.find_one(query) is not None
