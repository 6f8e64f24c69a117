# app.py
from datetime import date, datetime

from bson import ObjectId
from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from flask_login import LoginManager
from flask_cors import CORS
from dotenv import load_dotenv
import os

from envirotrack.config.database import db_instance
from envirotrack.services.xero_client import XeroClient
from envirotrack.utils.auth_middleware import load_user_from_request, unauthorized_response
from envirotrack.utils.logging_config import get_logger, setup_logging
from envirotrack.routes.auth import auth_bp
from envirotrack.routes.users import users_bp
from envirotrack.routes.report_templates import report_templates_bp
from envirotrack.routes.custom_data_fields import custom_data_fields_bp
from envirotrack.routes.custom_data_field_groups import custom_data_field_groups_bp
from envirotrack.routes.lead_clearances import lead_clearances_bp
from envirotrack.routes.invoices import invoices_bp
from envirotrack.routes.xero import xero_bp

# Load environment variables
load_dotenv()

logger = get_logger('envirotrack.app')


class MongoJSONProvider(DefaultJSONProvider):
    """JSON provider that understands ObjectIds and naive UTC datetimes"""

    @staticmethod
    def default(o):
        if isinstance(o, ObjectId):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat() + ('Z' if o.tzinfo is None else '')
        if isinstance(o, date):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def load_config(app, overrides=None):
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'change-me-in-production')
    app.config['JWT_SECRET'] = os.getenv('JWT_SECRET', app.config['SECRET_KEY'])
    app.config['JWT_EXPIRE_DAYS'] = int(os.getenv('JWT_EXPIRE_DAYS', 7))
    app.config['MONGODB_URI'] = os.getenv('MONGODB_URI', 'mongodb://localhost:27017/envirotrack')
    app.config['MONGODB_DB'] = os.getenv('MONGODB_DB')
    app.config['FRONTEND_URL'] = os.getenv('FRONTEND_URL', 'http://localhost:3000')
    app.config['CORS_ORIGINS'] = os.getenv('CORS_ORIGINS', app.config['FRONTEND_URL'])
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['XERO_CLIENT_ID'] = os.getenv('XERO_CLIENT_ID')
    app.config['XERO_CLIENT_SECRET'] = os.getenv('XERO_CLIENT_SECRET')
    app.config['XERO_REDIRECT_URI'] = os.getenv('XERO_REDIRECT_URI')
    app.config['SMTP_HOST'] = os.getenv('SMTP_HOST')
    app.config['SMTP_PORT'] = int(os.getenv('SMTP_PORT', 587))
    app.config['SMTP_USE_TLS'] = os.getenv('SMTP_USE_TLS', 'true').lower() == 'true'
    app.config['SMTP_USERNAME'] = os.getenv('SMTP_USERNAME')
    app.config['SMTP_PASSWORD'] = os.getenv('SMTP_PASSWORD')
    app.config['MAIL_FROM'] = os.getenv('MAIL_FROM')
    app.config['MAX_CONTENT_LENGTH'] = int(os.getenv('MAX_CONTENT_LENGTH', 50 * 1024 * 1024))  # photos are base64
    if overrides:
        app.config.update(overrides)


def register_error_handlers(app):
    messages = {
        400: 'Bad request',
        401: 'Authentication required',
        403: 'Permission denied',
        404: 'Resource not found',
        405: 'Method not allowed',
        413: 'Request body too large',
    }

    def make_handler(status, message):
        def handler(error):
            return jsonify({'error': message}), status
        return handler

    for status, message in messages.items():
        app.register_error_handler(status, make_handler(status, message))

    @app.errorhandler(500)
    def internal_error(error):
        logger.error('Unhandled server error: %s', error)
        return jsonify({'error': 'Internal server error'}), 500


def create_app(config_overrides=None):
    """Application factory.

    ``config_overrides`` is applied after the environment; a ``MONGO_CLIENT``
    entry replaces the MongoClient (tests pass a mongomock client).
    """
    app = Flask(__name__)
    app.json = MongoJSONProvider(app)
    app.url_map.strict_slashes = False

    load_config(app, config_overrides)
    setup_logging(app.config['LOG_LEVEL'])

    # Initialize extensions
    origins = [o.strip() for o in app.config['CORS_ORIGINS'].split(',') if o.strip()]
    CORS(app, origins=origins, supports_credentials=True)

    # Initialize database
    db_instance.initialize(app, client=app.config.get('MONGO_CLIENT'))

    # One Xero client, and so one HTTP session, per app
    app.extensions['xero_client'] = XeroClient.from_config(app.config)

    # Initialize Flask-Login (stateless: every request carries a bearer JWT)
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.request_loader(load_user_from_request)
    login_manager.unauthorized_handler(unauthorized_response)

    # Register blueprints
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(report_templates_bp, url_prefix='/api/report-templates')
    app.register_blueprint(custom_data_fields_bp, url_prefix='/api/custom-data-fields')
    app.register_blueprint(custom_data_field_groups_bp, url_prefix='/api/custom-data-field-groups')
    app.register_blueprint(lead_clearances_bp, url_prefix='/api/lead-clearances')
    app.register_blueprint(invoices_bp, url_prefix='/api/invoices')
    app.register_blueprint(xero_bp, url_prefix='/api/xero')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'}), 200

    register_error_handlers(app)

    from envirotrack.cli import maintenance_cli
    app.cli.add_command(maintenance_cli)

    logger.info('EnviroTrack API started')
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=os.getenv('FLASK_DEBUG', 'false').lower() == 'true',
            host='0.0.0.0', port=int(os.getenv('PORT', 5000)))
