"""
Matching API Server

Flask application factory. Serves aggregated buyer/property views, cache
status and snapshots, and match maintenance endpoints to the dashboard.
"""

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from propmatch.api.routes.cache import cache_bp
from propmatch.api.routes.health import health_bp
from propmatch.api.routes.matching import matching_bp
from propmatch.config import Config
from propmatch.exceptions import (
    CacheNotFound, ConfigurationError, DuplicateRecordError, RecordStoreError, ValidationError,
)

logger = logging.getLogger(__name__)


def create_app(config=None, store=None) -> Flask:
    """
    Build the Flask app.

    Args:
        config: Config object (loaded from the environment when omitted)
        store: Record store to use instead of a per-request AirtableClient
    """
    config = config or Config()

    app = Flask(__name__)
    app.config['PROPMATCH_CONFIG'] = config
    app.config['PROPMATCH_STORE'] = store

    CORS(app, resources={r"/api/*": {"origins": config.CORS_ALLOWED_ORIGINS}})

    @app.before_request
    def require_credentials():
        """Fail every /api/* request before any I/O when credentials are missing."""
        if not request.path.startswith('/api/') or request.method == 'OPTIONS':
            return None
        # Unknown path or wrong method: let routing answer 404/405
        if request.url_rule is None:
            return None
        if config.is_configured():
            return None

        missing = config.missing_credentials()
        logger.error(f"Airtable credentials not configured (missing: {', '.join(missing)})")
        return jsonify({
            'error': 'Airtable credentials not configured',
            'message': 'Please add AIRTABLE_API_KEY and AIRTABLE_BASE_ID to environment variables',
            'missing': missing,
        }), 500

    app.register_blueprint(health_bp)
    app.register_blueprint(matching_bp, url_prefix='/api/matching')
    app.register_blueprint(cache_bp, url_prefix='/api/cache')

    _register_error_handlers(app)
    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({'error': str(e), 'required': e.fields}), 400

    @app.errorhandler(CacheNotFound)
    def handle_cache_miss(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(DuplicateRecordError)
    def handle_duplicate(e):
        return jsonify({'error': str(e), 'recordId': e.record_id}), 409

    @app.errorhandler(ConfigurationError)
    def handle_configuration(e):
        return jsonify({'error': 'Airtable credentials not configured', 'details': str(e)}), 500

    @app.errorhandler(RecordStoreError)
    def handle_upstream(e):
        logger.error(f"Upstream failure: {e}")
        body = {'error': 'Upstream request failed', 'details': str(e)}
        if e.status_code:
            body['status'] = e.status_code
        return jsonify(body), 500

    @app.errorhandler(HTTPException)
    def handle_http(e):
        if e.code == 405:
            return jsonify({'error': 'Method not allowed'}), 405
        return jsonify({'error': e.name, 'details': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.error(f"Unhandled error on {request.method} {request.path}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500
