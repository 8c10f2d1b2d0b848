"""
Health check endpoints.
"""

from flask import Blueprint, jsonify

from propmatch import __version__
from propmatch.api.routes import get_config

health_bp = Blueprint('health', __name__)


@health_bp.route('/')
def index():
    return jsonify({
        'name': 'propmatch API',
        'version': __version__,
        'status': 'running'
    })


@health_bp.route('/health')
def health_check():
    """Basic health check; reports whether backend credentials are present."""
    config = get_config()
    return jsonify({
        'status': 'healthy',
        'service': 'propmatch',
        'airtable': 'configured' if config.is_configured() else 'unconfigured',
    })
