"""
Cache endpoints.

Endpoints:
    GET  /cache?action=status               - Cache metadata vs live source counts
    GET  /cache?action=get&cacheKey=KEY     - Stored snapshot (404 when absent)
    POST /cache/sync?cacheKey=KEY|all       - Rebuild snapshots from source tables
"""

from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from propmatch.api.routes import get_config, get_store
from propmatch.cache import CacheCoordinator, to_timestamp
from propmatch.exceptions import ValidationError

cache_bp = Blueprint('cache', __name__)


def _coordinator() -> CacheCoordinator:
    return CacheCoordinator.from_config(get_store(), get_config())


@cache_bp.route('', methods=['GET'])
def cache_index():
    action = request.args.get('action')

    if action == 'status':
        return jsonify(_coordinator().status())

    if action == 'get':
        cache_key = request.args.get('cacheKey')
        if not cache_key:
            raise ValidationError('cacheKey is required', fields=['cacheKey'])
        return jsonify(_coordinator().get_cached_data(cache_key))

    raise ValidationError('Invalid action. Use: status or get', fields=['action'])


@cache_bp.route('/sync', methods=['POST'])
def cache_sync():
    cache_key = request.args.get('cacheKey')
    if not cache_key:
        raise ValidationError('Invalid cacheKey. Use: properties, buyers, matches, or all',
                              fields=['cacheKey'])

    results = _coordinator().sync(cache_key)
    return jsonify({
        'success': True,
        'syncedAt': to_timestamp(datetime.now(timezone.utc)),
        'results': results,
    })
