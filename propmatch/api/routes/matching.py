"""
Matching endpoints.

Endpoints:
    GET    /matching/aggregated   - Buyers or properties with pre-joined matches
    GET    /matching/buyer        - One buyer (by contact id) with its matches
    POST   /matching/matches      - Create a match (409 on duplicate pair)
    POST   /matching/run          - Score buyers against properties and write matches
    DELETE /matching/clear        - Delete every match record
"""

import logging

from flask import Blueprint, jsonify, request

from propmatch.api.routes import get_config, get_store, parse_flag, parse_limit
from propmatch.assembler import aggregate, assemble_buyer_views
from propmatch.exceptions import ValidationError
from propmatch.matches import MatchRunner, clear_all_matches, create_match, validate_min_score
from propmatch.resolver import Resolver

logger = logging.getLogger(__name__)

matching_bp = Blueprint('matching', __name__)


@matching_bp.route('/aggregated', methods=['GET'])
def aggregated():
    """
    Buyers or properties with their matches in ~3 backend requests.

    Query params:
        type: 'buyers' or 'properties' (required)
        limit: page size (default 50, max 100)
        offset: opaque cursor from a previous response's nextOffset
        sort: 'score' to order matches by score descending
    """
    config = get_config()
    entity_type = request.args.get('type')
    limit = parse_limit(request.args.get('limit'), config.DEFAULT_PAGE_LIMIT, config.MAX_PAGE_LIMIT)
    offset = request.args.get('offset') or None
    sort = parse_flag(request.args.get('sort'))

    logger.info(f"Aggregated request: type={entity_type}, limit={limit}, offset={offset or ''}")

    resolver = Resolver(get_store(), tables=config.TABLES)
    return jsonify(aggregate(resolver, entity_type, limit=limit, offset=offset, sort=sort))


@matching_bp.route('/buyer', methods=['GET'])
def buyer_matches():
    """Single buyer view looked up by external contact id."""
    contact_id = request.args.get('contactId')
    if not contact_id:
        raise ValidationError('contactId is required', fields=['contactId'])

    resolver = Resolver(get_store(), tables=get_config().TABLES)
    resolution = resolver.resolve_buyer_by_contact(contact_id)
    if resolution is None:
        return jsonify({'error': f'Buyer not found: {contact_id}'}), 404

    view = assemble_buyer_views(resolution, sort=parse_flag(request.args.get('sort')))[0]
    return jsonify({
        'data': view.to_dict(),
        'stats': {
            'matches': len(resolution.matches),
            'properties': len(resolution.counterparts),
            'requests': resolution.request_count,
            'timeMs': resolution.elapsed_ms,
        },
    })


@matching_bp.route('/matches', methods=['POST'])
def create():
    """
    Create a match.

    Expects JSON body with buyerRecordId, propertyRecordId, score and
    optional distance, reasoning, status, isPriority.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON',
                              fields=['buyerRecordId', 'propertyRecordId', 'score'])

    match = create_match(
        get_store(),
        get_config().TABLES,
        buyer_id=data.get('buyerRecordId'),
        property_id=data.get('propertyRecordId'),
        score=data.get('score'),
        distance=data.get('distance'),
        reasoning=data.get('reasoning', ''),
        status=data.get('status'),
        is_priority=data.get('isPriority', False),
    )
    return jsonify({'success': True, 'match': match.to_snapshot()}), 201


@matching_bp.route('/clear', methods=['DELETE'])
def clear():
    """Delete all match records in backend-sized batches."""
    config = get_config()
    deleted = clear_all_matches(get_store(), config.TABLES.matches, batch_size=config.DELETE_BATCH_SIZE)
    message = f'Deleted {deleted} matches' if deleted else 'No matches to delete'
    return jsonify({'success': True, 'message': message, 'deletedCount': deleted})


@matching_bp.route('/run', methods=['POST'])
def run():
    """
    Generate matches.

    JSON body (all optional):
        minScore: only pairs scoring at least this are written (default from config)
        refreshAll: rescore pairs that already have a match (full runs only)
        contactId: run for this buyer only
        propertyCode: run for this property only
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    config = get_config()
    min_score = data.get('minScore')
    runner = MatchRunner(
        get_store(),
        tables=config.TABLES,
        min_score=config.MIN_MATCH_SCORE if min_score is None else validate_min_score(min_score),
    )

    contact_id = data.get('contactId') or request.args.get('contactId')
    property_code = data.get('propertyCode') or request.args.get('propertyCode')

    if contact_id:
        outcome = runner.run_for_buyer(contact_id)
        if outcome is None:
            return jsonify({'error': f'Buyer not found: {contact_id}'}), 404
        buyer, stats = outcome
        found = stats.matches_created + stats.matches_updated
        message = f'Found {found} matches for {buyer.full_name or contact_id}'
    elif property_code:
        outcome = runner.run_for_property(property_code)
        if outcome is None:
            return jsonify({'error': f'Property not found: {property_code}'}), 404
        _, stats = outcome
        found = stats.matches_created + stats.matches_updated
        message = f'Found {found} buyer matches for property {property_code}'
    else:
        stats = runner.run_all(refresh_all=parse_flag(str(data.get('refreshAll', ''))))
        message = (f'Matching complete! Created {stats.matches_created} new matches, '
                   f'skipped {stats.duplicates_skipped} duplicates.')

    return jsonify({'success': True, 'message': message, 'stats': stats.to_dict()})
