"""
View Assembler

Joins a Resolution into the denormalized shapes the dashboard renders:
buyer-centric (each buyer with its matches and embedded properties) and
property-centric (each property with its matches and embedded buyers).
"""

from typing import Any, Dict, List, Optional, Union

from propmatch.models import BuyerView, MatchView, PropertyView
from propmatch.resolver import BUYER, Resolution, Resolver


def sort_match_views(views: List[MatchView]) -> List[MatchView]:
    """Score descending, record id ascending."""
    return sorted(views, key=lambda v: (-(v.match.score or 0), v.match.record_id))


def assemble_buyer_views(resolution: Resolution, sort: bool = False) -> List[BuyerView]:
    """
    Build one BuyerView per buyer in the page.

    Matches keep the order the backend returned them in unless sort is set.
    A property that could not be resolved is embedded as None.
    """
    views = []
    for buyer in resolution.primary:
        match_views = [
            MatchView(
                match=match,
                buyer=buyer,
                property=resolution.counterparts.get(match.property_id),
                embed='property',
            )
            for match in resolution.matches
            if buyer.record_id in match.buyer_ids
        ]
        if sort:
            match_views = sort_match_views(match_views)
        views.append(BuyerView(buyer=buyer, matches=match_views))
    return views


def assemble_property_views(resolution: Resolution, sort: bool = False) -> List[PropertyView]:
    """Property-centric counterpart of assemble_buyer_views()."""
    views = []
    for prop in resolution.primary:
        match_views = [
            MatchView(
                match=match,
                buyer=resolution.counterparts.get(match.buyer_id),
                property=prop,
                embed='buyer',
            )
            for match in resolution.matches
            if prop.record_id in match.property_ids
        ]
        if sort:
            match_views = sort_match_views(match_views)
        views.append(PropertyView(property=prop, matches=match_views))
    return views


def assemble(resolution: Resolution, sort: bool = False) -> List[Union[BuyerView, PropertyView]]:
    if resolution.entity_type == BUYER:
        return assemble_buyer_views(resolution, sort=sort)
    return assemble_property_views(resolution, sort=sort)


def build_stats(resolution: Resolution) -> Dict[str, int]:
    primary_key, counterpart_key = (
        ('buyers', 'properties') if resolution.entity_type == BUYER else ('properties', 'buyers')
    )
    return {
        primary_key: len(resolution.primary),
        'matches': len(resolution.matches),
        counterpart_key: len(resolution.counterparts),
        'requests': resolution.request_count,
        'timeMs': resolution.elapsed_ms,
    }


def aggregate(
    resolver: Resolver,
    entity_type: str,
    limit: int = 50,
    offset: Optional[str] = None,
    sort: bool = False,
) -> Dict[str, Any]:
    """Resolve and assemble one page; returns the aggregated response body."""
    resolution = resolver.resolve(entity_type, limit=limit, offset=offset)
    views = assemble(resolution, sort=sort)
    return {
        'data': [v.to_dict() for v in views],
        'nextOffset': resolution.next_offset,
        'stats': build_stats(resolution),
    }
