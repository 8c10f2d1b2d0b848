"""
Match Scoring

Field-based buyer/property scoring on a 0-100 scale:

    location  0-40   property ZIP in the buyer's preferred ZIP codes
    beds      0-25   bedroom count against the buyer's desired count
    baths     0-15   bathroom count against the buyer's desired count
    budget    0-20   buyer down payment as a share of the price

A property inside a preferred ZIP is a priority match. No geocoding is
involved; ZIPs come from the property's Zip Code column or, failing that,
from its address.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from propmatch.models import Buyer, Property

ZIP_PATTERN = re.compile(r'\b\d{5}\b')


# ---------------------------------------------------------------
# ZIP helpers
# ---------------------------------------------------------------

def normalize_zip(value) -> str:
    """Strip spaces/dashes and keep the 5-digit prefix ('28801-1234' -> '28801')."""
    return re.sub(r'[\s-]', '', str(value or ''))[:5]


def is_valid_zip(value: str) -> bool:
    return bool(re.fullmatch(r'\d{5}', value or ''))


def extract_zip(address: Optional[str]) -> Optional[str]:
    """First 5-digit ZIP in an address string, or None."""
    if not address:
        return None
    found = ZIP_PATTERN.search(address)
    return found.group(0) if found else None


def property_zip(prop: Property) -> Optional[str]:
    """The property's ZIP from its Zip Code column, else from its address."""
    if prop.zip_code:
        zip_code = normalize_zip(prop.zip_code)
        if is_valid_zip(zip_code):
            return zip_code
    return extract_zip(prop.address)


def in_preferred_zip(prop: Property, preferred: Iterable[str]) -> bool:
    wanted = {normalize_zip(z) for z in preferred}
    wanted.discard('')
    zip_code = property_zip(prop)
    return bool(zip_code and zip_code in wanted)


# ---------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------

@dataclass
class ScorePoints:
    """Maximum points per factor."""
    location: int = 40
    beds: int = 25
    baths: int = 15
    budget: int = 20


@dataclass
class MatchScore:
    """Scoring result for one buyer/property pair."""
    score: int
    location_score: int
    beds_score: int
    baths_score: int
    budget_score: int
    is_priority: bool = False
    reasoning: str = ''
    highlights: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)

    @property
    def quality(self) -> str:
        if self.score >= 80:
            return 'Excellent Match'
        if self.score >= 60:
            return 'Good Match'
        if self.score >= 40:
            return 'Fair Match'
        return 'Limited Match'

    def notes(self) -> str:
        """Text stored in the match's notes column."""
        notes = self.reasoning
        if self.highlights:
            notes += f"\n\nHighlights: {', '.join(self.highlights)}"
        if self.concerns:
            notes += f"\n\nConcerns: {', '.join(self.concerns)}"
        return notes


def _format_count(value) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)


class MatchScorer:
    """
    Scores how well a property fits a buyer's stated requirements.

    Missing data on either side earns a neutral score for that factor
    rather than zero, so sparse records are not pushed below the cutoff.
    """

    def __init__(self, points: Optional[ScorePoints] = None):
        self.points = points or ScorePoints()

    def score(self, buyer: Buyer, prop: Property) -> MatchScore:
        highlights: List[str] = []
        concerns: List[str] = []
        breakdown: List[str] = []

        location, is_priority = self._score_location(buyer, prop, highlights, concerns, breakdown)
        beds = self._score_beds(buyer, prop, highlights, concerns, breakdown)
        baths = self._score_baths(buyer, prop, highlights, concerns, breakdown)
        budget = self._score_budget(buyer, prop, highlights, concerns, breakdown)

        total = min(100, round(location + beds + baths + budget))
        result = MatchScore(
            score=total,
            location_score=location,
            beds_score=beds,
            baths_score=baths,
            budget_score=budget,
            is_priority=is_priority,
            highlights=highlights,
            concerns=concerns,
        )

        reasoning = f"{result.quality} (Score: {total}/100)\n\nScore Breakdown:\n"
        reasoning += '\n'.join(f"- {line}" for line in breakdown)
        if is_priority:
            reasoning = f"[PRIORITY] {reasoning}"
        result.reasoning = reasoning
        return result

    def _score_location(self, buyer, prop, highlights, concerns, breakdown) -> Tuple[int, bool]:
        """Location points: full inside a preferred ZIP, neutral with no preference."""
        top = self.points.location

        if not buyer.preferred_zip_codes:
            points = top // 2
            breakdown.append(f"Location: {points}/{top} pts (no ZIP preference set)")
            return points, False

        if in_preferred_zip(prop, buyer.preferred_zip_codes):
            highlights.append('In preferred ZIP code')
            breakdown.append(f"Location: {top}/{top} pts (in preferred ZIP)")
            return top, True

        points = top // 4
        concerns.append('Not in preferred ZIP codes')
        breakdown.append(f"Location: {points}/{top} pts (outside preferred ZIPs)")
        return points, False

    def _score_beds(self, buyer, prop, highlights, concerns, breakdown) -> int:
        top = self.points.beds
        desired, beds = buyer.desired_beds, prop.beds

        if desired and beds:
            label = _format_count(beds)
            if beds == desired:
                points = top
                highlights.append(f"Exact bed count: {label} beds")
                breakdown.append(f"Beds: {points}/{top} pts (exact match: {label} beds)")
                return points
            if abs(beds - desired) == 1:
                points = round(top * 0.6)
                highlights.append(f"Close bed count: {label} beds")
            elif beds > desired:
                points = round(top * 0.4)
                highlights.append(f"{label} beds (more than desired)")
            else:
                points = round(top * 0.2)
                concerns.append(f"Fewer bedrooms: {label} vs {_format_count(desired)} desired")
            diff = beds - desired
            breakdown.append(f"Beds: {points}/{top} pts ({label} beds, {diff:+g} vs desired)")
            return points

        points = round(top * 0.48)
        if beds:
            highlights.append(f"{_format_count(beds)} beds")
        breakdown.append(f"Beds: {points}/{top} pts")
        return points

    def _score_baths(self, buyer, prop, highlights, concerns, breakdown) -> int:
        top = self.points.baths
        desired, baths = buyer.desired_baths, prop.baths

        if desired and baths:
            label = _format_count(baths)
            if baths >= desired:
                highlights.append(f"{label} baths")
                breakdown.append(f"Baths: {top}/{top} pts (meets requirement: {label} baths)")
                return top
            points = top // 3
            concerns.append(f"Fewer bathrooms: {label} vs {_format_count(desired)} desired")
            breakdown.append(f"Baths: {points}/{top} pts ({label} baths, needs {_format_count(desired)})")
            return points

        points = round(top * 0.53)
        if baths:
            highlights.append(f"{_format_count(baths)} baths")
        breakdown.append(f"Baths: {points}/{top} pts")
        return points

    def _score_budget(self, buyer, prop, highlights, concerns, breakdown) -> int:
        top = self.points.budget

        if not (buyer.down_payment and prop.price):
            points = top // 2
            breakdown.append(f"Budget: {points}/{top} pts")
            return points

        ratio = buyer.down_payment / prop.price * 100
        if ratio >= 20:
            points = top
            highlights.append(f"Strong down payment: {ratio:.0f}% of price")
        elif ratio >= 10:
            points = round(top * 0.75)
            highlights.append(f"Adequate down payment: {ratio:.0f}%")
        elif ratio >= 5:
            points = top // 2
            highlights.append(f"Down payment: {ratio:.0f}%")
        else:
            points = top // 4
            concerns.append(f"Low down payment ratio: {ratio:.0f}%")
        breakdown.append(f"Budget: {points}/{top} pts ({ratio:.0f}% down payment ratio)")
        return points
