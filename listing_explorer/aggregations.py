# listing_explorer/aggregations.py
"""Summary statistics over a search result set, as shown on the dashboard."""
import statistics
from collections import Counter
from typing import Iterable

from .schemas import SearchAggregations

UNKNOWN_PROPERTY_TYPE = "Unknown"


def _mean(values) -> float:
    return statistics.fmean(values) if values else 0.0


def median_loan_rate(listings) -> float:
    """Median interest rate across assumable listings that carry one, 0 if none."""
    rates = [
        float(l.denormalized_assumable_interest_rate)
        for l in listings
        if l.is_assumable and l.denormalized_assumable_interest_rate is not None
    ]
    return float(statistics.median(rates)) if rates else 0.0


def property_type_histogram(listings):
    counts = Counter((l.property_type or UNKNOWN_PROPERTY_TYPE) for l in listings)
    return dict(counts.most_common())


def compute_aggregations(listings: Iterable) -> SearchAggregations:
    listings = list(listings)
    assumable = [l for l in listings if l.is_assumable]
    return SearchAggregations(
        total_listings=len(listings),
        assumable_listings=len(assumable),
        median_loan_rate=median_loan_rate(assumable),
        avg_price=_mean([float(l.price) for l in listings]),
        avg_assumable_price=_mean([float(l.price) for l in assumable]),
        property_types=property_type_histogram(listings),
    )


def assumable_share(aggregations: SearchAggregations) -> int:
    """Assumable listings as a rounded percentage of the result set."""
    if not aggregations.total_listings:
        return 0
    return round(aggregations.assumable_listings / aggregations.total_listings * 100)
