# listing_explorer/session.py
"""Headless search session: drawn polygons, search history and favourites.

Mirrors what the map page keeps in memory. `ListingsClient` talks to the API
over httpx; `SearchSession` records every polygon search in a `SearchHistory`
so earlier searches can be revisited.

The `listing-explorer-search` command (`main`) runs one search from a
GeoJSON file against a running API.
"""
import argparse
import json
import os
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .aggregations import compute_aggregations
from .schemas import ListingOut, SearchAggregations, SearchFilters
from .utils import logger

API_URL = os.getenv("LISTINGS_API_URL", "http://localhost:8000")


class SearchError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ListingsClient:
    """Thin client for the listing API."""

    def __init__(self, base_url: str = None, client: httpx.Client = None, timeout: float = 30.0):
        self.client = client or httpx.Client(
            base_url=base_url or API_URL,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    def _request(self, method, path, **kwargs):
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise SearchError(f"Request to {path} failed: {e}") from e
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail") if isinstance(body, dict) else None
            raise SearchError(str(detail) if detail else f"{method} {path} returned {response.status_code}",
                              status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise SearchError(f"{method} {path} returned invalid JSON",
                              status_code=response.status_code) from e

    def recent(self, limit: int = 100) -> List[ListingOut]:
        data = self._request("GET", "/listings/recent", params={"limit": limit})
        if not isinstance(data, list):
            raise SearchError("GET /listings/recent returned an unexpected body")
        return [ListingOut.model_validate(d) for d in data]

    def search_polygons(self, polygons: List[Dict[str, Any]],
                        filters: Optional[SearchFilters] = None) -> Dict[str, Any]:
        params = {}
        if filters is not None:
            params = {k: v for k, v in filters.model_dump().items() if v is not None}
        data = self._request("POST", "/listings/polygon", json=polygons, params=params)
        if not isinstance(data, dict):
            raise SearchError("POST /listings/polygon returned an unexpected body")
        listings = [ListingOut.model_validate(d) for d in data.get("listings", [])]
        aggregations = data.get("aggregations")
        return {
            "listings": listings,
            "aggregations": SearchAggregations.model_validate(aggregations) if aggregations else None,
        }

    def close(self):
        self.client.close()


class DrawnPolygons:
    """Polygons currently drawn on the map, keyed by feature id."""

    def __init__(self):
        self._features: Dict[str, Dict[str, Any]] = {}

    def handle(self, action: Optional[str], feature: Optional[Dict[str, Any]] = None):
        """Apply a drawing-tool event: create, delete or clear."""
        if action == "create" and feature:
            if (feature.get("geometry") or {}).get("type") != "Polygon":
                return
            feature_id = str(feature.get("id") or uuid.uuid4())
            self._features[feature_id] = dict(feature, id=feature_id)
        elif action == "delete" and feature:
            self._features.pop(str(feature.get("id")), None)
        elif action == "clear" or not action:
            self._features.clear()

    @property
    def features(self) -> List[Dict[str, Any]]:
        return list(self._features.values())

    def __len__(self):
        return len(self._features)


@dataclass
class SearchResult:
    polygons: List[Dict[str, Any]]
    listings: List[ListingOut]
    aggregations: Optional[SearchAggregations] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SearchHistory:
    """Past searches, newest first; one of them is active."""

    def __init__(self):
        self.results: List[SearchResult] = []
        self.active_index = 0

    def record(self, result: SearchResult) -> SearchResult:
        self.results.insert(0, result)
        self.active_index = 0
        return result

    @property
    def active(self) -> Optional[SearchResult]:
        return self.results[self.active_index] if self.results else None

    def older(self) -> Optional[SearchResult]:
        if self.active_index < len(self.results) - 1:
            self.active_index += 1
        return self.active

    def newer(self) -> Optional[SearchResult]:
        if self.active_index > 0:
            self.active_index -= 1
        return self.active

    @property
    def navigable(self) -> bool:
        return len(self.results) > 1

    @property
    def position(self) -> str:
        if not self.results:
            return "0/0"
        return f"{self.active_index + 1}/{len(self.results)}"

    def clear(self):
        self.results.clear()
        self.active_index = 0

    def __len__(self):
        return len(self.results)


class SearchSession:
    def __init__(self, client: ListingsClient = None):
        self.client = client or ListingsClient()
        self.polygons = DrawnPolygons()
        self.history = SearchHistory()
        self.listings: List[ListingOut] = []
        self._selected: Dict[str, ListingOut] = {}

    def fetch_recent(self, limit: int = 100) -> List[ListingOut]:
        self.listings = self.client.recent(limit=limit)
        return self.listings

    def search_all_regions(self, filters: Optional[SearchFilters] = None) -> SearchResult:
        if not len(self.polygons):
            raise SearchError("Please draw a polygon on the map first")
        polygons = self.polygons.features
        data = self.client.search_polygons(polygons, filters)
        listings = data["listings"]
        result = self.history.record(SearchResult(
            polygons=polygons,
            listings=listings,
            aggregations=data["aggregations"] or compute_aggregations(listings),
        ))
        self.listings = listings
        logger.info("Search %s: %d listing(s) in %d region(s)", result.id, len(listings), len(polygons))
        return result

    def select_listing(self, listing: ListingOut):
        self._selected.setdefault(listing.id, listing)

    def clear_selection(self):
        self._selected.clear()

    def selected(self, assumable_only: bool = False) -> List[ListingOut]:
        items = list(self._selected.values())
        if assumable_only:
            items = [l for l in items if l.is_assumable]
        return items


def main(argv=None, client: ListingsClient = None):
    """Search the regions in a GeoJSON file and print the listings summary.

    Usage: listing-explorer-search REGIONS.geojson [--min-price N] [--max-price N] [--assumable-only]
    """
    parser = argparse.ArgumentParser(description="Polygon search against the listing API")
    parser.add_argument("regions", help="GeoJSON file: Feature, list of Features or FeatureCollection")
    parser.add_argument("--api-url", default=None, help=f"API base URL (default {API_URL})")
    parser.add_argument("--min-price", type=float)
    parser.add_argument("--max-price", type=float)
    parser.add_argument("--assumable-only", action="store_true")
    args = parser.parse_args(argv)

    try:
        with open(args.regions, "r", encoding="utf-8") as fh:
            regions = json.load(fh)
        filters = SearchFilters(min_price=args.min_price, max_price=args.max_price,
                                assumable_only=args.assumable_only)
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    if isinstance(regions, dict) and regions.get("type") == "FeatureCollection":
        regions = regions.get("features") or []
    elif not isinstance(regions, list):
        regions = [regions]

    session = SearchSession(client or ListingsClient(base_url=args.api_url))
    for feature in regions:
        if not isinstance(feature, dict):
            continue
        if feature.get("type") == "Polygon":
            feature = {"type": "Feature", "properties": {}, "geometry": feature}
        session.polygons.handle("create", feature)
    try:
        result = session.search_all_regions(filters)
    except SearchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps({
        "search_id": result.id,
        "regions": len(result.polygons),
        "aggregations": result.aggregations.model_dump(),
        "listings": [{"id": l.id, "address": l.address, "price": l.price} for l in result.listings],
    }, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
