# listing_explorer/services.py
import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import crud, schemas
from .aggregations import compute_aggregations
from .geometry import parse_polygons, to_wkt
from .utils import logger, retry

# raw MLS key -> listings column
MLS_FIELDS = {
    "id": "id",
    "mlsListingId": "mls_listing_id",
    "mlsProviderId": "mls_provider_id",
    "mlsInstanceId": "mls_instance_id",
    "parcelNumber": "parcel_number",
    "unitNumber": "unit_number",
    "address": "address",
    "city": "city",
    "state": "state",
    "zipCode": "zip_code",
    "price": "price",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "squareFeet": "square_feet",
    "propertyType": "property_type",
    "photoUrls": "photo_urls",
    "status": "status",
    "latitude": "latitude",
    "longitude": "longitude",
    "isAssumable": "is_assumable",
    "denormalizedAssumableInterestRate": "denormalized_assumable_interest_rate",
}
REQUIRED_FIELDS = ("id", "address", "price", "propertyType", "status", "latitude", "longitude")
NUMERIC_FIELDS = ("price", "bedrooms", "bathrooms", "square_feet", "latitude", "longitude",
                  "denormalized_assumable_interest_rate")


def search_polygons(db: Session, payload: Any, filters: Optional[schemas.SearchFilters] = None,
                    with_aggregations: bool = True) -> schemas.PolygonSearchResponse:
    """Listings inside the union of the polygons in `payload`.

    InvalidPolygonError propagates for bad payloads, SQLAlchemyError for
    database failures.
    """
    polygons = parse_polygons(payload)
    filters = filters or schemas.SearchFilters()
    rows = crud.search_in_region(db, [to_wkt(p) for p in polygons], filters.model_dump())
    listings = [schemas.ListingOut.model_validate(r) for r in rows]
    logger.info("Polygon search over %d region(s) matched %d listing(s)", len(polygons), len(listings))
    return schemas.PolygonSearchResponse(
        polygon_count=len(polygons),
        listings=listings,
        aggregations=compute_aggregations(listings) if with_aggregations else None,
    )


def raw_data_hash(record: Dict[str, Any]) -> str:
    canonical = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _to_float(value, field):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} is not a number: {value!r}")


TRUE_STRINGS = ("true", "1", "yes", "y", "t")
FALSE_STRINGS = ("false", "0", "no", "n", "f", "")


def _to_bool(value, field):
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"{field} is not a boolean: {value!r}")
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise ValueError(f"{field} is not a boolean: {value!r}")


def normalize_mls_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Map a raw MLS record onto a `listings` row."""
    if not isinstance(record, dict):
        raise ValueError("MLS record must be an object")
    missing = [k for k in REQUIRED_FIELDS if record.get(k) in (None, "")]
    if missing:
        raise ValueError(f"MLS record missing {', '.join(missing)}")

    row = {col: record.get(key) for key, col in MLS_FIELDS.items()}
    row["id"] = str(row["id"])
    for field in NUMERIC_FIELDS:
        if row.get(field) in (None, ""):
            row[field] = None
            continue
        row[field] = _to_float(row[field], field)

    if not -90 <= row["latitude"] <= 90 or not -180 <= row["longitude"] <= 180:
        raise ValueError(f"coordinates out of range: ({row['latitude']}, {row['longitude']})")
    if row["price"] < 0:
        raise ValueError("price must not be negative")

    photos = row.get("photo_urls") or []
    if isinstance(photos, str):
        photos = [photos]
    row["photo_urls"] = [str(p) for p in photos if p]
    row["is_assumable"] = _to_bool(row.get("is_assumable"), "isAssumable")
    row["raw_data_hash"] = raw_data_hash(record)
    row["raw_json"] = record
    return row


@retry(OperationalError, tries=3, delay=1, backoff=2)
def _upsert(db: Session, row: Dict[str, Any]) -> bool:
    try:
        return crud.upsert_listing(db, row)
    except OperationalError:
        db.rollback()
        raise


def ingest_listing(db: Session, record: Dict[str, Any]) -> bool:
    """Normalize and upsert one record; True when a row was written."""
    row = normalize_mls_record(record)
    written = _upsert(db, row)
    if written:
        logger.info("Ingested listing %s", row["id"])
    else:
        logger.debug("Listing %s unchanged", row["id"])
    return written


def ingest_records(db: Session, records: Iterable[Dict[str, Any]]) -> schemas.IngestResult:
    result = schemas.IngestResult()
    for record in records:
        try:
            if ingest_listing(db, record):
                result.ingested += 1
            else:
                result.unchanged += 1
        except Exception as e:
            db.rollback()
            ref = record.get("id") if isinstance(record, dict) else None
            logger.exception("Failed to ingest MLS record %s: %s", ref, e)
            result.failed += 1
    return result


def load_feed(path) -> list:
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("listings")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of listings")
    return data


def ingest_feed_file(db: Session, path) -> schemas.IngestResult:
    records = load_feed(path)
    result = ingest_records(db, records)
    logger.info("Feed %s: %d ingested, %d unchanged, %d failed",
                Path(path).name, result.ingested, result.unchanged, result.failed)
    return result
