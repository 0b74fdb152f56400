# listing_explorer/crud.py
"""Persistence helpers for `Listing` entities.

ORM queries for the plain list / lookup / update paths, an idempotent upsert
for ingestion, and the raw PostGIS statement behind the polygon search.
"""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy import and_, or_, func, text
from .models import Listing
from sqlalchemy.orm import Session
from typing import Dict, Any, List, Optional, Sequence, Tuple

from .geometry import SRID
from .utils import env_int

SEARCH_MAX_RESULTS = env_int("SEARCH_MAX_RESULTS", 5000)

LISTING_COLUMNS = """
    l.id,
    l.address,
    l.city,
    l.state,
    l.price::float AS price,
    l.bedrooms::float AS bedrooms,
    l.bathrooms::float AS bathrooms,
    l.square_feet::float AS square_feet,
    l.property_type,
    l.photo_urls,
    l.status,
    l.created_at,
    l.latitude,
    l.longitude,
    l.is_assumable,
    l.denormalized_assumable_interest_rate::float AS denormalized_assumable_interest_rate
"""

def build_upsert(data: Dict[str, Any]):
    table = Listing.__table__
    stmt = pg_insert(table).values(**data)
    # copy every updatable column from EXCLUDED so dropped feed fields are cleared
    excluded = {c.name: stmt.excluded[c.name] for c in table.columns if c.name not in ("id", "created_at")}
    excluded["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=["id"],
        set_=excluded,
        where=table.c.raw_data_hash.is_distinct_from(stmt.excluded.raw_data_hash),
    )

def upsert_listing(db: Session, data: Dict[str, Any]) -> bool:
    """Insert or refresh a listing keyed by id.

    Rows whose raw_data_hash did not change are left alone; returns False then.
    """
    result = db.execute(build_upsert(data))
    db.commit()
    return bool(result.rowcount)

def get_listing(db: Session, listing_id: str) -> Optional[Listing]:
    return db.get(Listing, listing_id)

def _filter_conditions(filters: Optional[Dict]) -> List:
    conds = []
    if not filters:
        return conds
    if filters.get("min_price") is not None:
        conds.append(Listing.price >= filters["min_price"])
    if filters.get("max_price") is not None:
        conds.append(Listing.price <= filters["max_price"])
    if filters.get("assumable_only"):
        conds.append(Listing.is_assumable.is_(True))
    if filters.get("property_type"):
        conds.append(Listing.property_type == filters["property_type"])
    if filters.get("city"):
        conds.append(Listing.city.ilike(f"%{filters['city']}%"))
    return conds

def list_listings(db: Session, skip: int = 0, limit: int = 50, filters: Dict = None):
    q = db.query(Listing)
    conds = _filter_conditions(filters)
    if conds:
        q = q.filter(and_(*conds))
    total = q.count()
    items = q.order_by(Listing.created_at.desc(), Listing.id).offset(skip).limit(limit).all()
    return {"total": total, "items": items}

def recent_listings(db: Session, skip: int = 0, limit: int = 100) -> List[Listing]:
    return (
        db.query(Listing)
        .order_by(Listing.created_at.desc(), Listing.id)
        .offset(skip)
        .limit(limit)
        .all()
    )

def search_text(db: Session, query: str, skip: int = 0, limit: int = 50):
    pattern = f"%{query}%"
    q = db.query(Listing).filter(or_(
        Listing.address.ilike(pattern),
        Listing.city.ilike(pattern),
        Listing.state.ilike(pattern),
    ))
    total = q.count()
    items = q.order_by(Listing.created_at.desc(), Listing.id).offset(skip).limit(limit).all()
    return {"total": total, "items": items}

def update_listing(db: Session, listing_id: str, updates: Dict[str, Any]):
    obj = db.get(Listing, listing_id)
    if not obj:
        return None
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj

def delete_listing(db: Session, listing_id: str):
    obj = db.get(Listing, listing_id)
    if not obj:
        return False
    db.delete(obj)
    db.commit()
    return True

def build_region_search(wkts: Sequence[str], filters: Optional[Dict] = None,
                        limit: int = None) -> Tuple[Any, Dict[str, Any]]:
    """Build the point-in-region statement for one or more WKT polygons.

    Several polygons are merged with ST_Union before the containment test, so
    a listing inside overlapping regions is returned once.
    """
    if not wkts:
        raise ValueError("at least one polygon is required")
    params: Dict[str, Any] = {}
    geoms = []
    for i, wkt in enumerate(wkts):
        params[f"wkt_{i}"] = wkt
        geoms.append(f"ST_GeomFromText(:wkt_{i}, {SRID})")
    region = geoms[0] if len(geoms) == 1 else f"ST_Union(ARRAY[{', '.join(geoms)}])"

    where = [
        f"ST_Contains(r.geom, ST_SetSRID(ST_MakePoint(l.longitude, l.latitude), {SRID}))"
    ]
    filters = filters or {}
    if filters.get("min_price") is not None:
        where.append("l.price >= :min_price")
        params["min_price"] = filters["min_price"]
    if filters.get("max_price") is not None:
        where.append("l.price <= :max_price")
        params["max_price"] = filters["max_price"]
    if filters.get("assumable_only"):
        where.append("l.is_assumable")

    params["limit"] = SEARCH_MAX_RESULTS if limit is None else limit
    sql = f"""
        WITH region AS (SELECT {region} AS geom)
        SELECT {LISTING_COLUMNS}
        FROM listings l, region r
        WHERE {' AND '.join(where)}
        ORDER BY l.created_at DESC, l.id
        LIMIT :limit
    """
    return text(sql), params

def search_in_region(db: Session, wkts: Sequence[str], filters: Optional[Dict] = None,
                     limit: int = None) -> List[Dict[str, Any]]:
    stmt, params = build_region_search(wkts, filters, limit)
    return [dict(row) for row in db.execute(stmt, params).mappings().all()]
