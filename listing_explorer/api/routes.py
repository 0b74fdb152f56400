# listing_explorer/api/routes.py
import json
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from .. import crud, schemas, services
from ..db import get_db
from ..geometry import INVALID_POLYGON_MESSAGE, InvalidPolygonError
from ..utils import logger

router = APIRouter()

@router.get("/health")
def health():
    return {"status": "ok"}

def _filters(model, **values):
    try:
        return model(**values)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False))

def _db_failure(db: Session, detail: str, error: Exception) -> HTTPException:
    db.rollback()
    logger.exception("%s: %s", detail, error)
    return HTTPException(status_code=500, detail=detail)

async def polygon_payload(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        raise HTTPException(status_code=400, detail=INVALID_POLYGON_MESSAGE)
    try:
        return json.loads(raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON in request body: {e}")

@router.post("/listings/polygon", response_model=schemas.PolygonSearchResponse)
def polygon_search(
    payload: Any = Depends(polygon_payload),
    min_price: Optional[float] = Query(None),
    max_price: Optional[float] = Query(None),
    assumable_only: bool = Query(False),
    aggregations: bool = Query(True),
    db: Session = Depends(get_db)
):
    filters = _filters(schemas.SearchFilters, min_price=min_price, max_price=max_price,
                       assumable_only=assumable_only)
    try:
        return services.search_polygons(db, payload, filters, with_aggregations=aggregations)
    except InvalidPolygonError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        raise _db_failure(db, "Database query failed", e)

@router.get("/listings/recent", response_model=List[schemas.ListingOut])
def recent_listings(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    try:
        return crud.recent_listings(db, skip=skip, limit=limit)
    except SQLAlchemyError as e:
        raise _db_failure(db, "Failed to fetch recent listings", e)

@router.get("/listings/search", response_model=schemas.ListingPage)
def search_listings(
    q: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db)
):
    try:
        return crud.search_text(db, q, skip=skip, limit=limit)
    except SQLAlchemyError as e:
        raise _db_failure(db, "Failed to search listings", e)

@router.get("/listings", response_model=schemas.ListingPage)
def listings(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=500),
    min_price: Optional[float] = Query(None),
    max_price: Optional[float] = Query(None),
    assumable_only: bool = Query(False),
    property_type: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    filters = _filters(schemas.ListingFilter, min_price=min_price, max_price=max_price,
                       assumable_only=assumable_only, property_type=property_type, city=city)
    try:
        return crud.list_listings(db, skip=skip, limit=limit, filters=filters.model_dump())
    except SQLAlchemyError as e:
        raise _db_failure(db, "Failed to fetch listings", e)

@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(listing_id: str, db: Session = Depends(get_db)):
    try:
        obj = crud.get_listing(db, listing_id)
    except SQLAlchemyError as e:
        raise _db_failure(db, "Failed to fetch listing", e)
    if not obj:
        raise HTTPException(status_code=404, detail="Listing not found")
    return obj

@router.patch("/listings/{listing_id}", response_model=schemas.ListingOut)
def update_listing(listing_id: str, payload: schemas.ListingUpdate, db: Session = Depends(get_db)):
    try:
        obj = crud.update_listing(db, listing_id, updates=payload.model_dump(exclude_unset=True))
    except SQLAlchemyError as e:
        raise _db_failure(db, "Failed to update listing", e)
    if not obj:
        raise HTTPException(status_code=404, detail="Listing not found")
    return obj

@router.delete("/listings/{listing_id}")
def delete_listing(listing_id: str, db: Session = Depends(get_db)):
    try:
        ok = crud.delete_listing(db, listing_id)
    except SQLAlchemyError as e:
        raise _db_failure(db, "Failed to delete listing", e)
    if not ok:
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"status": "deleted"}

@router.post("/ingest", response_model=schemas.IngestResult)
def ingest(records: List[Dict[str, Any]] = Body(...), db: Session = Depends(get_db)):
    try:
        return services.ingest_records(db, records)
    except SQLAlchemyError as e:
        raise _db_failure(db, "Ingestion failed", e)
