# tests/test_crud.py
import os
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from listing_explorer import crud, services
from listing_explorer.db import ensure_schema
from listing_explorer.geometry import parse_polygons, to_wkt
from listing_explorer.models import Listing
from conftest import square_feature

TEST_DATABASE_URL = os.getenv("TEST_POSTGRES_URL")


def test_single_region_query_uses_polygon_directly():
    stmt, params = crud.build_region_search(["POLYGON((0 0,1 0,1 1,0 0))"])
    sql = str(stmt)
    assert "ST_Union" not in sql
    assert "ST_GeomFromText(:wkt_0, 4326)" in sql
    assert "ST_Contains(r.geom, ST_SetSRID(ST_MakePoint(l.longitude, l.latitude), 4326))" in sql
    assert params["wkt_0"] == "POLYGON((0 0,1 0,1 1,0 0))"
    assert params["limit"] == crud.SEARCH_MAX_RESULTS


def test_multiple_regions_are_unioned():
    stmt, params = crud.build_region_search(["A", "B", "C"], limit=10)
    sql = str(stmt)
    assert ("ST_Union(ARRAY[ST_GeomFromText(:wkt_0, 4326), ST_GeomFromText(:wkt_1, 4326), "
            "ST_GeomFromText(:wkt_2, 4326)])") in sql
    assert [params[f"wkt_{i}"] for i in range(3)] == ["A", "B", "C"]
    assert params["limit"] == 10


def test_filters_become_bound_parameters():
    stmt, params = crud.build_region_search(
        ["A"], {"min_price": 100000, "max_price": 500000, "assumable_only": True})
    sql = str(stmt)
    assert "l.price >= :min_price" in sql
    assert "l.price <= :max_price" in sql
    assert "l.is_assumable" in sql.split("WHERE", 1)[1]
    assert params["min_price"] == 100000
    assert params["max_price"] == 500000


def test_unset_filters_are_left_out():
    stmt, params = crud.build_region_search(["A"], {"min_price": None, "max_price": None, "assumable_only": False})
    where = str(stmt).split("WHERE", 1)[1]
    assert "price" not in where
    assert "is_assumable" not in where
    assert "min_price" not in params


def test_region_search_requires_a_polygon():
    with pytest.raises(ValueError):
        crud.build_region_search([])


@pytest.fixture(scope="module")
def db():
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_POSTGRES_URL not set")
    engine = create_engine(TEST_DATABASE_URL)
    ensure_schema(engine)
    session = sessionmaker(bind=engine)()
    yield session
    session.rollback()
    session.query(Listing).filter(Listing.id.like("test-%")).delete(synchronize_session=False)
    session.commit()
    session.close()
    engine.dispose()


def mls_record(listing_id, lng, lat, **extra):
    record = {
        "id": listing_id,
        "address": f"{listing_id} Test Ave",
        "price": 250000,
        "propertyType": "Condo",
        "status": "Active",
        "latitude": lat,
        "longitude": lng,
    }
    record.update(extra)
    return record


def test_upsert_and_get(db):
    assert crud.upsert_listing(db, services.normalize_mls_record(mls_record("test-1", -97.5, 30.5)))
    obj = crud.get_listing(db, "test-1")
    assert obj is not None
    assert obj.address == "test-1 Test Ave"
    # same raw record again leaves the row alone
    assert not crud.upsert_listing(db, services.normalize_mls_record(mls_record("test-1", -97.5, 30.5)))
    assert crud.upsert_listing(db, services.normalize_mls_record(mls_record("test-1", -97.5, 30.5, price=260000)))
    db.refresh(obj)
    assert float(obj.price) == 260000


def test_search_in_union_of_regions(db):
    services.ingest_records(db, [
        mls_record("test-in-a", -97.5, 30.5, isAssumable=True, denormalizedAssumableInterestRate=3.1),
        mls_record("test-in-b", -95.5, 30.5),
        mls_record("test-outside", -90.0, 30.5),
    ])
    wkts = [to_wkt(p) for p in parse_polygons([square_feature(-98, 30), square_feature(-96, 30)])]
    ids = {row["id"] for row in crud.search_in_region(db, wkts)}
    assert {"test-in-a", "test-in-b"} <= ids
    assert "test-outside" not in ids
    assumable = {row["id"] for row in crud.search_in_region(db, wkts, {"assumable_only": True})}
    assert "test-in-a" in assumable
    assert "test-in-b" not in assumable


def test_upsert_sets_every_column_even_when_record_drops_fields():
    from sqlalchemy.dialects import postgresql

    record = mls_record("L-9", -97.5, 30.5)
    row = services.normalize_mls_record(record)
    row.pop("city")
    sql = str(crud.build_upsert(row).compile(dialect=postgresql.dialect()))
    set_clause = sql.split("DO UPDATE SET", 1)[1]
    for column in ("city", "state", "zip_code", "mls_listing_id", "parcel_number", "raw_data_hash"):
        assert f"{column} = excluded.{column}" in set_clause
    assert "updated_at = now()" in set_clause
    assert "created_at" not in set_clause
    assert not [a for a in set_clause.split(", ") if a.strip().startswith("id = ")]
    assert "raw_data_hash IS DISTINCT FROM excluded.raw_data_hash" in set_clause
