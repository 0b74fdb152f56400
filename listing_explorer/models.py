# listing_explorer/models.py
"""SQLAlchemy ORM models for persisted entities.

`Listing` rows are written by the MLS ingestion path and read by the search
routes. Coordinates are stored as plain lat/lng columns; the spatial index is
an expression index over the derived PostGIS point.
"""
from sqlalchemy import (
    Column, Text, Numeric, Float, Boolean, TIMESTAMP, CheckConstraint, Index, func, text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from .db import Base

class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_listings_price_non_negative"),
        CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_listings_latitude_range"),
        CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_listings_longitude_range"),
        CheckConstraint("bedrooms IS NULL OR bedrooms >= 0", name="ck_listings_bedrooms"),
        CheckConstraint("bathrooms IS NULL OR bathrooms >= 0", name="ck_listings_bathrooms"),
        CheckConstraint("square_feet IS NULL OR square_feet >= 0", name="ck_listings_square_feet"),
        CheckConstraint(
            "denormalized_assumable_interest_rate IS NULL OR denormalized_assumable_interest_rate >= 0",
            name="ck_listings_interest_rate",
        ),
    )

    id = Column(Text, primary_key=True)
    mls_listing_id = Column(Text, index=True)
    mls_provider_id = Column(Text)
    mls_instance_id = Column(Text)
    parcel_number = Column(Text)
    unit_number = Column(Text)
    address = Column(Text, nullable=False)
    city = Column(Text)
    state = Column(Text)
    zip_code = Column(Text)
    price = Column(Numeric, nullable=False)
    bedrooms = Column(Numeric)
    bathrooms = Column(Numeric)
    square_feet = Column(Numeric)
    property_type = Column(Text, nullable=False)
    photo_urls = Column(ARRAY(Text), nullable=False, server_default=text("'{}'"))
    status = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    is_assumable = Column(Boolean, nullable=False, server_default=text("false"))
    denormalized_assumable_interest_rate = Column(Numeric)
    raw_data_hash = Column(Text, nullable=False)
    raw_json = Column(JSONB)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

Index("idx_listings_price", Listing.price)
Index("idx_listings_created_at", Listing.created_at)
Index("idx_listings_property_type", Listing.property_type)
Index(
    "idx_listings_point",
    func.ST_SetSRID(func.ST_MakePoint(Listing.longitude, Listing.latitude), 4326),
    postgresql_using="gist",
)
