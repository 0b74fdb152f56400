# listing_explorer/schemas.py
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime

class ListingOut(BaseModel):
    id: str
    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    price: float
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[float] = None
    property_type: str
    photo_urls: List[str] = Field(default_factory=list)
    status: str
    created_at: Optional[datetime] = None
    latitude: float
    longitude: float
    is_assumable: bool = False
    denormalized_assumable_interest_rate: Optional[float] = None

    class Config:
        from_attributes = True

class ListingUpdate(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    bedrooms: Optional[float] = Field(None, ge=0)
    bathrooms: Optional[float] = Field(None, ge=0)
    square_feet: Optional[float] = Field(None, ge=0)
    property_type: Optional[str] = None
    photo_urls: Optional[List[str]] = None
    status: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_assumable: Optional[bool] = None
    denormalized_assumable_interest_rate: Optional[float] = Field(None, ge=0)

    # NOT NULL columns may be omitted but not cleared
    @field_validator("address", "price", "property_type", "photo_urls", "status",
                     "latitude", "longitude", "is_assumable")
    @classmethod
    def not_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

class ListingPage(BaseModel):
    total: int
    items: List[ListingOut]

class SearchFilters(BaseModel):
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    assumable_only: bool = False

    @model_validator(mode="after")
    def check_price_range(self):
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self

class ListingFilter(SearchFilters):
    property_type: Optional[str] = None
    city: Optional[str] = None

class SearchAggregations(BaseModel):
    total_listings: int
    assumable_listings: int
    median_loan_rate: float
    avg_price: float
    avg_assumable_price: float
    property_types: Dict[str, int]

class PolygonSearchResponse(BaseModel):
    polygon_count: int
    listings: List[ListingOut]
    aggregations: Optional[SearchAggregations] = None

class IngestResult(BaseModel):
    ingested: int = 0
    unchanged: int = 0
    failed: int = 0
