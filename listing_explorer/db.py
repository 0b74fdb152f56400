# listing_explorer/db.py
"""Database engine and session utilities.

Centralized SQLAlchemy engine creation, the declarative base and the session
dependency used by the FastAPI routes. Spatial queries need the PostGIS
extension; `ensure_schema` installs it alongside the tables.
"""
import os
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from .utils import env_int

load_dotenv()

DATABASE_URL = os.getenv("POSTGRES_URL")
if not DATABASE_URL:
    raise RuntimeError("POSTGRES_URL not set")

# SQLAlchemy 2.x doesn't accept 'postgres://'
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg2://", 1)

engine = create_engine(
    DATABASE_URL,
    pool_size=env_int("DB_POOL_SIZE", 5),
    max_overflow=env_int("DB_MAX_OVERFLOW", 10),
    pool_pre_ping=True
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def ensure_schema(bind=None):
    bind = bind or engine
    with bind.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
    Base.metadata.create_all(bind=bind)
