# listing_explorer/scheduler.py
"""Periodic ingestion of MLS feed files dropped into MLS_FEED_DIR."""
import os
from pathlib import Path
from apscheduler.schedulers.background import BackgroundScheduler
from .db import SessionLocal
from .services import ingest_feed_file
from .utils import logger, env_int

FEED_DIR = os.getenv("MLS_FEED_DIR")
INTERVAL_MINUTES = env_int("INGEST_INTERVAL_MINUTES", 60)

scheduler = BackgroundScheduler()

def ingest_feed_dir(feed_dir=None):
    feed_dir = Path(feed_dir or FEED_DIR)
    files = sorted(feed_dir.glob("*.json"))
    if not files:
        logger.info("No feed files in %s", feed_dir)
        return
    db = SessionLocal()
    try:
        for path in files:
            try:
                ingest_feed_file(db, path)
            except (OSError, ValueError) as e:
                logger.error("Skipping feed %s: %s", path, e)
    finally:
        db.close()

def start_scheduler():
    if not FEED_DIR:
        logger.info("MLS_FEED_DIR not set; feed ingestion scheduler disabled")
        return False
    if scheduler.running:
        return True
    scheduler.add_job(ingest_feed_dir, "interval", minutes=INTERVAL_MINUTES, id="ingest_feed_dir",
                      replace_existing=True)
    scheduler.start()
    logger.info("Scheduler started: ingesting %s every %d min", FEED_DIR, INTERVAL_MINUTES)
    return True

def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
