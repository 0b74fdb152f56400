import sys
from dotenv import load_dotenv

# Load environment variables from .env before the package reads them
load_dotenv()


def main(argv=None):
    """Ingest MLS feed files given on the command line into the listings table."""
    paths = list(sys.argv[1:] if argv is None else argv)
    if not paths:
        print("usage: python run_ingest.py FEED.json [FEED.json ...]")
        return 2

    from listing_explorer.db import SessionLocal
    from listing_explorer.services import ingest_feed_file

    status = 0
    db = SessionLocal()
    try:
        for path in paths:
            try:
                result = ingest_feed_file(db, path)
            except (OSError, ValueError) as e:
                print(f"{path}: {e}")
                status = 1
                continue
            print(f"{path}: {result.ingested} ingested, {result.unchanged} unchanged, {result.failed} failed")
    finally:
        db.close()
    return status


if __name__ == "__main__":
    raise SystemExit(main())
