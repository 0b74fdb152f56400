# listing_explorer/utils.py
"""Shared utilities: logging setup and a retry decorator."""
import os
import logging
import time
from functools import wraps
from dotenv import load_dotenv

load_dotenv()

def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("listing-explorer")

def retry(exceptions, tries=3, delay=1, backoff=2, logger=logger):
    """Retry the wrapped call on `exceptions`, sleeping `delay` * `backoff`**n between tries.

    The last attempt is made outside the handler so its exception propagates.
    """
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Retryable error in %s: %s, retrying in %s sec", f.__name__, e, mdelay)
                    time.sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default
