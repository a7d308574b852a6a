# init_app.py
import logging
from typing import Optional

import redis

import config
import storage
from repos import RecordStore

LOG = logging.getLogger("agriyield.init")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s'
    )


def init_record_store(client: Optional[redis.Redis] = None) -> RecordStore:
    """
    Build the process-wide store and seed it on first run. An unreachable
    Redis is logged by the storage layer; the app still starts.
    """
    store = RecordStore(client if client is not None else storage.get_redis_client())
    if config.SEED_ON_FIRST_RUN and store.initialize():
        LOG.info("Seeded default dataset")
    return store
