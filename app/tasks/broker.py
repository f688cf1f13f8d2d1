"""Dramatiq broker setup.

Actor modules call ``setup_broker()`` at import time, before any
``@dramatiq.actor`` is declared.
"""
import logging
import os
import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

logger = logging.getLogger(__name__)

_broker = None


class Queues:
    EMAILS = "emails"


def setup_broker():
    global _broker
    if _broker is not None:
        return _broker

    if os.getenv("DRAMATIQ_TEST_MODE", "false").lower() in ("true", "1", "yes"):
        _broker = StubBroker()
        _broker.emit_after("process_boot")
        logger.info("Using StubBroker for testing")
    else:
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        _broker = RedisBroker(url=redis_url)
        logger.info("Redis broker initialized (url: %s)", redis_url.split("@")[-1])

    dramatiq.set_broker(_broker)
    return _broker


def get_broker():
    return setup_broker()
