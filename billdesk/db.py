from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future

from billdesk.config import settings
from billdesk.services.d1_client import D1Client
from billdesk.services.schema_service import ensure_schema

logger = logging.getLogger(__name__)


class SharedClient:
    """Lazily built, process-wide client.

    Concurrent first callers share one in-flight initialisation and receive
    the same result, client or exception. A failed attempt is forgotten once
    it has been delivered, so a later call starts a fresh one.
    """

    def __init__(self, factory: Callable[[], D1Client]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._future: Future | None = None

    def get(self) -> D1Client:
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = Future()
                self._future = future

        if owner:
            try:
                client = self._factory()
            except BaseException as exc:
                with self._lock:
                    self._future = None
                future.set_exception(exc)
                raise
            future.set_result(client)
        return future.result()

    def reset(self) -> None:
        with self._lock:
            self._future = None


def _initialize() -> D1Client:
    logger.info('Initializing D1 client')
    client = D1Client.from_settings(settings)
    ensure_schema(client)
    logger.info('D1 client ready')
    return client


shared_client = SharedClient(_initialize)


def get_db() -> D1Client:
    return shared_client.get()
