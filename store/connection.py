import logging
from dataclasses import dataclass
from typing import Any, Callable

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from core.config import DEFAULT_DATABASE
from core.errors import NotConnectedError, StoreError

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


@dataclass(frozen=True)
class HealthResult:
    success: bool
    message: str


class StoreConnection:
    """
    Owned handle on the MongoDB client.

    One owner opens it at startup and closes it at shutdown; every other
    component receives it by reference. The pymongo client is thread-safe,
    so sessions and one-shot callers share it without extra locking.
    """

    def __init__(
        self,
        url: str,
        database: str = DEFAULT_DATABASE,
        client_factory: ClientFactory = MongoClient,
    ):
        self.url = url
        self.database_name = database
        self._client_factory = client_factory
        self._client = None
        self._open = False

    # -------------------------
    # LIFECYCLE
    # -------------------------

    def connect(self) -> "StoreConnection":
        if self._open:
            return self
        try:
            self._client = self._client_factory(self.url, tz_aware=True)
        except PyMongoError as exc:
            raise StoreError(f"cannot connect to database: {exc}") from exc
        self._open = True
        logger.info("Connected to document store, database=%s", self.database_name)
        return self

    def is_open(self) -> bool:
        return self._client is not None and self._open

    def close(self) -> None:
        if not self.is_open():
            return
        self._client.close()
        self._open = False
        logger.info("Closed document store connection")

    def __enter__(self) -> "StoreConnection":
        return self.connect()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------
    # ACCESS
    # -------------------------

    def database(self) -> Database:
        if not self.is_open():
            raise NotConnectedError()
        return self._client[self.database_name]

    def test_connection(self) -> HealthResult:
        logger.info("Testing document store connection")
        try:
            status = self.database().command("serverStatus")
        except NotConnectedError as exc:
            return HealthResult(success=False, message=str(exc))
        except PyMongoError as exc:
            logger.error("Health check failed: %s", exc)
            self.close()
            return HealthResult(success=False, message=str(exc))

        return HealthResult(success=True, message=f"OK: MongoDB version: {status.get('version')}")

