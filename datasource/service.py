"""
Data source facade: one-shot queries, health, and device streams.

Owns the store connection for its lifetime; ``dispose`` closes it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from core.bus import Sender
from core.config import DatasourceSettings
from core.errors import StoreError, UnknownEntityError
from core.models import Frame, TimeWindow
from datasource.queries import DevicesQuery, EventsQuery, ProjectsQuery, Query, parse_query
from metrics.collector import StreamMetrics
from pipeline.projection import devices_frame, hierarchy_frames, projects_frame
from runtime.session import Clock, StreamingSession, utc_now
from runtime.supervisor import SubscribeStatus, device_path, parse_stream_path
from store.connection import ClientFactory, HealthResult, StoreConnection
from store.gateway import DocumentStoreGateway

logger = logging.getLogger(__name__)


class PublishStatus(str, Enum):
    OK = "ok"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True)
class DataQuery:
    ref_id: str
    model: Union[str, bytes, Mapping[str, Any]]
    window: TimeWindow


@dataclass
class DataResponse:
    frames: List[Frame] = field(default_factory=list)
    error: Optional[Exception] = None


class Datasource:
    def __init__(
        self,
        settings: DatasourceSettings,
        connection: StoreConnection,
        clock: Clock = utc_now,
        metrics: Optional[StreamMetrics] = None,
    ):
        self.settings = settings
        self.connection = connection
        self.gateway = DocumentStoreGateway(connection)
        self.clock = clock
        self.metrics = metrics

    @classmethod
    def open(cls, settings: DatasourceSettings, client_factory: Optional[ClientFactory] = None) -> "Datasource":
        kwargs = {"client_factory": client_factory} if client_factory is not None else {}
        connection = StoreConnection(settings.mongodb_url, settings.database, **kwargs).connect()
        return cls(settings, connection)

    def dispose(self) -> None:
        self.connection.close()

    # -------------------------
    # ONE-SHOT QUERIES
    # -------------------------

    def query_data(self, queries: Iterable[DataQuery]) -> Dict[str, DataResponse]:
        responses: Dict[str, DataResponse] = {}
        for q in queries:
            try:
                responses[q.ref_id] = self.handle(parse_query(q.model), q.window)
            except (StoreError, UnknownEntityError, ValueError) as exc:
                logger.error("Query %s failed: %s", q.ref_id, exc)
                responses[q.ref_id] = DataResponse(error=exc)
        return responses

    def handle(self, query: Query, window: TimeWindow) -> DataResponse:
        match query:
            case ProjectsQuery():
                return DataResponse(frames=[projects_frame(self.gateway.find_projects())])
            case DevicesQuery(project_ids=ids):
                return DataResponse(frames=[devices_frame(self.gateway.find_devices(project_ids=ids))])
            case EventsQuery(filter=flt, with_streaming=streaming):
                projects = self.gateway.query_events(flt, window)
                channel_for = self.channel if streaming else None
                return DataResponse(frames=hierarchy_frames(projects, channel_for))
        raise TypeError(f"unsupported query {query!r}")

    def channel(self, device_id: str) -> str:
        return f"ds/{self.settings.uid}/{device_path(device_id)}"

    # -------------------------
    # HEALTH
    # -------------------------

    def check_health(self) -> HealthResult:
        return self.connection.test_connection()

    # -------------------------
    # STREAMING
    # -------------------------

    def subscribe_stream(self, path: str) -> SubscribeStatus:
        status, _ = parse_stream_path(path)
        logger.info("Subscribe %s: %s", path, status.value)
        return status

    def publish_stream(self, path: str) -> PublishStatus:
        return PublishStatus.PERMISSION_DENIED

    async def run_stream(self, path: str, sender: Sender, stop_event: asyncio.Event) -> None:
        status, device_id = parse_stream_path(path)
        if status is not SubscribeStatus.OK:
            raise ValueError(f"cannot stream '{path}': {status.value}")

        session = StreamingSession(
            query_events=self.gateway.query_events,
            device_id=device_id,
            sender=sender,
            stop_event=stop_event,
            settings=self.settings.stream,
            clock=self.clock,
            metrics=self.metrics,
        )
        await session.run()
