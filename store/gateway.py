import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from bson.errors import BSONError
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from core.errors import DecodeFailedError, QueryFailedError
from core.models import Device, Event, EventType, Filter, FilterEntity, Project, ProjectWithDevices, TimeWindow
from pipeline.grouping import group_events
from pipeline.windowing import normalize_window, store_bounds
from store.connection import StoreConnection
from store.decoding import decode_device, decode_event, decode_project

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROJECTS = "projects"
DEVICES = "devices"
EVENTS = "events"

# events of these types never reach a series
EXCLUDED_EVENT_TYPES = (EventType.NETWORK_STATUS.value,)


class DocumentStoreGateway:
    """Filtered, sorted range queries over the projects/devices/events collections."""

    def __init__(self, connection: StoreConnection):
        self.connection = connection

    # -------------------------
    # INTERNAL
    # -------------------------

    def _find(
        self,
        collection: str,
        query: Dict[str, Any],
        decoder: Callable[[Dict[str, Any]], T],
        sort: Optional[List] = None,
    ) -> List[T]:
        db = self.connection.database()
        try:
            cursor = db[collection].find(query)
            if sort:
                cursor = cursor.sort(sort)
            return [decoder(doc) for doc in cursor]
        except PyMongoError as exc:
            raise QueryFailedError(f"{collection} query failed: {exc}") from exc
        except BSONError as exc:
            raise DecodeFailedError(collection, None, str(exc)) from exc

    # -------------------------
    # QUERIES
    # -------------------------

    def find_projects(self, project_ids: Optional[Sequence[str]] = None) -> List[Project]:
        query: Dict[str, Any] = {}
        if project_ids is not None:
            query["_id"] = {"$in": list(project_ids)}

        projects = self._find(PROJECTS, query, decode_project)
        logger.info("Found %d projects", len(projects))
        return projects

    def find_devices(
        self,
        project_ids: Optional[Sequence[str]] = None,
        device_ids: Optional[Sequence[str]] = None,
    ) -> List[Device]:
        query: Dict[str, Any] = {}
        if project_ids is not None:
            query["project_id"] = {"$in": list(project_ids)}
        if device_ids is not None:
            query["_id"] = {"$in": list(device_ids)}

        devices = self._find(DEVICES, query, decode_device)
        logger.info("Found %d devices", len(devices))
        return devices

    def find_events(self, flt: Filter, window: TimeWindow) -> List[Event]:
        window = normalize_window(window)
        if window.is_empty():
            return []

        key = "device_id" if flt.entity is FilterEntity.DEVICES else "project_id"
        query = {
            key: {"$in": flt.ids()},
            "eventType": {"$nin": list(EXCLUDED_EVENT_TYPES)},
            "timestamp": store_bounds(window),
        }

        events = self._find(EVENTS, query, decode_event, sort=[("timestamp", ASCENDING)])
        logger.info(
            "Found %d events for %s in [%s, %s)",
            len(events), flt.entity.value, window.start.isoformat(), window.end.isoformat(),
        )
        return events

    def query_events(
        self,
        flt: Filter,
        window: TimeWindow,
        with_projects: bool = False,
    ) -> List[ProjectWithDevices]:
        """
        Events in ``window`` grouped into Project -> Device -> Event[].

        Devices are fetched for exactly the ids seen in the events. With
        ``with_projects`` the owning project records are fetched too;
        otherwise every project is synthetic.
        """
        events = self.find_events(flt, window)

        def fetch_devices(device_ids: List[str]) -> List[Device]:
            return self.find_devices(device_ids=device_ids)

        fetch_projects = self.find_projects if with_projects else None
        return group_events(events, fetch_devices, fetch_projects)
