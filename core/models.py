from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# -------------------------
# ENUMS (explicit semantics)
# -------------------------

class EventType(str, Enum):
    TEMPERATURE = "temperature"
    OBJECT_PRESENT = "objectPresent"
    NETWORK_STATUS = "networkStatus"
    UNKNOWN = "unknown"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> "EventType":
        for member in cls:
            if member is not cls.UNKNOWN and member.value == tag:
                return member
        return cls.UNKNOWN


class FilterEntity(str, Enum):
    PROJECTS = "projects"
    DEVICES = "devices"


NOT_PRESENT = "NOT_PRESENT"
PLACEHOLDER_ORGANIZATION = "Org"


# -------------------------
# STORED ENTITIES
# -------------------------

@dataclass(frozen=True)
class Project:
    id: str
    display_name: str
    organization_name: str

    @classmethod
    def synthetic(cls, project_id: str) -> "Project":
        return cls(
            id=project_id,
            display_name=project_id,
            organization_name=PLACEHOLDER_ORGANIZATION,
        )


@dataclass(frozen=True)
class Device:
    id: str
    label: str
    project_id: str
    type: str = ""
    last_seen: Optional[datetime] = None


# -------------------------
# EVENT PAYLOADS
# -------------------------

@dataclass(frozen=True)
class TemperaturePayload:
    value: float


@dataclass(frozen=True)
class PresencePayload:
    state: str


@dataclass(frozen=True)
class NetworkStatusPayload:
    signal_strength: int = 0
    rssi: int = 0
    cloud_connectors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UnknownPayload:
    pass


Payload = Union[TemperaturePayload, PresencePayload, NetworkStatusPayload, UnknownPayload]


@dataclass(frozen=True)
class Event:
    id: str
    device_id: str
    project_id: str
    event_type: EventType
    timestamp: datetime
    payload: Payload = field(default_factory=UnknownPayload)
    type_tag: str = ""


# -------------------------
# HIERARCHY (built per query)
# -------------------------

@dataclass(frozen=True)
class DeviceWithEvents:
    device: Device
    events: List[Event] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectWithDevices:
    project: Project
    devices: List[DeviceWithEvents] = field(default_factory=list)


# -------------------------
# QUERY INPUTS
# -------------------------

def split_ids(csv: Optional[str]) -> Optional[List[str]]:
    """``None`` stays "no filter"; an empty string is an empty allow-list."""
    if csv is None:
        return None
    return [part.strip() for part in csv.split(",") if part.strip()]


@dataclass(frozen=True)
class Filter:
    entity: FilterEntity
    value: str = ""

    def ids(self) -> List[str]:
        return split_ids(self.value) or []


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def is_empty(self) -> bool:
        return self.start >= self.end

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


# -------------------------
# PROJECTED OUTPUT
# -------------------------

@dataclass(frozen=True)
class Series:
    times: List[datetime] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.times)


@dataclass(frozen=True)
class Field:
    name: str
    values: List[Any]
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FrameMeta:
    channel: Optional[str] = None


@dataclass(frozen=True)
class Frame:
    name: str
    fields: List[Field] = field(default_factory=list)
    meta: FrameMeta = field(default_factory=FrameMeta)

    def get_field(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def rows(self) -> int:
        return len(self.fields[0].values) if self.fields else 0

    def to_records(self) -> List[Dict[str, Any]]:
        names = [f.name for f in self.fields]
        return [dict(zip(names, row)) for row in zip(*(f.values for f in self.fields))]
