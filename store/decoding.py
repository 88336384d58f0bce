from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from core.errors import DecodeFailedError
from core.models import (
    Device,
    Event,
    EventType,
    NetworkStatusPayload,
    Payload,
    PresencePayload,
    Project,
    TemperaturePayload,
    UnknownPayload,
)


def to_utc(value: Any) -> datetime:
    """Normalise a stored timestamp (BSON date or ISO-8601 string) to aware UTC."""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if not isinstance(value, datetime):
        raise TypeError(f"expected a timestamp, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _require(doc: Mapping[str, Any], key: str, collection: str) -> Any:
    if key not in doc or doc[key] is None:
        raise DecodeFailedError(collection, doc.get("_id"), f"missing '{key}'")
    return doc[key]


def _sub(doc: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = doc.get(key)
    return value if isinstance(value, Mapping) else {}


# -------------------------
# PROJECTS / DEVICES
# -------------------------

def decode_project(doc: Mapping[str, Any]) -> Project:
    project_id = str(_require(doc, "_id", "projects"))
    return Project(
        id=project_id,
        display_name=str(doc.get("displayName") or project_id),
        organization_name=str(doc.get("organizationDisplayName") or ""),
    )


def decode_device(doc: Mapping[str, Any]) -> Device:
    device_id = str(_require(doc, "_id", "devices"))
    last_seen: Optional[datetime] = None
    if doc.get("lastEventTime") is not None:
        try:
            last_seen = to_utc(doc["lastEventTime"])
        except (TypeError, ValueError) as exc:
            raise DecodeFailedError("devices", device_id, f"bad lastEventTime: {exc}") from exc

    return Device(
        id=device_id,
        label=str(_sub(doc, "labels").get("name") or ""),
        project_id=str(doc.get("project_id") or ""),
        type=str(doc.get("type") or ""),
        last_seen=last_seen,
    )


# -------------------------
# EVENTS
# -------------------------

def decode_payload(event_type: EventType, data: Mapping[str, Any]) -> Payload:
    if event_type is EventType.TEMPERATURE:
        return TemperaturePayload(value=float(_sub(data, "temperature").get("value", 0.0)))
    if event_type is EventType.OBJECT_PRESENT:
        return PresencePayload(state=str(_sub(data, "objectPresent").get("state", "")))
    if event_type is EventType.NETWORK_STATUS:
        status = _sub(data, "networkStatus")
        return NetworkStatusPayload(
            signal_strength=int(status.get("signalStrength", 0)),
            rssi=int(status.get("rssi", 0)),
            cloud_connectors=tuple(
                str(c.get("id", "")) for c in status.get("cloudConnectors") or [] if isinstance(c, Mapping)
            ),
        )
    return UnknownPayload()


def decode_event(doc: Mapping[str, Any]) -> Event:
    event_id = str(_require(doc, "_id", "events"))
    tag = doc.get("eventType")
    event_type = EventType.from_tag(tag)

    try:
        timestamp = to_utc(_require(doc, "timestamp", "events"))
        payload = decode_payload(event_type, _sub(doc, "data"))
    except (TypeError, ValueError) as exc:
        raise DecodeFailedError("events", event_id, str(exc)) from exc

    return Event(
        id=event_id,
        device_id=str(_require(doc, "device_id", "events")),
        project_id=str(doc.get("project_id") or ""),
        event_type=event_type,
        timestamp=timestamp,
        payload=payload,
        type_tag=str(tag or ""),
    )
