from typing import Iterable, List, Optional

from core.models import (
    NOT_PRESENT,
    Device,
    DeviceWithEvents,
    Event,
    EventType,
    Field,
    Frame,
    FrameMeta,
    PresencePayload,
    Project,
    ProjectWithDevices,
    Series,
    TemperaturePayload,
)


# -------------------------
# EVENT -> VALUE
# -------------------------

def project_event(event: Event) -> Optional[float]:
    """Numeric value of an event, or None when it has no place in a series."""
    payload = event.payload

    if event.event_type is EventType.TEMPERATURE and isinstance(payload, TemperaturePayload):
        return float(payload.value)

    if event.event_type is EventType.OBJECT_PRESENT and isinstance(payload, PresencePayload):
        return 0.0 if payload.state == NOT_PRESENT else 1.0

    return None


def project_events(events: Iterable[Event]) -> Series:
    series = Series()
    for event in events:
        value = project_event(event)
        if value is None:
            continue
        series.times.append(event.timestamp)
        series.values.append(value)
    return series


# -------------------------
# COLUMNAR FRAMES
# -------------------------

def device_frame(
    project: Project,
    device: DeviceWithEvents,
    channel: Optional[str] = None,
) -> Frame:
    series = project_events(device.events)
    return Frame(
        name=project.id,
        fields=[
            Field("Value", series.values, labels={"device": device.device.label}),
            Field("Time", series.times),
        ],
        meta=FrameMeta(channel=channel),
    )


def hierarchy_frames(projects: Iterable[ProjectWithDevices], channel_for=None) -> List[Frame]:
    """One series frame per (project, device), in hierarchy order."""
    frames = []
    for group in projects:
        for device in group.devices:
            channel = channel_for(device.device.id) if channel_for else None
            frames.append(device_frame(group.project, device, channel))
    return frames


def projects_frame(projects: List[Project]) -> Frame:
    return Frame(
        name="response",
        fields=[
            Field("id", [p.id for p in projects]),
            Field("name", [p.display_name for p in projects]),
        ],
    )


def devices_frame(devices: List[Device]) -> Frame:
    return Frame(
        name="response",
        fields=[
            Field("id", [d.id for d in devices]),
            Field("name", [d.label for d in devices]),
            Field("project_id", [d.project_id for d in devices]),
            Field("type", [d.type for d in devices]),
        ],
    )
