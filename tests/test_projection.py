from datetime import datetime, timedelta, timezone

import pytest

from core.models import (
    Device,
    DeviceWithEvents,
    Event,
    EventType,
    NetworkStatusPayload,
    PresencePayload,
    Project,
    ProjectWithDevices,
    TemperaturePayload,
    UnknownPayload,
)
from pipeline.grouping import group_events
from pipeline.projection import (
    device_frame,
    devices_frame,
    hierarchy_frames,
    project_event,
    project_events,
    projects_frame,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(s: int) -> datetime:
    return T0 + timedelta(seconds=s)


def mk_event(eid, device, event_type, payload, t) -> Event:
    return Event(
        id=eid, device_id=device, project_id="P1",
        event_type=event_type, timestamp=at(t), payload=payload,
    )


def test_temperature_projects_to_its_value():
    ev = mk_event("1", "A", EventType.TEMPERATURE, TemperaturePayload(21.5), 0)
    assert project_event(ev) == 21.5
    assert project_event(ev) == project_event(ev)


@pytest.mark.parametrize("state,expected", [
    ("NOT_PRESENT", 0.0),
    ("PRESENT", 1.0),
    ("garbage", 1.0),
    ("", 1.0),
])
def test_presence_projection(state, expected):
    ev = mk_event("1", "B", EventType.OBJECT_PRESENT, PresencePayload(state), 0)
    assert project_event(ev) == expected


def test_unrepresentable_events_are_excluded():
    network = mk_event("1", "A", EventType.NETWORK_STATUS, NetworkStatusPayload(80, -60), 0)
    unknown = mk_event("2", "A", EventType.UNKNOWN, UnknownPayload(), 1)

    assert project_event(network) is None
    series = project_events([unknown, network, unknown])
    assert series.times == [] and series.values == []


def test_series_columns_stay_aligned():
    events = [
        mk_event("1", "A", EventType.TEMPERATURE, TemperaturePayload(20.0), 0),
        mk_event("2", "A", EventType.UNKNOWN, UnknownPayload(), 1),
        mk_event("3", "A", EventType.TEMPERATURE, TemperaturePayload(22.0), 2),
    ]
    series = project_events(events)
    assert series.times == [at(0), at(2)]
    assert series.values == [20.0, 22.0]
    assert len(series) == 2


def test_end_to_end_scenario():
    events = [
        mk_event("1", "A", EventType.TEMPERATURE, TemperaturePayload(21.5), 100),
        mk_event("3", "B", EventType.OBJECT_PRESENT, PresencePayload("NOT_PRESENT"), 105),
        mk_event("2", "A", EventType.UNKNOWN, UnknownPayload(), 110),
    ]
    devices = [
        Device(id="A", label="kitchen", project_id="P1"),
        Device(id="B", label="hall", project_id="P1"),
    ]

    projects = group_events(events, lambda ids: devices)
    assert [p.project.id for p in projects] == ["P1"]
    assert len(projects[0].devices) == 2

    frames = hierarchy_frames(projects)
    a, b = frames
    assert a.get_field("Value").labels == {"device": "kitchen"}
    assert (a.get_field("Time").values, a.get_field("Value").values) == ([at(100)], [21.5])
    assert (b.get_field("Time").values, b.get_field("Value").values) == ([at(105)], [0.0])


def test_device_without_representable_events_still_gets_a_frame():
    device = DeviceWithEvents(
        device=Device(id="A", label="kitchen", project_id="P1"),
        events=[mk_event("1", "A", EventType.UNKNOWN, UnknownPayload(), 0)],
    )
    frame = device_frame(Project.synthetic("P1"), device)

    assert frame.name == "P1"
    assert [f.name for f in frame.fields] == ["Value", "Time"]
    assert frame.rows() == 0


def test_hierarchy_frames_attach_channels():
    device = DeviceWithEvents(device=Device(id="A", label="kitchen", project_id="P1"))
    frames = hierarchy_frames(
        [ProjectWithDevices(Project.synthetic("P1"), [device])],
        channel_for=lambda did: f"ds/uid/stream/device/{did}",
    )
    assert frames[0].meta.channel == "ds/uid/stream/device/A"


def test_table_frames():
    pf = projects_frame([Project("P1", "Home", "Acme")])
    assert pf.to_records() == [{"id": "P1", "name": "Home"}]

    df = devices_frame([Device(id="A", label="kitchen", project_id="P1", type="temperature")])
    assert df.to_records() == [{"id": "A", "name": "kitchen", "project_id": "P1", "type": "temperature"}]
