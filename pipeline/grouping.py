import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from core.models import Device, DeviceWithEvents, Event, Project, ProjectWithDevices

logger = logging.getLogger(__name__)

DeviceFetcher = Callable[[List[str]], Sequence[Device]]
ProjectFetcher = Callable[[List[str]], Sequence[Project]]


def bucket_by_device(events: Iterable[Event]) -> Dict[str, List[Event]]:
    """Single pass over time-ordered events; each bucket keeps the input order."""
    buckets: Dict[str, List[Event]] = {}
    for event in events:
        buckets.setdefault(event.device_id, []).append(event)
    return buckets


def attach_devices(
    buckets: Mapping[str, List[Event]],
    devices: Iterable[Device],
    projects: Optional[Mapping[str, Project]] = None,
) -> List[ProjectWithDevices]:
    """
    Re-attach event buckets to device and project identity.

    Projects appear in first-seen device order. A project id without a
    record in ``projects`` gets a synthetic Project.
    """
    known = projects or {}
    out: List[ProjectWithDevices] = []
    by_project: Dict[str, ProjectWithDevices] = {}
    seen_devices = set()

    for device in devices:
        if device.id in seen_devices:
            continue
        seen_devices.add(device.id)

        entry = DeviceWithEvents(device=device, events=list(buckets.get(device.id, [])))

        group = by_project.get(device.project_id)
        if group is None:
            project = known.get(device.project_id) or Project.synthetic(device.project_id)
            group = ProjectWithDevices(project=project)
            by_project[device.project_id] = group
            out.append(group)

        group.devices.append(entry)

    return out


def group_events(
    events: Iterable[Event],
    fetch_devices: DeviceFetcher,
    fetch_projects: Optional[ProjectFetcher] = None,
) -> List[ProjectWithDevices]:
    buckets = bucket_by_device(events)
    if not buckets:
        # an empty device filter would read as "all devices"
        return []

    devices = fetch_devices(list(buckets))

    missing = set(buckets) - {d.id for d in devices}
    if missing:
        logger.info("Dropping events of %d unknown devices", len(missing))

    projects = None
    if fetch_projects is not None:
        project_ids = sorted({d.project_id for d in devices})
        projects = {p.id: p for p in fetch_projects(project_ids)}

    return attach_devices(buckets, devices, projects)
