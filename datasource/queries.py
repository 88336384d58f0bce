import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from core.errors import UnknownEntityError
from core.models import Filter, FilterEntity, split_ids


class Entity(str, Enum):
    PROJECTS = "Projects"
    DEVICES = "Devices"
    EVENTS = "Events"


# -------------------------
# QUERY VARIANTS
# -------------------------

@dataclass(frozen=True)
class ProjectsQuery:
    pass


@dataclass(frozen=True)
class DevicesQuery:
    project_ids: Optional[List[str]] = None


@dataclass(frozen=True)
class EventsQuery:
    filter: Filter
    with_streaming: bool = False


Query = Union[ProjectsQuery, DevicesQuery, EventsQuery]


# -------------------------
# PARSING
# -------------------------

def parse_query(model: Union[str, bytes, Mapping[str, Any]]) -> Query:
    """
    Turn a query model ``{"entity", "parameters", "withStreaming"}`` into a variant.

    Parameters are already-flat strings; id lists are comma-separated.
    """
    if isinstance(model, (str, bytes)):
        model = json.loads(model)

    entity = model.get("entity", "")
    params: Mapping[str, str] = model.get("parameters") or {}

    try:
        kind = Entity(entity)
    except ValueError:
        raise UnknownEntityError(str(entity)) from None

    if kind is Entity.PROJECTS:
        return ProjectsQuery()

    if kind is Entity.DEVICES:
        return DevicesQuery(project_ids=split_ids(params.get("projects")))

    filter_name = params.get("filter")
    if not filter_name:
        # no filter dimension selected: the query matches nothing
        flt = Filter(entity=FilterEntity.PROJECTS, value="")
    else:
        try:
            filter_entity = FilterEntity(filter_name)
        except ValueError:
            raise UnknownEntityError(str(filter_name)) from None
        flt = Filter(entity=filter_entity, value=params.get(filter_entity.value, ""))

    return EventsQuery(
        filter=flt,
        with_streaming=bool(model.get("withStreaming", False)),
    )
