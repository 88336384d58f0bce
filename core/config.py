from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping, Optional, Union


DEFAULT_DATABASE = "disruptiveBackup"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class StreamSettings:
    interval: timedelta = timedelta(seconds=5)
    lookahead: timedelta = timedelta(minutes=1)


@dataclass(frozen=True)
class DatasourceSettings:
    mongodb_url: str
    database: str = DEFAULT_DATABASE
    uid: str = ""
    stream: StreamSettings = field(default_factory=StreamSettings)

    @classmethod
    def from_json(
        cls,
        json_data: Union[str, bytes, Mapping[str, Any]],
        uid: str = "",
    ) -> "DatasourceSettings":
        data = json.loads(json_data) if isinstance(json_data, (str, bytes)) else dict(json_data)
        url = data.get("mongodbUrl")
        if not url:
            raise ValueError("mongodbUrl is required")
        return cls(
            mongodb_url=url,
            database=data.get("database") or DEFAULT_DATABASE,
            uid=uid,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DatasourceSettings":
        env = os.environ if environ is None else environ
        return cls(
            mongodb_url=env.get("MONGODB_URL", "mongodb://localhost:27017"),
            database=env.get("MONGODB_DATABASE", DEFAULT_DATABASE),
            uid=env.get("DATASOURCE_UID", ""),
        )


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
