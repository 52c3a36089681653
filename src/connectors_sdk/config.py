"""Runtime settings from environment variables and optional YAML files.

=============================== ========================= ============
Environment variable            Setting                   Default
=============================== ========================= ============
``CONNECTORS_LOG_LEVEL``        ``log_level``             ``INFO``
``CONNECTORS_HTTP_TIMEOUT``     ``http_timeout``          ``60``
``CONNECTORS_MAX_CONCURRENCY``  ``max_concurrency``       ``8``
``CONNECTORS_MEMSTORE_SCHEMAS`` ``memstore_schemas``      unset
``PORT``                        ``port``                  ``8080``
=============================== ========================= ============

YAML files use the setting names as keys; the environment wins over the
file.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import httpx
import yaml

_ENV = {
    "log_level": "CONNECTORS_LOG_LEVEL",
    "http_timeout": "CONNECTORS_HTTP_TIMEOUT",
    "max_concurrency": "CONNECTORS_MAX_CONCURRENCY",
    "memstore_schemas": "CONNECTORS_MEMSTORE_SCHEMAS",
    "port": "PORT",
}


@dataclass
class Settings:
    log_level: str = "INFO"
    http_timeout: float = 60.0
    max_concurrency: int = 8
    memstore_schemas: str | None = None
    port: int = 8080

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            raw = data[f.name]
            if f.name == "http_timeout":
                values[f.name] = float(raw)
            elif f.name in ("max_concurrency", "port"):
                values[f.name] = int(raw)
            else:
                values[f.name] = str(raw)
        settings = cls(**values)
        settings.log_level = settings.log_level.upper()
        return settings

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, base: Mapping[str, Any] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        data = dict(base or {})
        for name, var in _ENV.items():
            value = env.get(var)
            if value:
                data[name] = value
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, path: str | Path, environ: Mapping[str, str] | None = None) -> "Settings":
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping of settings")
        return cls.from_env(environ, base=data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def http_client(self, **kwargs: Any) -> httpx.AsyncClient:
        """A new ``httpx.AsyncClient`` with the configured timeout."""
        kwargs.setdefault("timeout", self.http_timeout)
        return httpx.AsyncClient(**kwargs)
