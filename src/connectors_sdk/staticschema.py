"""Static object catalog bundled with a provider (``schemas.json``).

The document enumerates modules, each with a base ``path`` and a set of
objects.  An object's full URL path is ``module.path + object.path``::

    {
      "modules": {
        "root": {
          "id": "root",
          "path": "/v2",
          "objects": {
            "contacts": {"displayName": "Contacts", "path": "/contacts",
                         "responseKey": "data", "fields": {"id": "id"}}
          }
        }
      }
    }

Files may be JSON or YAML.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from connectors_sdk.errors import ObjectNotSupportedError, ResolvingURLPathError
from connectors_sdk.models import (
    ROOT_MODULE_ID,
    FieldMetadata,
    ListObjectMetadataResult,
    ObjectMetadata,
)


def module_identifier(module_id: str) -> str:
    """Empty module id means the root module."""
    return module_id or ROOT_MODULE_ID


@dataclass
class Object:
    display_name: str
    url_path: str
    fields: dict[str, str] = field(default_factory=dict)
    response_key: str = ""
    docs_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Object":
        return cls(
            display_name=data.get("displayName", ""),
            url_path=data.get("path", ""),
            fields=dict(data.get("fields", {})),
            response_key=data.get("responseKey", ""),
            docs_url=data.get("docs"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "displayName": self.display_name,
            "path": self.url_path,
            "fields": self.fields,
        }
        if self.response_key:
            out["responseKey"] = self.response_key
        if self.docs_url:
            out["docs"] = self.docs_url
        return out


@dataclass
class Module:
    id: str
    path: str = ""
    objects: dict[str, Object] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, module_id: str, data: dict[str, Any]) -> "Module":
        return cls(
            id=data.get("id", module_id),
            path=data.get("path", ""),
            objects={name: Object.from_dict(obj) for name, obj in data.get("objects", {}).items()},
        )

    def with_path(self, path: str) -> None:
        """Move *path* from every object's URL into the module prefix."""
        path = path.removesuffix("/")
        self.path = path
        for obj in self.objects.values():
            obj.url_path = obj.url_path.removeprefix(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "objects": {name: obj.to_dict() for name, obj in self.objects.items()},
        }


def _common_prefix(a: str, b: str) -> str:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return a[:n]


class Metadata:
    """All modules and objects a provider exposes."""

    def __init__(self, modules: dict[str, Module] | None = None) -> None:
        self.modules: dict[str, Module] = modules or {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Metadata":
        modules = {
            module_id: Module.from_dict(module_id, module)
            for module_id, module in data.get("modules", {}).items()
        }
        return cls(modules)

    @classmethod
    def load(cls, path: str | Path) -> "Metadata":
        """Load from a ``.json``, ``.yaml`` or ``.yml`` file."""
        p = Path(path)
        text = p.read_text(encoding="utf-8")
        if p.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {"modules": {mid: m.to_dict() for mid, m in self.modules.items()}}

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add(
        self,
        module_id: str,
        object_name: str,
        display_name: str,
        field_name: str,
        url_path: str,
        docs_url: str | None = None,
        response_key: str = "",
    ) -> None:
        """Register one field of an object, creating module/object on first use."""
        module_id = module_identifier(module_id)
        module = self.modules.setdefault(module_id, Module(id=module_id))
        obj = module.objects.get(object_name)
        if obj is None:
            obj = Object(
                display_name=display_name,
                url_path=url_path,
                docs_url=docs_url,
                response_key=response_key,
            )
            module.objects[object_name] = obj
        obj.fields[field_name] = field_name

    def refactor_longest_common_path(self) -> None:
        """Lift the URL prefix shared by all objects of a module into the module path."""
        for module in self.modules.values():
            common: str | None = None
            for obj in module.objects.values():
                common = obj.url_path if common is None else _common_prefix(common, obj.url_path)
                if not common:
                    break
            module.with_path(common or "")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def object_names(self) -> dict[str, list[str]]:
        names = {mid: list(m.objects) for mid, m in self.modules.items()}
        if ROOT_MODULE_ID in names:
            names[""] = names[ROOT_MODULE_ID]
        return names

    def lookup_object(self, module_id: str, object_name: str) -> Object:
        module = self.modules.get(module_identifier(module_id))
        if module is None or object_name not in module.objects:
            raise ObjectNotSupportedError(f"operation is not supported for this object: {object_name}")
        return module.objects[object_name]

    def lookup_url_path(self, module_id: str, object_name: str) -> str:
        module = self.modules.get(module_identifier(module_id))
        obj = module.objects.get(object_name) if module else None
        if module is None or obj is None or not obj.url_path:
            raise ResolvingURLPathError(f"cannot resolve URL path for given object name: {object_name}")
        return module.path + obj.url_path

    def select(self, module_id: str, object_names: list[str]) -> ListObjectMetadataResult:
        """Build object metadata for *object_names*; unknown names land in ``errors``."""
        result = ListObjectMetadataResult()
        module = self.modules.get(module_identifier(module_id))
        for name in object_names:
            obj = module.objects.get(name) if module else None
            if obj is None:
                result.errors[name] = ObjectNotSupportedError(
                    f"operation is not supported for this object: {name}"
                )
                continue
            metadata = ObjectMetadata(display_name=obj.display_name or name)
            for field_name, display in obj.fields.items():
                metadata.add_field(field_name, FieldMetadata(display_name=display, provider_type=""))
            result.result[name] = metadata
        return result
