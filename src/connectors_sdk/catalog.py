"""Endpoint catalog: (module, object, operation) -> HTTP method + URL.

A catalog holds one :class:`OperationRegistry` per operation kind.  Each
registry maps module id -> object name -> :class:`OperationSpec`.  Path
templates may contain ``{{.recordID}}``; otherwise a record id is appended
as a trailing path segment.

Usage::

    catalog = EndpointCatalog(
        base_url="https://api.example.com",
        module="root",
        read=OperationRegistry({"root": {"orders": OperationSpec("GET", "/orders")}}),
        update=OperationRegistry(
            {"root": {"orders": OperationSpec("PATCH", "/orders({{.recordID}})")}}
        ),
    )
    op = catalog.create_write_operation(WriteParams("orders", record_id="42", record_data={}))
    str(op.url)  # https://api.example.com/orders(42)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from connectors_sdk.errors import MissingRecordIdError, OperationNotSupportedForObjectError
from connectors_sdk.models import DeleteParams, ReadParams, WriteParams
from connectors_sdk.staticschema import Metadata, module_identifier
from connectors_sdk.urlbuilder import URL

RECORD_ID_MARKER = "{{.recordID}}"


@dataclass(frozen=True)
class OperationSpec:
    method: str
    path: str

    def resolve_path(self, record_id: str = "") -> str:
        """Apply the record-id rule to this spec's path template."""
        if RECORD_ID_MARKER in self.path:
            if not record_id:
                raise MissingRecordIdError(f"path {self.path!r} requires a record id")
            return self.path.replace(RECORD_ID_MARKER, record_id)
        if not record_id:
            return self.path
        return f"{self.path}/{record_id}"


@dataclass(frozen=True)
class Operation:
    """A resolved endpoint, ready to be sent."""

    method: str
    url: URL


SpecFallback = Callable[[str, str], "OperationSpec | None"]


@dataclass
class OperationRegistry:
    """module id -> object name -> spec, with an optional fallback.

    The fallback receives ``(module_id, object_name)`` for objects that are
    not listed and may return a spec or ``None``.
    """

    specs: dict[str, dict[str, OperationSpec]] = field(default_factory=dict)
    fallback: SpecFallback | None = None

    def lookup(self, module_id: str, object_name: str) -> OperationSpec:
        module_id = module_identifier(module_id)
        spec = self.specs.get(module_id, {}).get(object_name)
        if spec is None and self.fallback is not None:
            spec = self.fallback(module_id, object_name)
        if spec is None:
            raise OperationNotSupportedForObjectError(
                f"operation is not supported for object {object_name!r} in module {module_id!r}"
            )
        return spec

    def supports(self, module_id: str, object_name: str) -> bool:
        try:
            self.lookup(module_id, object_name)
        except OperationNotSupportedForObjectError:
            return False
        return True

    def objects(self, module_id: str) -> list[str]:
        return list(self.specs.get(module_identifier(module_id), {}))

    @classmethod
    def uniform(
        cls,
        method: str,
        paths: dict[str, dict[str, str]],
        fallback: SpecFallback | None = None,
    ) -> "OperationRegistry":
        """Build a registry where every object shares the same HTTP method."""
        specs = {
            module_identifier(mid): {obj: OperationSpec(method, path) for obj, path in objects.items()}
            for mid, objects in paths.items()
        }
        return cls(specs, fallback)


def registry_from_static_schema(metadata: Metadata, method: str = "GET") -> OperationRegistry:
    """Read-only registry using ``module.path + object.path`` for every object."""
    specs: dict[str, dict[str, OperationSpec]] = {}
    for module_id, module in metadata.modules.items():
        specs[module_id] = {
            name: OperationSpec(method, module.path + obj.url_path)
            for name, obj in module.objects.items()
            if obj.url_path
        }
    return OperationRegistry(specs)


class EndpointCatalog:
    """Resolves read/write/delete operations against one base URL and module."""

    def __init__(
        self,
        base_url: str,
        module: str = "",
        *,
        read: OperationRegistry | None = None,
        create: OperationRegistry | None = None,
        update: OperationRegistry | None = None,
        delete: OperationRegistry | None = None,
    ) -> None:
        self.base_url = base_url
        self.module = module_identifier(module)
        self.read = read or OperationRegistry()
        self.create = create or OperationRegistry()
        self.update = update or OperationRegistry()
        self.delete = delete or OperationRegistry()

    def with_read(self, read: OperationRegistry) -> "EndpointCatalog":
        """A copy of this catalog using *read*; the write registries are shared."""
        return EndpointCatalog(
            self.base_url, self.module, read=read, create=self.create, update=self.update, delete=self.delete
        )

    def _build(self, spec: OperationSpec, record_id: str = "") -> Operation:
        url = URL.new(self.base_url)
        url.add_path(spec.resolve_path(record_id))
        return Operation(method=spec.method, url=url)

    def choose_write_registry(self, record_id: str) -> OperationRegistry:
        return self.update if record_id else self.create

    def create_read_operation(self, params: ReadParams) -> Operation:
        spec = self.read.lookup(self.module, params.object_name)
        return self._build(spec)

    def create_write_operation(self, params: WriteParams) -> Operation:
        registry = self.choose_write_registry(params.record_id)
        spec = registry.lookup(self.module, params.object_name)
        return self._build(spec, params.record_id)

    def create_delete_operation(self, params: DeleteParams) -> Operation:
        spec = self.delete.lookup(self.module, params.object_name)
        return self._build(spec, params.record_id)
