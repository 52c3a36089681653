"""Random records that satisfy an object's JSON Schema.

Used to seed a memstore with plausible data.  Generation honours type,
``format``, ``enum``, numeric bounds (inclusive and exclusive),
``multipleOf``, string length, ``pattern``, array size and
``uniqueItems``.  Nested objects are generated down to ``MAX_DEPTH``
levels; below that, placeholders are used so recursive schemas terminate.
Each candidate record is validated, and generation is retried up to
``MAX_RETRIES`` times.
"""

from __future__ import annotations

import logging
import math
import random
import string
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import rstr

from connectors_sdk.datautils import format_rfc3339
from connectors_sdk.memstore.errors import (
    UniqueConstraintError,
    UniqueValueError,
    ValidationFailedError,
)
from connectors_sdk.memstore.schema import ObjectSchema, SchemaRegistry

logger = logging.getLogger(__name__)

MAX_DEPTH = 5
MAX_RETRIES = 100
UNIQUE_ATTEMPTS = 10
STRING_ATTEMPTS = 3

DEFAULT_MIN_INT = -1000
DEFAULT_MAX_INT = 1000
DEFAULT_MIN_ITEMS = 1
DEFAULT_MAX_ITEMS = 3
DEFAULT_MAX_LENGTH = 50

_WORDS = (
    "alpha", "bravo", "cedar", "delta", "ember", "falcon", "granite", "harbor",
    "island", "juniper", "kestrel", "lumen", "meadow", "nimbus", "orchid", "pioneer",
    "quartz", "river", "summit", "timber", "umber", "violet", "willow", "zephyr",
)
_FIRST_NAMES = ("Ada", "Grace", "Alan", "Linus", "Barbara", "Edsger", "Katherine", "Dennis")
_LAST_NAMES = ("Lovelace", "Hopper", "Turing", "Torvalds", "Liskov", "Dijkstra", "Johnson", "Ritchie")


def generate_id(json_type: str) -> Any:
    """Nanosecond timestamp for integer ids, UUID string otherwise."""
    if json_type == "integer":
        return time.time_ns()
    return str(uuid.uuid4())


def generate_timestamp(json_type: str) -> Any:
    """RFC3339 for string fields, Unix seconds otherwise."""
    if json_type == "string":
        return format_rfc3339(datetime.now(timezone.utc).replace(microsecond=0))
    return int(time.time())


def placeholder(json_type: str) -> Any:
    return {
        "string": "placeholder",
        "integer": 0,
        "number": 0.0,
        "boolean": False,
        "array": [],
        "object": {},
    }.get(json_type, "placeholder")


def _bound(definition: dict[str, Any], key: str) -> float | None:
    value = definition.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class RecordGenerator:
    """Produce schema-valid random records.

    Parameters
    ----------
    schemas:
        Compiled object schemas.
    rng:
        Source of randomness; pass a seeded ``random.Random`` for
        reproducible output.
    """

    def __init__(self, schemas: SchemaRegistry, rng: random.Random | None = None) -> None:
        self.schemas = schemas
        self.rng = rng or random.Random()
        self._xeger = rstr.Rstr(self.rng)

    def generate(self, object_name: str) -> dict[str, Any]:
        schema = self.schemas.get(object_name)
        last_error: ValidationFailedError | None = None
        for attempt in range(MAX_RETRIES):
            record = self._record(schema)
            errors = schema.errors(record)
            if not errors:
                return record
            last_error = ValidationFailedError(errors=errors)
            logger.debug("Generated %s record invalid on attempt %d: %s", object_name, attempt + 1, errors)
        raise ValidationFailedError(
            f"generated record validation failed after {MAX_RETRIES} attempts: {last_error}",
            errors=last_error.errors if last_error else [],
        )

    def _record(self, schema: ObjectSchema) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for name, definition in schema.properties.items():
            if not isinstance(definition, dict):
                continue
            if name == schema.id_field:
                record[name] = generate_id(schema.property_type(name))
            elif name == schema.updated_field:
                record[name] = generate_timestamp(schema.property_type(name))
            else:
                record[name] = self.value(definition, 0)
        return record

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def value(self, definition: dict[str, Any], depth: int) -> Any:
        json_type = definition.get("type") if isinstance(definition.get("type"), str) else ""
        if depth >= MAX_DEPTH:
            return placeholder(json_type)

        enum = definition.get("enum")
        if isinstance(enum, list) and enum:
            return self.rng.choice(enum)

        if json_type == "string":
            return self.string_value(definition)
        if json_type == "integer":
            return self.integer_value(definition)
        if json_type == "number":
            return self.number_value(definition)
        if json_type == "boolean":
            return self.rng.random() < 0.5
        if json_type == "array":
            return self.array_value(definition, depth)
        if json_type == "object":
            return self.object_value(definition, depth)
        return self.word()

    def word(self) -> str:
        return self.rng.choice(_WORDS)

    def letters(self, n: int) -> str:
        return "".join(self.rng.choice(string.ascii_letters) for _ in range(n))

    def string_value(self, definition: dict[str, Any]) -> str:
        min_length = definition.get("minLength")
        max_length = definition.get("maxLength")

        def fits(value: str) -> bool:
            if isinstance(min_length, int) and len(value) < min_length:
                return False
            if isinstance(max_length, int) and len(value) > max_length:
                return False
            return True

        pattern = definition.get("pattern")
        if isinstance(pattern, str) and pattern:
            for _ in range(STRING_ATTEMPTS):
                value = self._xeger.xeger(pattern)
                if fits(value):
                    return value

        fmt = definition.get("format") if isinstance(definition.get("format"), str) else ""
        for _ in range(STRING_ATTEMPTS):
            value = self.formatted(fmt, min_length, max_length)
            if fits(value):
                return value
        return self.sized_string(min_length, max_length)

    def formatted(self, fmt: str, min_length: int | None, max_length: int | None) -> str:
        if fmt == "email":
            value = f"{self.word()}.{self.word()}{self.rng.randint(1, 999)}@example.com"
        elif fmt == "uuid":
            value = str(uuid.UUID(int=self.rng.getrandbits(128), version=4))
        elif fmt == "date":
            value = self.random_datetime().date().isoformat()
        elif fmt == "date-time":
            value = format_rfc3339(self.random_datetime())
        elif fmt in ("uri", "url"):
            value = f"https://www.{self.word()}.com/{self.word()}"
        elif fmt in ("phone", "telephone"):
            value = "+1-{}-{}-{}".format(
                self.rng.randint(200, 999), self.rng.randint(200, 999), self.rng.randint(1000, 9999)
            )
        else:
            choice = self.rng.randint(0, 2)
            if choice == 0:
                value = f"{self.rng.choice(_FIRST_NAMES)} {self.rng.choice(_LAST_NAMES)}"
            elif choice == 1:
                value = self.word()
            else:
                value = " ".join(self.word() for _ in range(5))

        if isinstance(min_length, int) and len(value) < min_length:
            value += self.letters(min_length - len(value))
        if isinstance(max_length, int) and len(value) > max_length:
            value = value[:max_length]
        return value

    def sized_string(self, min_length: int | None, max_length: int | None) -> str:
        lo = min_length if isinstance(min_length, int) and min_length > 0 else 1
        hi = max_length if isinstance(max_length, int) and max_length > 0 else DEFAULT_MAX_LENGTH
        hi = max(hi, lo)
        return self.letters(self.rng.randint(lo, hi))

    def random_datetime(self) -> datetime:
        start = datetime(2000, 1, 1, tzinfo=timezone.utc)
        return start + timedelta(seconds=self.rng.randint(0, 30 * 365 * 24 * 3600))

    def integer_value(self, definition: dict[str, Any]) -> int:
        lo, hi = float(DEFAULT_MIN_INT), float(DEFAULT_MAX_INT)
        if (minimum := _bound(definition, "minimum")) is not None:
            lo = minimum
        if (maximum := _bound(definition, "maximum")) is not None:
            hi = maximum
        lo, hi = self._exclusive(definition, lo, hi, 1)
        lo_i, hi_i = math.ceil(lo), math.floor(hi)

        multiple = _bound(definition, "multipleOf")
        if multiple and multiple > 0 and multiple.is_integer():
            m = int(multiple)
            first, last = math.ceil(lo_i / m) * m, math.floor(hi_i / m) * m
            if first > last:
                return first
            return self.rng.randrange(first, last + 1, m)
        if lo_i > hi_i:
            return lo_i
        return self.rng.randint(lo_i, hi_i)

    def number_value(self, definition: dict[str, Any]) -> float:
        lo, hi = float(DEFAULT_MIN_INT), float(DEFAULT_MAX_INT)
        if (minimum := _bound(definition, "minimum")) is not None:
            lo = minimum
        if (maximum := _bound(definition, "maximum")) is not None:
            hi = maximum
        lo, hi = self._exclusive(definition, lo, hi, 0.001)
        multiple = _bound(definition, "multipleOf")
        if multiple and multiple > 0:
            first, last = math.ceil(lo / multiple), math.floor(hi / multiple)
            k = first if first > last else self.rng.randint(first, last)
            return k * multiple
        return self.rng.uniform(lo, hi)

    @staticmethod
    def _exclusive(definition: dict[str, Any], lo: float, hi: float, step: float) -> tuple[float, float]:
        """Apply ``exclusiveMinimum``/``exclusiveMaximum`` in both draft styles."""
        ex_min = definition.get("exclusiveMinimum")
        if ex_min is True:
            lo += step
        elif (value := _bound(definition, "exclusiveMinimum")) is not None:
            lo = max(lo, value + step)
        ex_max = definition.get("exclusiveMaximum")
        if ex_max is True:
            hi -= step
        elif (value := _bound(definition, "exclusiveMaximum")) is not None:
            hi = min(hi, value - step)
        return lo, hi

    def array_value(self, definition: dict[str, Any], depth: int) -> list[Any]:
        min_items = definition.get("minItems", DEFAULT_MIN_ITEMS)
        max_items = definition.get("maxItems", DEFAULT_MAX_ITEMS)
        max_items = max(max_items, min_items)
        items = definition.get("items") if isinstance(definition.get("items"), dict) else None
        unique = definition.get("uniqueItems") is True

        if unique and items is not None and isinstance(items.get("enum"), list):
            available = len(items["enum"])
            if min_items > available:
                raise UniqueConstraintError(
                    f"uniqueItems constraint cannot be satisfied: minItems ({min_items}) "
                    f"exceeds number of enum values ({available})"
                )
            max_items = min(max_items, available)
            return self.rng.sample(items["enum"], self.rng.randint(min_items, max_items))

        def item() -> Any:
            return self.value(items, depth + 1) if items is not None else self.word()

        size = self.rng.randint(min_items, max_items)
        values: list[Any] = []
        seen: set[str] = set()
        for index in range(size):
            value = item()
            if unique:
                attempts = 0
                while repr(value) in seen and attempts < UNIQUE_ATTEMPTS:
                    value = item()
                    attempts += 1
                if repr(value) in seen:
                    raise UniqueValueError(
                        f"failed to generate unique value for array element {index} after {attempts} attempts"
                    )
                seen.add(repr(value))
            values.append(value)
        return values

    def object_value(self, definition: dict[str, Any], depth: int) -> dict[str, Any]:
        properties = definition.get("properties")
        if not isinstance(properties, dict):
            return {"key": self.word()}
        return {
            name: self.value(prop, depth + 1)
            for name, prop in properties.items()
            if isinstance(prop, dict)
        }
