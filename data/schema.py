"""Runtime record schemas: ordered (name, type tag) field descriptors.

A schema drives three things from one declaration: the header of exported
tables, the text rendering of rows, and a numpy structured dtype whose field
offsets and element types let a transport move whole record batches as one
contiguous buffer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Iterable, Iterator, Sequence

import numpy as np

from core.errors import LedgerError

DEFAULT_STR_LENGTH = 64

_NUMERIC_TAGS: dict[str, type[np.generic]] = {
    "int": np.int64,
    "uint": np.uint32,
    "float": np.float64,
    "float32": np.float32,
    "bool": np.bool_,
}
_TAG_PATTERN = re.compile(r"^\s*(?P<tag>[a-z0-9]+)\s*(?:\[\s*(?P<size>\d+)\s*\])?\s*$")


@dataclass(frozen=True)
class FieldSpec:
    """One named column. ``shape`` makes it a fixed-length vector field."""

    name: str
    type_tag: str
    shape: tuple[int, ...] = ()
    length: int = DEFAULT_STR_LENGTH

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("field name must be non-empty")
        if self.type_tag != "str" and self.type_tag not in _NUMERIC_TAGS:
            known = ", ".join(sorted([*_NUMERIC_TAGS, "str"]))
            raise ValueError(f"Unknown type tag '{self.type_tag}' for field '{self.name}'. Known: {known}")

    @property
    def base_dtype(self) -> np.dtype:
        if self.type_tag == "str":
            return np.dtype(f"U{self.length}")
        return np.dtype(_NUMERIC_TAGS[self.type_tag])

    @classmethod
    def parse(cls, name: str, spec: str) -> "FieldSpec":
        """Parse ``"float"``, ``"int[3]"`` or ``"str[32]"`` declarations.

        For ``str`` the bracket gives the maximum length; for other tags it
        gives the vector length.
        """
        match = _TAG_PATTERN.match(str(spec))
        if match is None:
            raise ValueError(f"Invalid type declaration '{spec}' for field '{name}'")
        tag = match.group("tag")
        size = match.group("size")
        if tag == "str":
            return cls(name=name, type_tag=tag, length=int(size) if size else DEFAULT_STR_LENGTH)
        return cls(name=name, type_tag=tag, shape=(int(size),) if size else ())

    def coerce(self, value: Any) -> Any:
        """Return ``value`` as the plain Python value this field stores.

        Every strategy stores echoed values through this, so a record reads the
        same whether or not it crossed a transport as a packed array. Values
        that would not survive the field's binary layout raise ``LedgerError``.
        """
        if self.shape:
            if not isinstance(value, (list, tuple, np.ndarray)) or len(value) != self.shape[0]:
                raise LedgerError(f"Field '{self.name}' expects {self.shape[0]} values, got {value!r}")
            element = FieldSpec(name=self.name, type_tag=self.type_tag, length=self.length)
            return tuple(element.coerce(item) for item in value)
        if self.type_tag == "str":
            text = str(value)
            if len(text) > self.length:
                raise LedgerError(f"Field '{self.name}' holds at most {self.length} characters, got {len(text)}")
            return text
        if self.type_tag == "bool":
            return bool(value)
        if isinstance(value, (float, np.floating)) and self.type_tag in ("int", "uint") and not float(value).is_integer():
            raise LedgerError(f"Field '{self.name}' is declared {self.type_tag}, got non-integral {value!r}")
        try:
            if self.type_tag in ("float", "float32"):
                return float(self.base_dtype.type(value))
            number = int(value)
        except (TypeError, ValueError, OverflowError) as exc:
            raise LedgerError(f"Field '{self.name}' cannot store {value!r} as {self.type_tag}") from exc
        bounds = np.iinfo(self.base_dtype)
        if not bounds.min <= number <= bounds.max:
            raise LedgerError(f"Field '{self.name}' value {number} is out of range for {self.type_tag}")
        return number

    @classmethod
    def infer(cls, name: str, value: Any) -> "FieldSpec":
        """Infer a field declaration from a sample value."""
        if isinstance(value, (list, tuple, np.ndarray)):
            items = list(value)
            if not items:
                raise ValueError(f"Cannot infer element type of empty vector field '{name}'")
            element = cls.infer(name, items[0])
            if element.shape:
                raise ValueError(f"Nested vector field '{name}' is not supported")
            return cls(name=name, type_tag=element.type_tag, shape=(len(items),), length=element.length)
        if isinstance(value, (bool, np.bool_)):
            return cls(name=name, type_tag="bool")
        if isinstance(value, (int, np.integer)):
            return cls(name=name, type_tag="int")
        if isinstance(value, (float, np.floating)):
            return cls(name=name, type_tag="float")
        if isinstance(value, str):
            return cls(name=name, type_tag="str", length=max(DEFAULT_STR_LENGTH, len(value)))
        raise ValueError(f"Cannot infer a column type for field '{name}' from {type(value).__name__}")


class RecordSchema:
    """Ordered collection of ``FieldSpec`` with unique names."""

    def __init__(self, fields: Iterable[FieldSpec]) -> None:
        self.fields: tuple[FieldSpec, ...] = tuple(fields)
        names = [spec.name for spec in self.fields]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field name(s) in schema: {duplicates}")

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self.fields)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RecordSchema) and self.fields == other.fields

    def __hash__(self) -> int:
        return hash(self.fields)

    def __repr__(self) -> str:
        return f"RecordSchema({', '.join(f'{f.name}:{f.type_tag}' for f in self.fields)})"

    def extend(self, fields: Iterable[FieldSpec]) -> "RecordSchema":
        return RecordSchema([*self.fields, *fields])

    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    @cached_property
    def dtype(self) -> np.dtype:
        return np.dtype([(spec.name, spec.base_dtype, spec.shape) for spec in self.fields])

    def layout(self) -> list[tuple[str, int, str]]:
        """Return ``(name, byte offset, element type)`` per field, in order."""
        layout: list[tuple[str, int, str]] = []
        for spec in self.fields:
            field_dtype, offset = self.dtype.fields[spec.name][:2]
            layout.append((spec.name, int(offset), field_dtype.str))
        return layout

    def pack(self, rows: Sequence[Sequence[Any]]) -> np.ndarray:
        """Convert rows into one contiguous structured array."""
        if not rows:
            return np.empty(0, dtype=self.dtype)
        width = len(self.fields)
        for row in rows:
            if len(row) != width:
                raise ValueError(f"Row has {len(row)} values, schema expects {width}")
        return np.array([tuple(row) for row in rows], dtype=self.dtype)

    def unpack(self, array: np.ndarray) -> list[tuple[Any, ...]]:
        """Convert a structured array back into rows of plain Python values."""
        if array.dtype != self.dtype:
            raise ValueError(f"Array dtype {array.dtype} does not match schema dtype {self.dtype}")
        return [tuple(_freeze(value) for value in item) for item in array.tolist()]

    def render(self, row: Sequence[Any]) -> list[str]:
        """Render one row's values as text cells."""
        return [_render(value) for value in row]


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


def _render(value: Any) -> str:
    if isinstance(value, (list, tuple, np.ndarray)):
        return "[" + ", ".join(_render(item) for item in value) + "]"
    if isinstance(value, np.generic):
        return str(value.item())
    return str(value)
