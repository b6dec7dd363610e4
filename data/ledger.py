"""Immutable result records and the append-only result ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Generic, Iterable, Iterator, Protocol, Sequence, TypeVar

import numpy as np

from core.errors import LedgerError
from data.export import CsvWriter
from data.schema import FieldSpec, RecordSchema

LOGGER = logging.getLogger(__name__)


class Record(Protocol):
    """Row-convertible record keyed uniquely within a ledger."""

    base_schema: ClassVar[RecordSchema]

    @property
    def key(self) -> tuple[int, int]: ...

    def to_row(self) -> tuple[Any, ...]: ...


@dataclass(frozen=True)
class GenerationRecord:
    """Outcome of evaluating one individual in one generation."""

    base_schema: ClassVar[RecordSchema] = RecordSchema(
        [
            FieldSpec("generation", "uint"),
            FieldSpec("index", "uint"),
            FieldSpec("fitness", "float"),
        ]
    )

    generation: int
    index: int
    fitness: float
    echoed: tuple[Any, ...] = ()

    @property
    def key(self) -> tuple[int, int]:
        return (self.generation, self.index)

    def to_row(self) -> tuple[Any, ...]:
        return (self.generation, self.index, self.fitness, *self.echoed)

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "GenerationRecord":
        return cls(generation=int(row[0]), index=int(row[1]), fitness=float(row[2]), echoed=tuple(row[3:]))


@dataclass(frozen=True)
class SweepRecord:
    """Outcome of one repetition of one sweep configuration."""

    base_schema: ClassVar[RecordSchema] = RecordSchema(
        [
            FieldSpec("configuration", "uint"),
            FieldSpec("repetition", "uint"),
            FieldSpec("run_duration", "float"),
            FieldSpec("steps_per_second", "float"),
        ]
    )

    configuration: int
    repetition: int
    run_duration: float
    steps_per_second: float
    echoed: tuple[Any, ...] = ()

    @property
    def key(self) -> tuple[int, int]:
        return (self.configuration, self.repetition)

    def to_row(self) -> tuple[Any, ...]:
        return (self.configuration, self.repetition, self.run_duration, self.steps_per_second, *self.echoed)

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "SweepRecord":
        return cls(
            configuration=int(row[0]),
            repetition=int(row[1]),
            run_duration=float(row[2]),
            steps_per_second=float(row[3]),
            echoed=tuple(row[4:]),
        )


R = TypeVar("R", GenerationRecord, SweepRecord)


class ResultLedger(Generic[R]):
    """Append-only table of records.

    Records are never rewritten; appending a key that is already present
    raises ``LedgerError``. Consumers read snapshots.
    """

    def __init__(self, schema: RecordSchema) -> None:
        self.schema = schema
        self._records: list[R] = []
        self._keys: set[tuple[int, int]] = set()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[R]:
        return iter(self.snapshot())

    def append(self, record: R) -> None:
        width = len(record.to_row())
        if width != len(self.schema):
            raise LedgerError(f"Record has {width} fields, ledger schema expects {len(self.schema)}")
        if record.key in self._keys:
            raise LedgerError(f"Record {record.key} already present in ledger")
        self._keys.add(record.key)
        self._records.append(record)

    def extend(self, records: Iterable[R]) -> None:
        for record in records:
            self.append(record)

    def snapshot(self) -> tuple[R, ...]:
        return tuple(self._records)

    def generation(self, generation: int) -> list[GenerationRecord]:
        """Return the records of one generation (generation ledgers only)."""
        return [
            record
            for record in self._records
            if isinstance(record, GenerationRecord) and record.generation == generation
        ]

    def generations(self) -> list[int]:
        return sorted({record.generation for record in self._records if isinstance(record, GenerationRecord)})

    def rows(self) -> list[tuple[Any, ...]]:
        return [record.to_row() for record in self._records]

    def to_array(self) -> np.ndarray:
        return self.schema.pack(self.rows())

    def export_csv(self, path: str | Path) -> Path:
        """Write the ledger through the CSV writer contract."""
        out = CsvWriter(path).write(self.schema.field_names(), [self.schema.render(row) for row in self.rows()])
        LOGGER.info("Exported %d records to %s", len(self._records), out)
        return out
