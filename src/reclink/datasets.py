"""Record-set collaborator interface.

The engine never stores or queries records itself. A ``RecordSetProvider``
hands it record sets by name; ``InMemoryCatalog`` is the provider used for
in-process data and tests.
"""

from typing import Any, Callable, Iterable, Iterator, Mapping, Protocol, Union

from .errors import ExecutionError, LinkageError, ValidationError
from .logging import get_context_logger
from .models.records import Record

logger = get_context_logger(__name__)


class RecordSet:
    """Records of one dataset keyed by record id, in input order."""

    def __init__(self, name: str, records: Iterable[Union[Record, Mapping[str, Any]]] = (), id_field: str = "id"):
        """Initialize a record set.

        Args:
            name: Dataset name
            records: Records, or flat rows carrying their id in ``id_field``
            id_field: Id column for flat rows

        Raises:
            ValidationError: If a record has no id or an id repeats
        """
        self.name = name
        self._records: dict[str, Record] = {}
        field_names: dict[str, None] = {}

        for position, item in enumerate(records):
            record = item if isinstance(item, Record) else self._from_row(item, id_field, position)
            if record.record_id in self._records:
                raise ValidationError(
                    f"Duplicate record id {record.record_id!r} in {name}",
                    field_path=f"{name}[{position}].{id_field}",
                    value=record.record_id,
                    expected="unique record ids",
                )
            self._records[record.record_id] = record
            field_names.update(dict.fromkeys(record.fields))

        self._field_names = tuple(field_names)

    def _from_row(self, row: Mapping[str, Any], id_field: str, position: int) -> Record:
        if not isinstance(row, Mapping):
            raise ValidationError(
                f"Row {position} of {self.name} is not a mapping",
                field_path=f"{self.name}[{position}]",
                value=row,
                expected="mapping",
            )
        if row.get(id_field) in (None, ""):
            raise ValidationError(
                f"Row {position} of {self.name} has no {id_field}",
                field_path=f"{self.name}[{position}].{id_field}",
                expected="record id",
            )
        return Record.from_row(dict(row), id_field=id_field)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records.values())

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    @property
    def ids(self) -> list[str]:
        return list(self._records)

    @property
    def field_names(self) -> tuple[str, ...]:
        """Every field name seen in the set, in first-seen order."""
        return self._field_names


class RecordSetProvider(Protocol):
    """Anything that can hand out record sets by name."""

    def load(self, dataset: str) -> Union[RecordSet, Iterable[Record]]:
        ...


Loader = Callable[[], Iterable[Union[Record, Mapping[str, Any]]]]


class InMemoryCatalog:
    """Record-set provider backed by in-process data.

    Datasets are registered either as data or as zero-argument loaders that
    are called on each ``load``.
    """

    def __init__(self, datasets: Mapping[str, Any] | None = None):
        self._datasets: dict[str, Any] = {}
        for name, data in (datasets or {}).items():
            self.register(name, data)

    def register(self, name: str, data: Union[RecordSet, Iterable, Loader]) -> None:
        """Register a dataset under a name."""
        if isinstance(data, RecordSet) or callable(data):
            self._datasets[name] = data
        else:
            self._datasets[name] = RecordSet(name, data)

    def load(self, dataset: str) -> RecordSet:
        """Load a dataset by name.

        Raises:
            ExecutionError: If the dataset is unknown
        """
        if dataset not in self._datasets:
            raise ExecutionError(f"Unknown dataset: {dataset}", source_id=dataset)

        data = self._datasets[dataset]
        if isinstance(data, RecordSet):
            return data
        return RecordSet(dataset, data())

    def __contains__(self, dataset: str) -> bool:
        return dataset in self._datasets


def load_record_set(
    provider: RecordSetProvider,
    dataset: str,
    source_id: str | None = None,
    allow_empty: bool = False,
) -> RecordSet:
    """Load a record set, normalizing collaborator failures.

    Args:
        provider: Record-set provider
        dataset: Dataset name
        source_id: Reference source the dataset backs, for error context
        allow_empty: Accept a dataset without records

    Returns:
        The loaded record set

    Raises:
        ExecutionError: If the dataset is unreachable or empty
        ValidationError: If the records themselves are malformed
    """
    source_id = source_id or dataset
    try:
        loaded = provider.load(dataset)
    except LinkageError:
        raise
    except Exception as e:
        raise ExecutionError(
            f"Failed to load dataset {dataset}: {e}", source_id=source_id
        ) from e

    record_set = loaded if isinstance(loaded, RecordSet) else RecordSet(dataset, loaded)

    if not record_set and not allow_empty:
        raise ExecutionError(f"Dataset {dataset} is empty", source_id=source_id)

    logger.debug(
        f"Loaded {len(record_set)} records from {dataset}",
        extra={"dataset": dataset, "source_id": source_id, "record_count": len(record_set)},
    )
    return record_set
