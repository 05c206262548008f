"""Transactional exchange of interactively-edited fields.

A snapshot is a private, validated copy of one field group. It is loaded on
the owner thread, handed to background work (which may only touch the copy),
and stored back on the owner thread. Only fields modified through the
snapshot are written back; everything else in live storage is left alone.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import Any, Protocol, cast

from pydantic import BaseModel, ValidationError

from .errors import ContractViolation
from .owner import OwnerLoop

logger = logging.getLogger(__name__)

Check = Callable[[Mapping[str, Any]], None]
FieldSelector = Sequence[str] | Callable[[], Sequence[str]]


class Snapshot(Protocol):
    def load(self) -> Snapshot: ...

    def store(self) -> None: ...

    def checkpoint(self) -> object: ...

    def rollback(self, state: object) -> None: ...


class FieldSnapshot:
    """Snapshot of selected fields of one live pydantic model.

    ``fields`` is either a fixed sequence of field names or a callable
    evaluated at load time (used when an earlier snapshot holds the
    discriminator that selects which fields are meaningful).

    ``checks`` receive the freshly copied values and raise ``FieldInvalid``.
    """

    def __init__(
        self,
        name: str,
        live: BaseModel,
        fields: FieldSelector,
        *,
        checks: Sequence[Check] = (),
        owner: OwnerLoop | None = None,
    ) -> None:
        self.name = name
        self._live = live
        self._fields = fields
        self._checks = tuple(checks)
        self._owner = owner
        self._values: dict[str, Any] = {}
        self._dirty: set[str] = set()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def view(self) -> Mapping[str, Any]:
        self._require_loaded()
        return MappingProxyType(self._values)

    @property
    def dirty_fields(self) -> frozenset[str]:
        return frozenset(self._dirty)

    def __getitem__(self, field: str) -> Any:
        self._require_loaded()
        try:
            return self._values[field]
        except KeyError:
            raise ContractViolation(f"Field {field} is not part of snapshot {self.name}") from None

    def __contains__(self, field: object) -> bool:
        return field in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def get(self, field: str, default: Any = None) -> Any:
        return self._values.get(field, default)

    def is_dirty(self, field: str) -> bool:
        return field in self._dirty

    def checkpoint(self) -> object:
        """Capture the loaded copy and dirty flags for a later ``rollback``."""

        return dict(self._values), set(self._dirty), self._loaded

    def rollback(self, state: object) -> None:
        values, dirty, loaded = cast(tuple[dict[str, Any], set[str], bool], state)
        self._values = dict(values)
        self._dirty = set(dirty)
        self._loaded = loaded

    def load(self) -> FieldSnapshot:
        if self._owner is not None:
            self._owner.assert_owner(f"{self.name}.load")

        names = self._fields() if callable(self._fields) else self._fields
        values: dict[str, Any] = {}
        for field in names:
            if field not in type(self._live).model_fields:
                raise ContractViolation(f"{type(self._live).__name__} has no field {field}")
            values[field] = copy.deepcopy(getattr(self._live, field))

        view = MappingProxyType(values)
        for check in self._checks:
            check(view)

        self._values = values
        self._dirty.clear()
        self._loaded = True
        return self

    def modify(self, field: str, value: Any) -> None:
        """Change the cached value of ``field`` and mark it for write-back."""

        self._require_loaded()
        if field not in self._values:
            raise ContractViolation(f"Field {field} is not part of snapshot {self.name}")
        self._values[field] = value
        self._dirty.add(field)

    def store(self) -> None:
        if self._owner is not None:
            self._owner.assert_owner(f"{self.name}.store")
        self._require_loaded()

        for field in list(self._values):
            if field not in self._dirty:
                continue
            try:
                setattr(self._live, field, copy.deepcopy(self._values[field]))
            except ValidationError as exc:
                raise ContractViolation(
                    f"Stored value for {self.name}.{field} was rejected: {exc}"
                ) from exc
            self._dirty.discard(field)
            logger.debug("Field stored", extra={"snapshot": self.name, "field": field})

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise ContractViolation(f"Snapshot {self.name} used before load()")


class CompositeSnapshot:
    """Snapshot made of named parts loaded and stored in declared order.

    ``checks`` run after every part has loaded and receive the composite.
    """

    def __init__(
        self,
        name: str,
        parts: Sequence[tuple[str, Snapshot]],
        *,
        checks: Sequence[Callable[[CompositeSnapshot], None]] = (),
    ) -> None:
        self.name = name
        self._parts: dict[str, Snapshot] = {}
        for part_name, part in parts:
            if part_name in self._parts:
                raise ValueError(f"Duplicate snapshot part: {part_name}")
            self._parts[part_name] = part
        self._checks = tuple(checks)
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def part_names(self) -> tuple[str, ...]:
        return tuple(self._parts)

    def part(self, name: str) -> Snapshot:
        try:
            return self._parts[name]
        except KeyError:
            raise ContractViolation(f"Snapshot {self.name} has no part {name}") from None

    def __getitem__(self, name: str) -> Snapshot:
        return self.part(name)

    def load(self) -> CompositeSnapshot:
        """Load every part, or none of them.

        Later parts may depend on values loaded by earlier ones, so parts are
        loaded in turn and all of them are rolled back if any part or check
        fails.
        """

        saved = self.checkpoint()
        try:
            for part in self._parts.values():
                part.load()
            for check in self._checks:
                check(self)
        except BaseException:
            self.rollback(saved)
            raise
        self._loaded = True
        return self

    def checkpoint(self) -> object:
        return tuple(part.checkpoint() for part in self._parts.values()), self._loaded

    def rollback(self, state: object) -> None:
        part_states, loaded = cast(tuple[tuple[object, ...], bool], state)
        for part, part_state in zip(self._parts.values(), part_states, strict=True):
            part.rollback(part_state)
        self._loaded = loaded

    def store(self) -> None:
        if not self._loaded:
            raise ContractViolation(f"Snapshot {self.name} used before load()")
        for part in self._parts.values():
            part.store()
