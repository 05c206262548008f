from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum, IntEnum

from .errors import ContractViolation
from .events import StageTransition
from .owner import OwnerLoop

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    IDLE = 0
    DATA_READY = 1
    PARAMETERS_FITTED = 2
    FORECAST_READY = 3


class GateMode(str, Enum):
    TEST = "test"
    COMMIT = "commit"
    ALWAYS_NOTIFY = "always_notify"


@dataclass(frozen=True, slots=True)
class EntityGroup:
    """A group of results that is only valid at or above ``min_stage``."""

    name: str
    min_stage: Stage


DEFAULT_ENTITY_GROUPS: tuple[EntityGroup, ...] = (
    EntityGroup("catalog", Stage.DATA_READY),
    EntityGroup("fitted_model", Stage.PARAMETERS_FITTED),
    EntityGroup("forecast_tables", Stage.FORECAST_READY),
)

StageObserver = Callable[[Stage, Stage], None]


def coerce_stage(value: object) -> Stage:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ContractViolation(f"Invalid stage: {value!r}")
    try:
        return Stage(value)
    except ValueError:
        raise ContractViolation(f"Invalid stage: {value!r}") from None


class StageController:
    """Owns the current workflow stage and the entity groups that depend on it.

    Stages advance one at a time and may retreat any number of stages.
    Retreating clears every entity group that is no longer valid and notifies
    observers once. All mutation happens on the owner thread.
    """

    def __init__(
        self,
        *,
        groups: Iterable[EntityGroup] = DEFAULT_ENTITY_GROUPS,
        owner: OwnerLoop | None = None,
    ) -> None:
        self._stage = Stage.IDLE
        self._owner = owner
        self._groups: dict[str, EntityGroup] = {}
        for group in groups:
            if group.name in self._groups:
                raise ValueError(f"Duplicate entity group: {group.name}")
            self._groups[group.name] = group
        self._entities: dict[str, object] = {}
        self._observers: list[StageObserver] = []

    def current(self) -> Stage:
        return self._stage

    @property
    def groups(self) -> tuple[EntityGroup, ...]:
        return tuple(self._groups.values())

    def add_observer(self, observer: StageObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: StageObserver) -> None:
        self._observers.remove(observer)

    def can_retreat(self, target: Stage | int) -> bool:
        return coerce_stage(target) <= self._stage

    def advance(self, target: Stage | int) -> bool:
        """Advance exactly one stage.

        The entity groups required by ``target`` must be populated beforehand.
        """

        self._check_owner("StageController.advance")
        new = coerce_stage(target)
        if new != self._stage + 1:
            raise ContractViolation(
                f"Invalid stage transition: {self._stage.name} -> {new.name}"
            )

        old = self._stage
        self._stage = new
        self._notify(old, new)
        return True

    def retreat(self, target: Stage | int) -> bool:
        self._check_owner("StageController.retreat")
        new = coerce_stage(target)
        if new > self._stage:
            raise ContractViolation(
                f"Invalid stage transition: {self._stage.name} -> {new.name}"
            )
        if new == self._stage:
            return False

        old = self._stage
        self._stage = new
        self._clear_above(new)
        self._notify(old, new)
        return True

    def gate(self, target: Stage | int, mode: GateMode = GateMode.COMMIT) -> bool:
        """Return True if the action tied to ``target`` must be abandoned.

        In COMMIT and ALWAYS_NOTIFY modes an action that may proceed first
        discards every result above ``target``.
        """

        stage = coerce_stage(target)
        if not isinstance(mode, GateMode):
            raise ContractViolation(f"Invalid gate mode: {mode!r}")

        if mode is GateMode.TEST:
            filtered = not self.can_retreat(stage)
        elif not self.can_retreat(stage):
            filtered = True
        else:
            changed = self.retreat(stage)
            if mode is GateMode.ALWAYS_NOTIFY and not changed:
                self._notify(self._stage, self._stage)
            filtered = False

        if filtered:
            logger.debug(
                "Action filtered",
                extra={"control_stage": stage.name, "stage": self._stage.name},
            )
        return filtered

    def has(self, name: str) -> bool:
        group = self._group(name)
        return self._stage >= group.min_stage and name in self._entities

    def get(self, name: str) -> object:
        group = self._group(name)
        if self._stage < group.min_stage:
            raise ContractViolation(f"Access to {name} while in stage {self._stage.name}")
        if name not in self._entities:
            raise ContractViolation(f"Entity group {name} was never populated")
        return self._entities[name]

    def put(self, name: str, value: object) -> None:
        """Populate an entity group for the current or the next stage."""

        self._check_owner("StageController.put")
        group = self._group(name)
        if group.min_stage > self._stage + 1:
            raise ContractViolation(f"Cannot populate {name} while in stage {self._stage.name}")
        self._entities[name] = value

    def _group(self, name: str) -> EntityGroup:
        try:
            return self._groups[name]
        except KeyError:
            raise ContractViolation(f"Unknown entity group: {name}") from None

    def _clear_above(self, stage: Stage) -> None:
        for group in self._groups.values():
            if group.min_stage > stage and self._entities.pop(group.name, None) is not None:
                logger.debug("Entity group cleared", extra={"group": group.name})

    def _notify(self, old: Stage, new: Stage) -> None:
        transition = StageTransition(old=old, new=new)
        logger.debug("Stage transition", extra=transition.to_json())
        for observer in list(self._observers):
            observer(old, new)

    def _check_owner(self, operation: str) -> None:
        if self._owner is not None:
            self._owner.assert_owner(operation)
