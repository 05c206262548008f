from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .stages import Stage


@dataclass(frozen=True, slots=True)
class StageTransition:
    """A stage change delivered to observers.

    ``old == new`` only for refresh notifications requested by
    ``GateMode.ALWAYS_NOTIFY``.
    """

    old: Stage
    new: Stage

    @property
    def kind(self) -> str:
        if self.new > self.old:
            return "advance"
        if self.new < self.old:
            return "retreat"
        return "refresh"

    def to_json(self) -> dict[str, object]:
        return {"old": self.old.name, "new": self.new.name, "kind": self.kind}
