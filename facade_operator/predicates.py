"""Event filters deciding which watch events trigger a reconcile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class UpdateEvent:
    object_old: Any = None
    object_new: Any = None


@dataclass
class CreateEvent:
    object: Any


@dataclass
class DeleteEvent:
    object: Any


@dataclass
class GenericEvent:
    object: Any


def ignore_update_status(event: UpdateEvent) -> bool:
    """Pass updates unless only the status changed (generation unchanged)."""
    if event.object_old is None or event.object_new is None:
        return True
    return event.object_old.generation != event.object_new.generation


@dataclass(frozen=True)
class ObjectNamePredicate:
    """Passes only events about the object with the given name."""

    name: str

    def update(self, event: UpdateEvent) -> bool:
        if event.object_old is not None:
            return event.object_old.name == self.name
        if event.object_new is not None:
            return event.object_new.name == self.name
        return False

    def create(self, event: CreateEvent) -> bool:
        return event.object.name == self.name

    def delete(self, event: DeleteEvent) -> bool:
        return event.object.name == self.name

    def generic(self, event: GenericEvent) -> bool:
        return event.object.name == self.name