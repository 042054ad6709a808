from dataclasses import replace
from datetime import datetime, timezone
from threading import RLock
from typing import TYPE_CHECKING, Callable, Generic, Iterable, Optional, TypeVar
from uuid import uuid4

if TYPE_CHECKING:
    from rules.rule_engine import InsuranceGroup, Rule
    from workflows.graph import WorkflowMeta

T = TypeVar("T")


def default_id_factory() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Collection(Generic[T]):
    """
    Id-keyed collection of dataclass entities.

    Updates never mutate a stored entity in place: `update` swaps in a copy
    built with `dataclasses.replace`, so a reference handed out earlier keeps
    describing the state it was read in.
    """

    def __init__(self, key: Callable[[T], str] = lambda item: item.id):
        self._items: dict[str, T] = {}
        self._key = key
        self._lock = RLock()

    def create(self, item: T) -> T:
        item_id = self._key(item)
        with self._lock:
            if item_id in self._items:
                raise KeyError(f"{item_id} already exists")
            self._items[item_id] = item
        return item

    def get(self, item_id: str) -> Optional[T]:
        return self._items.get(item_id)

    def list(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    def update(self, item_id: str, **changes) -> T:
        with self._lock:
            current = self._items.get(item_id)
            if current is None:
                raise KeyError(item_id)
            updated = replace(current, **changes)
            self._items[item_id] = updated
            return updated

    def update_many(self, item_ids: Iterable[str], **changes) -> "list[T]":
        with self._lock:
            return [self.update(item_id, **changes) for item_id in item_ids]

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items


class InMemoryStorage:
    def __init__(self):
        self.groups: Collection["InsuranceGroup"] = Collection()
        self.rules: Collection["Rule"] = Collection()
        self.workflows: Collection["WorkflowMeta"] = Collection()
        self._rule_counter = 0
        self._counter_lock = RLock()

    def next_rule_number(self) -> int:
        with self._counter_lock:
            self._rule_counter += 1
            return self._rule_counter

    def reserve_rule_number(self, number: int) -> None:
        """Advance the rule counter so `number` is never handed out again."""
        with self._counter_lock:
            self._rule_counter = max(self._rule_counter, number)
