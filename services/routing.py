"""Registration of remote handlers by (entity, action)."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from services.dedupe import tag
from services.errors import RoutingError


class Entity(str, Enum):
    ORDER = "order"
    ORDER_STATUS = "orderStatus"
    MENU_ITEM = "menuItem"
    TABLE_STATUS = "tableStatus"
    TABLE_LAYOUT = "tableLayout"
    INVENTORY = "inventory"


class Action(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SAVE = "SAVE"


# handler(payload, idempotency_key) -> result, sync or async
Handler = Callable[[Mapping[str, Any], str], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class Operation:
    entity: str
    action: str

    @classmethod
    def of(cls, entity: Any, action: Any) -> "Operation":
        return cls(tag(entity), tag(action))

    def __str__(self) -> str:
        return f"{self.entity}:{self.action}"


@dataclass(frozen=True)
class Route:
    operation: Operation
    handler: Handler
    # payload field carrying the remote identifier
    id_field: str = "id"

    def remote_id(self, payload: Mapping[str, Any]) -> Optional[str]:
        value = payload.get(self.id_field) if isinstance(payload, Mapping) else None
        return None if value is None else str(value)


class RoutingTable:
    def __init__(self) -> None:
        self._routes: Dict[Operation, Route] = {}

    def register(self, entity: Any, action: Any, handler: Handler, *, id_field: str = "id") -> Route:
        op = Operation.of(entity, action)
        if op in self._routes:
            raise RoutingError(f"Handler already registered for {op}")
        route = Route(op, handler, id_field)
        self._routes[op] = route
        return route

    def route(self, entity: Any, action: Any, *, id_field: str = "id"):
        """Decorator form of :meth:`register`."""

        def decorator(handler: Handler) -> Handler:
            self.register(entity, action, handler, id_field=id_field)
            return handler

        return decorator

    def resolve(self, entity: Any, action: Any) -> Optional[Route]:
        return self._routes.get(Operation.of(entity, action))

    def operations(self) -> List[Operation]:
        return sorted(self._routes, key=str)

    def missing(self, declared: Iterable[Operation]) -> List[Operation]:
        return sorted({op for op in declared if op not in self._routes}, key=str)

    def validate(self, declared: Iterable[Operation]) -> None:
        """Raise :class:`RoutingError` if any declared operation has no handler.

        Meant to run at startup with every (entity, action) pair the
        application can enqueue.
        """

        gaps = self.missing(declared)
        if gaps:
            names = ", ".join(str(op) for op in gaps)
            raise RoutingError(f"No handler registered for: {names}")

    def __contains__(self, operation: Operation) -> bool:
        return operation in self._routes

    def __len__(self) -> int:
        return len(self._routes)


# (entity, action) pairs the point-of-sale client enqueues
POS_OPERATIONS = frozenset(
    Operation.of(entity, action)
    for entity, action in (
        (Entity.ORDER, Action.CREATE),
        (Entity.ORDER, Action.UPDATE),
        (Entity.ORDER_STATUS, Action.UPDATE),
        (Entity.MENU_ITEM, Action.CREATE),
        (Entity.MENU_ITEM, Action.UPDATE),
        (Entity.MENU_ITEM, Action.DELETE),
        (Entity.TABLE_STATUS, Action.UPDATE),
        (Entity.TABLE_LAYOUT, Action.SAVE),
        (Entity.INVENTORY, Action.UPDATE),
    )
)


__all__ = ["Action", "Entity", "Handler", "Operation", "POS_OPERATIONS", "Route", "RoutingTable"]
