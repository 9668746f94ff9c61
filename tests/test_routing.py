import pytest

from services.errors import RoutingError
from services.routing import POS_OPERATIONS, Action, Entity, Operation, RoutingTable


async def _noop(payload, key):
    return None


def test_resolve_accepts_enums_and_strings():
    routes = RoutingTable()
    route = routes.register(Entity.ORDER, Action.CREATE, _noop)

    assert routes.resolve("order", "CREATE") is route
    assert routes.resolve(Entity.ORDER, "CREATE") is route
    assert routes.resolve("order", "DELETE") is None
    assert Operation("order", "CREATE") in routes


def test_duplicate_registration_is_rejected():
    routes = RoutingTable()
    routes.register("order", "CREATE", _noop)
    with pytest.raises(RoutingError):
        routes.register(Entity.ORDER, Action.CREATE, _noop)


def test_decorator_registers_with_id_field():
    routes = RoutingTable()

    @routes.route(Entity.TABLE_STATUS, Action.UPDATE, id_field="table_id")
    async def update_table(payload, key):
        return payload

    route = routes.resolve("tableStatus", "UPDATE")
    assert route.handler is update_table
    assert route.remote_id({"table_id": 12}) == "12"
    assert route.remote_id({}) is None


def test_validate_reports_every_missing_operation():
    routes = RoutingTable()
    routes.register(Entity.ORDER, Action.CREATE, _noop)

    with pytest.raises(RoutingError) as excinfo:
        routes.validate(POS_OPERATIONS)

    message = str(excinfo.value)
    assert "menuItem:DELETE" in message
    assert "order:CREATE" not in message
    assert len(routes.missing(POS_OPERATIONS)) == len(POS_OPERATIONS) - 1


def test_validate_passes_for_complete_table():
    routes = RoutingTable()
    for op in POS_OPERATIONS:
        routes.register(op.entity, op.action, _noop)
    routes.validate(POS_OPERATIONS)
    assert len(routes) == len(POS_OPERATIONS)
    assert routes.operations()[0] == Operation("inventory", "UPDATE")
