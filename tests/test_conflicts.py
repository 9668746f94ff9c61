from types import SimpleNamespace

from services.conflicts import describe, error_status, is_safe_conflict
from services.errors import RemoteError


def test_conflict_status_is_safe():
    assert is_safe_conflict(RemoteError("exists", status=409))
    assert is_safe_conflict({"status": 409})


def test_duplicate_codes_and_messages_are_safe():
    assert is_safe_conflict(RemoteError(code="23505"))
    assert is_safe_conflict(RemoteError(code="already_exists"))
    assert is_safe_conflict(RemoteError("Order o1 already exists"))
    assert is_safe_conflict(Exception("duplicate key value violates unique constraint"))


def test_transient_failures_are_not_safe():
    assert not is_safe_conflict(ConnectionError("connection reset"))
    assert not is_safe_conflict(RemoteError("bad gateway", status=502))
    assert not is_safe_conflict(RemoteError("timeout", status=504, code="TIMEOUT"))
    assert not is_safe_conflict(None)


def test_status_found_on_nested_response_objects():
    exc = Exception("boom")
    exc.response = SimpleNamespace(status_code=409)
    assert error_status(exc) == 409
    assert is_safe_conflict(exc)


def test_describe_includes_exception_type():
    assert describe(ConnectionError("offline")) == "ConnectionError: offline"
    assert describe(RemoteError("nope", status=500)) == "RemoteError: status=500 nope"
