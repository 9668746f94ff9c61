from services.dedupe import build_dedupe_key, content_hash, extract_identifier
from services.routing import Action, Entity


def test_key_uses_explicit_id():
    assert build_dedupe_key("order", "CREATE", {"id": "o-1"}) == "order:CREATE:o-1"


def test_key_falls_back_through_alternate_identifiers():
    assert build_dedupe_key("menuItem", "UPDATE", {"item_id": 7, "price": 3}) == "menuItem:UPDATE:7"
    assert build_dedupe_key("tableStatus", "UPDATE", {"table_id": "T4"}) == "tableStatus:UPDATE:T4"
    # "id" wins over the alternates
    assert build_dedupe_key("order", "UPDATE", {"order_id": "x", "id": "y"}) == "order:UPDATE:y"


def test_empty_identifier_is_skipped_but_zero_is_kept():
    assert extract_identifier({"id": "", "key": "k1"}) == "k1"
    assert extract_identifier({"id": 0}) == "0"
    assert extract_identifier(None) is None
    assert extract_identifier(["not", "a", "mapping"]) is None


def test_payload_without_id_hashes_content():
    first = build_dedupe_key("order", "CREATE", {"a": 1, "b": 2})
    second = build_dedupe_key("order", "CREATE", {"b": 2, "a": 1})
    other = build_dedupe_key("order", "CREATE", {"a": 1, "b": 3})
    assert first == second
    assert first != other
    assert first.startswith("order:CREATE:")


def test_none_payload_hashes_like_empty_mapping():
    assert content_hash(None) == content_hash({})


def test_enum_tags_render_their_values():
    assert build_dedupe_key(Entity.ORDER, Action.CREATE, {"id": "o1"}) == "order:CREATE:o1"
