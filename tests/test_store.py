# tests/test_store.py
import pytest

from smartcare.store import DocumentNotFound, StoreError


def _note(store, user_id="patient-1", title="Hello", **fields):
    return store.create("notifications", {"user_id": user_id, "title": title, "message": "body", **fields})


def test_create_and_get_round_trip(store):
    doc_id = _note(store, metadata={"appointment_id": "apt-1"})

    doc = store.get("notifications", doc_id)
    assert doc["id"] == doc_id
    assert len(doc_id) == 32
    assert doc["title"] == "Hello"
    assert doc["read"] is False
    assert doc["type"] == "info"
    # column "metadata" is exposed under its column name
    assert doc["metadata"] == {"appointment_id": "apt-1"}
    assert doc["created_at"] is not None
    assert doc["updated_at"] is not None


def test_create_with_explicit_id(store):
    doc_id = store.create("notifications", {"user_id": "u", "title": "t", "message": "m"}, doc_id="fixed-id")
    assert doc_id == "fixed-id"
    assert store.get("notifications", "fixed-id")["user_id"] == "u"


def test_missing_documents_raise(store):
    with pytest.raises(DocumentNotFound) as excinfo:
        store.get("appointments", "nope")
    assert excinfo.value.collection == "appointments"
    assert excinfo.value.doc_id == "nope"

    with pytest.raises(DocumentNotFound):
        store.update("appointments", "nope", {"notes": "x"})
    with pytest.raises(DocumentNotFound):
        store.increment("users", "nope", "unread_notifications")


def test_bad_collection_field_or_operator(store):
    with pytest.raises(StoreError):
        store.get("prescriptions", "x")
    with pytest.raises(StoreError):
        store.create("notifications", {"user_id": "u", "title": "t", "message": "m", "colour": "red"})
    with pytest.raises(StoreError):
        store.query("notifications", [("user_id", "~=", "u")])
    with pytest.raises(StoreError):
        store.query("notifications", [("colour", "==", "red")])


def test_update_merges_fields(store):
    doc_id = _note(store)
    store.update("notifications", doc_id, {"read": True})

    doc = store.get("notifications", doc_id)
    assert doc["read"] is True
    assert doc["title"] == "Hello"


def test_increment_is_relative(store, users):
    store.increment("users", users["doctor"], "unread_notifications")
    store.increment("users", users["doctor"], "unread_notifications", amount=2)

    assert store.get("users", users["doctor"])["unread_notifications"] == 3


def test_query_filters_and_ordering(store):
    _note(store, title="b")
    _note(store, title="a")
    _note(store, title="c", read=True)
    _note(store, user_id="someone-else", title="z")

    titles = [d["title"] for d in store.query("notifications", [("user_id", "==", "patient-1")], order_by="title")]
    assert titles == ["a", "b", "c"]

    desc = [d["title"] for d in store.query("notifications", [("user_id", "==", "patient-1")], order_by="-title")]
    assert desc == ["c", "b", "a"]

    unread = store.query("notifications", [("user_id", "==", "patient-1"), ("read", "==", False)])
    assert {d["title"] for d in unread} == {"a", "b"}

    picked = store.query("notifications", [("title", "in", ["a", "z"])], order_by="title")
    assert [d["title"] for d in picked] == ["a", "z"]

    assert len(store.query("notifications", order_by="title", limit=2)) == 2


def test_subscribe_emits_initial_and_on_change(store):
    received = []
    unsubscribe = store.subscribe("notifications", [("user_id", "==", "patient-1")], "title", received.append)

    assert received == [[]]

    _note(store, title="first")
    _note(store, user_id="doctor-1", title="other")
    assert [len(batch) for batch in received] == [0, 1, 1]

    unsubscribe()
    _note(store, title="second")
    assert len(received) == 3


def test_writes_from_a_listener_are_published_after_it_returns(store):
    received = []

    def listener(docs):
        received.append([d["title"] for d in docs])
        if not docs:
            _note(store, title="written by listener")

    store.subscribe("notifications", [("user_id", "==", "patient-1")], None, listener)

    assert received == [[], ["written by listener"]]


def test_failing_listener_does_not_break_writes(store, caplog):
    def listener(docs):
        if docs:
            raise RuntimeError("listener blew up")

    store.subscribe("notifications", [], None, listener)
    doc_id = _note(store)

    assert store.get("notifications", doc_id)["title"] == "Hello"
    assert "listener blew up" in caplog.text
