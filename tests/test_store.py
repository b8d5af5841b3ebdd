import json

import pytest

from question_flow.errors import SessionConflictError, SessionStoreError
from question_flow.models import SessionState
from question_flow.store import InMemorySessionStore, Neo4jSessionStore, create_store


def _state(**answers):
    return SessionState.from_answer_map("QN-TEST", answers)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


def test_memory_store_versions_and_round_trip():
    store = InMemorySessionStore()
    assert store.get("s") is None

    assert store.set("s", _state(Q1="Y"), expected_version=0) == 1
    assert store.set("s", _state(Q1="Y", Q2="x"), expected_version=1) == 2

    stored = store.get("s")
    assert stored.version == 2
    assert [(r.questionCode, r.value) for r in stored.state.answers] == [("Q1", "Y"), ("Q2", "x")]
    assert stored.state.questionnaire.questionnaireId == "QN-TEST"


def test_memory_store_rejects_stale_version():
    store = InMemorySessionStore()
    store.set("s", _state(Q1="Y"), expected_version=0)

    with pytest.raises(SessionConflictError):
        store.set("s", _state(Q1="N"), expected_version=0)
    with pytest.raises(SessionConflictError):
        store.delete("s", expected_version=5)
    assert store.get("s").state.answers[0].value == "Y"


def test_memory_store_unconditional_write_and_delete():
    store = InMemorySessionStore()
    store.set("s", _state(Q1="Y"))
    store.set("s", _state(Q1="N"))
    assert store.get("s").version == 2

    store.delete("s")
    store.delete("s")
    assert store.get("s") is None


def test_memory_store_returns_copies():
    store = InMemorySessionStore()
    amount = {"amount": "10", "currency": "BRL"}
    store.set("s", _state(Q1=amount))
    amount["amount"] = "99"

    first = store.get("s")
    first.state.answers[0].value["currency"] = "USD"

    assert store.get("s").state.answers[0].value == {"amount": "10", "currency": "BRL"}


# ---------------------------------------------------------------------------
# Neo4j store (client double)
# ---------------------------------------------------------------------------


class FakeClient:
    """Records statements; answers with canned rows."""

    def __init__(self, read_rows=None, write_rows=None):
        self.read_rows = read_rows or []
        self.write_rows = write_rows if write_rows is not None else [{"version": 1}]
        self.calls = []
        self.closed = False

    def run_read(self, statement, params=None):
        self.calls.append(("read", statement, params))
        return self.read_rows

    def run_write(self, statement, params=None):
        self.calls.append(("write", statement, params))
        return self.write_rows

    def close(self):
        self.closed = True


def test_neo4j_store_get_parses_json_state():
    raw = _state(Q1="Y").model_dump(mode="json")
    client = FakeClient(read_rows=[{"state": json.dumps(raw), "version": 3}])
    store = Neo4jSessionStore(client)

    stored = store.get("s")

    assert stored.version == 3
    assert stored.state.answers[0].questionCode == "Q1"
    kind, statement, params = client.calls[0]
    assert kind == "read"
    assert "QuestionnaireSession" in statement
    assert params == {"sessionId": "s"}


def test_neo4j_store_get_missing_session():
    assert Neo4jSessionStore(FakeClient()).get("s") is None


def test_neo4j_store_get_rejects_corrupt_state():
    store = Neo4jSessionStore(FakeClient(read_rows=[{"state": "{not json", "version": 1}]))
    with pytest.raises(SessionStoreError):
        store.get("s")

    store = Neo4jSessionStore(FakeClient(read_rows=[{"state": json.dumps({"questionnaire": 7}), "version": 1}]))
    with pytest.raises(SessionStoreError):
        store.get("s")


def test_neo4j_store_set_sends_expected_version():
    client = FakeClient(write_rows=[{"version": 4}])
    store = Neo4jSessionStore(client)

    assert store.set("s", _state(Q1="Y"), expected_version=3) == 4

    _, _, params = client.calls[0]
    assert params["expected"] == 3
    assert json.loads(params["state"])["questionnaire"]["answers"] == [{"questionCode": "Q1", "value": "Y"}]


def test_neo4j_store_set_conflict_when_no_row_returned():
    store = Neo4jSessionStore(FakeClient(write_rows=[]))
    with pytest.raises(SessionConflictError):
        store.set("s", _state(Q1="Y"), expected_version=1)


def test_neo4j_store_delete_and_close():
    client = FakeClient(write_rows=[{"current": 2}])
    store = Neo4jSessionStore(client)
    store.delete("s", expected_version=2)
    store.close()

    _, statement, params = client.calls[0]
    assert "DETACH DELETE" in statement
    assert params == {"sessionId": "s", "expected": 2}
    assert client.closed is True


def test_create_store_kinds():
    assert isinstance(create_store("memory"), InMemorySessionStore)
    assert isinstance(create_store(" Memory "), InMemorySessionStore)
    with pytest.raises(SessionStoreError):
        create_store("redis")
