import pytest
from neo4j import exceptions as neo_exceptions

from question_flow.neo import Neo4jClient


class FakeRecord:
    def __init__(self, values):
        self._values = values

    def data(self):
        return dict(self._values)


class FakeTx:
    def __init__(self, driver):
        self._driver = driver

    def run(self, statement, **params):
        self._driver.statements.append((statement, params))
        return [FakeRecord(row) for row in self._driver.rows]


class FakeSession:
    def __init__(self, driver):
        self._driver = driver

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def _execute(self, kind, fn, *args):
        self._driver.modes.append(kind)
        if self._driver.failures:
            self._driver.failures -= 1
            raise neo_exceptions.ServiceUnavailable("leader switch")
        return fn(FakeTx(self._driver), *args)

    def execute_read(self, fn, *args):
        return self._execute("read", fn, *args)

    def execute_write(self, fn, *args):
        return self._execute("write", fn, *args)


class FakeDriver:
    def __init__(self, rows=(), failures=0):
        self.rows = list(rows)
        self.failures = failures
        self.statements = []
        self.modes = []
        self.closed = False

    def session(self):
        return FakeSession(self)

    def close(self):
        self.closed = True


def test_run_read_returns_record_dicts():
    driver = FakeDriver(rows=[{"state": "{}", "version": 2}])
    client = Neo4jClient(driver=driver)

    rows = client.run_read("MATCH (s) RETURN s", {"sessionId": "s1"})

    assert rows == [{"state": "{}", "version": 2}]
    assert driver.modes == ["read"]
    assert driver.statements == [("MATCH (s) RETURN s", {"sessionId": "s1"})]


def test_run_write_uses_write_transaction():
    driver = FakeDriver(rows=[{"version": 1}])
    client = Neo4jClient(driver=driver)

    assert client.run_write("MERGE (s)") == [{"version": 1}]
    assert driver.modes == ["write"]
    assert driver.statements == [("MERGE (s)", {})]


def test_transient_errors_are_retried():
    driver = FakeDriver(rows=[{"version": 1}], failures=1)
    client = Neo4jClient(driver=driver)

    assert client.run_write("MERGE (s)", {"sessionId": "s1"}) == [{"version": 1}]
    assert driver.modes == ["write", "write"]


def test_persistent_transient_error_is_raised():
    driver = FakeDriver(failures=100)
    client = Neo4jClient(driver=driver)

    with pytest.raises(neo_exceptions.ServiceUnavailable):
        client.run_read("MATCH (s) RETURN s")


def test_close_closes_driver():
    driver = FakeDriver()
    Neo4jClient(driver=driver).close()
    assert driver.closed is True
