"""Thin wrapper around neo4j-driver sessions for the session store.

Queries run inside managed read/write transactions and their records are
consumed before the session closes. Transient errors (dead-locks, leader
switches) are retried with exponential back-off.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Optional, TypeVar

from loguru import logger
from neo4j import (
    GraphDatabase,
    basic_auth,
    exceptions as neo_exceptions,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    retry_if_exception_type,
)
from .logging import timed

# ---------------------------------------------------------------------------
# Environment configuration
# ---------------------------------------------------------------------------
NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "testpassword")

# Retry policy constants
_MAX_ATTEMPTS = int(os.getenv("NEO4J_MAX_RETRIES", "3"))


# ---------------------------------------------------------------------------
# Retry decorator factory
# ---------------------------------------------------------------------------
RT = TypeVar("RT")


def _retry_on_transient(fn: Callable[..., RT]) -> Callable[..., RT]:
    """Apply exponential back-off retry for transient Neo4j errors."""

    transient_errors = (
        neo_exceptions.TransientError,
        neo_exceptions.ServiceUnavailable,
        neo_exceptions.SessionExpired,
    )

    @retry(
        reraise=True,
        stop=stop_after_attempt(_MAX_ATTEMPTS),
        wait=wait_exponential_jitter(initial=0.2, max=2.0),
        retry=retry_if_exception_type(transient_errors),
    )
    @timed("cypher_sync")
    def _wrapped(*args, **kwargs):  # type: ignore[override]
        return fn(*args, **kwargs)

    return _wrapped  # type: ignore[return-value]


def _collect(tx, statement: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [record.data() for record in tx.run(statement, **params)]


# ---------------------------------------------------------------------------
# Synchronous client
# ---------------------------------------------------------------------------
class Neo4jClient:
    """Synchronous Neo4j helper with retry support."""

    def __init__(
        self,
        uri: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        driver: Any = None,
    ) -> None:
        self._driver = driver or GraphDatabase.driver(
            uri or NEO4J_URI, auth=basic_auth(user or NEO4J_USER, password or NEO4J_PASSWORD)
        )

    def close(self) -> None:
        self._driver.close()

    @_retry_on_transient
    def run_read(self, statement: str, params: Dict[str, Any] | None = None) -> List[Dict[str, Any]]:
        """Execute a read query and return its records as dicts."""
        params = params or {}
        logger.debug("Cypher| {} | {}", statement, params)
        with self._driver.session() as session:
            return session.execute_read(_collect, statement, params)

    @_retry_on_transient
    def run_write(self, statement: str, params: Dict[str, Any] | None = None) -> List[Dict[str, Any]]:
        """Execute a write query and return its records as dicts."""
        params = params or {}
        logger.debug("Cypher| {} | {}", statement, params)
        with self._driver.session() as session:
            return session.execute_write(_collect, statement, params)
