"""Async graph store adapter over the Neo4j Bolt driver.

Every repository call runs inside ``GraphStore.transaction()``: one
explicit driver transaction that commits when the block exits normally and
rolls back on any exception.  Driver exceptions are translated into
TransactionError here and never leak further.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from kubegraph.graph.errors import TransactionError
from kubegraph.graph.statements import Statement
from kubegraph.observability.logging import get_logger

if TYPE_CHECKING:
    from neo4j import AsyncDriver, AsyncTransaction

    from kubegraph.models.config import GraphStoreConfig

_logger = get_logger("graph.store")

_DRIVER_ERRORS = (Neo4jError, DriverError)


class GraphTransaction:
    """A statement runner bound to one open driver transaction."""

    def __init__(self, tx: AsyncTransaction) -> None:
        self._tx = tx
        self.statements_run = 0

    async def run(self, statement: Statement) -> list[dict[str, Any]]:
        """Run *statement* and return every result row as a dict."""
        try:
            result = await self._tx.run(statement.query, statement.parameters)
            rows = await result.data()
        except _DRIVER_ERRORS as exc:
            raise TransactionError(f"statement failed: {exc}") from exc
        self.statements_run += 1
        return rows

    async def run_all(self, statements: Iterable[Statement]) -> None:
        """Run *statements* in order, discarding results."""
        for statement in statements:
            await self.run(statement)


class GraphStore:
    """Owns the driver and hands out transactions.

    Args:
        driver:   An open ``neo4j.AsyncDriver``.
        database: Target database name.
    """

    def __init__(self, driver: AsyncDriver, database: str = "neo4j") -> None:
        self._driver = driver
        self._database = database

    @classmethod
    def from_config(cls, config: GraphStoreConfig) -> GraphStore:
        driver = AsyncGraphDatabase.driver(
            config.uri,
            auth=(config.user, config.password),
            connection_timeout=float(config.connection_timeout),
        )
        return cls(driver, database=config.database)

    @property
    def database(self) -> str:
        return self._database

    async def verify_connectivity(self) -> None:
        try:
            await self._driver.verify_connectivity()
        except _DRIVER_ERRORS as exc:
            raise TransactionError(f"graph store unreachable: {exc}") from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GraphTransaction]:
        """Open a write transaction; commit on clean exit, roll back otherwise."""
        async with self._driver.session(database=self._database) as session:
            try:
                tx = await session.begin_transaction()
            except _DRIVER_ERRORS as exc:
                raise TransactionError(f"cannot open transaction: {exc}") from exc
            try:
                yield GraphTransaction(tx)
                try:
                    await tx.commit()
                except _DRIVER_ERRORS as exc:
                    raise TransactionError(f"commit failed: {exc}") from exc
            finally:
                if not tx.closed():
                    # Rolls back whatever ran before the failure.
                    await tx.close()

    async def execute(self, statement: Statement) -> list[dict[str, Any]]:
        """Run a single auto-commit statement (schema operations)."""
        try:
            async with self._driver.session(database=self._database) as session:
                result = await session.run(statement.query, statement.parameters)
                return await result.data()
        except _DRIVER_ERRORS as exc:
            raise TransactionError(f"statement failed: {exc}") from exc

    async def close(self) -> None:
        await self._driver.close()
        _logger.info("graph store closed")
