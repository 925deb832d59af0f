"""SQLite store adapter.

Implements every storage port of the core (batches, passed listing,
requested flag, mints, product sync, model variations) on one SQLite
file with aiosqlite for async access.

Batch writes use an optimistic version column: an UPDATE only applies
when the stored version still matches the one the batch was loaded at.
"""

import asyncio
import copy
import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from mintgate.core.errors import (
    BatchAlreadyRequested,
    BatchNotFound,
    ConcurrentModificationError,
    MintNotFound,
)
from mintgate.core.models import (
    InspectionBatch,
    InspectionItem,
    InspectionResult,
    InspectionStatus,
    Mint,
)
from mintgate.core.ports import (
    BatchStorePort,
    MintStorePort,
    ModelVariationLookupPort,
    PassedProductListerPort,
    ProductSyncPort,
    RequestedFlagStorePort,
)

logger = logging.getLogger(__name__)

# Stored by older writers for "not inspected yet".
_LEGACY_NOT_YET = "notYet"

_BATCH_COLUMNS = "production_id, status, total_passed, requested, version, inspections_json"
_MINT_COLUMNS = (
    "id, inspection_id, brand_id, token_blueprint_id, products_json, created_by, "
    "created_at, minted, minted_at, scheduled_burn_date"
)


class SQLiteStore(
    BatchStorePort,
    PassedProductListerPort,
    RequestedFlagStorePort,
    MintStorePort,
    ProductSyncPort,
    ModelVariationLookupPort,
):
    """SQLite-backed store with connection pooling and async access."""

    def __init__(self, db_path: str, pool_size: int = 5):
        """Initialize SQLite store with connection pooling.

        Args:
            db_path: Path to SQLite database file.
            pool_size: Number of connections to maintain in the pool.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: list[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._pool_size = pool_size
        self._schema_initialized = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a connection from the pool or create a new one."""
        async with self._pool_lock:
            if self._pool:
                return self._pool.pop()
        conn = await aiosqlite.connect(str(self.db_path))
        await conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def _return_connection(self, conn: aiosqlite.Connection) -> None:
        """Return a connection to the pool."""
        async with self._pool_lock:
            if len(self._pool) < self._pool_size:
                self._pool.append(conn)
                return
        await conn.close()

    async def close_pool(self) -> None:
        """Close all pooled connections."""
        async with self._pool_lock:
            for conn in self._pool:
                await conn.close()
            self._pool.clear()

    async def _init_schema(self) -> None:
        """Initialize database schema on first use.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return
        async with self._schema_lock:
            if self._schema_initialized:
                return

            conn = await self._get_connection()
            try:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS inspection_batches (
                        production_id TEXT PRIMARY KEY,
                        status TEXT NOT NULL DEFAULT 'pending',
                        total_passed INTEGER NOT NULL DEFAULT 0,
                        requested INTEGER NOT NULL DEFAULT 0,
                        version INTEGER NOT NULL DEFAULT 1,
                        inspections_json TEXT NOT NULL DEFAULT '[]'
                    )
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS products (
                        product_id TEXT PRIMARY KEY,
                        production_id TEXT NOT NULL,
                        model_id TEXT NOT NULL DEFAULT '',
                        inspection_result TEXT
                    )
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS model_variations (
                        model_id TEXT PRIMARY KEY,
                        model_number TEXT NOT NULL
                    )
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS mints (
                        id TEXT PRIMARY KEY,
                        inspection_id TEXT NOT NULL,
                        brand_id TEXT NOT NULL,
                        token_blueprint_id TEXT NOT NULL,
                        products_json TEXT NOT NULL,
                        created_by TEXT NOT NULL,
                        created_at TIMESTAMP NOT NULL,
                        minted INTEGER NOT NULL DEFAULT 0,
                        minted_at TIMESTAMP,
                        scheduled_burn_date TIMESTAMP
                    )
                    """
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_mints_inspection ON mints(inspection_id)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_products_production ON products(production_id)"
                )
                await conn.commit()
                self._schema_initialized = True
            finally:
                await self._return_connection(conn)

    # ------------------------------------------------------------------
    # BatchStorePort
    # ------------------------------------------------------------------

    async def get_by_production_id(self, production_id: str) -> InspectionBatch:
        """Load a batch by production ID."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                f"SELECT {_BATCH_COLUMNS} FROM inspection_batches WHERE production_id = ?",
                (production_id,),
            )
            row = await cursor.fetchone()
        finally:
            await self._return_connection(conn)

        if row is None:
            raise BatchNotFound(production_id)
        return self._row_to_batch(row)

    async def save(self, batch: InspectionBatch) -> InspectionBatch:
        """Insert a new batch (version 0) or update one at its loaded version."""
        await self._init_schema()

        inspections_json = self._serialize_items(batch.inspections)
        conn = await self._get_connection()
        try:
            if batch.version == 0:
                try:
                    await conn.execute(
                        f"""
                        INSERT INTO inspection_batches ({_BATCH_COLUMNS})
                        VALUES (?, ?, ?, ?, 1, ?)
                        """,
                        (
                            batch.production_id,
                            batch.status.value,
                            batch.total_passed,
                            int(batch.requested),
                            inspections_json,
                        ),
                    )
                except sqlite3.IntegrityError:
                    await conn.rollback()
                    actual = await self._current_version(conn, batch.production_id)
                    raise ConcurrentModificationError(
                        batch.production_id, batch.version, actual
                    ) from None
            else:
                cursor = await conn.execute(
                    """
                    UPDATE inspection_batches
                    SET status = ?, total_passed = ?, requested = ?,
                        inspections_json = ?, version = version + 1
                    WHERE production_id = ? AND version = ?
                    """,
                    (
                        batch.status.value,
                        batch.total_passed,
                        int(batch.requested),
                        inspections_json,
                        batch.production_id,
                        batch.version,
                    ),
                )
                if cursor.rowcount == 0:
                    await conn.rollback()
                    actual = await self._current_version(conn, batch.production_id)
                    raise ConcurrentModificationError(
                        batch.production_id, batch.version, actual
                    )
            await conn.commit()
        finally:
            await self._return_connection(conn)

        saved = copy.deepcopy(batch)
        saved.version = batch.version + 1
        return saved

    @staticmethod
    async def _current_version(conn: aiosqlite.Connection, production_id: str) -> int:
        cursor = await conn.execute(
            "SELECT version FROM inspection_batches WHERE production_id = ?",
            (production_id,),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # PassedProductListerPort
    # ------------------------------------------------------------------

    async def list_passed_product_ids(self, production_id: str) -> list[str]:
        """Passed product IDs of a production's batch, in batch order."""
        batch = await self.get_by_production_id(production_id)
        return batch.passed_product_ids()

    # ------------------------------------------------------------------
    # RequestedFlagStorePort
    # ------------------------------------------------------------------

    async def set_requested(
        self, production_id: str, requested: bool
    ) -> InspectionBatch:
        """Atomically set the requested flag.

        Setting True only applies to a batch that is not requested yet.
        """
        await self._init_schema()

        conn = await self._get_connection()
        try:
            if requested:
                cursor = await conn.execute(
                    """
                    UPDATE inspection_batches
                    SET requested = 1, version = version + 1
                    WHERE production_id = ? AND requested = 0
                    """,
                    (production_id,),
                )
            else:
                cursor = await conn.execute(
                    """
                    UPDATE inspection_batches
                    SET requested = 0, version = version + 1
                    WHERE production_id = ?
                    """,
                    (production_id,),
                )
            updated = cursor.rowcount
            await conn.commit()

            if updated == 0:
                exists = await conn.execute(
                    "SELECT 1 FROM inspection_batches WHERE production_id = ?",
                    (production_id,),
                )
                if await exists.fetchone() is None:
                    raise BatchNotFound(production_id)
                raise BatchAlreadyRequested(production_id)
        finally:
            await self._return_connection(conn)

        logger.debug(
            f"Batch {production_id} requested flag set to {requested}",
            extra={"production_id": production_id, "requested": requested},
        )
        return await self.get_by_production_id(production_id)

    # ------------------------------------------------------------------
    # ProductSyncPort
    # ------------------------------------------------------------------

    async def update_inspection_result(
        self, product_id: str, result: InspectionResult
    ) -> None:
        """Overwrite the inspection result of an existing product row.

        Raises:
            LookupError: If the product is unknown. Products are never
                created by a sync.
        """
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "UPDATE products SET inspection_result = ? WHERE product_id = ?",
                (result.value, product_id),
            )
            await conn.commit()
            if cursor.rowcount == 0:
                raise LookupError(f"Product {product_id} not found")
        finally:
            await self._return_connection(conn)

    async def register_products(
        self,
        production_id: str,
        product_ids: Iterable[str],
        model_ids: dict[str, str] | None = None,
    ) -> None:
        """Create product rows for a production (seeding, outside the core)."""
        await self._init_schema()

        model_ids = model_ids or {}
        conn = await self._get_connection()
        try:
            await conn.executemany(
                """
                INSERT OR IGNORE INTO products (product_id, production_id, model_id)
                VALUES (?, ?, ?)
                """,
                [(pid, production_id, model_ids.get(pid, "")) for pid in product_ids],
            )
            await conn.commit()
        finally:
            await self._return_connection(conn)

    async def get_product_result(self, product_id: str) -> InspectionResult | None:
        """Current inspection result stored on a product row."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "SELECT inspection_result FROM products WHERE product_id = ?",
                (product_id,),
            )
            row = await cursor.fetchone()
        finally:
            await self._return_connection(conn)

        if row is None:
            raise LookupError(f"Product {product_id} not found")
        return self._parse_result(row[0])

    # ------------------------------------------------------------------
    # ModelVariationLookupPort
    # ------------------------------------------------------------------

    async def get_model_number(self, model_id: str) -> str | None:
        """Model number of a model variation, or None if unknown."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "SELECT model_number FROM model_variations WHERE model_id = ?",
                (model_id,),
            )
            row = await cursor.fetchone()
        finally:
            await self._return_connection(conn)
        return row[0] if row else None

    async def register_model(self, model_id: str, model_number: str) -> None:
        """Create or replace a model variation (seeding, outside the core)."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            await conn.execute(
                "INSERT OR REPLACE INTO model_variations (model_id, model_number) VALUES (?, ?)",
                (model_id, model_number),
            )
            await conn.commit()
        finally:
            await self._return_connection(conn)

    # ------------------------------------------------------------------
    # MintStorePort
    # ------------------------------------------------------------------

    async def create(self, mint: Mint) -> Mint:
        """Insert a new mint, assigning a UUID when it has no ID."""
        await self._init_schema()

        stored = copy.deepcopy(mint)
        if not stored.id:
            stored.id = str(uuid.uuid4())

        conn = await self._get_connection()
        try:
            await conn.execute(
                f"INSERT INTO mints ({_MINT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._mint_to_params(stored),
            )
            await conn.commit()
        finally:
            await self._return_connection(conn)
        return stored

    async def get_by_id(self, mint_id: str) -> Mint | None:
        """Look up a mint by its ID."""
        return await self._fetch_mint("id = ?", (mint_id,))

    async def get_by_inspection_id(self, inspection_id: str) -> Mint | None:
        """Most recent mint created for a production."""
        return await self._fetch_mint(
            "inspection_id = ? ORDER BY created_at DESC", (inspection_id,)
        )

    async def update(self, mint: Mint) -> Mint:
        """Overwrite an existing mint."""
        await self._init_schema()

        params = self._mint_to_params(mint)
        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                """
                UPDATE mints
                SET inspection_id = ?, brand_id = ?, token_blueprint_id = ?,
                    products_json = ?, created_by = ?, created_at = ?, minted = ?,
                    minted_at = ?, scheduled_burn_date = ?
                WHERE id = ?
                """,
                (*params[1:], params[0]),
            )
            await conn.commit()
            if cursor.rowcount == 0:
                raise MintNotFound(mint.id)
        finally:
            await self._return_connection(conn)
        return copy.deepcopy(mint)

    async def _fetch_mint(self, where: str, params: tuple[Any, ...]) -> Mint | None:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                f"SELECT {_MINT_COLUMNS} FROM mints WHERE {where} LIMIT 1", params
            )
            row = await cursor.fetchone()
        finally:
            await self._return_connection(conn)
        return self._row_to_mint(row) if row else None

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_result(value: str | None) -> InspectionResult | None:
        if not value or value == _LEGACY_NOT_YET:
            return None
        return InspectionResult(value)

    @staticmethod
    def _parse_time(value: str | None) -> datetime | None:
        return datetime.fromisoformat(value) if value else None

    @staticmethod
    def _serialize_items(items: list[InspectionItem]) -> str:
        return json.dumps(
            [
                {
                    "productId": item.product_id,
                    "modelId": item.model_id,
                    "inspectionResult": (
                        item.inspection_result.value if item.inspection_result else None
                    ),
                    "inspectedBy": item.inspected_by,
                    "inspectedAt": (
                        item.inspected_at.isoformat() if item.inspected_at else None
                    ),
                }
                for item in items
            ]
        )

    def _row_to_batch(self, row: tuple[Any, ...]) -> InspectionBatch:
        """Convert a database row to an InspectionBatch.

        Raises:
            ValueError: If the row is malformed.
        """
        try:
            production_id, status, _total_passed, requested, version, items_json = row
            items = [
                InspectionItem(
                    product_id=data["productId"],
                    model_id=data.get("modelId") or "",
                    inspection_result=self._parse_result(data.get("inspectionResult")),
                    inspected_by=data.get("inspectedBy"),
                    inspected_at=self._parse_time(data.get("inspectedAt")),
                )
                for data in json.loads(items_json)
            ]
            # total_passed is derived; __post_init__ recomputes it
            return InspectionBatch(
                production_id=production_id,
                inspections=items,
                status=InspectionStatus(status),
                requested=bool(requested),
                version=int(version),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse inspection batch row: {e}")
            raise ValueError(f"Row parsing failed: {e}") from e

    @staticmethod
    def _mint_to_params(mint: Mint) -> tuple[Any, ...]:
        return (
            mint.id,
            mint.inspection_id,
            mint.brand_id,
            mint.token_blueprint_id,
            json.dumps(list(mint.products)),
            mint.created_by,
            mint.created_at.isoformat(),
            int(mint.minted),
            mint.minted_at.isoformat() if mint.minted_at else None,
            mint.scheduled_burn_date.isoformat() if mint.scheduled_burn_date else None,
        )

    def _row_to_mint(self, row: tuple[Any, ...]) -> Mint:
        (
            mint_id,
            inspection_id,
            brand_id,
            token_blueprint_id,
            products_json,
            created_by,
            created_at,
            minted,
            minted_at,
            scheduled_burn_date,
        ) = row
        return Mint(
            id=mint_id,
            inspection_id=inspection_id,
            brand_id=brand_id,
            token_blueprint_id=token_blueprint_id,
            products=tuple(json.loads(products_json)),
            created_by=created_by,
            created_at=datetime.fromisoformat(created_at),
            minted=bool(minted),
            minted_at=self._parse_time(minted_at),
            scheduled_burn_date=self._parse_time(scheduled_burn_date),
        )
