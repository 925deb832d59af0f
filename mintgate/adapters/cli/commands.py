"""CLI command implementations for mintgate.

Provides human-initiated actions through command-line interface.

This adapter maps CLI commands to InspectionPort and MintRequestPort
operations. It parses wire values (ISO timestamps, patch fields) and
turns core errors into status dictionaries.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from mintgate.core.errors import DuplicateMintRequest, MintgateError, ProductSyncError
from mintgate.core.models import (
    CompanyScope,
    InspectionBatch,
    ItemPatch,
    Mint,
    MintCandidates,
    Provided,
)
from mintgate.core.ports import InspectionPort, MintRequestPort

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any, field: str) -> datetime | None:
    """Parse an ISO 8601 timestamp argument. Missing or empty gives None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{field} must be an ISO 8601 string")
    # fromisoformat does not accept a trailing Z before 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"{field} is not a valid ISO 8601 timestamp: {value!r}") from e


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def batch_to_dict(batch: InspectionBatch) -> dict[str, Any]:
    """Serialize a batch with wire field names."""
    return {
        "productionId": batch.production_id,
        "status": batch.status.value,
        "quantity": batch.quantity,
        "totalPassed": batch.total_passed,
        "requested": batch.requested,
        "inspections": [
            {
                "productId": item.product_id,
                "modelId": item.model_id,
                "modelNumber": item.model_number,
                "inspectionResult": (
                    item.inspection_result.value if item.inspection_result else None
                ),
                "inspectedBy": item.inspected_by,
                "inspectedAt": _iso(item.inspected_at),
            }
            for item in batch.inspections
        ],
    }


def mint_to_dict(mint: Mint) -> dict[str, Any]:
    """Serialize a mint with wire field names."""
    return {
        "id": mint.id,
        "inspectionId": mint.inspection_id,
        "brandId": mint.brand_id,
        "tokenBlueprintId": mint.token_blueprint_id,
        "products": list(mint.products),
        "createdBy": mint.created_by,
        "createdAt": _iso(mint.created_at),
        "minted": mint.minted,
        "mintedAt": _iso(mint.minted_at),
        "scheduledBurnDate": _iso(mint.scheduled_burn_date),
    }


def candidates_to_dict(candidates: MintCandidates) -> dict[str, Any]:
    return {
        "companyId": candidates.company_id,
        "productIds": list(candidates.product_ids),
        "byProduction": {k: list(v) for k, v in candidates.by_production.items()},
        "missingProductionIds": list(candidates.missing_production_ids),
    }


def build_patch(args: dict[str, Any]) -> ItemPatch:
    """Build an ItemPatch from CLI arguments. Absent keys stay unchanged."""
    patch = ItemPatch()
    if "result" in args:
        patch.result = Provided(args["result"])
    if "inspected_by" in args:
        patch.inspected_by = Provided(args["inspected_by"])
    if "inspected_at" in args:
        patch.inspected_at = Provided(parse_timestamp(args["inspected_at"], "inspected_at"))
    if "status" in args:
        patch.status = Provided(args["status"])
    return patch


def build_scope(args: dict[str, Any]) -> CompanyScope:
    """Build a CompanyScope from CLI arguments.

    Raises:
        ValueError: If company_id is not a string or production_ids is
            not a string or a list of strings.
    """
    company_id = args.get("company_id", "")
    if company_id is None:
        company_id = ""
    if not isinstance(company_id, str):
        raise ValueError("company_id must be a string")
    return CompanyScope(
        company_id=company_id,
        production_ids=build_production_ids(args),
    )


def build_production_ids(args: dict[str, Any]) -> tuple[str, ...]:
    production_ids = args.get("production_ids") or []
    if isinstance(production_ids, str):
        production_ids = [production_ids]
    if not isinstance(production_ids, list) or not all(
        isinstance(pid, str) for pid in production_ids
    ):
        raise ValueError("production_ids must be a string or a list of strings")
    return tuple(production_ids)


class CLICommandHandler:
    """Handles CLI commands by delegating to the driving ports.

    Every method returns a dictionary with ``status`` ("success" or
    "error"), ``operation`` and either ``data`` or ``message``.
    """

    def __init__(self, inspections: InspectionPort, mints: MintRequestPort):
        """Initialize the CLI command handler.

        Args:
            inspections: InspectionPort implementation for batch commands.
            mints: MintRequestPort implementation for mint commands.
        """
        self.inspections = inspections
        self.mints = mints

    @staticmethod
    def _error(operation: str, error: Exception, **context: Any) -> dict[str, Any]:
        logger.error(f"Failed to {operation}: {error}")
        result: dict[str, Any] = {
            "status": "error",
            "operation": operation,
            "error_type": type(error).__name__,
            "message": str(error),
        }
        result.update(context)
        return result

    async def get_batch(self, production_id: str) -> dict[str, Any]:
        """Show the inspection batch of a production."""
        try:
            batch = await self.inspections.get_batch(production_id)
            return {
                "status": "success",
                "operation": "batch",
                "data": batch_to_dict(batch),
            }
        except MintgateError as e:
            return self._error("batch", e, production_id=production_id)

    async def update_item(
        self, production_id: str, product_id: str, patch: ItemPatch
    ) -> dict[str, Any]:
        """Apply a partial update to one inspection item.

        Args:
            production_id: Production whose batch is updated.
            product_id: Item to update.
            patch: Fields to change.

        Returns:
            Dictionary with status and the updated batch.
        """
        try:
            batch = await self.inspections.update_item(production_id, product_id, patch)
            return {
                "status": "success",
                "operation": "update",
                "message": f"Item {product_id} of {production_id} updated",
                "data": batch_to_dict(batch),
            }
        except ProductSyncError as e:
            return self._sync_error("update", e)
        except MintgateError as e:
            return self._error("update", e, production_id=production_id, product_id=product_id)

    async def complete_batch(
        self, production_id: str, by: str, at: datetime | None
    ) -> dict[str, Any]:
        """Complete inspection of a batch and sync product results."""
        try:
            batch = await self.inspections.complete_batch(production_id, by, at)
            return {
                "status": "success",
                "operation": "complete",
                "message": (
                    f"Batch {production_id} completed with "
                    f"{batch.total_passed}/{batch.quantity} passed"
                ),
                "data": batch_to_dict(batch),
            }
        except ProductSyncError as e:
            return self._sync_error("complete", e)
        except MintgateError as e:
            return self._error("complete", e, production_id=production_id)

    async def resync_products(self, production_id: str) -> dict[str, Any]:
        """Push a batch's inspection results to the product store again."""
        try:
            batch = await self.inspections.resync_products(production_id)
            return {
                "status": "success",
                "operation": "resync",
                "message": f"Product results of {production_id} synced",
                "data": batch_to_dict(batch),
            }
        except ProductSyncError as e:
            return self._sync_error("resync", e)
        except MintgateError as e:
            return self._error("resync", e, production_id=production_id)

    def _sync_error(self, operation: str, error: ProductSyncError) -> dict[str, Any]:
        """Report a partial sync. The batch itself was saved."""
        return self._error(
            operation,
            error,
            production_id=error.production_id,
            synced=list(error.synced),
            remaining=list(error.remaining),
            hint=f"run 'resync' for {error.production_id} to retry",
        )

    async def list_candidates(self, scope: CompanyScope) -> dict[str, Any]:
        """List passed product IDs across a company scope."""
        try:
            candidates = await self.mints.list_candidates(scope)
            return {
                "status": "success",
                "operation": "candidates",
                "data": candidates_to_dict(candidates),
            }
        except MintgateError as e:
            return self._error("candidates", e, company_id=scope.company_id)

    async def list_batches(self, scope: CompanyScope) -> dict[str, Any]:
        """List the inspection batches of a company scope."""
        try:
            batches = await self.mints.list_batches(scope)
            return {
                "status": "success",
                "operation": "batches",
                "message": f"{len(batches)} batches for {scope.company_id}",
                "data": [batch_to_dict(batch) for batch in batches],
            }
        except MintgateError as e:
            return self._error("batches", e, company_id=scope.company_id)

    async def list_mints(self, production_ids: tuple[str, ...]) -> dict[str, Any]:
        """List the latest mint of each production."""
        try:
            mints = await self.mints.list_mints(production_ids)
            return {
                "status": "success",
                "operation": "mints",
                "data": {pid: mint_to_dict(mint) for pid, mint in mints.items()},
            }
        except MintgateError as e:
            return self._error("mints", e)

    async def request_mint(
        self,
        scope: CompanyScope,
        production_id: str,
        token_blueprint_id: str,
        brand_id: str,
        created_by: str,
        created_at: datetime | None,
        scheduled_burn_date: datetime | None = None,
    ) -> dict[str, Any]:
        """Request a mint for the passed units of a production.

        A mint whose batch could not be flagged is still a success; the
        result carries ``requested_flag_set: false`` so it can be
        reconciled.
        """
        try:
            result = await self.mints.request_mint(
                scope,
                production_id,
                token_blueprint_id,
                brand_id,
                created_by,
                created_at,
                scheduled_burn_date,
            )
            response: dict[str, Any] = {
                "status": "success",
                "operation": "request-mint",
                "message": (
                    f"Mint {result.mint.id} requested for {len(result.mint.products)} "
                    f"products of {production_id}"
                ),
                "requested_flag_set": result.requested_flag_set,
                "data": mint_to_dict(result.mint),
            }
            if not result.requested_flag_set:
                response["warning"] = (
                    f"batch {production_id} was not flagged as requested"
                )
            return response
        except DuplicateMintRequest as e:
            return self._error(
                "request-mint", e, production_id=production_id, mint_id=e.mint_id
            )
        except MintgateError as e:
            return self._error("request-mint", e, production_id=production_id)

    async def mark_minted(self, mint_id: str, at: datetime | None) -> dict[str, Any]:
        try:
            mint = await self.mints.mark_minted(mint_id, at)
            return {
                "status": "success",
                "operation": "mark-minted",
                "message": f"Mint {mint.id} minted at {_iso(mint.minted_at)}",
                "data": mint_to_dict(mint),
            }
        except MintgateError as e:
            return self._error("mark-minted", e, mint_id=mint_id)

    async def reset_minted(self, mint_id: str) -> dict[str, Any]:
        try:
            mint = await self.mints.reset_minted(mint_id)
            return {
                "status": "success",
                "operation": "reset-minted",
                "message": f"Mint {mint.id} reset to unminted",
                "data": mint_to_dict(mint),
            }
        except MintgateError as e:
            return self._error("reset-minted", e, mint_id=mint_id)

    async def get_mint(self, production_id: str) -> dict[str, Any]:
        """Show the mint created for a production."""
        try:
            mint = await self.mints.get_mint_for_production(production_id)
            return {
                "status": "success",
                "operation": "mint",
                "data": mint_to_dict(mint),
            }
        except MintgateError as e:
            return self._error("mint", e, production_id=production_id)


COMMANDS = (
    "batch",
    "update",
    "complete",
    "resync",
    "candidates",
    "batches",
    "mints",
    "request-mint",
    "mark-minted",
    "reset-minted",
    "mint",
)


async def run_command(
    inspections: InspectionPort,
    mints: MintRequestPort,
    command: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """Run a CLI command.

    Entry point for executing CLI commands. Maps command names to handler methods.

    Args:
        inspections: InspectionPort implementation.
        mints: MintRequestPort implementation.
        command: Command name, one of COMMANDS.
        args: Dictionary of command arguments.

    Returns:
        Dictionary with command result.

    Raises:
        ValueError: If command is not recognized or a timestamp is malformed.
        KeyError: If a required argument is missing.
    """
    handler = CLICommandHandler(inspections, mints)

    if command == "batch":
        return await handler.get_batch(args["production_id"])

    elif command == "update":
        return await handler.update_item(
            args["production_id"],
            args["product_id"],
            build_patch(args),
        )

    elif command == "complete":
        at = parse_timestamp(args.get("at"), "at") or datetime.now(timezone.utc)
        return await handler.complete_batch(args["production_id"], args["by"], at)

    elif command == "resync":
        return await handler.resync_products(args["production_id"])

    elif command == "candidates":
        return await handler.list_candidates(build_scope(args))

    elif command == "batches":
        return await handler.list_batches(build_scope(args))

    elif command == "mints":
        return await handler.list_mints(build_production_ids(args))

    elif command == "request-mint":
        created_at = parse_timestamp(args.get("created_at"), "created_at")
        return await handler.request_mint(
            build_scope(args),
            args["production_id"],
            args["token_blueprint_id"],
            args["brand_id"],
            args["created_by"],
            created_at or datetime.now(timezone.utc),
            parse_timestamp(args.get("scheduled_burn_date"), "scheduled_burn_date"),
        )

    elif command == "mark-minted":
        at = parse_timestamp(args.get("at"), "at") or datetime.now(timezone.utc)
        return await handler.mark_minted(args["mint_id"], at)

    elif command == "reset-minted":
        return await handler.reset_minted(args["mint_id"])

    elif command == "mint":
        return await handler.get_mint(args["production_id"])

    else:
        raise ValueError(f"Unknown command: {command}")
