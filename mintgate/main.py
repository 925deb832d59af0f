"""Composition root for the mintgate traceability service.

This module is the ONLY location that imports both core domain logic
and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Configuration loading via config module
- Adapter instantiation
- Core service initialization
- Dependency injection
- Entry point selection (one-shot command or interactive CLI)
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any

from mintgate.adapters.catalog.http import HTTPModelCatalogAdapter
from mintgate.adapters.cli.commands import COMMANDS, run_command
from mintgate.adapters.store.sqlite import SQLiteStore
from mintgate.config import Settings, load_settings
from mintgate.core.eligibility import MintEligibilityCollector
from mintgate.core.inspection_service import InspectionService
from mintgate.core.mint_service import MintRequestService
from mintgate.core.models import InspectionBatch
from mintgate.core.ports import ModelVariationLookupPort

# Seeding commands write straight to the store, outside the core services.
SEED_COMMANDS = ("create-batch", "register-model")


@dataclass
class Application:
    """Wired adapters and services."""

    store: SQLiteStore
    catalog: ModelVariationLookupPort
    inspections: InspectionService
    mints: MintRequestService

    async def close(self) -> None:
        """Release adapter resources."""
        if isinstance(self.catalog, HTTPModelCatalogAdapter):
            await self.catalog.close()
        await self.store.close_pool()


def build_application(settings: Settings) -> Application:
    """Instantiate adapters and core services from settings.

    Args:
        settings: Validated application settings.

    Returns:
        Application with every port wired.

    Raises:
        ValueError: If the catalog backend is unknown.
    """
    logger = logging.getLogger(__name__)

    store = SQLiteStore(
        db_path=settings.store_sqlite_path,
        pool_size=settings.store_pool_size,
    )
    logger.info(f"Store initialized: {settings.store_sqlite_path}")

    catalog: ModelVariationLookupPort
    if settings.catalog_backend == "sqlite":
        catalog = store
        logger.info("Model catalog: SQLite store")
    elif settings.catalog_backend == "http":
        catalog = HTTPModelCatalogAdapter(
            api_url=settings.catalog_api_url,
            api_key=settings.catalog_api_key,
            timeout=settings.catalog_timeout_seconds,
        )
        logger.info(f"Model catalog: HTTP ({settings.catalog_api_url})")
    else:
        raise ValueError(f"Unknown catalog backend: {settings.catalog_backend}")

    inspections = InspectionService(
        batch_store=store,
        product_sync=store,
        model_lookup=catalog,
    )
    mints = MintRequestService(
        batch_store=store,
        collector=MintEligibilityCollector(store),
        mint_store=store,
        requested_flags=store,
        model_lookup=catalog,
    )
    return Application(
        store=store,
        catalog=catalog,
        inspections=inspections,
        mints=mints,
    )


async def _execute_cli_command(
    app: Application,
    command: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """Execute a CLI command.

    Args:
        app: Wired application.
        command: Command name.
        args: Command arguments.

    Returns:
        Command result dictionary.

    Raises:
        ValueError: If command is not recognized or a required
            parameter is missing.
    """
    try:
        if command == "create-batch":
            return await _create_batch(app, args)
        if command == "register-model":
            await app.store.register_model(args["model_id"], args["model_number"])
            return {
                "status": "success",
                "operation": "register-model",
                "message": f"Model {args['model_id']} registered",
            }
        if command in COMMANDS:
            return await run_command(app.inspections, app.mints, command, args)
    except KeyError as e:
        raise ValueError(f"Missing required parameter: {e.args[0]}") from e

    raise ValueError(f"Unknown command: {command}. Use 'help' for available commands.")


async def _create_batch(app: Application, args: dict[str, Any]) -> dict[str, Any]:
    """Create a pending batch and its product rows."""
    model_ids: dict[str, str] = args.get("model_ids") or {}
    batch = InspectionBatch.new(args["production_id"], args["product_ids"], model_ids)
    await app.store.register_products(
        batch.production_id,
        [item.product_id for item in batch.inspections],
        model_ids,
    )
    saved = await app.store.save(batch)
    return {
        "status": "success",
        "operation": "create-batch",
        "message": f"Batch {saved.production_id} created with {saved.quantity} items",
    }


async def _run_cli_interactive(app: Application) -> None:
    """Run interactive CLI loop.

    Provides a REPL-like interface for inspection and mint commands.

    Args:
        app: Wired application.
    """
    logger = logging.getLogger(__name__)
    logger.info("Starting interactive CLI. Type 'help' for available commands or 'exit' to quit.")

    loop = asyncio.get_running_loop()

    while True:
        try:
            # Read command from stdin in a thread to avoid blocking
            command_line = await loop.run_in_executor(None, input, "mintgate> ")

            command_line = command_line.strip()

            if not command_line:
                continue

            if command_line.lower() == "exit":
                logger.info("Exiting CLI")
                break

            if command_line.lower() == "help":
                _print_cli_help()
                continue

            parts = command_line.split(maxsplit=1)
            command = parts[0].lower()
            args_str = parts[1] if len(parts) > 1 else ""

            try:
                args = json.loads(args_str) if args_str else {}
            except json.JSONDecodeError:
                logger.error("Invalid JSON arguments. Use 'help' for command syntax.")
                continue

            try:
                result = await _execute_cli_command(app, command, args)
                print(json.dumps(result, indent=2, default=str))
            except Exception as e:
                logger.error(f"Command execution error: {e}", exc_info=True)
                print(json.dumps({"status": "error", "message": str(e)}, indent=2))

        except EOFError:
            # Ctrl+D to exit
            logger.info("EOF received, exiting CLI")
            break
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            continue


def _print_cli_help() -> None:
    """Print CLI help message."""
    help_text = """
Available Commands (JSON format):

  create-batch
    Create a pending inspection batch and its product records.
    Required: production_id, product_ids
    Optional: model_ids (productId -> modelId)

    Example: create-batch {"production_id": "p1", "product_ids": ["a", "b"]}

  register-model
    Register the model number of a model variation.
    Required: model_id, model_number

  batch
    Show a batch with model numbers.
    Required: production_id

  update
    Update one inspection item. Only given fields change.
    Required: production_id, product_id
    Optional: result (passed, failed, notManufactured), inspected_by,
              inspected_at (ISO 8601), status (pending, completed)

    Example: update {"production_id": "p1", "product_id": "a", "result": "passed"}

  complete
    Complete a batch; uninspected items become notManufactured.
    Required: production_id, by
    Optional: at (ISO 8601, default now)

  resync
    Push a batch's inspection results to the products again.
    Required: production_id

  candidates
    List passed products across a company's productions.
    Required: company_id, production_ids

  batches
    List the batches of a company's productions, with model numbers.
    Required: company_id, production_ids

  mints
    List the latest mint of each production.
    Required: production_ids

  request-mint
    Create a mint for a production's passed products.
    Required: company_id, production_ids, production_id,
              token_blueprint_id, brand_id, created_by
    Optional: created_at, scheduled_burn_date (ISO 8601)

  mark-minted
    Record that a mint was executed.
    Required: mint_id
    Optional: at (ISO 8601, default now)

  reset-minted
    Return a mint to unminted.
    Required: mint_id

  mint
    Show the mint created for a production.
    Required: production_id

  help
    Show this help message.

  exit
    Exit the CLI.

Note: All commands accept arguments as a single JSON object.
Provide the JSON after the command name on the same line.
    """
    print(help_text)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = (
            '{"time": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="mintgate",
        description="Inspection batches and mint requests for manufactured units.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        help="Command to run once. Omit to start the interactive CLI.",
    )
    parser.add_argument(
        "args",
        nargs="?",
        default="{}",
        help="Command arguments as a JSON object.",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file.")
    return parser.parse_args(argv)


async def bootstrap(argv: list[str] | None = None) -> int:
    """Load configuration, wire adapters, and run a command or the CLI.

    This is the composition root: the single place where all components
    are instantiated and wired together.

    Steps:
    1. Load configuration from environment
    2. Configure logging
    3. Instantiate adapters and core services
    4. Run one command, or the interactive CLI

    Returns:
        Process exit code: 0 on success, 1 if the command failed.
    """
    options = parse_args(argv)

    # Step 1: Load configuration
    settings = load_settings(options.env_file)

    # Step 2: Configure logging
    configure_logging("DEBUG" if settings.debug else settings.log_level, settings.log_format)
    logger = logging.getLogger(__name__)
    logger.debug("Loading mintgate...")

    # Step 3: Instantiate adapters and services
    app = build_application(settings)

    # Step 4: Run
    try:
        if options.command is None:
            await _run_cli_interactive(app)
            return 0

        try:
            args = json.loads(options.args)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON arguments: {e}")
            return 1
        if not isinstance(args, dict):
            logger.error("Command arguments must be a JSON object")
            return 1

        try:
            result = await _execute_cli_command(app, options.command.lower(), args)
        except ValueError as e:
            result = {"status": "error", "message": str(e)}
        print(json.dumps(result, indent=2, default=str))
        return 0 if result.get("status") == "success" else 1
    finally:
        await app.close()


def main() -> None:
    """Application entry point.

    Exit codes:
        0: Successful command or shutdown
        1: Command failed or fatal runtime error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        sys.exit(asyncio.run(bootstrap()))
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
