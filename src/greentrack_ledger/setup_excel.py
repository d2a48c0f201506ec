"""Utility for initializing a GreenTrack shop workbook.

The module doubles as a console script (``greentrack-setup``) and as a library
used by tests or other tooling. Sheet layout lives in
:mod:`greentrack_ledger.data_manager` so the bootstrap and the store always
agree on columns.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from . import data_manager
from .ledger_store import WorkbookLedgerStore
from .stock import StockAdjustmentEngine


def run_from_config(config_path: Path, *, overwrite: bool = False, seed: bool = False) -> Path:
    """Create the workbook of the shop configured in ``config_path``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        KeyError: If required configuration entries are missing.
        FileExistsError: If the workbook exists and ``overwrite`` is false.
    """

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    destination = data_manager.shop_workbook_path(settings.data_dir, settings.shop_name)
    data_manager.create_shop_workbook(destination, overwrite=overwrite)

    if seed:
        store = WorkbookLedgerStore(settings.shop_name, destination, create=False)
        if not StockAdjustmentEngine(store).seed_default_inventory():
            raise OSError(f"Unable to seed default inventory into '{destination}'")
    return destination


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize a GreenTrack shop workbook")
    parser.add_argument(
        "--config",
        default=data_manager.CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Load the default starter inventory into the new workbook.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup console script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- GreenTrack Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force, seed=args.seed)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created shop workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
