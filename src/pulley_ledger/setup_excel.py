"""Bootstrap a fresh pulley ledger workbook.

The module doubles as a script (``python -m pulley_ledger.setup_excel``) and
as a library used by tests. The workbook gets the ``Items``, ``Clients`` and
``Settings`` sheets with bold headers, and the ``Settings`` sheet is seeded
from the pricing defaults found in ``config.ini``.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

from . import data_manager, log
from .data_manager import CONFIG_FILE_NAME, SETTINGS_SHEET, SHEET_COLUMNS


def create_master_workbook(
    destination: Path,
    *,
    settings: data_manager.SettingsRow,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the ledger workbook at ``destination``.

    Raises:
        FileExistsError: If the target exists and ``overwrite`` is ``False``.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing ledger workbook: {destination}")

    workbook = openpyxl.Workbook()
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index, value=column_name)
            cell.font = bold_font

    if SETTINGS_SHEET in workbook.sheetnames:
        data_manager.write_settings(workbook, settings)

    data_manager.save_workbook(workbook, destination)
    log.info("Created ledger workbook at '%s'", destination)
    return destination


def seed_settings(config: data_manager.ConfigSettings) -> data_manager.SettingsRow:
    """Initial ``Settings`` sheet values derived from ``config.ini``."""

    return data_manager.SettingsRow(
        company_name=config.company_name,
        company_address=None,
        gst_no=None,
        default_rate=config.default_rate,
        bore_rate=config.bore_rate,
        currency=config.currency_symbol,
    )


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Read ``config_path`` and create the workbook it points at."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    config = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_master_workbook(config.data_file, settings=seed_settings(config), overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the pulley ledger workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Pulley Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created ledger workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
