"""Data access layer for the pulley ledger.

This module provides low-level helpers that read from and write to the ledger
workbook. Business logic belongs elsewhere; the DAL stores whatever rows it is
handed and never recomputes valuations.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, persisting, and reloading the Excel file.
3. Sheet operations: loading structured rows and appending, replacing, or
   deleting individual rows by their identifier column.
4. Statement export: writing billing lines to a standalone workbook.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl.styles import Font
from openpyxl.workbook.child import INVALID_TITLE_REGEX
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import DEFAULT_BORE_RATE, DEFAULT_RATE, SettingKey, SheetName


CONFIG_FILE_NAME = "config.ini"
ITEMS_SHEET = SheetName.ITEMS.value
CLIENTS_SHEET = SheetName.CLIENTS.value
SETTINGS_SHEET = SheetName.SETTINGS.value

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    ITEMS_SHEET: [
        "ItemID",
        "Date",
        "Direction",
        "ClientID",
        "ClientName",
        "Diameter",
        "Grooves",
        "Section",
        "Type",
        "SpecKey",
        "Quantity",
        "Rate",
        "CostPerUnit",
        "MachineCost",
        "BoreUnits",
        "BoreRate",
        "BoreCost",
        "Total",
        "Remarks",
    ],
    CLIENTS_SHEET: [
        "ClientID",
        "ClientName",
        "Contact",
        "DefaultRate",
    ],
    SETTINGS_SHEET: [
        "Key",
        "Value",
    ],
}

STATEMENT_COLUMNS: Sequence[str] = ["Type", "Pulley", "Total Units", "Cost/Unit", "M/C Cost"]


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    company_name: str
    schema_version: str
    default_rate: Decimal = DEFAULT_RATE
    bore_rate: Decimal = DEFAULT_BORE_RATE
    currency_symbol: str = ""


@dataclass(frozen=True)
class ItemRow:
    """In-memory view of a row from the ``Items`` sheet."""

    item_id: str
    date_iso: str
    direction: str
    client_id: str
    client_name: str
    diameter: Decimal
    grooves: Decimal
    section: str
    type: str
    spec_key: str
    quantity: Decimal
    rate: Decimal
    cost_per_unit: Decimal
    machine_cost: Decimal
    bore_units: Decimal
    bore_rate: Decimal
    bore_cost: Decimal
    total: Decimal
    remarks: Optional[str]


@dataclass(frozen=True)
class ClientRow:
    """In-memory view of a row from the ``Clients`` sheet."""

    client_id: str
    client_name: str
    contact: Optional[str]
    default_rate: Optional[Decimal]


@dataclass(frozen=True)
class SettingsRow:
    """In-memory view of the key/value pairs on the ``Settings`` sheet."""

    company_name: str
    company_address: Optional[str]
    gst_no: Optional[str]
    default_rate: Decimal
    bore_rate: Decimal
    currency: str


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. When no explicit path is given the function
    walks up from the current working directory toward the filesystem root
    looking for a file named ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must provide ``DataFile``, ``CompanyName`` and
    ``SchemaVersion``. The ``[Defaults]`` section is optional; missing pricing
    entries fall back to the package defaults. Relative data file paths are
    anchored to ``base_path`` (or the current working directory).

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve a relative
            ``DataFile`` entry.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If a pricing default is not a valid decimal.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        company_name = parser.get("System", "CompanyName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    default_rate = _config_decimal(parser, "DefaultRate", DEFAULT_RATE)
    bore_rate = _config_decimal(parser, "BoreRate", DEFAULT_BORE_RATE)
    currency_symbol = parser.get("Defaults", "Currency", fallback="")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        company_name=company_name,
        schema_version=schema_version,
        default_rate=default_rate,
        bore_rate=bore_rate,
        currency_symbol=currency_symbol,
    )


def _config_decimal(parser: configparser.ConfigParser, option: str, fallback: Decimal) -> Decimal:
    raw = parser.get("Defaults", option, fallback=None)
    if raw is None or not raw.strip():
        return fallback
    try:
        return Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal for Defaults.{option}: {raw!r}") from exc


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding unsaved in-memory changes."""

    return open_workbook(data_file)


def iter_items(workbook: Workbook) -> Iterable[ItemRow]:
    """Stream item rows from the ``Items`` worksheet in sheet order.

    Header and fully empty rows are skipped. Numeric columns become
    :class:`~decimal.Decimal` instances via :func:`deserialize_item`.
    """

    sheet = workbook[ITEMS_SHEET]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_item(raw)


def iter_clients(workbook: Workbook) -> Iterable[ClientRow]:
    """Iterate over the ``Clients`` worksheet and yield typed records."""

    sheet = workbook[CLIENTS_SHEET]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_client(raw)


def read_settings(workbook: Workbook) -> Optional[SettingsRow]:
    """Read the key/value ``Settings`` sheet.

    Returns:
        SettingsRow | None: Typed settings, or ``None`` when the sheet holds
            no entries yet. Missing individual keys fall back to the package
            defaults.
    """

    sheet = workbook[SETTINGS_SHEET]
    values: Dict[str, object] = {}
    for key, value in sheet.iter_rows(min_row=2, max_col=2, values_only=True):
        if key is not None:
            values[str(key)] = value
    if not values:
        return None

    return SettingsRow(
        company_name=_text_or_default(values.get(SettingKey.COMPANY_NAME.value), ""),
        company_address=_text_or_none(values.get(SettingKey.COMPANY_ADDRESS.value)),
        gst_no=_text_or_none(values.get(SettingKey.GST_NO.value)),
        default_rate=_to_decimal(values.get(SettingKey.DEFAULT_RATE.value), DEFAULT_RATE),
        bore_rate=_to_decimal(values.get(SettingKey.BORE_RATE.value), DEFAULT_BORE_RATE),
        currency=_text_or_default(values.get(SettingKey.CURRENCY.value), ""),
    )


def write_settings(workbook: Workbook, record: SettingsRow) -> None:
    """Replace every key/value pair on the ``Settings`` sheet with ``record``."""

    sheet = workbook[SETTINGS_SHEET]
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    for key, value in serialize_settings(record):
        sheet.append([key, value])


def append_item(workbook: Workbook, record: ItemRow) -> None:
    """Append an item row to the ``Items`` worksheet."""

    sheet = workbook[ITEMS_SHEET]
    sheet.append(serialize_item(record))


def replace_item(workbook: Workbook, item_id: str, record: ItemRow) -> None:
    """Overwrite the row whose ``ItemID`` equals ``item_id`` in place.

    Raises:
        KeyError: If no row carries ``item_id``.
    """

    _overwrite_row(workbook, ITEMS_SHEET, "ItemID", item_id, serialize_item(record))


def delete_item(workbook: Workbook, item_id: str) -> None:
    """Remove the row whose ``ItemID`` equals ``item_id``.

    Raises:
        KeyError: If no row carries ``item_id``.
    """

    _remove_row(workbook, ITEMS_SHEET, "ItemID", item_id)


def append_client(workbook: Workbook, record: ClientRow) -> None:
    """Append a client row to the ``Clients`` worksheet."""

    sheet = workbook[CLIENTS_SHEET]
    sheet.append(serialize_client(record))


def replace_client(workbook: Workbook, client_id: str, record: ClientRow) -> None:
    """Overwrite the client row identified by ``client_id``."""

    _overwrite_row(workbook, CLIENTS_SHEET, "ClientID", client_id, serialize_client(record))


def delete_client(workbook: Workbook, client_id: str) -> None:
    """Remove the client row identified by ``client_id``."""

    _remove_row(workbook, CLIENTS_SHEET, "ClientID", client_id)


def _overwrite_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str, values: Sequence[object]) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    sheet = workbook[sheet_name]
    for column, value in enumerate(values, start=1):
        sheet.cell(row=row_index, column=column, value=value)


def _remove_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    workbook[sheet_name].delete_rows(row_index)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title of the column storing the lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def sanitize_title(text: str, replacement: str = "-") -> str:
    """Replace characters openpyxl refuses in sheet titles (``\\ * ? : / [ ]``).

    The same set also keeps client labels from splitting a file name into
    nested directories.
    """

    return INVALID_TITLE_REGEX.sub(replacement, text).strip()


def write_statement(destination: Path, rows: Iterable[Sequence[object]], *, title: str = "Statement") -> Path:
    """Write billing statement lines to a standalone workbook.

    Args:
        destination (Path): Target ``.xlsx`` path; parent folders are created.
        rows (Iterable[Sequence[object]]): Values ordered as
            :data:`STATEMENT_COLUMNS`.
        title (str): Worksheet title, usually the invoice identifier.

    Returns:
        Path: The resolved destination.
    """

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = sanitize_title(title)[:31] or "Statement"
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(STATEMENT_COLUMNS, start=1):
        cell = sheet.cell(row=1, column=column_index, value=column_name)
        cell.font = bold_font

    count = 0
    for row in rows:
        sheet.append(list(row))
        count += 1

    dest = Path(destination).expanduser().resolve()
    save_workbook(workbook, dest)
    log.info("Wrote statement '%s' with %d lines to '%s'", title, count, dest)
    return dest


def serialize_item(record: ItemRow) -> List[object]:
    """Convert an item dataclass into the ``Items`` column ordering."""

    return [
        record.item_id,
        record.date_iso,
        record.direction,
        record.client_id,
        record.client_name,
        record.diameter,
        record.grooves,
        record.section,
        record.type,
        record.spec_key,
        record.quantity,
        record.rate,
        record.cost_per_unit,
        record.machine_cost,
        record.bore_units,
        record.bore_rate,
        record.bore_cost,
        record.total,
        record.remarks,
    ]


def serialize_client(record: ClientRow) -> List[object]:
    """Convert a client dataclass into the ``Clients`` column ordering."""

    return [record.client_id, record.client_name, record.contact, record.default_rate]


def serialize_settings(record: SettingsRow) -> List[List[object]]:
    """Convert settings into ``[Key, Value]`` pairs for the ``Settings`` sheet.

    Decimal values are stored as text so that rates survive the round trip
    through Excel without float artifacts.
    """

    return [
        [SettingKey.COMPANY_NAME.value, record.company_name],
        [SettingKey.COMPANY_ADDRESS.value, record.company_address],
        [SettingKey.GST_NO.value, record.gst_no],
        [SettingKey.DEFAULT_RATE.value, str(record.default_rate)],
        [SettingKey.BORE_RATE.value, str(record.bore_rate)],
        [SettingKey.CURRENCY.value, record.currency],
    ]


def deserialize_item(raw_row: Sequence[object]) -> ItemRow:
    """Convert a raw ``Items`` row into a strongly typed item record.

    Numeric columns are normalized into :class:`~decimal.Decimal` instances
    (blank cells become zero), identifiers are coerced to ``str`` to avoid
    surprises caused by Excel interpreting numbers, and a blank remarks cell
    stays ``None``.
    """

    padded = list(raw_row) + [None] * (len(SHEET_COLUMNS[ITEMS_SHEET]) - len(raw_row))
    (
        item_id,
        date_iso,
        direction,
        client_id,
        client_name,
        diameter,
        grooves,
        section,
        pulley_type,
        spec_key,
        quantity,
        rate,
        cost_per_unit,
        machine_cost,
        bore_units,
        bore_rate,
        bore_cost,
        total,
        remarks,
    ) = padded[: len(SHEET_COLUMNS[ITEMS_SHEET])]

    return ItemRow(
        item_id=str(item_id),
        date_iso=_text_or_default(date_iso, ""),
        direction=_text_or_default(direction, ""),
        client_id=_text_or_default(client_id, ""),
        client_name=_text_or_default(client_name, ""),
        diameter=_to_decimal(diameter),
        grooves=_to_decimal(grooves),
        section=_text_or_default(section, ""),
        type=_text_or_default(pulley_type, ""),
        spec_key=_text_or_default(spec_key, ""),
        quantity=_to_decimal(quantity),
        rate=_to_decimal(rate),
        cost_per_unit=_to_decimal(cost_per_unit),
        machine_cost=_to_decimal(machine_cost),
        bore_units=_to_decimal(bore_units),
        bore_rate=_to_decimal(bore_rate),
        bore_cost=_to_decimal(bore_cost),
        total=_to_decimal(total),
        remarks=_text_or_none(remarks),
    )


def deserialize_client(raw_row: Sequence[object]) -> ClientRow:
    """Convert a raw ``Clients`` row into a strongly typed client record."""

    client_id, client_name, contact, default_rate = (list(raw_row) + [None] * 4)[:4]
    return ClientRow(
        client_id=str(client_id),
        client_name=_text_or_default(client_name, ""),
        contact=_text_or_none(contact),
        default_rate=_to_decimal(default_rate) if default_rate not in (None, "") else None,
    )


def _to_decimal(raw: object, default: Decimal = Decimal("0")) -> Decimal:
    if raw is None or raw == "":
        return default
    return Decimal(str(raw))


def _text_or_none(raw: object) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text if text else None


def _text_or_default(raw: object, default: str) -> str:
    return str(raw) if raw is not None else default
