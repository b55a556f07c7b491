"""Enumerations and fixed values shared across the pulley ledger modules.

The data access layer (DAL), the business logic layer (BLL), the reporting
views, and the CLI all read their identifiers and limits from here so that a
workbook written by one layer is always understood by the others.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Fallback pricing used when neither the workbook nor config.ini provide one.
DEFAULT_RATE = Decimal("6")
DEFAULT_BORE_RATE = Decimal("50")

# Suggestion engine capacities.
SUGGESTION_LIMIT = 5
RECENT_SPEC_LIMIT = 6

# Display key used when a draft has no usable diameter/grooves yet.
EMPTY_SPEC_KEY = "-"

INVOICE_PREFIX = "INV"
ALL_CLIENTS_TAG = "ALL"


class Direction(str, Enum):
    """Enumerate the stock movement directions recorded in the ledger."""

    IN = "IN"
    OUT = "OUT"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    ITEMS = "Items"
    CLIENTS = "Clients"
    SETTINGS = "Settings"


class SettingKey(str, Enum):
    """Enumerate the keys stored on the key/value ``Settings`` sheet."""

    COMPANY_NAME = "CompanyName"
    COMPANY_ADDRESS = "CompanyAddress"
    GST_NO = "GstNo"
    DEFAULT_RATE = "DefaultRate"
    BORE_RATE = "BoreRate"
    CURRENCY = "Currency"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_RATE",
    "DEFAULT_BORE_RATE",
    "SUGGESTION_LIMIT",
    "RECENT_SPEC_LIMIT",
    "EMPTY_SPEC_KEY",
    "INVOICE_PREFIX",
    "ALL_CLIENTS_TAG",
    "Direction",
    "SheetName",
    "SettingKey",
]
