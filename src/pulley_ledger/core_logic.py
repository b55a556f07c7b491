"""Business logic layer for the pulley ledger.

This module owns the rules that turn a raw transaction draft into a priced,
specification-keyed stock movement, and the in-memory ``LedgerStore`` that
holds the committed records. It consumes the Data Access Layer (DAL) for all
I/O and only mutates in-memory state after the DAL has accepted a change, so
the store never drifts ahead of the workbook.

Read-side views (stock projection, suggestions, tally, billing) live in
:mod:`pulley_ledger.reports` and operate on snapshots produced here.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import (
    DEFAULT_BORE_RATE,
    DEFAULT_RATE,
    EMPTY_SPEC_KEY,
    EXPECTED_SCHEMA_VERSION,
    Direction,
)


Number = Union[Decimal, int, float, str, None]
SpecIdentity = Tuple[Decimal, Decimal, str, str]

ZERO = Decimal("0")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationFailure(BusinessRuleViolation):
    """Raised when a draft fails the ledger invariants.

    The ``field`` attribute names the input that failed so callers can point
    the user at it.
    """

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field = field_name


class NotFound(BusinessRuleViolation):
    """Raised when a referenced transaction or client id is unknown."""


class DuplicateRecordError(BusinessRuleViolation):
    """Raised when an append would store a second record under the same id."""


class CollaboratorFailure(Exception):
    """Raised when the persistence collaborator rejects a change."""


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def to_decimal(value: Number, *, field_name: str) -> Decimal:
    """Coerce user or workbook input into a finite :class:`Decimal`.

    ``None`` and blank strings count as zero, mirroring how an empty form
    field is treated. Floats go through ``str`` so ``0.1`` stays ``0.1``.

    Raises:
        ValidationFailure: If the value is not a finite number.
    """

    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValidationFailure(field_name, f"{field_name} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        text = str(value).strip()
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation as exc:
            raise ValidationFailure(field_name, f"{field_name} must be a number, got {value!r}") from exc
    if not result.is_finite():
        raise ValidationFailure(field_name, f"{field_name} must be a finite number, got {value!r}")
    return result


def format_number(value: Decimal) -> str:
    """Render a decimal the way the spec key shows it: ``10``, ``2.5``, ``0.75``."""

    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


def normalize_code(value: Optional[str]) -> str:
    """Normalize a section or type code (``" b "`` becomes ``"B"``)."""

    return str(value or "").strip().upper()


def parse_direction(value: Union[Direction, str]) -> Direction:
    """Resolve ``IN``/``OUT`` (any case) into a :class:`Direction`."""

    if isinstance(value, Direction):
        return value
    try:
        return Direction(str(value).strip().upper())
    except ValueError as exc:
        raise ValidationFailure("direction", f"Unknown direction: {value!r}") from exc


def parse_date(value: Union[date, str]) -> date:
    """Parse an ISO ``YYYY-MM-DD`` value (or a date/datetime) into a date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        raise ValidationFailure("date", "A transaction date is required")
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise ValidationFailure("date", f"Invalid date (expected YYYY-MM-DD): {value!r}") from exc


def normalize_month(value: str) -> str:
    """Validate a ``YYYY-MM`` month filter and return it stripped.

    Raises:
        ValidationFailure: If ``value`` is not a calendar month in that form.
    """

    text = str(value or "").strip()
    parts = text.split("-")
    valid = (
        len(parts) == 2
        and len(parts[0]) == 4
        and len(parts[1]) == 2
        and parts[0].isdigit()
        and parts[1].isdigit()
        and 1 <= int(parts[1]) <= 12
    )
    if not valid:
        raise ValidationFailure("month", f"Invalid month (expected YYYY-MM): {value!r}")
    return text


def spec_key(diameter: Decimal, grooves: Decimal, section: str) -> str:
    """Build the display key ``"{diameter}x{grooves}x{section}"``.

    Returns :data:`EMPTY_SPEC_KEY` while diameter or grooves is still zero.
    """

    if not diameter or not grooves:
        return EMPTY_SPEC_KEY
    return f"{format_number(diameter)}x{format_number(grooves)}x{section}"


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PulleySpec:
    """Physical identity of a pulley.

    Equality and hashing compare the decimals by value, so ``10`` and
    ``10.0`` denote the same specification even though a naive string key
    would not.
    """

    diameter: Decimal
    grooves: Decimal
    section: str
    type: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "diameter", to_decimal(self.diameter, field_name="diameter"))
        object.__setattr__(self, "grooves", to_decimal(self.grooves, field_name="grooves"))
        object.__setattr__(self, "section", normalize_code(self.section))
        object.__setattr__(self, "type", normalize_code(self.type))

    @property
    def identity(self) -> SpecIdentity:
        return (self.diameter.normalize(), self.grooves.normalize(), self.section, self.type)

    @property
    def key(self) -> str:
        return spec_key(self.diameter, self.grooves, self.section)

    @property
    def is_complete(self) -> bool:
        return self.diameter > ZERO and self.grooves > ZERO


@dataclass(frozen=True)
class ValuationDraft:
    """Numeric inputs of a transaction being typed; absent values count as 0."""

    diameter: Number = None
    grooves: Number = None
    rate: Number = None
    quantity: Number = None
    bore_units: Number = None
    bore_rate_per_unit: Number = None
    section: str = ""


@dataclass(frozen=True)
class Valuation:
    """Costs derived from a :class:`ValuationDraft`."""

    cost_per_unit: Decimal
    machine_cost: Decimal
    bore_cost: Decimal
    total: Decimal
    spec_key: str


def preview_valuation(draft: ValuationDraft) -> Valuation:
    """Price a draft without validating it, for live display of partial input."""

    diameter = to_decimal(draft.diameter, field_name="diameter")
    grooves = to_decimal(draft.grooves, field_name="grooves")
    rate = to_decimal(draft.rate, field_name="rate")
    quantity = to_decimal(draft.quantity, field_name="quantity")
    bore_units = to_decimal(draft.bore_units, field_name="bore_units")
    bore_rate = to_decimal(draft.bore_rate_per_unit, field_name="bore_rate_per_unit")

    cost_per_unit = diameter * grooves * rate
    machine_cost = cost_per_unit * quantity
    bore_cost = bore_units * bore_rate
    return Valuation(
        cost_per_unit=cost_per_unit,
        machine_cost=machine_cost,
        bore_cost=bore_cost,
        total=machine_cost + bore_cost,
        spec_key=spec_key(diameter, grooves, normalize_code(draft.section)),
    )


def validate_draft(draft: ValuationDraft) -> None:
    """Enforce the commit invariants on a draft.

    Diameter, grooves and quantity must be strictly positive; rate and bore
    inputs may be zero but never negative.

    Raises:
        ValidationFailure: Naming the first offending field.
    """

    require_positive(to_decimal(draft.diameter, field_name="diameter"), "diameter")
    require_positive(to_decimal(draft.grooves, field_name="grooves"), "grooves")
    require_positive(to_decimal(draft.quantity, field_name="quantity"), "quantity")
    require_nonnegative(to_decimal(draft.rate, field_name="rate"), "rate")
    require_nonnegative(to_decimal(draft.bore_units, field_name="bore_units"), "bore_units")
    require_nonnegative(to_decimal(draft.bore_rate_per_unit, field_name="bore_rate_per_unit"), "bore_rate_per_unit")


def calculate_valuation(draft: ValuationDraft) -> Valuation:
    """Validate and price a draft.

    The function is pure: identical drafts always produce identical
    valuations and nothing is recorded anywhere.

    Raises:
        ValidationFailure: If diameter, grooves or quantity is not positive.
    """

    validate_draft(draft)
    return preview_valuation(draft)


def require_positive(value: Decimal, field_name: str) -> None:
    """Validate that ``value`` is strictly positive."""

    if value <= ZERO:
        log.warning("Validation failed: %s must be greater than zero (got %s)", field_name, value)
        raise ValidationFailure(field_name, f"{field_name} must be greater than zero")


def require_nonnegative(value: Decimal, field_name: str) -> None:
    """Validate that ``value`` is zero or positive."""

    if value < ZERO:
        log.warning("Validation failed: %s must not be negative (got %s)", field_name, value)
        raise ValidationFailure(field_name, f"{field_name} must be zero or positive")


@dataclass(frozen=True)
class TransactionRecord:
    """A committed, priced stock movement.

    Derived costs are not constructor arguments: they are computed from the
    inputs in ``__post_init__`` through :func:`calculate_valuation`, which also
    enforces the commit invariants. ``dataclasses.replace`` therefore always
    yields an internally consistent record.
    """

    id: str
    date: date
    direction: Direction
    client_id: str
    client_name: str
    spec: PulleySpec
    quantity: Decimal
    rate: Decimal
    bore_units: Decimal = ZERO
    bore_rate_per_unit: Decimal = ZERO
    remarks: Optional[str] = None
    cost_per_unit: Decimal = field(init=False)
    machine_cost: Decimal = field(init=False)
    bore_cost: Decimal = field(init=False)
    total: Decimal = field(init=False)
    spec_key: str = field(init=False)

    def __post_init__(self) -> None:
        record_id = str(self.id or "").strip()
        if not record_id:
            raise ValidationFailure("id", "A record id is required")
        client_id = str(self.client_id or "").strip()
        if not client_id:
            log.warning("Validation failed: record '%s' has no client reference", record_id)
            raise ValidationFailure("client_id", "A client reference is required for every transaction")
        spec = self.spec if isinstance(self.spec, PulleySpec) else PulleySpec(*self.spec)

        object.__setattr__(self, "id", record_id)
        object.__setattr__(self, "date", parse_date(self.date))
        object.__setattr__(self, "direction", parse_direction(self.direction))
        object.__setattr__(self, "client_id", client_id)
        object.__setattr__(self, "client_name", str(self.client_name or ""))
        object.__setattr__(self, "spec", spec)
        object.__setattr__(self, "quantity", to_decimal(self.quantity, field_name="quantity"))
        object.__setattr__(self, "rate", to_decimal(self.rate, field_name="rate"))
        object.__setattr__(self, "bore_units", to_decimal(self.bore_units, field_name="bore_units"))
        object.__setattr__(
            self,
            "bore_rate_per_unit",
            to_decimal(self.bore_rate_per_unit, field_name="bore_rate_per_unit"),
        )
        object.__setattr__(self, "remarks", self.remarks or None)

        valuation = calculate_valuation(
            ValuationDraft(
                diameter=spec.diameter,
                grooves=spec.grooves,
                rate=self.rate,
                quantity=self.quantity,
                bore_units=self.bore_units,
                bore_rate_per_unit=self.bore_rate_per_unit,
                section=spec.section,
            )
        )
        object.__setattr__(self, "cost_per_unit", valuation.cost_per_unit)
        object.__setattr__(self, "machine_cost", valuation.machine_cost)
        object.__setattr__(self, "bore_cost", valuation.bore_cost)
        object.__setattr__(self, "total", valuation.total)
        object.__setattr__(self, "spec_key", valuation.spec_key)

    @property
    def signed_quantity(self) -> Decimal:
        """Quantity with the stock effect applied: ``+`` for IN, ``-`` for OUT."""

        return self.quantity if self.direction is Direction.IN else -self.quantity

    @property
    def month(self) -> str:
        return self.date.strftime("%Y-%m")


@dataclass(frozen=True)
class Client:
    """A counterparty; ``default_rate`` only seeds new transactions."""

    id: str
    name: str
    contact: Optional[str] = None
    default_rate: Optional[Decimal] = None

    def __post_init__(self) -> None:
        name = str(self.name or "").strip()
        if not name:
            raise ValidationFailure("name", "A client name is required")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "contact", (self.contact or "").strip() or None)
        if self.default_rate is None or self.default_rate == "":
            object.__setattr__(self, "default_rate", None)
        else:
            rate = to_decimal(self.default_rate, field_name="default_rate")
            require_nonnegative(rate, "default_rate")
            object.__setattr__(self, "default_rate", rate)


@dataclass(frozen=True)
class ValuationSettings:
    """Process-wide pricing and invoice header configuration."""

    company_name: str
    default_rate: Decimal = DEFAULT_RATE
    bore_rate_per_unit: Decimal = DEFAULT_BORE_RATE
    currency_symbol: str = ""
    company_address: Optional[str] = None
    gst_no: Optional[str] = None

    def __post_init__(self) -> None:
        default_rate = to_decimal(self.default_rate, field_name="default_rate")
        bore_rate = to_decimal(self.bore_rate_per_unit, field_name="bore_rate_per_unit")
        require_nonnegative(default_rate, "default_rate")
        require_nonnegative(bore_rate, "bore_rate_per_unit")
        object.__setattr__(self, "company_name", str(self.company_name or ""))
        object.__setattr__(self, "default_rate", default_rate)
        object.__setattr__(self, "bore_rate_per_unit", bore_rate)
        object.__setattr__(self, "currency_symbol", str(self.currency_symbol or ""))


def resolve_rate(settings: ValuationSettings, client: Optional[Client] = None) -> Decimal:
    """Return the rate to suggest for a new transaction.

    A client's own non-zero ``default_rate`` wins; otherwise the settings
    default applies.
    """

    if client is not None and client.default_rate:
        return client.default_rate
    return settings.default_rate


# ---------------------------------------------------------------------------
# Ledger store
# ---------------------------------------------------------------------------


class LedgerStore:
    """Ordered, id-unique collection of committed transaction records.

    Enumeration follows insertion order; a replaced record keeps its slot.
    The store performs no I/O and accepts only :class:`TransactionRecord`
    instances, which are priced and validated by construction.
    """

    def __init__(self, records: Iterable[TransactionRecord] = ()) -> None:
        self._records: Dict[str, TransactionRecord] = {}
        for record in records:
            self.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TransactionRecord]:
        return iter(list(self._records.values()))

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> TransactionRecord:
        try:
            return self._records[record_id]
        except KeyError as exc:
            log.warning("Transaction lookup failed for id '%s'", record_id)
            raise NotFound(f"Unknown transaction id: {record_id}") from exc

    def append(self, record: TransactionRecord) -> None:
        if not isinstance(record, TransactionRecord):
            raise TypeError(f"LedgerStore only accepts TransactionRecord, got {type(record).__name__}")
        if record.id in self._records:
            log.error("Refusing to append duplicate transaction id '%s'", record.id)
            raise DuplicateRecordError(f"Duplicate transaction id: {record.id}")
        self._records[record.id] = record

    def replace(self, record_id: str, record: TransactionRecord) -> TransactionRecord:
        """Swap the record stored under ``record_id`` and return the old one."""

        if not isinstance(record, TransactionRecord):
            raise TypeError(f"LedgerStore only accepts TransactionRecord, got {type(record).__name__}")
        previous = self.get(record_id)
        if record.id != record_id:
            raise BusinessRuleViolation(
                f"Replacement for '{record_id}' must keep the same id (got '{record.id}')"
            )
        self._records[record_id] = record
        return previous

    def delete(self, record_id: str) -> TransactionRecord:
        previous = self.get(record_id)
        del self._records[record_id]
        return previous

    def records(self) -> List[TransactionRecord]:
        """Snapshot of every record in insertion order."""

        return list(self._records.values())


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionCommand:
    """User intent for recording an ``IN`` or ``OUT`` movement.

    ``rate`` falls back to the client's or the global default when omitted.
    ``remember_rate`` stores the applied rate as the new global default.
    """

    direction: Union[Direction, str]
    client_id: str
    diameter: Number
    grooves: Number
    section: str
    type: str
    quantity: Number
    rate: Number = None
    bore_units: Number = None
    entry_date: Union[date, str, None] = None
    remarks: Optional[str] = None
    remember_rate: bool = False


@dataclass(frozen=True)
class EditCommand:
    """User intent for replacing a committed record.

    Every field left as ``None`` keeps the value stored on the record; the
    derived costs are always recomputed.
    """

    record_id: str
    direction: Union[Direction, str, None] = None
    client_id: Optional[str] = None
    diameter: Number = None
    grooves: Number = None
    section: Optional[str] = None
    type: Optional[str] = None
    quantity: Number = None
    rate: Number = None
    bore_units: Number = None
    entry_date: Union[date, str, None] = None
    remarks: Optional[str] = None
    remember_rate: bool = False


# ---------------------------------------------------------------------------
# Runtime context
# ---------------------------------------------------------------------------


@dataclass
class RuntimeContext:
    """Configuration, workbook handle and hydrated in-memory state."""

    config: data_manager.ConfigSettings
    workbook: Workbook
    settings: ValuationSettings
    ledger: LedgerStore = field(default_factory=LedgerStore)
    clients: Dict[str, Client] = field(default_factory=dict)


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC datetime."""

    return candidate if candidate is not None else datetime.now(UTC)


@contextmanager
def _collaborator(action: str) -> Iterator[None]:
    """Translate persistence errors into :class:`CollaboratorFailure`."""

    try:
        yield
    except (KeyError, ValueError, TypeError, OSError) as exc:
        log.error("Persistence collaborator failed to %s: %s", action, exc)
        raise CollaboratorFailure(f"Failed to {action}: {exc}") from exc


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration, open the workbook and hydrate the ledger.

    Args:
        config_path (Path | None): Optional override path for ``config.ini``.
            When omitted the data layer searches upward from the working
            directory.

    Returns:
        RuntimeContext: Context with settings, clients and every committed
            record rebuilt through :class:`TransactionRecord`.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    config = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(config.data_file)
    context = hydrate_context(config, workbook)
    log.info(
        "Loaded runtime context for workbook '%s' (%d records, %d clients)",
        config.data_file,
        len(context.ledger),
        len(context.clients),
    )
    return context


def hydrate_context(config: data_manager.ConfigSettings, workbook: Workbook) -> RuntimeContext:
    """Build a :class:`RuntimeContext` from an open workbook."""

    settings_row = data_manager.read_settings(workbook)
    if settings_row is None:
        settings = ValuationSettings(
            company_name=config.company_name,
            default_rate=config.default_rate,
            bore_rate_per_unit=config.bore_rate,
            currency_symbol=config.currency_symbol,
        )
    else:
        settings = settings_from_row(settings_row)

    clients = {row.client_id: client_from_row(row) for row in data_manager.iter_clients(workbook)}
    ledger = LedgerStore(record_from_row(row) for row in data_manager.iter_items(workbook))
    return RuntimeContext(config=config, workbook=workbook, settings=settings, ledger=ledger, clients=clients)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the configured schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.config.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.config.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.config.schema_version)
        )

    log.debug("Schema version '%s' validated", context.config.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Save the workbook to the configured data file."""

    with _collaborator("save workbook"):
        data_manager.save_workbook(context.workbook, destination=context.config.data_file)
    log.info("Persisted workbook '%s'", context.config.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook from disk, discarding unsaved modifications."""

    workbook = data_manager.refresh_workbook(context.config.data_file)
    log.info("Reloaded workbook '%s'", context.config.data_file)
    return hydrate_context(context.config, workbook)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def record_from_row(row: data_manager.ItemRow) -> TransactionRecord:
    """Rebuild a record from its stored inputs.

    Stored derived columns are audit copies only; when they disagree with the
    recomputed valuation the recomputed figures win and a warning is logged.
    """

    record = TransactionRecord(
        id=row.item_id,
        date=row.date_iso,
        direction=row.direction,
        client_id=row.client_id,
        client_name=row.client_name,
        spec=PulleySpec(row.diameter, row.grooves, row.section, row.type),
        quantity=row.quantity,
        rate=row.rate,
        bore_units=row.bore_units,
        bore_rate_per_unit=row.bore_rate,
        remarks=row.remarks,
    )
    if row.total != record.total or row.cost_per_unit != record.cost_per_unit:
        log.warning(
            "Stored valuation for '%s' (total=%s) differs from recomputed total %s",
            record.id,
            row.total,
            record.total,
        )
    return record


def row_from_record(record: TransactionRecord) -> data_manager.ItemRow:
    return data_manager.ItemRow(
        item_id=record.id,
        date_iso=record.date.isoformat(),
        direction=record.direction.value,
        client_id=record.client_id,
        client_name=record.client_name,
        diameter=record.spec.diameter,
        grooves=record.spec.grooves,
        section=record.spec.section,
        type=record.spec.type,
        spec_key=record.spec_key,
        quantity=record.quantity,
        rate=record.rate,
        cost_per_unit=record.cost_per_unit,
        machine_cost=record.machine_cost,
        bore_units=record.bore_units,
        bore_rate=record.bore_rate_per_unit,
        bore_cost=record.bore_cost,
        total=record.total,
        remarks=record.remarks,
    )


def client_from_row(row: data_manager.ClientRow) -> Client:
    return Client(id=row.client_id, name=row.client_name, contact=row.contact, default_rate=row.default_rate)


def row_from_client(client: Client) -> data_manager.ClientRow:
    return data_manager.ClientRow(
        client_id=client.id,
        client_name=client.name,
        contact=client.contact,
        default_rate=client.default_rate,
    )


def settings_from_row(row: data_manager.SettingsRow) -> ValuationSettings:
    return ValuationSettings(
        company_name=row.company_name,
        default_rate=row.default_rate,
        bore_rate_per_unit=row.bore_rate,
        currency_symbol=row.currency,
        company_address=row.company_address,
        gst_no=row.gst_no,
    )


def row_from_settings(settings: ValuationSettings) -> data_manager.SettingsRow:
    return data_manager.SettingsRow(
        company_name=settings.company_name,
        company_address=settings.company_address,
        gst_no=settings.gst_no,
        default_rate=settings.default_rate,
        bore_rate=settings.bore_rate_per_unit,
        currency=settings.currency_symbol,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_transactions(context: RuntimeContext) -> List[TransactionRecord]:
    """Snapshot of the ledger in insertion order."""

    return context.ledger.records()


def get_transaction(context: RuntimeContext, record_id: str) -> TransactionRecord:
    """Resolve a record by id.

    Raises:
        NotFound: If the ledger lacks ``record_id``.
    """

    return context.ledger.get(record_id)


def list_clients(context: RuntimeContext) -> List[Client]:
    """Return clients sorted by name (case-insensitive)."""

    return sorted(context.clients.values(), key=lambda client: client.name.casefold())


def get_client(context: RuntimeContext, client_id: str) -> Client:
    """Resolve a client by id.

    Raises:
        NotFound: If ``client_id`` is unknown.
    """

    try:
        return context.clients[client_id]
    except KeyError as exc:
        log.warning("Client lookup failed for id '%s'", client_id)
        raise NotFound(f"Unknown client id: {client_id}") from exc


def generate_record_id(*, prefix: str = "P", when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier ``{prefix}{YYYYMMDDHHMMSSffffff}``.

    Caller supplied timestamps allow deterministic identifiers during testing
    or data migrations.
    """

    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


def _allocate_id(taken: Iterable[str], *, prefix: str) -> str:
    existing = set(taken)
    when = _resolve_timestamp(None)
    candidate = generate_record_id(prefix=prefix, when=when)
    while candidate in existing:
        when = when + timedelta(microseconds=1)
        candidate = generate_record_id(prefix=prefix, when=when)
    return candidate


# ---------------------------------------------------------------------------
# Transaction workflows
# ---------------------------------------------------------------------------


def build_transaction(
    command: TransactionCommand,
    *,
    record_id: str,
    settings: ValuationSettings,
    client: Client,
) -> TransactionRecord:
    """Materialize a :class:`TransactionCommand` into a priced record.

    The rate resolves through :func:`resolve_rate` when the command leaves it
    blank, and the bore rate in force in ``settings`` is captured on the
    record so later settings changes never reprice it.
    """

    rate = command.rate if command.rate not in (None, "") else resolve_rate(settings, client)
    return TransactionRecord(
        id=record_id,
        date=command.entry_date if command.entry_date is not None else _resolve_timestamp(None).date(),
        direction=command.direction,
        client_id=client.id,
        client_name=client.name,
        spec=PulleySpec(command.diameter, command.grooves, command.section, command.type),
        quantity=command.quantity,
        rate=rate,
        bore_units=command.bore_units,
        bore_rate_per_unit=settings.bore_rate_per_unit,
        remarks=command.remarks,
    )


def _require_client_reference(client_id: Optional[str]) -> str:
    text = str(client_id or "").strip()
    if not text:
        log.warning("Validation failed: transaction has no client reference")
        raise ValidationFailure("client_id", "Please select a client for the transaction")
    return text


def record_transaction(context: RuntimeContext, command: TransactionCommand) -> TransactionRecord:
    """Validate, price and append a new transaction.

    The record is handed to the DAL first and only appended to the
    in-memory ledger once the DAL accepted it.

    Raises:
        ValidationFailure: If the draft breaks a commit invariant.
        NotFound: If the referenced client is unknown.
        CollaboratorFailure: If the workbook rejects the row.
    """

    client = get_client(context, _require_client_reference(command.client_id))
    record_id = _allocate_id((record.id for record in context.ledger), prefix="P")
    record = build_transaction(command, record_id=record_id, settings=context.settings, client=client)

    with _collaborator("append item"):
        data_manager.append_item(context.workbook, row_from_record(record))
    context.ledger.append(record)
    log.info(
        "Recorded %s transaction '%s' for %s (client=%s, quantity=%s, total=%s)",
        record.direction.value,
        record.id,
        record.spec_key,
        record.client_id,
        record.quantity,
        record.total,
    )

    if command.remember_rate:
        _remember_rate(context, record)
    return record


def _remember_rate(context: RuntimeContext, record: TransactionRecord) -> None:
    """Store ``record.rate`` as the settings default after the record committed.

    The record is already in the workbook and the ledger at this point, so a
    rejected settings write is logged rather than raised; re-running the
    command would otherwise book the transaction twice.
    """

    if record.rate == context.settings.default_rate:
        return
    try:
        update_settings(context, default_rate=record.rate)
    except CollaboratorFailure as exc:
        log.error(
            "Transaction '%s' was recorded but its rate %s could not be saved as the default: %s",
            record.id,
            record.rate,
            exc,
        )


def _pick(candidate, fallback):
    return fallback if candidate is None else candidate


def edit_transaction(context: RuntimeContext, command: EditCommand) -> TransactionRecord:
    """Replace a committed record, keeping its id and ledger position.

    Raises:
        NotFound: If the record (or a newly referenced client) is unknown.
        ValidationFailure: If the edited inputs break a commit invariant.
        CollaboratorFailure: If the workbook rejects the replacement.
    """

    existing = get_transaction(context, command.record_id)

    if command.client_id is not None and command.client_id != existing.client_id:
        client = get_client(context, _require_client_reference(command.client_id))
        client_id, client_name = client.id, client.name
    else:
        client_id, client_name = existing.client_id, existing.client_name

    spec = PulleySpec(
        _pick(command.diameter, existing.spec.diameter),
        _pick(command.grooves, existing.spec.grooves),
        _pick(command.section, existing.spec.section),
        _pick(command.type, existing.spec.type),
    )
    record = replace(
        existing,
        date=_pick(command.entry_date, existing.date),
        direction=_pick(command.direction, existing.direction),
        client_id=client_id,
        client_name=client_name,
        spec=spec,
        quantity=_pick(command.quantity, existing.quantity),
        rate=_pick(command.rate, existing.rate),
        bore_units=_pick(command.bore_units, existing.bore_units),
        remarks=_pick(command.remarks, existing.remarks),
    )

    with _collaborator("replace item"):
        data_manager.replace_item(context.workbook, record.id, row_from_record(record))
    context.ledger.replace(record.id, record)
    log.info(
        "Edited transaction '%s' (%s -> %s, total %s -> %s)",
        record.id,
        existing.spec_key,
        record.spec_key,
        existing.total,
        record.total,
    )

    if command.remember_rate:
        _remember_rate(context, record)
    return record


def delete_transaction(context: RuntimeContext, record_id: str) -> TransactionRecord:
    """Remove a committed record and return it.

    Raises:
        NotFound: If ``record_id`` is unknown; nothing changes.
        CollaboratorFailure: If the workbook rejects the removal.
    """

    existing = get_transaction(context, record_id)
    with _collaborator("delete item"):
        data_manager.delete_item(context.workbook, record_id)
    context.ledger.delete(record_id)
    log.info("Deleted transaction '%s' (%s %s)", record_id, existing.direction.value, existing.spec_key)
    return existing


# ---------------------------------------------------------------------------
# Client and settings workflows
# ---------------------------------------------------------------------------


def add_client(
    context: RuntimeContext,
    *,
    name: str,
    contact: Optional[str] = None,
    default_rate: Number = None,
    client_id: Optional[str] = None,
) -> Client:
    """Register a new client.

    Raises:
        ValidationFailure: If the name is blank or the rate is negative.
        DuplicateRecordError: If ``client_id`` is already taken.
        CollaboratorFailure: If the workbook rejects the row.
    """

    if client_id is not None and client_id in context.clients:
        raise DuplicateRecordError(f"Duplicate client id: {client_id}")
    new_id = client_id or _allocate_id(context.clients, prefix="C")
    client = Client(id=new_id, name=name, contact=contact, default_rate=default_rate)

    with _collaborator("append client"):
        data_manager.append_client(context.workbook, row_from_client(client))
    context.clients[client.id] = client
    log.info("Added client '%s' (%s)", client.id, client.name)
    return client


def update_client(
    context: RuntimeContext,
    client_id: str,
    *,
    name: Optional[str] = None,
    contact: Optional[str] = None,
    default_rate: Number = None,
) -> Client:
    """Update a client's details; ``None`` keeps the stored value.

    Past records keep the client name captured when they were committed.
    """

    existing = get_client(context, client_id)
    client = replace(
        existing,
        name=_pick(name, existing.name),
        contact=_pick(contact, existing.contact),
        default_rate=_pick(default_rate, existing.default_rate),
    )

    with _collaborator("replace client"):
        data_manager.replace_client(context.workbook, client_id, row_from_client(client))
    context.clients[client_id] = client
    log.info("Updated client '%s'", client_id)
    return client


def delete_client(context: RuntimeContext, client_id: str) -> Client:
    """Remove a client. Records referencing it stay untouched."""

    existing = get_client(context, client_id)
    with _collaborator("delete client"):
        data_manager.delete_client(context.workbook, client_id)
    del context.clients[client_id]
    referencing = sum(1 for record in context.ledger if record.client_id == client_id)
    log.info("Deleted client '%s' (%d ledger records keep the reference)", client_id, referencing)
    return existing


_SETTINGS_FIELDS = {item.name for item in fields(ValuationSettings)}


def update_settings(context: RuntimeContext, **changes: object) -> ValuationSettings:
    """Apply an explicit settings update and persist it.

    Raises:
        ValidationFailure: For unknown setting names or invalid values.
        CollaboratorFailure: If the workbook rejects the update.
    """

    for name in changes:
        if name not in _SETTINGS_FIELDS:
            raise ValidationFailure(name, f"Unknown setting: {name}")
    settings = replace(context.settings, **changes)

    with _collaborator("write settings"):
        data_manager.write_settings(context.workbook, row_from_settings(settings))
    context.settings = settings
    log.info("Updated settings: %s", ", ".join(sorted(changes)) or "(no changes)")
    return settings
