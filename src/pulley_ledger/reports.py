"""Read-side views over the pulley ledger.

Every function here is a pure recomputation over a snapshot of committed
records (usually ``context.ledger.records()``) plus caller filters. Nothing is
cached and nothing is mutated, so views are always consistent with the store
they were handed.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import data_manager, log
from .constants import ALL_CLIENTS_TAG, INVOICE_PREFIX, RECENT_SPEC_LIMIT, SUGGESTION_LIMIT, Direction
from .core_logic import (
    ZERO,
    Client,
    Number,
    PulleySpec,
    SpecIdentity,
    TransactionRecord,
    ValuationSettings,
    format_number,
    normalize_month,
    parse_direction,
    to_decimal,
)


CENT = Decimal("0.01")


def _spec_sort_key(spec: PulleySpec) -> Tuple[str, Decimal, Decimal, str]:
    return (spec.section, spec.diameter, spec.grooves, spec.type)


def _in_month(record: TransactionRecord, month: Optional[str]) -> bool:
    return month is None or record.month == month


def _for_client(record: TransactionRecord, client_id: Optional[str]) -> bool:
    return not client_id or record.client_id == client_id


# ---------------------------------------------------------------------------
# Stock projection
# ---------------------------------------------------------------------------


def stock_balance(
    records: Iterable[TransactionRecord],
    spec: PulleySpec,
    *,
    exclude_id: Optional[str] = None,
) -> Decimal:
    """Net committed stock for ``spec``: IN adds, OUT subtracts.

    Matching compares the structured specification (``10`` equals ``10.0``)
    and ignores the client, so the balance is global.
    """

    return sum(
        (record.signed_quantity for record in records if record.spec == spec and record.id != exclude_id),
        ZERO,
    )


def project_stock(
    records: Iterable[TransactionRecord],
    spec: PulleySpec,
    direction: Union[Direction, str],
    quantity: Number,
    *,
    exclude_id: Optional[str] = None,
) -> Optional[Decimal]:
    """Predict the balance of ``spec`` if a candidate movement were committed.

    Args:
        records (Iterable[TransactionRecord]): Committed ledger snapshot.
        spec (PulleySpec): Specification being typed.
        direction (Direction | str): Direction of the candidate movement.
        quantity (Number): Candidate quantity; blank counts as zero.
        exclude_id (str | None): Record being edited, whose own contribution
            must not be counted twice.

    Returns:
        Decimal | None: The projected balance, which may be negative, or
            ``None`` while diameter or grooves is unset.
    """

    if not spec.is_complete:
        return None
    candidate = to_decimal(quantity, field_name="quantity")
    base = stock_balance(records, spec, exclude_id=exclude_id)
    if parse_direction(direction) is Direction.IN:
        return base + candidate
    return base - candidate


@dataclass(frozen=True)
class StockLevel:
    spec: PulleySpec
    spec_key: str
    balance: Decimal


def calculate_stock_levels(records: Iterable[TransactionRecord]) -> List[StockLevel]:
    """Compute the signed balance of every specification seen in the ledger."""

    balances: Dict[PulleySpec, Decimal] = {}
    for record in records:
        balances[record.spec] = balances.get(record.spec, ZERO) + record.signed_quantity
    levels = [StockLevel(spec=spec, spec_key=spec.key, balance=balance) for spec, balance in balances.items()]
    levels.sort(key=lambda level: _spec_sort_key(level.spec))
    log.debug("Calculated stock levels for %d specifications", len(levels))
    return levels


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpecSuggestion:
    """A previously used specification together with its latest usage."""

    spec: PulleySpec
    spec_key: str
    last_used: date
    last_rate: Decimal


def unique_specs(
    records: Sequence[TransactionRecord],
    *,
    limit: int,
    predicate: Optional[Callable[[PulleySpec], bool]] = None,
) -> List[SpecSuggestion]:
    """Scan newest to oldest collecting distinct specifications.

    The scan stops as soon as ``limit`` entries were found; the first
    occurrence seen wins.
    """

    seen: set[SpecIdentity] = set()
    found: List[SpecSuggestion] = []
    if limit <= 0:
        return found
    for record in reversed(records):
        identity = record.spec.identity
        if identity in seen:
            continue
        if predicate is not None and not predicate(record.spec):
            continue
        seen.add(identity)
        found.append(
            SpecSuggestion(spec=record.spec, spec_key=record.spec_key, last_used=record.date, last_rate=record.rate)
        )
        if len(found) >= limit:
            break
    return found


def suggest_specs(
    records: Sequence[TransactionRecord],
    prefix: str,
    *,
    limit: int = SUGGESTION_LIMIT,
) -> List[SpecSuggestion]:
    """Suggest specifications whose diameter starts with ``prefix``.

    A blank prefix yields no suggestions.
    """

    text = str(prefix or "").strip()
    if not text:
        return []
    return unique_specs(
        records,
        limit=limit,
        predicate=lambda spec: format_number(spec.diameter).startswith(text),
    )


def recent_specs(records: Sequence[TransactionRecord], *, limit: int = RECENT_SPEC_LIMIT) -> List[SpecSuggestion]:
    """Most recently used distinct specifications, newest first."""

    return unique_specs(records, limit=limit)


# ---------------------------------------------------------------------------
# Tally
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TallyFilter:
    month: Optional[str] = None
    client_id: Optional[str] = None
    search_text: Optional[str] = None

    def __post_init__(self) -> None:
        if self.month is not None:
            object.__setattr__(self, "month", normalize_month(self.month))
        object.__setattr__(self, "client_id", (self.client_id or "").strip() or None)
        object.__setattr__(self, "search_text", (self.search_text or "").strip() or None)

    def matches(self, record: TransactionRecord) -> bool:
        if not _in_month(record, self.month) or not _for_client(record, self.client_id):
            return False
        if self.search_text and self.search_text.casefold() not in record.spec_key.casefold():
            return False
        return True


@dataclass(frozen=True)
class TallyRow:
    """Received/sent accumulators for one specification."""

    spec: PulleySpec
    spec_key: str
    received_qty: Decimal
    sent_qty: Decimal
    received_value: Decimal
    sent_value: Decimal

    @property
    def net_qty(self) -> Decimal:
        return self.received_qty - self.sent_qty

    @property
    def diff_value(self) -> Decimal:
        return self.sent_value - self.received_value


@dataclass(frozen=True)
class TallyTotals:
    received_qty: Decimal = ZERO
    sent_qty: Decimal = ZERO
    received_value: Decimal = ZERO
    sent_value: Decimal = ZERO

    @property
    def net_qty(self) -> Decimal:
        return self.received_qty - self.sent_qty

    @property
    def diff_value(self) -> Decimal:
        return self.sent_value - self.received_value


@dataclass(frozen=True)
class TallyReport:
    filters: TallyFilter
    rows: Tuple[TallyRow, ...]
    totals: TallyTotals


def build_tally(records: Iterable[TransactionRecord], filters: Optional[TallyFilter] = None) -> TallyReport:
    """Group filtered records by specification and accumulate by direction.

    Rows are ordered by section, then diameter (grooves and type break
    ties). Grand totals are summed from the rows, so they always equal the
    sum of the rows, including for an empty selection.

    Args:
        records (Iterable[TransactionRecord]): Committed ledger snapshot.
        filters (TallyFilter | None): Month, client and case-insensitive
            search over the spec key; ``None`` selects everything.

    Returns:
        TallyReport: Sorted rows and their grand totals.
    """

    filters = filters or TallyFilter()
    groups: Dict[PulleySpec, List[Decimal]] = {}
    for record in records:
        if not filters.matches(record):
            continue
        bucket = groups.setdefault(record.spec, [ZERO, ZERO, ZERO, ZERO])
        if record.direction is Direction.IN:
            bucket[0] += record.quantity
            bucket[2] += record.total
        else:
            bucket[1] += record.quantity
            bucket[3] += record.total

    rows = sorted(
        (
            TallyRow(
                spec=spec,
                spec_key=spec.key,
                received_qty=received_qty,
                sent_qty=sent_qty,
                received_value=received_value,
                sent_value=sent_value,
            )
            for spec, (received_qty, sent_qty, received_value, sent_value) in groups.items()
        ),
        key=lambda row: _spec_sort_key(row.spec),
    )
    totals = TallyTotals(
        received_qty=sum((row.received_qty for row in rows), ZERO),
        sent_qty=sum((row.sent_qty for row in rows), ZERO),
        received_value=sum((row.received_value for row in rows), ZERO),
        sent_value=sum((row.sent_value for row in rows), ZERO),
    )
    log.debug("Built tally with %d rows for %s", len(rows), filters)
    return TallyReport(filters=filters, rows=tuple(rows), totals=totals)


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


def invoice_identifier(month: str, client_name: Optional[str] = None) -> str:
    """Return ``INV-YYYYMM-XXX`` for a billing period.

    ``XXX`` is the first three characters of the client name uppercased, or
    ``ALL`` when the bill spans every client.
    """

    month = normalize_month(month)
    suffix = client_name[:3].upper() if client_name else ALL_CLIENTS_TAG
    return f"{INVOICE_PREFIX}-{month.replace('-', '')}-{suffix}"


@dataclass(frozen=True)
class BillingLine:
    record: TransactionRecord

    @property
    def effective_rate(self) -> Decimal:
        """Charge per unit including bore work: ``total / quantity``."""

        if not self.record.quantity:
            return ZERO
        return self.record.total / self.record.quantity

    def statement_row(self) -> List[object]:
        """Values ordered as the statement export columns."""

        return [
            self.record.spec.type,
            self.record.spec_key,
            self.record.quantity,
            self.effective_rate.quantize(CENT),
            self.record.total.quantize(CENT),
        ]


@dataclass(frozen=True)
class Bill:
    invoice_id: str
    month: str
    client: Optional[Client]
    issuer: ValuationSettings
    lines: Tuple[BillingLine, ...]
    total_amount: Decimal

    @property
    def client_label(self) -> str:
        return self.client.name if self.client is not None else "All"


def select_billable(
    records: Iterable[TransactionRecord],
    *,
    month: str,
    client_id: Optional[str] = None,
) -> List[TransactionRecord]:
    """OUT records of ``month`` (and ``client_id`` when given), date ascending."""

    month = normalize_month(month)
    selected = [
        record
        for record in records
        if record.direction is Direction.OUT and _in_month(record, month) and _for_client(record, client_id)
    ]
    selected.sort(key=lambda record: record.date)
    return selected


def build_bill(
    records: Iterable[TransactionRecord],
    settings: ValuationSettings,
    *,
    month: str,
    client: Optional[Client] = None,
) -> Bill:
    """Assemble the invoice for a period.

    Args:
        records (Iterable[TransactionRecord]): Committed ledger snapshot.
        settings (ValuationSettings): Issuer details printed on the invoice.
        month (str): Billing period as ``YYYY-MM``.
        client (Client | None): Restrict the bill to one client.

    Returns:
        Bill: Lines sorted by date ascending, their total and the
            deterministic invoice identifier.

    Raises:
        ValidationFailure: If ``month`` is malformed.
    """

    month = normalize_month(month)
    selected = select_billable(records, month=month, client_id=client.id if client is not None else None)
    lines = tuple(BillingLine(record) for record in selected)
    total_amount = sum((line.record.total for line in lines), ZERO)
    invoice_id = invoice_identifier(month, client.name if client is not None else None)
    log.debug("Built bill %s with %d lines totalling %s", invoice_id, len(lines), total_amount)
    return Bill(
        invoice_id=invoice_id,
        month=month,
        client=client,
        issuer=settings,
        lines=lines,
        total_amount=total_amount,
    )


def default_statement_name(bill: Bill) -> str:
    label = data_manager.sanitize_title(bill.client_label) or ALL_CLIENTS_TAG
    return f"Statement_{label}_{bill.month}.xlsx"


def export_statement(bill: Bill, destination: Path) -> Path:
    """Write the bill's lines to a standalone statement workbook."""

    return data_manager.write_statement(
        destination,
        (line.statement_row() for line in bill.lines),
        title=bill.invoice_id,
    )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpecVolume:
    spec: PulleySpec
    spec_key: str
    quantity: Decimal


@dataclass(frozen=True)
class DailyMovement:
    day: date
    sent_qty: Decimal
    received_qty: Decimal


@dataclass(frozen=True)
class PeriodSummary:
    month: str
    client_id: Optional[str]
    total_sent: Decimal
    total_received: Decimal
    billed_amount: Decimal
    most_sold: Optional[SpecVolume]
    least_sold: Optional[SpecVolume]
    daily: Tuple[DailyMovement, ...]


def summarize_period(
    records: Iterable[TransactionRecord],
    *,
    month: str,
    client_id: Optional[str] = None,
) -> PeriodSummary:
    """Summarize a month for the dashboard.

    Most and least sold rank specifications by OUT quantity; ties keep the
    order in which the specifications first appear. With a single sold
    specification both entries name it.
    """

    month = normalize_month(month)
    selected = [record for record in records if _in_month(record, month) and _for_client(record, client_id)]

    sold: Dict[PulleySpec, Decimal] = {}
    total_sent = total_received = billed = ZERO
    for record in selected:
        if record.direction is Direction.OUT:
            total_sent += record.quantity
            billed += record.total
            sold[record.spec] = sold.get(record.spec, ZERO) + record.quantity
        else:
            total_received += record.quantity

    ranked = sorted(sold.items(), key=lambda item: item[1], reverse=True)
    most_sold = least_sold = None
    if ranked:
        most_sold = SpecVolume(spec=ranked[0][0], spec_key=ranked[0][0].key, quantity=ranked[0][1])
        least_sold = SpecVolume(spec=ranked[-1][0], spec_key=ranked[-1][0].key, quantity=ranked[-1][1])

    year, month_number = (int(part) for part in month.split("-"))
    days_in_month = calendar.monthrange(year, month_number)[1]
    daily = []
    for day_number in range(1, days_in_month + 1):
        day = date(year, month_number, day_number)
        day_records = [record for record in selected if record.date == day]
        daily.append(
            DailyMovement(
                day=day,
                sent_qty=sum((r.quantity for r in day_records if r.direction is Direction.OUT), ZERO),
                received_qty=sum((r.quantity for r in day_records if r.direction is Direction.IN), ZERO),
            )
        )

    return PeriodSummary(
        month=month,
        client_id=client_id or None,
        total_sent=total_sent,
        total_received=total_received,
        billed_amount=billed,
        most_sold=most_sold,
        least_sold=least_sold,
        daily=tuple(daily),
    )


# ---------------------------------------------------------------------------
# Clients and ledger listing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientActivity:
    client: Client
    total_billed: Decimal
    last_activity: Optional[date]
    record_count: int


def summarize_client(records: Iterable[TransactionRecord], client: Client) -> ClientActivity:
    """Total billed (OUT totals) and last activity date for ``client``."""

    total_billed = ZERO
    last_activity: Optional[date] = None
    count = 0
    for record in records:
        if record.client_id != client.id:
            continue
        count += 1
        if record.direction is Direction.OUT:
            total_billed += record.total
        if last_activity is None or record.date > last_activity:
            last_activity = record.date
    return ClientActivity(client=client, total_billed=total_billed, last_activity=last_activity, record_count=count)


def search_clients(clients: Iterable[Client], term: Optional[str]) -> List[Client]:
    """Case-insensitive substring search over client name and contact."""

    needle = (term or "").strip().casefold()
    if not needle:
        return list(clients)
    return [
        client
        for client in clients
        if needle in client.name.casefold() or (client.contact and needle in client.contact.casefold())
    ]


def filter_ledger(
    records: Iterable[TransactionRecord],
    *,
    month: Optional[str] = None,
    client_id: Optional[str] = None,
) -> List[TransactionRecord]:
    """Ledger listing filtered by month and client, newest date first."""

    if month is not None:
        month = normalize_month(month)
    selected = [record for record in records if _in_month(record, month) and _for_client(record, client_id)]
    selected.sort(key=lambda record: record.date, reverse=True)
    return selected
