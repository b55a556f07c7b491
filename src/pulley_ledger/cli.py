"""Command-line entry points for the pulley ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and rendering the read-side views as plain text. Currency symbols are
applied here and nowhere else.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, reports
from .constants import Direction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pulley-cli",
        description="Command-line tools for the pulley ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini upward from here).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as records, edits and client changes."""
    specs = {
        "add-client": register_add_client_command(subparsers),
        "update-client": register_update_client_command(subparsers),
        "delete-client": register_delete_client_command(subparsers),
        "settings": register_settings_command(subparsers),
        "record": register_record_command(subparsers),
        "edit": register_edit_command(subparsers),
        "delete": register_delete_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as projections and reports."""
    specs = {
        "project": register_project_command(subparsers),
        "suggest": register_suggest_command(subparsers),
        "recent": register_recent_command(subparsers),
        "stock": register_stock_command(subparsers),
        "tally": register_tally_command(subparsers),
        "bill": register_bill_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "clients": register_clients_command(subparsers),
        "log": register_log_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_spec_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--diameter", required=required)
    parser.add_argument("--grooves", required=required)
    parser.add_argument("--section", required=required)
    parser.add_argument("--type", dest="pulley_type", required=required)


def register_add_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-client``."""
    name = "add-client"
    help_text = "Register a new client in the Clients sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--contact", default=None)
        parser.add_argument("--default-rate", default=None)
        parser.add_argument("--client-id", default=None, help="Explicit id (generated when omitted).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_client, writes=True)


def register_update_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-client``."""
    name = "update-client"
    help_text = "Update a client's name, contact or default rate."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--contact", default=None)
        parser.add_argument("--default-rate", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_client, writes=True)


def register_delete_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-client``."""
    name = "delete-client"
    help_text = "Remove a client; its past records are kept."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--client-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_client, writes=True)


def register_settings_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``settings``."""
    name = "settings"
    help_text = "Show or update company details and pricing defaults."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--company-name", default=None)
        parser.add_argument("--company-address", default=None)
        parser.add_argument("--gst-no", default=None)
        parser.add_argument("--default-rate", default=None)
        parser.add_argument("--bore-rate", default=None)
        parser.add_argument("--currency", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_settings, writes=True)


def register_record_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``record``."""
    name = "record"
    help_text = "Record an IN or OUT pulley movement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--direction",
            choices=[member.value for member in Direction],
            required=True,
        )
        parser.add_argument("--client-id", required=True)
        _add_spec_arguments(parser, required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--rate", default=None, help="Defaults to the client's or the global rate.")
        parser.add_argument("--bore-units", default=None)
        parser.add_argument("--date", dest="entry_date", default=None, help="YYYY-MM-DD (defaults to today).")
        parser.add_argument("--remarks", default=None)
        parser.add_argument("--remember-rate", action="store_true", help="Store the rate as the new default.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_record, writes=True)


def register_edit_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit``."""
    name = "edit"
    help_text = "Edit a recorded movement; omitted options keep their values."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", required=True)
        parser.add_argument("--direction", choices=[member.value for member in Direction], default=None)
        parser.add_argument("--client-id", default=None)
        _add_spec_arguments(parser, required=False)
        parser.add_argument("--quantity", default=None)
        parser.add_argument("--rate", default=None)
        parser.add_argument("--bore-units", default=None)
        parser.add_argument("--date", dest="entry_date", default=None)
        parser.add_argument("--remarks", default=None)
        parser.add_argument("--remember-rate", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit, writes=True)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete``."""
    name = "delete"
    help_text = "Delete a recorded movement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete, writes=True)


def register_project_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``project``."""
    name = "project"
    help_text = "Project the stock balance of a specification after a movement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_spec_arguments(parser, required=True)
        parser.add_argument("--direction", choices=[member.value for member in Direction], required=True)
        parser.add_argument("--quantity", default="0")
        parser.add_argument("--exclude-id", default=None, help="Record being edited.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_project)


def register_suggest_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``suggest``."""
    name = "suggest"
    help_text = "Suggest previously used specifications by diameter prefix."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--prefix", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_suggest)


def register_recent_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``recent``."""
    name = "recent"
    help_text = "List the most recently used specifications."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_recent)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display current stock levels per specification."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_tally_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``tally``."""
    name = "tally"
    help_text = "Display received/sent totals grouped by specification."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--month", default=None, help="YYYY-MM")
        parser.add_argument("--client-id", default=None)
        parser.add_argument("--search", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_tally_report)


def register_bill_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``bill``."""
    name = "bill"
    help_text = "Display the monthly invoice, optionally exporting a statement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--month", required=True, help="YYYY-MM")
        parser.add_argument("--client-id", default=None)
        parser.add_argument("--export", type=Path, default=None, help="Write the statement workbook to this path.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_bill_report)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    name = "dashboard"
    help_text = "Display the monthly movement summary."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--month", required=True, help="YYYY-MM")
        parser.add_argument("--client-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dashboard_report)


def register_clients_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clients``."""
    name = "clients"
    help_text = "List clients with their billed totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_clients_report)


def register_log_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``log``."""
    name = "log"
    help_text = "Display recorded movements, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--month", default=None, help="YYYY-MM")
        parser.add_argument("--client-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_log_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations and check its schema."""
    context = core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def _decimal_arg(value: Optional[str], field_name: str) -> Optional[Decimal]:
    if value is None:
        return None
    return core_logic.to_decimal(value, field_name=field_name)


def format_money(amount: Decimal, symbol: str = "") -> str:
    """Render ``amount`` with two decimals and the configured currency symbol."""
    text = f"{amount.quantize(reports.CENT):,}"
    return f"{symbol} {text}" if symbol else text


def _qty(value: Decimal) -> str:
    return core_logic.format_number(value)


def translate_add_client(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-client request."""
    return {
        "name": args.name,
        "contact": args.contact,
        "default_rate": _decimal_arg(args.default_rate, "default_rate"),
        "client_id": args.client_id,
    }


def translate_update_client(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an update-client request."""
    return {
        "name": args.name,
        "contact": args.contact,
        "default_rate": args.default_rate,
    }


def translate_settings(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into the settings fields that were supplied."""
    candidates = {
        "company_name": args.company_name,
        "company_address": args.company_address,
        "gst_no": args.gst_no,
        "default_rate": _decimal_arg(args.default_rate, "default_rate"),
        "bore_rate_per_unit": _decimal_arg(args.bore_rate, "bore_rate_per_unit"),
        "currency_symbol": args.currency,
    }
    return {key: value for key, value in candidates.items() if value is not None}


def translate_record(args: argparse.Namespace) -> core_logic.TransactionCommand:
    """Translate CLI args into a transaction command object."""
    return core_logic.TransactionCommand(
        direction=Direction(args.direction),
        client_id=args.client_id,
        diameter=_decimal_arg(args.diameter, "diameter"),
        grooves=_decimal_arg(args.grooves, "grooves"),
        section=args.section,
        type=args.pulley_type,
        quantity=_decimal_arg(args.quantity, "quantity"),
        rate=_decimal_arg(args.rate, "rate"),
        bore_units=_decimal_arg(args.bore_units, "bore_units"),
        entry_date=args.entry_date,
        remarks=args.remarks,
        remember_rate=args.remember_rate,
    )


def translate_edit(args: argparse.Namespace) -> core_logic.EditCommand:
    """Translate CLI args into an edit command object."""
    return core_logic.EditCommand(
        record_id=args.record_id,
        direction=Direction(args.direction) if args.direction else None,
        client_id=args.client_id,
        diameter=_decimal_arg(args.diameter, "diameter"),
        grooves=_decimal_arg(args.grooves, "grooves"),
        section=args.section,
        type=args.pulley_type,
        quantity=_decimal_arg(args.quantity, "quantity"),
        rate=_decimal_arg(args.rate, "rate"),
        bore_units=_decimal_arg(args.bore_units, "bore_units"),
        entry_date=args.entry_date,
        remarks=args.remarks,
        remember_rate=args.remember_rate,
    )


def translate_spec(args: argparse.Namespace) -> core_logic.PulleySpec:
    """Translate CLI args into the specification being queried."""
    return core_logic.PulleySpec(args.diameter, args.grooves, args.section, args.pulley_type)


def _print_record(record: core_logic.TransactionRecord, symbol: str) -> None:
    print(
        f"{record.id}  {record.date.isoformat()}  {record.direction.value:<3}  "
        f"{record.spec_key} ({record.spec.type})  qty {_qty(record.quantity)}  "
        f"{record.client_name}  {format_money(record.total, symbol)}"
    )


def run_add_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-client workflow in the BLL."""
    payload = translate_add_client(args)
    client = core_logic.add_client(context, **payload)
    print(f"Added client {client.id}: {client.name}")
    return 0


def run_update_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the update-client workflow in the BLL."""
    payload = translate_update_client(args)
    client = core_logic.update_client(context, args.client_id, **payload)
    print(f"Updated client {client.id}: {client.name}")
    return 0


def run_delete_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-client workflow in the BLL."""
    client = core_logic.delete_client(context, args.client_id)
    print(f"Deleted client {client.id}: {client.name}")
    return 0


def run_settings(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Update settings when options were given, then show them."""
    changes = translate_settings(args)
    settings = core_logic.update_settings(context, **changes) if changes else context.settings
    print(f"Company:      {settings.company_name}")
    print(f"Address:      {settings.company_address or '-'}")
    print(f"GST No:       {settings.gst_no or '-'}")
    print(f"Default rate: {_qty(settings.default_rate)}")
    print(f"Bore rate:    {_qty(settings.bore_rate_per_unit)}")
    print(f"Currency:     {settings.currency_symbol or '-'}")
    return 0


def run_record(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the record workflow via the BLL and show the resulting balance."""
    command = translate_record(args)
    record = core_logic.record_transaction(context, command)
    _print_record(record, context.settings.currency_symbol)
    balance = reports.stock_balance(context.ledger.records(), record.spec)
    print(f"Stock of {record.spec_key} ({record.spec.type}) is now {_qty(balance)}")
    return 0


def run_edit(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the edit workflow via the BLL."""
    command = translate_edit(args)
    record = core_logic.edit_transaction(context, command)
    _print_record(record, context.settings.currency_symbol)
    return 0


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete workflow via the BLL."""
    record = core_logic.delete_transaction(context, args.record_id)
    print(f"Deleted {record.id} ({record.direction.value} {record.spec_key})")
    return 0


def run_project(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock projection query."""
    spec = translate_spec(args)
    projected = reports.project_stock(
        context.ledger.records(),
        spec,
        args.direction,
        args.quantity,
        exclude_id=args.exclude_id,
    )
    if projected is None:
        print("Diameter and grooves are required for a projection.")
        return 0
    current = reports.stock_balance(context.ledger.records(), spec, exclude_id=args.exclude_id)
    print(f"{spec.key} ({spec.type}): current {_qty(current)}, projected {_qty(projected)}")
    if projected < 0:
        print("Warning: projected stock is negative.")
    return 0


def _print_suggestions(suggestions: Sequence[reports.SpecSuggestion]) -> None:
    if not suggestions:
        print("No matching specifications.")
    for suggestion in suggestions:
        print(
            f"{suggestion.spec_key} ({suggestion.spec.type})  last used {suggestion.last_used.isoformat()} "
            f"at rate {_qty(suggestion.last_rate)}"
        )


def run_suggest(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the prefix suggestion query."""
    _print_suggestions(reports.suggest_specs(context.ledger.records(), args.prefix))
    return 0


def run_recent(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the recent specification query."""
    _print_suggestions(reports.recent_specs(context.ledger.records()))
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    levels = reports.calculate_stock_levels(context.ledger.records())
    if not levels:
        print("No stock movements recorded.")
    for level in levels:
        print(f"{level.spec_key:<16} {level.spec.type:<6} {_qty(level.balance):>10}")
    return 0


def run_tally_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the tally reporting workflow."""
    symbol = context.settings.currency_symbol
    report = reports.build_tally(
        context.ledger.records(),
        reports.TallyFilter(month=args.month, client_id=args.client_id, search_text=args.search),
    )
    for row in report.rows:
        print(
            f"{row.spec_key:<16} {row.spec.type:<6} in {_qty(row.received_qty):>6}  out {_qty(row.sent_qty):>6}  "
            f"net {_qty(row.net_qty):>6}  in-value {format_money(row.received_value, symbol)}  "
            f"out-value {format_money(row.sent_value, symbol)}  diff {format_money(row.diff_value, symbol)}"
        )
    totals = report.totals
    print(
        f"TOTAL  in {_qty(totals.received_qty)}  out {_qty(totals.sent_qty)}  net {_qty(totals.net_qty)}  "
        f"in-value {format_money(totals.received_value, symbol)}  out-value {format_money(totals.sent_value, symbol)}  "
        f"diff {format_money(totals.diff_value, symbol)}"
    )
    return 0


def run_bill_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the billing workflow and optionally export the statement."""
    symbol = context.settings.currency_symbol
    client = core_logic.get_client(context, args.client_id) if args.client_id else None
    bill = reports.build_bill(context.ledger.records(), context.settings, month=args.month, client=client)

    print(f"Invoice {bill.invoice_id}  ({bill.issuer.company_name})")
    print(f"Billed to: {bill.client_label}  Period: {bill.month}")
    for line in bill.lines:
        print(
            f"{line.record.date.isoformat()}  {line.record.spec.type:<6} {line.record.spec_key:<16} "
            f"{_qty(line.record.quantity):>6}  @ {format_money(line.effective_rate, symbol)}  "
            f"{format_money(line.record.total, symbol)}"
        )
    print(f"Total: {format_money(bill.total_amount, symbol)}")

    if args.export is not None:
        destination = args.export
        if destination.suffix.lower() != ".xlsx":
            destination = destination / reports.default_statement_name(bill)
        written = reports.export_statement(bill, destination)
        print(f"Statement written to {written}")
    return 0


def run_dashboard_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the monthly dashboard workflow."""
    symbol = context.settings.currency_symbol
    summary = reports.summarize_period(context.ledger.records(), month=args.month, client_id=args.client_id)
    print(f"Period {summary.month}")
    print(f"Sent:     {_qty(summary.total_sent)}")
    print(f"Received: {_qty(summary.total_received)}")
    print(f"Billed:   {format_money(summary.billed_amount, symbol)}")
    if summary.most_sold is not None and summary.least_sold is not None:
        print(f"Most sold:  {summary.most_sold.spec_key} ({_qty(summary.most_sold.quantity)} units)")
        print(f"Least sold: {summary.least_sold.spec_key} ({_qty(summary.least_sold.quantity)} units)")
    for day in summary.daily:
        if day.sent_qty or day.received_qty:
            print(f"{day.day.isoformat()}  sent {_qty(day.sent_qty)}  received {_qty(day.received_qty)}")
    return 0


def run_clients_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the client directory workflow."""
    symbol = context.settings.currency_symbol
    records = context.ledger.records()
    for client in reports.search_clients(core_logic.list_clients(context), args.search):
        activity = reports.summarize_client(records, client)
        last = activity.last_activity.isoformat() if activity.last_activity else "-"
        rate = _qty(client.default_rate) if client.default_rate is not None else "-"
        print(
            f"{client.id}  {client.name}  contact {client.contact or '-'}  rate {rate}  "
            f"billed {format_money(activity.total_billed, symbol)}  last {last}"
        )
    return 0


def run_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transaction log reporting workflow."""
    symbol = context.settings.currency_symbol
    for record in reports.filter_ledger(
        core_logic.list_transactions(context), month=args.month, client_id=args.client_id
    ):
        _print_record(record, symbol)
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.CollaboratorFailure):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    core_logic.persist_context(context)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
