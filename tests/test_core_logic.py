"""Unit tests verifying the business logic layer with a mocked data access layer."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from pulley_ledger import constants, core_logic, data_manager


def _command(**overrides) -> core_logic.TransactionCommand:
    values = dict(
        direction="IN",
        client_id="acme-1",
        diameter="10",
        grooves="2",
        section="b",
        type="v",
        quantity="20",
        entry_date="2024-03-05",
    )
    values.update(overrides)
    return core_logic.TransactionCommand(**values)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def test_to_decimal_treats_blank_values_as_zero():
    """Absent numerics count as zero, as an empty form field would."""

    assert core_logic.to_decimal(None, field_name="rate") == Decimal("0")
    assert core_logic.to_decimal("  ", field_name="rate") == Decimal("0")


def test_to_decimal_keeps_float_text_exact():
    """Floats should go through their text form to avoid binary artifacts."""

    assert core_logic.to_decimal(0.1, field_name="rate") == Decimal("0.1")


def test_to_decimal_rejects_garbage_with_field_name():
    """Non-numeric input should raise a ValidationFailure naming the field."""

    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.to_decimal("ten", field_name="diameter")
    assert excinfo.value.field == "diameter"


def test_to_decimal_rejects_non_finite_values():
    with pytest.raises(core_logic.ValidationFailure):
        core_logic.to_decimal("NaN", field_name="quantity")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(Decimal("10"), "10"), (Decimal("10.0"), "10"), (Decimal("2.50"), "2.5"), (Decimal("0.75"), "0.75")],
)
def test_format_number_drops_trailing_zeros(value, expected):
    assert core_logic.format_number(value) == expected


def test_normalize_month_rejects_malformed_values():
    """Months must be given as YYYY-MM."""

    assert core_logic.normalize_month(" 2024-03 ") == "2024-03"
    for bad in ("2024-3", "2024-13", "March", "202403"):
        with pytest.raises(core_logic.ValidationFailure) as excinfo:
            core_logic.normalize_month(bad)
        assert excinfo.value.field == "month"


def test_parse_direction_is_case_insensitive():
    assert core_logic.parse_direction("out") is constants.Direction.OUT
    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.parse_direction("SIDEWAYS")
    assert excinfo.value.field == "direction"


def test_parse_date_rejects_malformed_dates():
    assert core_logic.parse_date("2024-03-05") == date(2024, 3, 5)
    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.parse_date("05/03/2024")
    assert excinfo.value.field == "date"


# ---------------------------------------------------------------------------
# Specification and valuation
# ---------------------------------------------------------------------------


def test_pulley_spec_equality_ignores_decimal_representation():
    """10 and 10.0 denote the same specification."""

    first = core_logic.PulleySpec(10, 2, "B", "V")
    second = core_logic.PulleySpec(Decimal("10.0"), "2", " b ", "v")

    assert first == second
    assert hash(first) == hash(second)
    assert second.key == "10x2xB"


def test_pulley_spec_type_participates_in_identity():
    assert core_logic.PulleySpec(10, 2, "B", "V") != core_logic.PulleySpec(10, 2, "B", "F")


def test_preview_valuation_handles_incomplete_drafts():
    """The preview should price partial input without raising."""

    valuation = core_logic.preview_valuation(core_logic.ValuationDraft(diameter="10", rate="5"))

    assert valuation.cost_per_unit == Decimal("0")
    assert valuation.total == Decimal("0")
    assert valuation.spec_key == constants.EMPTY_SPEC_KEY


def test_calculate_valuation_matches_reference_scenario():
    """(10, 2, B) at rate 5 for 20 units costs 100 per unit and 2000 in total."""

    draft = core_logic.ValuationDraft(diameter=10, grooves=2, rate=5, quantity=20, section="B")
    valuation = core_logic.calculate_valuation(draft)

    assert valuation.cost_per_unit == Decimal("100")
    assert valuation.machine_cost == Decimal("2000")
    assert valuation.bore_cost == Decimal("0")
    assert valuation.total == Decimal("2000")
    assert valuation.spec_key == "10x2xB"


def test_calculate_valuation_includes_bore_cost():
    draft = core_logic.ValuationDraft(
        diameter="12.5", grooves=3, rate="4", quantity=2, bore_units=3, bore_rate_per_unit=50, section="A"
    )
    valuation = core_logic.calculate_valuation(draft)

    assert valuation.cost_per_unit == Decimal("150.0")
    assert valuation.machine_cost == Decimal("300.0")
    assert valuation.bore_cost == Decimal("150")
    assert valuation.total == Decimal("450.0")
    assert valuation.spec_key == "12.5x3xA"


def test_calculate_valuation_is_deterministic():
    draft = core_logic.ValuationDraft(diameter="7.25", grooves=4, rate="3.3", quantity=9, bore_units=1, bore_rate_per_unit=40)
    assert core_logic.calculate_valuation(draft) == core_logic.calculate_valuation(draft)


@pytest.mark.parametrize("field_name", ["diameter", "grooves", "quantity"])
def test_calculate_valuation_rejects_non_positive_inputs(field_name):
    """Zero diameter, grooves or quantity should fail naming the field."""

    values = dict(diameter=10, grooves=2, rate=5, quantity=20, section="B")
    values[field_name] = 0
    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.calculate_valuation(core_logic.ValuationDraft(**values))
    assert excinfo.value.field == field_name


def test_calculate_valuation_rejects_negative_rate():
    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.calculate_valuation(core_logic.ValuationDraft(diameter=10, grooves=2, rate=-1, quantity=1))
    assert excinfo.value.field == "rate"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def test_transaction_record_derives_costs(make_record):
    record = make_record(bore_units=2, bore_rate=50)

    assert record.cost_per_unit == Decimal("100")
    assert record.machine_cost == Decimal("2000")
    assert record.bore_cost == Decimal("100")
    assert record.total == Decimal("2100")
    assert record.spec_key == "10x2xB"
    assert record.date == date(2024, 3, 5)
    assert record.direction is constants.Direction.IN


def test_transaction_record_rejects_derived_arguments():
    """Derived fields are not constructor arguments."""

    with pytest.raises(TypeError):
        core_logic.TransactionRecord(
            id="R1",
            date="2024-03-05",
            direction="IN",
            client_id="acme-1",
            client_name="Acme Co",
            spec=core_logic.PulleySpec(10, 2, "B", "V"),
            quantity=1,
            rate=1,
            total=Decimal("999"),
        )


def test_replace_recomputes_derived_fields(make_record):
    record = make_record()
    updated = replace(record, quantity=Decimal("3"))

    assert updated.machine_cost == Decimal("300")
    assert updated.total == Decimal("300")
    assert updated.id == record.id


def test_transaction_record_requires_client_reference(make_record):
    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        make_record(client_id="  ")
    assert excinfo.value.field == "client_id"


def test_transaction_record_rejects_zero_quantity(make_record):
    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        make_record(quantity=0)
    assert excinfo.value.field == "quantity"


def test_signed_quantity_follows_direction(make_record):
    assert make_record(direction="IN", quantity=4).signed_quantity == Decimal("4")
    assert make_record(direction="OUT", quantity=4).signed_quantity == Decimal("-4")


def test_client_requires_name_and_normalizes_rate():
    client = core_logic.Client(id="c1", name=" Bolt Ltd ", contact="", default_rate="7.5")

    assert client.name == "Bolt Ltd"
    assert client.contact is None
    assert client.default_rate == Decimal("7.5")
    with pytest.raises(core_logic.ValidationFailure):
        core_logic.Client(id="c2", name=" ")


def test_resolve_rate_prefers_client_rate(valuation_settings, acme):
    assert core_logic.resolve_rate(valuation_settings, acme) == Decimal("5")
    assert core_logic.resolve_rate(valuation_settings, replace(acme, default_rate=Decimal("0"))) == Decimal("6")
    assert core_logic.resolve_rate(valuation_settings, None) == Decimal("6")


# ---------------------------------------------------------------------------
# Ledger store
# ---------------------------------------------------------------------------


def test_ledger_store_rejects_duplicate_ids(make_record):
    store = core_logic.LedgerStore([make_record(record_id="R1")])
    with pytest.raises(core_logic.DuplicateRecordError):
        store.append(make_record(record_id="R1"))
    assert len(store) == 1


def test_ledger_store_only_accepts_records():
    with pytest.raises(TypeError):
        core_logic.LedgerStore().append({"id": "R1"})


def test_ledger_store_replace_keeps_position(make_record):
    first, second, third = (make_record(record_id=f"R{i}") for i in range(1, 4))
    store = core_logic.LedgerStore([first, second, third])

    previous = store.replace("R2", replace(second, quantity=Decimal("1")))

    assert previous is second
    assert [record.id for record in store] == ["R1", "R2", "R3"]
    assert store.get("R2").quantity == Decimal("1")


def test_ledger_store_replace_requires_matching_id(make_record):
    store = core_logic.LedgerStore([make_record(record_id="R1")])
    with pytest.raises(core_logic.BusinessRuleViolation):
        store.replace("R1", make_record(record_id="R9"))


def test_ledger_store_unknown_ids_raise_not_found(make_record):
    store = core_logic.LedgerStore([make_record(record_id="R1")])

    with pytest.raises(core_logic.NotFound):
        store.get("missing")
    with pytest.raises(core_logic.NotFound):
        store.delete("missing")
    with pytest.raises(core_logic.NotFound):
        store.replace("missing", make_record(record_id="missing"))
    assert [record.id for record in store] == ["R1"]


def test_ledger_store_delete_removes_record(make_record):
    store = core_logic.LedgerStore([make_record(record_id="R1"), make_record(record_id="R2")])
    store.delete("R1")
    assert "R1" not in store
    assert [record.id for record in store.records()] == ["R2"]


def test_list_transactions_returns_snapshot_in_insertion_order(context, make_record):
    context.ledger.append(make_record(record_id="R2", when="2024-03-09"))
    context.ledger.append(make_record(record_id="R1", when="2024-03-01"))

    snapshot = core_logic.list_transactions(context)
    snapshot.clear()

    assert [record.id for record in core_logic.list_transactions(context)] == ["R2", "R1"]


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def test_load_runtime_context_returns_context(monkeypatch, tmp_path, config_settings):
    """load_runtime_context should assemble config, workbook and hydrated state."""

    config_path = tmp_path / "config.ini"
    parser = Mock(name="parser")
    workbook = Mock(name="workbook")

    find_config_file = Mock(return_value=config_path)
    read_config = Mock(return_value=parser)
    parse_settings = Mock(return_value=config_settings)
    open_workbook = Mock(return_value=workbook)

    monkeypatch.setattr(data_manager, "find_config_file", find_config_file)
    monkeypatch.setattr(data_manager, "read_config", read_config)
    monkeypatch.setattr(data_manager, "parse_settings", parse_settings)
    monkeypatch.setattr(data_manager, "open_workbook", open_workbook)
    monkeypatch.setattr(data_manager, "read_settings", Mock(return_value=None))
    monkeypatch.setattr(data_manager, "iter_clients", Mock(return_value=[]))
    monkeypatch.setattr(data_manager, "iter_items", Mock(return_value=[]))

    context = core_logic.load_runtime_context(config_path)

    assert context.config is config_settings
    assert context.workbook is workbook
    assert len(context.ledger) == 0
    find_config_file.assert_called_once_with(config_path)
    read_config.assert_called_once_with(config_path.resolve())
    parse_settings.assert_called_once_with(parser, base_path=config_path.resolve().parent)
    open_workbook.assert_called_once_with(config_settings.data_file)


def test_hydrate_context_falls_back_to_config_defaults(monkeypatch, config_settings, workbook):
    """An empty Settings sheet should fall back to config.ini values."""

    monkeypatch.setattr(data_manager, "read_settings", Mock(return_value=None))
    monkeypatch.setattr(data_manager, "iter_clients", Mock(return_value=[]))
    monkeypatch.setattr(data_manager, "iter_items", Mock(return_value=[]))
    config = replace(config_settings, default_rate=Decimal("8"), bore_rate=Decimal("40"), currency_symbol="$")

    context = core_logic.hydrate_context(config, workbook)

    assert context.settings.company_name == "Test Pulleys"
    assert context.settings.default_rate == Decimal("8")
    assert context.settings.bore_rate_per_unit == Decimal("40")
    assert context.settings.currency_symbol == "$"


def test_hydrate_context_rebuilds_records_from_rows(monkeypatch, config_settings, workbook, make_record):
    record = make_record(record_id="R1", bore_units=1)
    monkeypatch.setattr(data_manager, "read_settings", Mock(return_value=None))
    monkeypatch.setattr(
        data_manager,
        "iter_clients",
        Mock(return_value=[data_manager.ClientRow("acme-1", "Acme Co", None, Decimal("5"))]),
    )
    monkeypatch.setattr(data_manager, "iter_items", Mock(return_value=[core_logic.row_from_record(record)]))

    context = core_logic.hydrate_context(config_settings, workbook)

    assert context.ledger.get("R1") == record
    assert context.clients["acme-1"].default_rate == Decimal("5")


def test_record_from_row_prefers_recomputed_values(make_record, caplog):
    """Stored derived columns are audit copies; mismatches are logged."""

    row = replace(core_logic.row_from_record(make_record(record_id="R1")), total=Decimal("1"))

    with caplog.at_level(logging.WARNING, logger="pulley_ledger"):
        record = core_logic.record_from_row(row)

    assert record.total == Decimal("2000")
    assert any("differs" in message for message in caplog.messages)


def test_ensure_schema_version_rejects_mismatch(context):
    """Schema mismatches should surface a RuntimeError with clear messaging."""

    context.config = replace(context.config, schema_version="0.9")
    with pytest.raises(RuntimeError):
        core_logic.ensure_schema_version(context)


def test_persist_context_saves_to_configured_file(monkeypatch, context):
    save_mock = Mock()
    monkeypatch.setattr(data_manager, "save_workbook", save_mock)

    core_logic.persist_context(context)

    save_mock.assert_called_once_with(context.workbook, destination=context.config.data_file)


def test_persist_context_wraps_permission_errors(monkeypatch, context):
    monkeypatch.setattr(data_manager, "save_workbook", Mock(side_effect=PermissionError("locked")))
    with pytest.raises(core_logic.CollaboratorFailure):
        core_logic.persist_context(context)


def test_generate_record_id_uses_timestamp():
    moment = datetime(2024, 3, 5, 10, 15, 0, 42, tzinfo=UTC)
    assert core_logic.generate_record_id(when=moment) == "P20240305101500000042"
    assert core_logic.generate_record_id(prefix="C", when=moment).startswith("C2024")


# ---------------------------------------------------------------------------
# Transaction workflows
# ---------------------------------------------------------------------------


def test_record_transaction_appends_after_dal(monkeypatch, context, set_fixed_datetime):
    """A new record goes to the DAL first, then into the ledger."""

    set_fixed_datetime(datetime(2024, 3, 5, 10, 15, tzinfo=UTC))
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_item", append_mock)

    record = core_logic.record_transaction(context, _command())

    assert record.id == "P20240305101500000000"
    assert record.rate == Decimal("5")
    assert record.bore_rate_per_unit == Decimal("50")
    assert record.client_name == "Acme Co"
    assert record.spec == core_logic.PulleySpec(10, 2, "B", "V")
    assert record.total == Decimal("2000")
    append_mock.assert_called_once()
    _, row = append_mock.call_args.args
    assert row.item_id == record.id
    assert row.total == Decimal("2000")
    assert context.ledger.get(record.id) is record


def test_record_transaction_uses_explicit_rate(monkeypatch, context):
    monkeypatch.setattr(data_manager, "append_item", Mock())
    record = core_logic.record_transaction(context, _command(rate="7"))
    assert record.rate == Decimal("7")


def test_record_transaction_bumps_colliding_ids(monkeypatch, context, set_fixed_datetime, make_record):
    set_fixed_datetime(datetime(2024, 3, 5, 10, 15, tzinfo=UTC))
    context.ledger.append(make_record(record_id="P20240305101500000000"))
    monkeypatch.setattr(data_manager, "append_item", Mock())

    record = core_logic.record_transaction(context, _command())

    assert record.id == "P20240305101500000001"


def test_record_transaction_requires_client(monkeypatch, context):
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_item", append_mock)

    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.record_transaction(context, _command(client_id=""))

    assert excinfo.value.field == "client_id"
    append_mock.assert_not_called()


def test_record_transaction_unknown_client_raises_not_found(monkeypatch, context):
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_item", append_mock)

    with pytest.raises(core_logic.NotFound):
        core_logic.record_transaction(context, _command(client_id="ghost"))
    append_mock.assert_not_called()


def test_record_transaction_validation_failure_commits_nothing(monkeypatch, context):
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_item", append_mock)

    with pytest.raises(core_logic.ValidationFailure) as excinfo:
        core_logic.record_transaction(context, _command(grooves="0"))

    assert excinfo.value.field == "grooves"
    append_mock.assert_not_called()
    assert len(context.ledger) == 0


def test_record_transaction_collaborator_failure_leaves_store_untouched(monkeypatch, context):
    """When the workbook rejects the row, the in-memory ledger must not change."""

    monkeypatch.setattr(data_manager, "append_item", Mock(side_effect=OSError("disk full")))

    with pytest.raises(core_logic.CollaboratorFailure) as excinfo:
        core_logic.record_transaction(context, _command())

    assert isinstance(excinfo.value.__cause__, OSError)
    assert len(context.ledger) == 0


def test_record_transaction_can_remember_rate(monkeypatch, context):
    monkeypatch.setattr(data_manager, "append_item", Mock())
    write_settings = Mock()
    monkeypatch.setattr(data_manager, "write_settings", write_settings)

    core_logic.record_transaction(context, _command(rate="9", remember_rate=True))

    assert context.settings.default_rate == Decimal("9")
    write_settings.assert_called_once()


def test_remember_rate_failure_keeps_committed_record(monkeypatch, context, caplog):
    """A rejected settings write must not report the committed record as failed."""

    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_item", append_mock)
    monkeypatch.setattr(data_manager, "write_settings", Mock(side_effect=OSError("workbook locked")))
    previous_rate = context.settings.default_rate

    with caplog.at_level(logging.ERROR, logger="pulley_ledger"):
        record = core_logic.record_transaction(context, _command(rate="9", remember_rate=True))

    append_mock.assert_called_once()
    assert context.ledger.get(record.id) == record
    assert context.settings.default_rate == previous_rate
    assert any("could not be saved as the default" in message for message in caplog.messages)


def test_bore_rate_is_captured_at_commit(monkeypatch, context):
    """Changing the bore rate later must not reprice committed records."""

    monkeypatch.setattr(data_manager, "append_item", Mock())
    monkeypatch.setattr(data_manager, "write_settings", Mock())
    record = core_logic.record_transaction(context, _command(bore_units="2"))

    core_logic.update_settings(context, bore_rate_per_unit=Decimal("80"))

    assert context.ledger.get(record.id).bore_cost == Decimal("100")


def test_edit_transaction_applies_partial_overrides(monkeypatch, context, make_record):
    first, second = make_record(record_id="R1"), make_record(record_id="R2", direction="OUT", quantity=4)
    context.ledger.append(first)
    context.ledger.append(second)
    replace_mock = Mock()
    monkeypatch.setattr(data_manager, "replace_item", replace_mock)

    edited = core_logic.edit_transaction(context, core_logic.EditCommand(record_id="R1", quantity="3", remarks="recount"))

    assert edited.quantity == Decimal("3")
    assert edited.total == Decimal("300")
    assert edited.remarks == "recount"
    assert edited.spec == first.spec
    assert edited.rate == first.rate
    assert [record.id for record in context.ledger] == ["R1", "R2"]
    replace_mock.assert_called_once()
    assert replace_mock.call_args.args[1] == "R1"


def test_edit_transaction_changes_client(monkeypatch, context, make_record):
    context.ledger.append(make_record(record_id="R1"))
    context.clients["bolt"] = core_logic.Client(id="bolt", name="Bolt Ltd")
    monkeypatch.setattr(data_manager, "replace_item", Mock())

    edited = core_logic.edit_transaction(context, core_logic.EditCommand(record_id="R1", client_id="bolt"))

    assert edited.client_id == "bolt"
    assert edited.client_name == "Bolt Ltd"


def test_edit_transaction_unknown_id_raises_not_found(monkeypatch, context):
    replace_mock = Mock()
    monkeypatch.setattr(data_manager, "replace_item", replace_mock)

    with pytest.raises(core_logic.NotFound):
        core_logic.edit_transaction(context, core_logic.EditCommand(record_id="missing", quantity=1))
    replace_mock.assert_not_called()


def test_edit_transaction_collaborator_failure_keeps_original(monkeypatch, context, make_record):
    original = make_record(record_id="R1")
    context.ledger.append(original)
    monkeypatch.setattr(data_manager, "replace_item", Mock(side_effect=KeyError("R1")))

    with pytest.raises(core_logic.CollaboratorFailure):
        core_logic.edit_transaction(context, core_logic.EditCommand(record_id="R1", quantity=1))

    assert context.ledger.get("R1") is original


def test_delete_transaction_removes_record(monkeypatch, context, make_record):
    context.ledger.append(make_record(record_id="R1"))
    delete_mock = Mock()
    monkeypatch.setattr(data_manager, "delete_item", delete_mock)

    removed = core_logic.delete_transaction(context, "R1")

    assert removed.id == "R1"
    assert "R1" not in context.ledger
    delete_mock.assert_called_once_with(context.workbook, "R1")


def test_delete_transaction_unknown_id_changes_nothing(monkeypatch, context, make_record):
    context.ledger.append(make_record(record_id="R1"))
    delete_mock = Mock()
    monkeypatch.setattr(data_manager, "delete_item", delete_mock)

    with pytest.raises(core_logic.NotFound):
        core_logic.delete_transaction(context, "R9")
    delete_mock.assert_not_called()
    assert len(context.ledger) == 1


# ---------------------------------------------------------------------------
# Client and settings workflows
# ---------------------------------------------------------------------------


def test_add_client_generates_id(monkeypatch, context, set_fixed_datetime):
    set_fixed_datetime(datetime(2024, 3, 5, 9, 0, tzinfo=UTC))
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_client", append_mock)

    client = core_logic.add_client(context, name="Bolt Ltd", default_rate="7")

    assert client.id == "C20240305090000000000"
    assert context.clients[client.id] is client
    _, row = append_mock.call_args.args
    assert row.client_name == "Bolt Ltd"
    assert row.default_rate == Decimal("7")


def test_add_client_rejects_duplicate_id(monkeypatch, context):
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_client", append_mock)

    with pytest.raises(core_logic.DuplicateRecordError):
        core_logic.add_client(context, name="Other", client_id="acme-1")
    append_mock.assert_not_called()


def test_update_client_keeps_unspecified_fields(monkeypatch, context):
    monkeypatch.setattr(data_manager, "replace_client", Mock())

    client = core_logic.update_client(context, "acme-1", default_rate="5.5")

    assert client.name == "Acme Co"
    assert client.contact == "98450 11111"
    assert client.default_rate == Decimal("5.5")


def test_update_client_does_not_touch_past_records(monkeypatch, context, make_record):
    record = make_record(record_id="R1")
    context.ledger.append(record)
    monkeypatch.setattr(data_manager, "replace_client", Mock())

    core_logic.update_client(context, "acme-1", name="Acme Corporation", default_rate="9")

    assert context.ledger.get("R1") is record
    assert context.ledger.get("R1").client_name == "Acme Co"


def test_delete_client_unknown_raises_not_found(monkeypatch, context):
    monkeypatch.setattr(data_manager, "delete_client", Mock())
    with pytest.raises(core_logic.NotFound):
        core_logic.delete_client(context, "ghost")


def test_delete_client_removes_entry(monkeypatch, context):
    monkeypatch.setattr(data_manager, "delete_client", Mock())
    core_logic.delete_client(context, "acme-1")
    assert "acme-1" not in context.clients


def test_update_settings_rejects_unknown_names(monkeypatch, context):
    write_mock = Mock()
    monkeypatch.setattr(data_manager, "write_settings", write_mock)

    with pytest.raises(core_logic.ValidationFailure):
        core_logic.update_settings(context, tax_rate=Decimal("18"))
    write_mock.assert_not_called()


def test_update_settings_persists_new_values(monkeypatch, context):
    write_mock = Mock()
    monkeypatch.setattr(data_manager, "write_settings", write_mock)

    settings = core_logic.update_settings(context, default_rate="7", gst_no="29ABCDE1234F1Z5")

    assert settings.default_rate == Decimal("7")
    assert context.settings is settings
    _, row = write_mock.call_args.args
    assert row.default_rate == Decimal("7")
    assert row.gst_no == "29ABCDE1234F1Z5"
