"""Tests for settlement audit rules."""

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from settlement_engine.calculators.types import VarianceLevel
from settlement_engine.calculators.variance import (
    audit_payables,
    classify_mileage,
    find_mileage_variances,
    find_missing_pods,
    find_missing_receipts,
)


def load_row(effective_miles="100", has_signed_pod=True, internal_id="L-1001"):
    return SimpleNamespace(
        load_id=uuid4(),
        internal_id=internal_id,
        order_number="PO-77",
        effective_miles=Decimal(effective_miles) if effective_miles is not None else None,
        has_signed_pod=has_signed_pod,
    )


def payable_row(load=None, quantity="100", source_type="SYSTEM", amount="200.00", receipt_ref=None):
    return SimpleNamespace(
        payable_id=uuid4(),
        load_id=load.load_id if load else None,
        source_type=source_type,
        quantity=Decimal(quantity),
        total_amount=Decimal(amount),
        description="Linehaul miles",
        receipt_ref=receipt_ref,
    )


def loads_by_payable(payables, *loads):
    by_id = {load.load_id: load for load in loads}
    return {p.payable_id: by_id[p.load_id] for p in payables if p.load_id in by_id}


class TestClassifyMileage:
    @pytest.mark.parametrize(
        "paid,level",
        [
            ("120", VarianceLevel.WARNING),
            ("106", VarianceLevel.INFO),
            ("103", VarianceLevel.OK),
            ("110", VarianceLevel.INFO),
            ("105", VarianceLevel.OK),
        ],
    )
    def test_thresholds(self, paid, level):
        assert classify_mileage(Decimal(paid), Decimal("100"))[2] == level

    def test_variance_and_percent(self):
        variance, percent, level = classify_mileage(Decimal("120"), Decimal("100"))
        assert variance == Decimal("20")
        assert percent == Decimal("20")
        assert level == VarianceLevel.WARNING

    def test_underpaid_miles_use_absolute_percent(self):
        variance, percent, level = classify_mileage(Decimal("80"), Decimal("100"))
        assert variance == Decimal("-20")
        assert percent == Decimal("-20")
        assert level == VarianceLevel.WARNING

    @pytest.mark.parametrize("effective", [None, Decimal("0")])
    def test_unknown_effective_miles_is_ok(self, effective):
        assert classify_mileage(Decimal("500"), effective) == (
            Decimal("0"),
            Decimal("0"),
            VarianceLevel.OK,
        )


class TestMissingPods:
    def test_one_flag_per_load(self):
        load = load_row(has_signed_pod=False)
        payables = [payable_row(load), payable_row(load, quantity="12", amount="30.00")]

        flags = find_missing_pods(payables, loads_by_payable(payables, load))

        assert len(flags) == 1
        assert flags[0].load_internal_id == "L-1001"
        assert flags[0].order_number == "PO-77"

    def test_signed_pod_not_flagged(self):
        load = load_row(has_signed_pod=True)
        payables = [payable_row(load)]
        assert find_missing_pods(payables, loads_by_payable(payables, load)) == []

    def test_standalone_payable_ignored(self):
        assert find_missing_pods([payable_row(None)], {}) == []

    def test_leg_linked_payable_flagged_through_its_load(self):
        load = load_row(has_signed_pod=False, internal_id="L-2002")
        leg_only = payable_row(None)

        flags = find_missing_pods([leg_only], {leg_only.payable_id: load})

        assert [f.load_internal_id for f in flags] == ["L-2002"]


class TestMileageVariances:
    def test_only_non_ok_flags_reported(self):
        off = load_row("100", internal_id="L-1")
        close = load_row("100", internal_id="L-2")
        payables = [payable_row(off, "120"), payable_row(close, "102")]

        flags = find_mileage_variances(payables, loads_by_payable(payables, off, close))

        assert [f.load_internal_id for f in flags] == ["L-1"]
        assert flags[0].level == VarianceLevel.WARNING
        assert flags[0].load_effective_miles == Decimal("100")

    def test_manual_lines_skipped(self):
        load = load_row("100")
        payables = [payable_row(load, "150", source_type="MANUAL")]
        assert find_mileage_variances(payables, loads_by_payable(payables, load)) == []

    def test_zero_quantity_skipped(self):
        load = load_row("100")
        payables = [payable_row(load, "0")]
        assert find_mileage_variances(payables, loads_by_payable(payables, load)) == []


class TestMissingReceipts:
    def test_positive_manual_without_receipt(self):
        reimbursement = payable_row(source_type="MANUAL", amount="45.00")
        with_receipt = payable_row(source_type="MANUAL", amount="45.00", receipt_ref="R-1")
        deduction = payable_row(source_type="MANUAL", amount="-75.00")
        system = payable_row(source_type="SYSTEM", amount="200.00")

        flags = find_missing_receipts([reimbursement, with_receipt, deduction, system])

        assert [f.payable_id for f in flags] == [reimbursement.payable_id]
        assert flags[0].amount == Decimal("45.00")


def test_audit_payables_has_warnings():
    load = load_row("100", has_signed_pod=False)
    payables = [payable_row(load, "106")]
    flags = audit_payables(payables, loads_by_payable(payables, load))

    assert flags.has_warnings
    assert len(flags.missing_pods) == 1
    assert flags.mileage_variances[0].level == VarianceLevel.INFO
    assert flags.missing_receipts == []


def test_clean_settlement_has_no_warnings():
    load = load_row("100")
    payables = [payable_row(load, "100")]
    assert not audit_payables(payables, loads_by_payable(payables, load)).has_warnings
