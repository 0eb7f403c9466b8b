"""Audit rules for settlement payables.

Pure functions over payable and load rows; no database access. Loads are
passed keyed by payable id so that payables attached through a dispatch leg
resolve to the same load as directly linked ones.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from settlement_engine.calculators.types import (
    AuditFlags,
    MileageVariance,
    MissingPod,
    MissingReceipt,
    SourceType,
    VarianceLevel,
)

# Percent thresholds, compared against the absolute variance
WARNING_THRESHOLD = Decimal("10")
INFO_THRESHOLD = Decimal("5")

_ZERO = Decimal("0")


def classify_mileage(
    payable_quantity: Decimal,
    effective_miles: Decimal | None,
) -> tuple[Decimal, Decimal, VarianceLevel]:
    """Return ``(variance, percent, level)`` for paid vs. effective miles.

    Missing or zero effective miles cannot be compared and classify as OK.
    """
    if not effective_miles:
        return _ZERO, _ZERO, VarianceLevel.OK

    variance = Decimal(payable_quantity) - Decimal(effective_miles)
    percent = variance / Decimal(effective_miles) * 100

    if abs(percent) > WARNING_THRESHOLD:
        level = VarianceLevel.WARNING
    elif abs(percent) > INFO_THRESHOLD:
        level = VarianceLevel.INFO
    else:
        level = VarianceLevel.OK
    return variance, percent, level


def find_missing_pods(payables: Iterable[Any], loads: Mapping[UUID, Any]) -> list[MissingPod]:
    """One entry per distinct linked load without a signed POD."""
    flags: list[MissingPod] = []
    seen: set[UUID] = set()
    for payable in payables:
        load = loads.get(payable.payable_id)
        if load is None or load.has_signed_pod or load.load_id in seen:
            continue
        seen.add(load.load_id)
        flags.append(
            MissingPod(
                load_id=load.load_id,
                load_internal_id=load.internal_id,
                order_number=load.order_number,
            )
        )
    return flags


def find_mileage_variances(
    payables: Iterable[Any], loads: Mapping[UUID, Any]
) -> list[MileageVariance]:
    """Non-OK variances for SYSTEM payables with a positive quantity."""
    flags: list[MileageVariance] = []
    for payable in payables:
        if payable.source_type != SourceType.SYSTEM.value or payable.quantity <= 0:
            continue
        load = loads.get(payable.payable_id)
        if load is None:
            continue
        variance, percent, level = classify_mileage(payable.quantity, load.effective_miles)
        if level == VarianceLevel.OK:
            continue
        flags.append(
            MileageVariance(
                load_id=load.load_id,
                load_internal_id=load.internal_id,
                payable_quantity=Decimal(payable.quantity),
                load_effective_miles=Decimal(load.effective_miles or 0),
                variance=variance,
                percent_variance=percent,
                level=level,
            )
        )
    return flags


def find_missing_receipts(payables: Iterable[Any]) -> list[MissingReceipt]:
    return [
        MissingReceipt(
            payable_id=p.payable_id,
            description=p.description,
            amount=Decimal(p.total_amount),
        )
        for p in payables
        if p.source_type == SourceType.MANUAL.value and p.total_amount > 0 and not p.receipt_ref
    ]


def audit_payables(payables: Iterable[Any], loads: Mapping[UUID, Any]) -> AuditFlags:
    """Run every audit rule over a settlement's payables."""
    rows = list(payables)
    return AuditFlags(
        missing_pods=find_missing_pods(rows, loads),
        mileage_variances=find_mileage_variances(rows, loads),
        missing_receipts=find_missing_receipts(rows),
    )
