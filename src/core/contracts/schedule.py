from collections.abc import Mapping
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Iterable, Optional, Sequence

from src.core.contracts.errors import (
    ContractValidationError,
    InvalidScheduleError,
    MilestoneAlreadyCompletedError,
)
from src.core.contracts.models import PaymentMilestoneRecord, PaymentScheduleRecord

MONEY_QUANTUM = Decimal("0.01")
PERCENT_TOTAL = 100


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)


def allocate_milestone_amounts(total_amount: Decimal, percentages: Sequence[int]) -> list[Decimal]:
    """Split ``total_amount`` across integer percentages.

    Every milestone but the last is rounded half-even to cents. The last
    milestone takes ``total_amount - sum(previous)``, so any rounding residue
    lands there and the allocation always sums to the total exactly.
    """
    amounts = [
        quantize_money(total_amount * Decimal(percentage) / Decimal(PERCENT_TOTAL))
        for percentage in percentages[:-1]
    ]
    amounts.append(total_amount - sum(amounts, Decimal("0")))
    return amounts


def _milestone_fields(item: Any) -> tuple[Any, Any]:
    if isinstance(item, Mapping):
        return item.get("description"), item.get("percentage")
    return getattr(item, "description", None), getattr(item, "percentage", None)


def _validate_total_amount(total_amount: Any) -> Decimal:
    if not isinstance(total_amount, Decimal):
        try:
            total_amount = Decimal(str(total_amount))
        except ArithmeticError as exc:
            raise ContractValidationError("INVALID_TOTAL_AMOUNT") from exc
    if not total_amount.is_finite() or total_amount <= 0:
        raise ContractValidationError("INVALID_TOTAL_AMOUNT: must be a positive finite amount")
    try:
        quantized = quantize_money(total_amount)
    except ArithmeticError as exc:
        raise ContractValidationError(
            "INVALID_TOTAL_AMOUNT: too many digits to hold in cents"
        ) from exc
    if quantized != total_amount:
        raise ContractValidationError(
            "INVALID_TOTAL_AMOUNT: must not have more than two decimal places"
        )
    return quantized


class PaymentSchedule:
    """Milestone terms of one contract plus their completion flags.

    Terms (description, percentage, amount) are fixed at construction. The
    completion flag of a milestone is set once, through ``mark_completed``,
    which only the milestone ledger calls when it verifies a transaction.
    """

    def __init__(
        self,
        *,
        total_amount: Decimal,
        milestones: Sequence[PaymentMilestoneRecord],
    ) -> None:
        self._total_amount = total_amount
        self._terms: tuple[tuple[str, int, Decimal], ...] = tuple(
            (milestone.description, milestone.percentage, milestone.amount)
            for milestone in milestones
        )
        self._completed_by: dict[int, Optional[str]] = {
            index: milestone.completed_by_transaction_id
            for index, milestone in enumerate(milestones)
            if milestone.completed
        }

    @classmethod
    def create(cls, *, total_amount: Any, milestones: Iterable[Any]) -> "PaymentSchedule":
        total = _validate_total_amount(total_amount)
        items = [_milestone_fields(item) for item in milestones]
        if not items:
            raise InvalidScheduleError("INVALID_SCHEDULE: at least one milestone is required")

        for index, (description, percentage) in enumerate(items):
            if not isinstance(description, str) or not description.strip():
                raise InvalidScheduleError(
                    f"INVALID_SCHEDULE: milestone {index} description is required"
                )
            if isinstance(percentage, bool) or not isinstance(percentage, int):
                raise InvalidScheduleError(
                    f"INVALID_SCHEDULE: milestone {index} percentage must be an integer"
                )
            if not 1 <= percentage <= PERCENT_TOTAL:
                raise InvalidScheduleError(
                    f"INVALID_SCHEDULE: milestone {index} percentage must be within 1..100"
                )

        percentages = [percentage for _, percentage in items]
        percentage_sum = sum(percentages)
        if percentage_sum != PERCENT_TOTAL:
            raise InvalidScheduleError(
                f"INVALID_SCHEDULE: percentages sum to {percentage_sum}, expected 100"
            )

        amounts = allocate_milestone_amounts(total, percentages)
        if any(amount <= 0 for amount in amounts):
            raise InvalidScheduleError(
                "INVALID_SCHEDULE: total amount too small to allocate a positive amount "
                "to every milestone"
            )
        return cls(
            total_amount=total,
            milestones=[
                PaymentMilestoneRecord(
                    description=description.strip(),
                    percentage=percentage,
                    amount=amount,
                )
                for (description, percentage), amount in zip(items, amounts)
            ],
        )

    @classmethod
    def from_record(cls, record: PaymentScheduleRecord) -> "PaymentSchedule":
        return cls(total_amount=record.total_amount, milestones=record.milestones)

    @property
    def total_amount(self) -> Decimal:
        return self._total_amount

    def __len__(self) -> int:
        return len(self._terms)

    def has_index(self, index: int) -> bool:
        return 0 <= index < len(self._terms)

    def amount(self, index: int) -> Decimal:
        return self._terms[index][2]

    def is_completed(self, index: int) -> bool:
        return index in self._completed_by

    @property
    def completed_count(self) -> int:
        return len(self._completed_by)

    def mark_completed(self, index: int, *, transaction_id: str) -> None:
        if self.is_completed(index):
            raise MilestoneAlreadyCompletedError(f"MILESTONE_ALREADY_COMPLETED: milestone {index}")
        self._completed_by[index] = transaction_id

    def milestone(self, index: int) -> PaymentMilestoneRecord:
        description, percentage, amount = self._terms[index]
        return PaymentMilestoneRecord(
            description=description,
            percentage=percentage,
            amount=amount,
            completed=self.is_completed(index),
            completed_by_transaction_id=self._completed_by.get(index),
        )

    def to_record(self) -> PaymentScheduleRecord:
        return PaymentScheduleRecord(
            total_amount=self._total_amount,
            milestones=[self.milestone(index) for index in range(len(self._terms))],
        )
