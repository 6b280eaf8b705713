from decimal import Decimal

import pytest

from src.core.contracts.errors import (
    ContractValidationError,
    InvalidScheduleError,
    MilestoneAlreadyCompletedError,
)
from src.core.contracts.models import PaymentMilestoneInput
from src.core.contracts.schedule import PaymentSchedule, allocate_milestone_amounts


def _milestones(*percentages: int) -> list[dict]:
    return [
        {"description": f"Milestone {index + 1}", "percentage": percentage}
        for index, percentage in enumerate(percentages)
    ]


def test_schedule_allocates_amounts_from_percentages():
    schedule = PaymentSchedule.create(total_amount=Decimal("1000"), milestones=_milestones(60, 40))

    assert len(schedule) == 2
    assert schedule.total_amount == Decimal("1000.00")
    assert schedule.amount(0) == Decimal("600.00")
    assert schedule.amount(1) == Decimal("400.00")


def test_schedule_amounts_always_sum_to_total_with_residue_on_last_milestone():
    schedule = PaymentSchedule.create(total_amount=Decimal("100.01"), milestones=_milestones(50, 50))

    assert schedule.amount(0) == Decimal("50.00")
    assert schedule.amount(1) == Decimal("50.01")
    assert schedule.amount(0) + schedule.amount(1) == schedule.total_amount


def test_allocation_rounds_half_even_for_non_final_milestones():
    amounts = allocate_milestone_amounts(Decimal("0.30"), [25, 25, 50])

    assert amounts == [Decimal("0.08"), Decimal("0.08"), Decimal("0.14")]
    assert sum(amounts) == Decimal("0.30")


@pytest.mark.parametrize(
    "percentages",
    [(100,), (33, 33, 34), (1, 99), (10, 20, 30, 40), (20, 30, 30, 20)],
)
def test_schedule_accepts_percentage_sets_summing_to_100(percentages):
    schedule = PaymentSchedule.create(
        total_amount=Decimal("12345.67"), milestones=_milestones(*percentages)
    )

    total = sum((schedule.amount(index) for index in range(len(schedule))), Decimal("0"))
    assert total == Decimal("12345.67")


@pytest.mark.parametrize("percentages", [(60, 39), (60, 41), (50, 50, 1), (99,)])
def test_schedule_rejects_percentage_sum_other_than_100(percentages):
    with pytest.raises(InvalidScheduleError) as exc_info:
        PaymentSchedule.create(total_amount=Decimal("1000"), milestones=_milestones(*percentages))

    assert "expected 100" in str(exc_info.value)


def test_schedule_rejects_empty_milestone_list():
    with pytest.raises(InvalidScheduleError):
        PaymentSchedule.create(total_amount=Decimal("1000"), milestones=[])


@pytest.mark.parametrize("percentage", [0, -10, 101])
def test_schedule_rejects_percentage_outside_range(percentage):
    milestones = [
        {"description": "A", "percentage": percentage},
        {"description": "B", "percentage": 100 - percentage},
    ]
    with pytest.raises(InvalidScheduleError) as exc_info:
        PaymentSchedule.create(total_amount=Decimal("1000"), milestones=milestones)

    assert "within 1..100" in str(exc_info.value)


def test_schedule_rejects_non_integer_percentage():
    milestones = [
        {"description": "A", "percentage": 50.5},
        {"description": "B", "percentage": 49.5},
    ]
    with pytest.raises(InvalidScheduleError) as exc_info:
        PaymentSchedule.create(total_amount=Decimal("1000"), milestones=milestones)

    assert "must be an integer" in str(exc_info.value)


def test_schedule_rejects_blank_description():
    milestones = [{"description": "  ", "percentage": 100}]
    with pytest.raises(InvalidScheduleError) as exc_info:
        PaymentSchedule.create(total_amount=Decimal("1000"), milestones=milestones)

    assert "description is required" in str(exc_info.value)


@pytest.mark.parametrize("total", [Decimal("0"), Decimal("-5"), Decimal("NaN"), Decimal("Infinity")])
def test_schedule_rejects_non_positive_or_non_finite_total(total):
    with pytest.raises(ContractValidationError) as exc_info:
        PaymentSchedule.create(total_amount=total, milestones=_milestones(100))

    assert str(exc_info.value).startswith("INVALID_TOTAL_AMOUNT")


def test_schedule_rejects_total_too_small_for_every_milestone():
    with pytest.raises(InvalidScheduleError):
        PaymentSchedule.create(total_amount=Decimal("0.01"), milestones=_milestones(50, 50))


def test_schedule_refuses_split_whose_rounding_would_leave_last_milestone_negative():
    # 100 x 1% of 1.50 rounds each share up to 0.02, overshooting the total.
    with pytest.raises(InvalidScheduleError) as exc_info:
        PaymentSchedule.create(total_amount=Decimal("1.50"), milestones=_milestones(*[1] * 100))

    assert "too small to allocate" in str(exc_info.value)


def test_schedule_accepts_one_cent_per_milestone_split():
    schedule = PaymentSchedule.create(
        total_amount=Decimal("1.00"), milestones=_milestones(*[1] * 100)
    )

    assert {schedule.amount(index) for index in range(len(schedule))} == {Decimal("0.01")}


@pytest.mark.parametrize("total", [Decimal("1000.005"), Decimal("0.001"), Decimal("12.345")])
def test_schedule_rejects_total_with_sub_cent_precision(total):
    with pytest.raises(ContractValidationError) as exc_info:
        PaymentSchedule.create(total_amount=total, milestones=_milestones(60, 40))

    assert str(exc_info.value) == (
        "INVALID_TOTAL_AMOUNT: must not have more than two decimal places"
    )


def test_schedule_accepts_trailing_zero_decimals():
    schedule = PaymentSchedule.create(
        total_amount=Decimal("1000.000"), milestones=_milestones(60, 40)
    )

    assert schedule.total_amount == Decimal("1000.00")
    assert schedule.amount(0) + schedule.amount(1) == Decimal("1000")


def test_schedule_rejects_total_too_large_to_hold_in_cents():
    with pytest.raises(ContractValidationError) as exc_info:
        PaymentSchedule.create(total_amount=Decimal("1E+27"), milestones=_milestones(60, 40))

    assert str(exc_info.value) == "INVALID_TOTAL_AMOUNT: too many digits to hold in cents"


def test_schedule_accepts_pydantic_milestone_inputs():
    schedule = PaymentSchedule.create(
        total_amount=Decimal("500"),
        milestones=[
            PaymentMilestoneInput(description="Design", percentage=20),
            PaymentMilestoneInput(description="Build", percentage=80),
        ],
    )

    assert schedule.milestone(0).description == "Design"
    assert schedule.amount(1) == Decimal("400.00")


def test_mark_completed_is_single_shot():
    schedule = PaymentSchedule.create(total_amount=Decimal("1000"), milestones=_milestones(60, 40))

    schedule.mark_completed(0, transaction_id="txn_first")
    with pytest.raises(MilestoneAlreadyCompletedError):
        schedule.mark_completed(0, transaction_id="txn_second")

    milestone = schedule.milestone(0)
    assert milestone.completed is True
    assert milestone.completed_by_transaction_id == "txn_first"
    assert schedule.completed_count == 1
    assert schedule.is_completed(1) is False


def test_schedule_record_round_trip_keeps_terms_and_completion():
    schedule = PaymentSchedule.create(total_amount=Decimal("1000"), milestones=_milestones(60, 40))
    schedule.mark_completed(1, transaction_id="txn_abc")

    restored = PaymentSchedule.from_record(schedule.to_record())

    assert restored.to_record() == schedule.to_record()
    assert restored.is_completed(1) is True
    assert restored.is_completed(0) is False
