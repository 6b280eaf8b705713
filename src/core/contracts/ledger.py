import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from src.core.contracts.errors import (
    AlreadyVerifiedError,
    ContractValidationError,
    InflationBoundExceededError,
    MilestoneAlreadyCompletedError,
    TransactionNotFoundError,
    TransactionNotPendingError,
)
from src.core.contracts.models import (
    InflationProtection,
    LedgerTotals,
    MilestoneLedgerRecord,
    TransactionRecord,
)
from src.core.contracts.schedule import PaymentSchedule


def max_inflation_deviation(expected: Decimal, inflation_percentage: Decimal) -> Decimal:
    return expected * inflation_percentage / Decimal(100)


def within_inflation_bound(
    *, amount: Decimal, expected: Decimal, inflation_percentage: Decimal
) -> bool:
    return abs(amount - expected) <= max_inflation_deviation(expected, inflation_percentage)


def _validate_amount(amount: Any) -> Decimal:
    if not isinstance(amount, Decimal):
        try:
            amount = Decimal(str(amount))
        except ArithmeticError as exc:
            raise ContractValidationError("INVALID_TRANSACTION_AMOUNT") from exc
    if not amount.is_finite() or amount <= 0:
        raise ContractValidationError("INVALID_TRANSACTION_AMOUNT: must be a positive amount")
    return amount


class MilestoneLedger:
    """Payment transactions recorded against one payment schedule.

    Verification is the only way a milestone becomes completed. Several
    transactions may target the same milestone (a disputed one followed by a
    corrected one, or several pending ones); only the first verified one
    completes it. Later verifications on a completed milestone still count
    toward ``total_verified`` and are reported by ``over_verified_milestones``
    rather than refused.
    """

    def __init__(
        self,
        *,
        schedule: PaymentSchedule,
        inflation: InflationProtection,
        transactions: Optional[list[TransactionRecord]] = None,
    ) -> None:
        self._schedule = schedule
        self._inflation = inflation
        self._transactions: list[TransactionRecord] = [
            transaction.model_copy() for transaction in transactions or []
        ]

    @classmethod
    def from_record(
        cls,
        record: MilestoneLedgerRecord,
        *,
        schedule: PaymentSchedule,
        inflation: InflationProtection,
    ) -> "MilestoneLedger":
        return cls(schedule=schedule, inflation=inflation, transactions=record.transactions)

    @property
    def schedule(self) -> PaymentSchedule:
        return self._schedule

    @property
    def transactions(self) -> list[TransactionRecord]:
        return [transaction.model_copy() for transaction in self._transactions]

    def get_transaction(self, transaction_id: str) -> TransactionRecord:
        return self._transactions[self._position(transaction_id)].model_copy()

    def record_transaction(
        self,
        *,
        milestone_index: int,
        amount: Any,
        recorded_at: Optional[datetime] = None,
    ) -> TransactionRecord:
        if not self._schedule.has_index(milestone_index):
            raise ContractValidationError(
                f"INVALID_MILESTONE_INDEX: {milestone_index} is outside the payment schedule"
            )
        value = _validate_amount(amount)
        if self._schedule.is_completed(milestone_index):
            raise MilestoneAlreadyCompletedError(
                f"MILESTONE_ALREADY_COMPLETED: milestone {milestone_index}"
            )

        expected = self._schedule.amount(milestone_index)
        if self._inflation.inflation_clause_enabled and not within_inflation_bound(
            amount=value,
            expected=expected,
            inflation_percentage=self._inflation.inflation_percentage,
        ):
            deviation = max_inflation_deviation(expected, self._inflation.inflation_percentage)
            raise InflationBoundExceededError(
                f"INFLATION_BOUND_EXCEEDED: amount must be within {expected - deviation}"
                f"..{expected + deviation}"
            )

        transaction = TransactionRecord(
            transaction_id=f"txn_{uuid.uuid4().hex[:12]}",
            milestone_index=milestone_index,
            amount=value,
            recorded_at=recorded_at or datetime.now(timezone.utc),
            status="PENDING",
            inflation_adjustment=value - expected,
        )
        self._transactions.append(transaction)
        return transaction.model_copy()

    def verify(
        self, transaction_id: str, *, decided_at: Optional[datetime] = None
    ) -> TransactionRecord:
        position = self._position(transaction_id)
        transaction = self._transactions[position]
        self._require_pending(transaction)

        verified = transaction.model_copy(
            update={
                "status": "VERIFIED",
                "decided_at": decided_at or datetime.now(timezone.utc),
            }
        )
        if not self._schedule.is_completed(transaction.milestone_index):
            self._schedule.mark_completed(
                transaction.milestone_index, transaction_id=transaction.transaction_id
            )
        self._transactions[position] = verified
        return verified.model_copy()

    def dispute(
        self,
        transaction_id: str,
        *,
        reason: Optional[str] = None,
        decided_at: Optional[datetime] = None,
    ) -> TransactionRecord:
        position = self._position(transaction_id)
        transaction = self._transactions[position]
        self._require_pending(transaction)

        disputed = transaction.model_copy(
            update={
                "status": "DISPUTED",
                "decided_at": decided_at or datetime.now(timezone.utc),
                "reason": reason,
            }
        )
        self._transactions[position] = disputed
        return disputed.model_copy()

    def total_verified(self) -> Decimal:
        return sum(
            (txn.amount for txn in self._transactions if txn.status == "VERIFIED"),
            Decimal("0"),
        )

    def remaining_balance(self) -> Decimal:
        return self._schedule.total_amount - self.total_verified()

    def verified_amount(self, milestone_index: int) -> Decimal:
        return sum(
            (
                txn.amount
                for txn in self._transactions
                if txn.status == "VERIFIED" and txn.milestone_index == milestone_index
            ),
            Decimal("0"),
        )

    def over_verified_milestones(self) -> list[int]:
        return [
            index
            for index in range(len(self._schedule))
            if self.verified_amount(index) > self._schedule.amount(index)
        ]

    def totals(self) -> LedgerTotals:
        return LedgerTotals(
            total_amount=self._schedule.total_amount,
            total_verified=self.total_verified(),
            remaining_balance=self.remaining_balance(),
            completed_milestones=self._schedule.completed_count,
            over_verified_milestones=self.over_verified_milestones(),
        )

    def to_record(self) -> MilestoneLedgerRecord:
        return MilestoneLedgerRecord(transactions=self.transactions)

    def _position(self, transaction_id: str) -> int:
        for position, transaction in enumerate(self._transactions):
            if transaction.transaction_id == transaction_id:
                return position
        raise TransactionNotFoundError(f"TRANSACTION_NOT_FOUND: {transaction_id}")

    @staticmethod
    def _require_pending(transaction: TransactionRecord) -> None:
        if transaction.status == "VERIFIED":
            raise AlreadyVerifiedError(f"ALREADY_VERIFIED: {transaction.transaction_id}")
        if transaction.status != "PENDING":
            raise TransactionNotPendingError(
                f"TRANSACTION_NOT_PENDING: {transaction.transaction_id} is {transaction.status}"
            )
