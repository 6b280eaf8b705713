import uuid
from datetime import datetime, timezone
from decimal import Decimal
from threading import RLock
from typing import Any, Iterable, Optional

from src.core.contracts.approvals import ApprovalLadder
from src.core.contracts.errors import ContractValidationError, WrongStageError
from src.core.contracts.ledger import MilestoneLedger
from src.core.contracts.models import (
    ApprovalLevelRecord,
    ApprovalOutcome,
    BidBasicInfo,
    ContractEventRecord,
    ContractEventType,
    ContractRecord,
    ContractStage,
    InflationProtection,
    TransactionRecord,
)
from src.core.contracts.schedule import PaymentSchedule

_REQUIRED_TEXT_FIELDS = ("builder_name", "agency_name", "project_name", "project_description")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_basic_info(basic_info: BidBasicInfo) -> None:
    for field_name in _REQUIRED_TEXT_FIELDS:
        if not getattr(basic_info, field_name).strip():
            raise ContractValidationError(f"REQUIRED_FIELD_MISSING: {field_name}")
    amount = basic_info.bid_amount
    if not amount.is_finite() or amount <= 0:
        raise ContractValidationError("INVALID_BID_AMOUNT: must be a positive amount")
    if basic_info.estimated_timeline_months <= 0:
        raise ContractValidationError("INVALID_TIMELINE: estimated_timeline_months must be positive")


class ContractWorkflow:
    """Aggregate root for one bid: ``BID -> APPROVAL -> SETTLEMENT``.

    The stage only moves forward. Every operation either applies completely
    (state change, revision bump and journal entries) or raises and leaves the
    aggregate untouched.
    """

    def __init__(
        self,
        *,
        contract_id: str,
        stage: ContractStage,
        basic_info: BidBasicInfo,
        inflation: InflationProtection,
        schedule: PaymentSchedule,
        ladder: Optional[ApprovalLadder],
        ledger: Optional[MilestoneLedger],
        created_at: datetime,
        updated_at: datetime,
        revision: int,
        events: Iterable[ContractEventRecord],
    ) -> None:
        self._lock = RLock()
        self._contract_id = contract_id
        self._stage: ContractStage = stage
        self._basic_info = basic_info.model_copy()
        self._inflation = inflation.model_copy()
        self._schedule = schedule
        self._ladder = ladder
        self._ledger = ledger
        self._created_at = created_at
        self._updated_at = updated_at
        self._revision = revision
        self._events = [event.model_copy() for event in events]

    @classmethod
    def submit_bid(
        cls,
        *,
        basic_info: BidBasicInfo,
        inflation: InflationProtection,
        milestones: Iterable[Any],
        contract_id: Optional[str] = None,
        submitted_at: Optional[datetime] = None,
    ) -> "ContractWorkflow":
        _validate_basic_info(basic_info)
        schedule = PaymentSchedule.create(total_amount=basic_info.bid_amount, milestones=milestones)
        now = submitted_at or _utc_now()
        workflow = cls(
            contract_id=contract_id or f"ctr_{uuid.uuid4().hex[:12]}",
            stage="BID",
            basic_info=basic_info,
            inflation=inflation,
            schedule=schedule,
            ladder=None,
            ledger=None,
            created_at=now,
            updated_at=now,
            revision=1,
            events=[],
        )
        workflow._append_event(
            "BID_SUBMITTED",
            occurred_at=now,
            payload={
                "builder_name": basic_info.builder_name,
                "agency_name": basic_info.agency_name,
                "project_name": basic_info.project_name,
                "total_amount": str(schedule.total_amount),
                "milestone_count": len(schedule),
                "inflation_clause_enabled": inflation.inflation_clause_enabled,
            },
        )
        workflow._ladder = ApprovalLadder.open()
        workflow._stage = "APPROVAL"
        workflow._append_event(
            "APPROVAL_STARTED", occurred_at=now, payload={"current_level": 1}
        )
        return workflow

    @classmethod
    def from_record(cls, record: ContractRecord) -> "ContractWorkflow":
        schedule = PaymentSchedule.from_record(record.payment_schedule)
        ladder = (
            ApprovalLadder.from_record(record.approval_ladder)
            if record.approval_ladder is not None
            else None
        )
        ledger = (
            MilestoneLedger.from_record(
                record.ledger, schedule=schedule, inflation=record.inflation_protection
            )
            if record.ledger is not None
            else None
        )
        return cls(
            contract_id=record.contract_id,
            stage=record.stage,
            basic_info=record.basic_info,
            inflation=record.inflation_protection,
            schedule=schedule,
            ladder=ladder,
            ledger=ledger,
            created_at=record.created_at,
            updated_at=record.updated_at,
            revision=record.revision,
            events=record.events,
        )

    @property
    def contract_id(self) -> str:
        return self._contract_id

    @property
    def stage(self) -> ContractStage:
        return self._stage

    @property
    def schedule(self) -> PaymentSchedule:
        return self._schedule

    @property
    def ladder(self) -> Optional[ApprovalLadder]:
        return self._ladder

    @property
    def ledger(self) -> Optional[MilestoneLedger]:
        return self._ledger

    def require_ladder(self) -> ApprovalLadder:
        if self._ladder is None:
            raise WrongStageError(
                f"WRONG_STAGE: contract in {self._stage} has no approval ladder"
            )
        return self._ladder

    def require_ledger(self) -> MilestoneLedger:
        self._require_stage("SETTLEMENT")
        if self._ledger is None:
            raise WrongStageError("WRONG_STAGE: settlement ledger is not open")
        return self._ledger

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def events(self) -> list[ContractEventRecord]:
        return [event.model_copy() for event in self._events]

    def decide_approval(
        self,
        *,
        level: int,
        actor_role: str,
        outcome: ApprovalOutcome,
        comments: Optional[str] = None,
    ) -> ApprovalLevelRecord:
        with self._lock:
            self._require_stage("APPROVAL")
            ladder = self.require_ladder()
            now = _utc_now()
            decided = ladder.decide(
                level=level,
                actor_role=actor_role,
                outcome=outcome,
                comments=comments,
                decided_at=now,
            )
            self._append_event(
                "LEVEL_APPROVED" if outcome == "APPROVED" else "LEVEL_REJECTED",
                occurred_at=now,
                actor_role=actor_role,
                payload={
                    "level": decided.level,
                    "title": decided.title,
                    "ladder_state": ladder.state,
                    "comments": comments,
                },
            )
            if ladder.is_fully_approved:
                self._ledger = MilestoneLedger(schedule=self._schedule, inflation=self._inflation)
                self._stage = "SETTLEMENT"
                self._append_event(
                    "SETTLEMENT_OPENED",
                    occurred_at=now,
                    payload={"total_amount": str(self._schedule.total_amount)},
                )
            self._touch(now)
            return decided

    def record_transaction(self, *, milestone_index: int, amount: Decimal) -> TransactionRecord:
        with self._lock:
            ledger = self.require_ledger()
            now = _utc_now()
            transaction = ledger.record_transaction(
                milestone_index=milestone_index, amount=amount, recorded_at=now
            )
            self._append_event(
                "TRANSACTION_RECORDED",
                occurred_at=now,
                payload=self._transaction_payload(transaction),
            )
            self._touch(now)
            return transaction

    def verify_transaction(self, transaction_id: str) -> TransactionRecord:
        with self._lock:
            ledger = self.require_ledger()
            now = _utc_now()
            milestone_index = ledger.get_transaction(transaction_id).milestone_index
            was_completed = self._schedule.is_completed(milestone_index)
            transaction = ledger.verify(transaction_id, decided_at=now)
            self._append_event(
                "TRANSACTION_VERIFIED",
                occurred_at=now,
                payload=self._transaction_payload(transaction),
            )
            if not was_completed:
                self._append_event(
                    "MILESTONE_COMPLETED",
                    occurred_at=now,
                    payload={
                        "milestone_index": milestone_index,
                        "transaction_id": transaction.transaction_id,
                    },
                )
            self._touch(now)
            return transaction

    def dispute_transaction(
        self, transaction_id: str, *, reason: Optional[str] = None
    ) -> TransactionRecord:
        with self._lock:
            ledger = self.require_ledger()
            now = _utc_now()
            transaction = ledger.dispute(transaction_id, reason=reason, decided_at=now)
            payload = self._transaction_payload(transaction)
            payload["reason"] = reason
            self._append_event("TRANSACTION_DISPUTED", occurred_at=now, payload=payload)
            self._touch(now)
            return transaction

    def snapshot(self) -> ContractRecord:
        with self._lock:
            return ContractRecord(
                contract_id=self._contract_id,
                stage=self._stage,
                basic_info=self._basic_info.model_copy(),
                inflation_protection=self._inflation.model_copy(),
                payment_schedule=self._schedule.to_record(),
                approval_ladder=self._ladder.to_record() if self._ladder is not None else None,
                ledger=self._ledger.to_record() if self._ledger is not None else None,
                created_at=self._created_at,
                updated_at=self._updated_at,
                revision=self._revision,
                events=self.events,
            )

    def _require_stage(self, stage: ContractStage) -> None:
        if self._stage != stage:
            raise WrongStageError(f"WRONG_STAGE: contract is in {self._stage}, requires {stage}")

    def _touch(self, now: datetime) -> None:
        self._updated_at = now
        self._revision += 1

    def _append_event(
        self,
        event_type: ContractEventType,
        *,
        occurred_at: datetime,
        payload: dict[str, Any],
        actor_role: Optional[str] = None,
    ) -> None:
        self._events.append(
            ContractEventRecord(
                event_id=f"cev_{uuid.uuid4().hex[:12]}",
                contract_id=self._contract_id,
                event_type=event_type,
                stage=self._stage,
                actor_role=actor_role,
                occurred_at=occurred_at,
                payload=payload,
            )
        )

    @staticmethod
    def _transaction_payload(transaction: TransactionRecord) -> dict[str, Any]:
        return {
            "transaction_id": transaction.transaction_id,
            "milestone_index": transaction.milestone_index,
            "amount": str(transaction.amount),
            "inflation_adjustment": str(transaction.inflation_adjustment),
            "status": transaction.status,
        }
