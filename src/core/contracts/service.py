import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Iterator, Optional, TypeVar

from src.core.common.canonical import hash_canonical_payload
from src.core.contracts.errors import (
    ContractIdempotencyConflictError,
    ContractNotFoundError,
    ExternalCommitFailureError,
    WrongStageError,
)
from src.core.contracts.models import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ContractCreateRequest,
    ContractCreateResponse,
    ContractEventTimelineResponse,
    ContractIdempotencyRecord,
    ContractListResponse,
    ContractRecord,
    ContractStateResponse,
    ContractSummary,
    TransactionDisputeRequest,
    TransactionRecord,
    TransactionRecordRequest,
    TransactionResponse,
)
from src.core.contracts.repository import ContractRepository, SettlementGateway
from src.core.contracts.workflow import ContractWorkflow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _KeyedLock:
    """Lock shared by the callers currently holding or waiting on one key."""

    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = Lock()
        self.holders = 0


class ContractWorkflowService:
    """Request-handling shell around ``ContractWorkflow``.

    Each operation loads the contract document, applies the transition on a
    rehydrated aggregate, saves the new document and publishes the new journal
    entries to the settlement gateway. Operations on one contract id are
    serialized; different contracts run in parallel. When the store or the
    settlement gateway refuses the commit, the stored document is restored
    and ``ExternalCommitFailureError`` is raised.
    """

    def __init__(
        self,
        *,
        repository: ContractRepository,
        settlement_gateway: SettlementGateway,
    ) -> None:
        self._repository = repository
        self._settlement_gateway = settlement_gateway
        self._locks: dict[str, _KeyedLock] = {}
        self._locks_guard = Lock()

    def create_contract(
        self,
        *,
        payload: ContractCreateRequest,
        idempotency_key: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> ContractCreateResponse:
        if idempotency_key is None:
            return self._create_contract(payload=payload, correlation_id=correlation_id)

        request_hash = hash_canonical_payload(payload.model_dump(mode="python"))
        with self._lock_for(f"idempotency:{idempotency_key}"):
            existing = self._repository.get_idempotency(idempotency_key=idempotency_key)
            if existing is not None:
                if existing.request_hash != request_hash:
                    raise ContractIdempotencyConflictError(
                        "IDEMPOTENCY_KEY_CONFLICT: request hash mismatch"
                    )
                replayed = self._repository.get_contract(contract_id=existing.contract_id)
                if replayed is not None:
                    return self._to_create_response(replayed)
            return self._create_contract(
                payload=payload,
                correlation_id=correlation_id,
                idempotency_key=idempotency_key,
                request_hash=request_hash,
            )

    def get_contract(self, *, contract_id: str) -> ContractStateResponse:
        return self._to_state_response(ContractWorkflow.from_record(self._load(contract_id)))

    def list_contracts(
        self,
        *,
        stage: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> ContractListResponse:
        rows, next_cursor = self._repository.list_contracts(stage=stage, limit=limit, cursor=cursor)
        return ContractListResponse(
            items=[self._to_summary(row) for row in rows], next_cursor=next_cursor
        )

    def list_events(self, *, contract_id: str) -> ContractEventTimelineResponse:
        record = self._load(contract_id)
        return ContractEventTimelineResponse(
            contract_id=record.contract_id, stage=record.stage, events=record.events
        )

    def decide_approval(
        self, *, contract_id: str, payload: ApprovalDecisionRequest
    ) -> ApprovalDecisionResponse:
        workflow, decided = self._mutate(
            contract_id,
            lambda wf: wf.decide_approval(
                level=payload.level,
                actor_role=payload.actor_role,
                outcome=payload.outcome,
                comments=payload.comments,
            ),
        )
        ladder = workflow.require_ladder()
        logger.info(
            "contract.approval_decided",
            extra={
                "extra_fields": {
                    "contract_id": contract_id,
                    "level": decided.level,
                    "outcome": decided.status,
                    "ladder_state": ladder.state,
                    "stage": workflow.stage,
                }
            },
        )
        return ApprovalDecisionResponse(
            contract_id=contract_id,
            stage=workflow.stage,
            decided_level=decided,
            approval_ladder=ladder.to_record(),
        )

    def record_transaction(
        self, *, contract_id: str, payload: TransactionRecordRequest
    ) -> TransactionResponse:
        workflow, transaction = self._mutate(
            contract_id,
            lambda wf: wf.record_transaction(
                milestone_index=payload.milestone_index, amount=payload.amount
            ),
        )
        logger.info(
            "contract.transaction_recorded",
            extra={
                "extra_fields": {
                    "contract_id": contract_id,
                    "transaction_id": transaction.transaction_id,
                    "milestone_index": transaction.milestone_index,
                    "amount": str(transaction.amount),
                }
            },
        )
        return self._to_transaction_response(workflow, transaction)

    def verify_transaction(self, *, contract_id: str, transaction_id: str) -> TransactionResponse:
        workflow, transaction = self._mutate(
            contract_id, lambda wf: wf.verify_transaction(transaction_id)
        )
        ledger = workflow.require_ledger()
        logger.info(
            "contract.transaction_verified",
            extra={
                "extra_fields": {
                    "contract_id": contract_id,
                    "transaction_id": transaction_id,
                    "milestone_index": transaction.milestone_index,
                    "total_verified": str(ledger.total_verified()),
                }
            },
        )
        if transaction.milestone_index in ledger.over_verified_milestones():
            logger.warning(
                "contract.milestone_over_verified",
                extra={
                    "extra_fields": {
                        "contract_id": contract_id,
                        "milestone_index": transaction.milestone_index,
                        "verified_amount": str(
                            ledger.verified_amount(transaction.milestone_index)
                        ),
                        "allocated_amount": str(
                            workflow.schedule.amount(transaction.milestone_index)
                        ),
                    }
                },
            )
        return self._to_transaction_response(workflow, transaction)

    def dispute_transaction(
        self,
        *,
        contract_id: str,
        transaction_id: str,
        payload: Optional[TransactionDisputeRequest] = None,
    ) -> TransactionResponse:
        reason = payload.reason if payload is not None else None
        workflow, transaction = self._mutate(
            contract_id, lambda wf: wf.dispute_transaction(transaction_id, reason=reason)
        )
        logger.info(
            "contract.transaction_disputed",
            extra={
                "extra_fields": {
                    "contract_id": contract_id,
                    "transaction_id": transaction_id,
                    "milestone_index": transaction.milestone_index,
                }
            },
        )
        return self._to_transaction_response(workflow, transaction)

    def _create_contract(
        self,
        *,
        payload: ContractCreateRequest,
        correlation_id: Optional[str],
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
    ) -> ContractCreateResponse:
        workflow = ContractWorkflow.submit_bid(
            basic_info=payload.basic_info,
            inflation=payload.inflation_protection,
            milestones=payload.payment_schedule,
        )
        idempotency = None
        if idempotency_key is not None and request_hash is not None:
            idempotency = ContractIdempotencyRecord(
                idempotency_key=idempotency_key,
                request_hash=request_hash,
                contract_id=workflow.contract_id,
                created_at=datetime.now(timezone.utc),
            )
        with self._lock_for(workflow.contract_id):
            record = self._commit(previous=None, workflow=workflow, idempotency=idempotency)
        logger.info(
            "contract.created",
            extra={
                "extra_fields": {
                    "contract_id": record.contract_id,
                    "stage": record.stage,
                    "total_amount": str(record.payment_schedule.total_amount),
                    "milestone_count": len(record.payment_schedule.milestones),
                    "correlation_id": correlation_id,
                }
            },
        )
        return self._to_create_response(record)

    def _mutate(
        self, contract_id: str, operation: Callable[[ContractWorkflow], T]
    ) -> tuple[ContractWorkflow, T]:
        with self._lock_for(contract_id):
            previous = self._load(contract_id)
            workflow = ContractWorkflow.from_record(previous)
            result = operation(workflow)
            self._commit(previous=previous, workflow=workflow)
            return workflow, result

    def _commit(
        self,
        *,
        previous: Optional[ContractRecord],
        workflow: ContractWorkflow,
        idempotency: Optional[ContractIdempotencyRecord] = None,
    ) -> ContractRecord:
        record = workflow.snapshot()
        published_from = len(previous.events) if previous is not None else 0
        new_events = record.events[published_from:]
        try:
            self._repository.save_contract(record)
            if idempotency is not None:
                self._repository.save_idempotency(idempotency)
        except Exception as exc:
            self._restore(
                previous=previous, contract_id=record.contract_id, idempotency=idempotency
            )
            logger.error(
                "contract.commit_failed",
                extra={"extra_fields": {"contract_id": record.contract_id, "phase": "STORE"}},
            )
            raise ExternalCommitFailureError(
                "EXTERNAL_COMMIT_FAILED: contract store write failed"
            ) from exc
        try:
            self._settlement_gateway.publish(contract_id=record.contract_id, events=new_events)
        except Exception as exc:
            self._restore(
                previous=previous, contract_id=record.contract_id, idempotency=idempotency
            )
            logger.error(
                "contract.commit_failed",
                extra={
                    "extra_fields": {"contract_id": record.contract_id, "phase": "SETTLEMENT"}
                },
            )
            raise ExternalCommitFailureError(
                "EXTERNAL_COMMIT_FAILED: settlement publish failed"
            ) from exc
        return record

    def _restore(
        self,
        *,
        previous: Optional[ContractRecord],
        contract_id: str,
        idempotency: Optional[ContractIdempotencyRecord] = None,
    ) -> None:
        try:
            if previous is None:
                self._repository.delete_contract(contract_id=contract_id)
                if idempotency is not None:
                    self._repository.delete_idempotency(
                        idempotency_key=idempotency.idempotency_key
                    )
            else:
                self._repository.save_contract(previous)
        except Exception:
            logger.exception(
                "contract.rollback_failed",
                extra={"extra_fields": {"contract_id": contract_id}},
            )

    def _load(self, contract_id: str) -> ContractRecord:
        record = self._repository.get_contract(contract_id=contract_id)
        if record is None:
            raise ContractNotFoundError("CONTRACT_NOT_FOUND")
        return record

    @contextmanager
    def _lock_for(self, key: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[key]

    def _to_summary(self, record: ContractRecord) -> ContractSummary:
        return ContractSummary(
            contract_id=record.contract_id,
            stage=record.stage,
            project_name=record.basic_info.project_name,
            builder_name=record.basic_info.builder_name,
            agency_name=record.basic_info.agency_name,
            total_amount=record.payment_schedule.total_amount,
            approval_state=(
                record.approval_ladder.state if record.approval_ladder is not None else None
            ),
            created_at=record.created_at,
            updated_at=record.updated_at,
            revision=record.revision,
        )

    def _to_create_response(self, record: ContractRecord) -> ContractCreateResponse:
        if record.approval_ladder is None:
            raise WrongStageError(
                f"WRONG_STAGE: contract {record.contract_id} has no approval ladder"
            )
        return ContractCreateResponse(
            contract=self._to_summary(record),
            approval_ladder=record.approval_ladder,
            latest_event=record.events[-1],
        )

    def _to_state_response(self, workflow: ContractWorkflow) -> ContractStateResponse:
        record = workflow.snapshot()
        return ContractStateResponse(
            contract_id=record.contract_id,
            stage=record.stage,
            basic_info=record.basic_info,
            inflation_protection=record.inflation_protection,
            payment_schedule=record.payment_schedule,
            approval_ladder=record.approval_ladder,
            ledger=record.ledger,
            totals=workflow.ledger.totals() if workflow.ledger is not None else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
            revision=record.revision,
        )

    def _to_transaction_response(
        self, workflow: ContractWorkflow, transaction: TransactionRecord
    ) -> TransactionResponse:
        ledger = workflow.require_ledger()
        return TransactionResponse(
            contract_id=workflow.contract_id,
            transaction=transaction,
            milestone=workflow.schedule.milestone(transaction.milestone_index),
            totals=ledger.totals(),
        )
