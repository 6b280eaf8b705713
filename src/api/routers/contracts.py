from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, status

from src.api.routers import contracts_config
from src.api.routers.contract_http_errors import raise_contract_http_exception
from src.core.contracts import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ContractCreateRequest,
    ContractCreateResponse,
    ContractLifecycleError,
    ContractListResponse,
    ContractRepository,
    ContractStateResponse,
    ContractWorkflowService,
    SettlementGateway,
    TransactionDisputeRequest,
    TransactionRecordRequest,
    TransactionResponse,
)
from src.core.contracts.models import ContractStage

router = APIRouter(tags=["Contract Lifecycle"])

_REPOSITORY: Optional[ContractRepository] = None
_SETTLEMENT_GATEWAY: Optional[SettlementGateway] = None
_SERVICE: Optional[ContractWorkflowService] = None

env_flag = contracts_config.env_flag


def get_settlement_gateway() -> SettlementGateway:
    global _SETTLEMENT_GATEWAY
    if _SETTLEMENT_GATEWAY is None:
        _SETTLEMENT_GATEWAY = contracts_config.build_settlement_gateway()
    return _SETTLEMENT_GATEWAY


def get_contract_workflow_service() -> ContractWorkflowService:
    global _REPOSITORY
    global _SERVICE
    if _SERVICE is None:
        if _REPOSITORY is None:
            try:
                _REPOSITORY = contracts_config.build_repository()
            except RuntimeError as exc:
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
                ) from exc
        _SERVICE = ContractWorkflowService(
            repository=_REPOSITORY,
            settlement_gateway=get_settlement_gateway(),
        )
    return _SERVICE


def reset_contract_workflow_service_for_tests() -> None:
    global _REPOSITORY
    global _SETTLEMENT_GATEWAY
    global _SERVICE
    _REPOSITORY = None
    _SETTLEMENT_GATEWAY = None
    _SERVICE = None


def _assert_lifecycle_enabled() -> None:
    if not env_flag("CONTRACT_LIFECYCLE_ENABLED", True):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="CONTRACT_LIFECYCLE_DISABLED",
        )


def _assert_support_apis_enabled() -> None:
    if not env_flag("CONTRACT_SUPPORT_APIS_ENABLED", True):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="CONTRACT_SUPPORT_APIS_DISABLED",
        )


ContractIdPath = Annotated[
    str,
    Path(description="Contract identifier.", examples=["ctr_3f9a1c2b7d4e"]),
]
TransactionIdPath = Annotated[
    str,
    Path(description="Ledger transaction identifier.", examples=["txn_8b1e0d2c4f6a"]),
]


@router.post(
    "/contracts",
    response_model=ContractCreateResponse,
    status_code=status.HTTP_200_OK,
    summary="Submit Contract Bid",
    description=(
        "Validates the bid and payment schedule, allocates milestone amounts and opens "
        "the five-level approval ladder. Replays with the same Idempotency-Key return "
        "the original contract."
    ),
)
def create_contract(
    payload: ContractCreateRequest,
    idempotency_key: Annotated[
        Optional[str],
        Header(
            alias="Idempotency-Key",
            description="Optional idempotency key for replay-safe bid submission.",
            examples=["contract-create-idem-001"],
        ),
    ] = None,
    correlation_id: Annotated[
        Optional[str],
        Header(
            alias="X-Correlation-Id",
            description="Optional correlation id attached to the creation log record.",
            examples=["corr-contract-create-001"],
        ),
    ] = None,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> ContractCreateResponse:
    _assert_lifecycle_enabled()
    try:
        return service.create_contract(
            payload=payload,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
        )
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)


@router.get(
    "/contracts",
    response_model=ContractListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Contracts",
    description="Lists contracts newest first with optional stage filter and cursor pagination.",
)
def list_contracts(
    stage: Annotated[
        Optional[ContractStage],
        Query(description="Lifecycle stage filter.", examples=["SETTLEMENT"]),
    ] = None,
    limit: Annotated[
        int,
        Query(description="Page size.", ge=1, le=100, examples=[20]),
    ] = 20,
    cursor: Annotated[
        Optional[str],
        Query(description="Cursor from previous list response.", examples=["ctr_3f9a1c2b7d4e"]),
    ] = None,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> ContractListResponse:
    _assert_lifecycle_enabled()
    return service.list_contracts(stage=stage, limit=limit, cursor=cursor)


@router.get(
    "/contracts/{contract_id}",
    response_model=ContractStateResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Contract State",
    description="Returns the full contract view including ladder, ledger and settlement totals.",
)
def get_contract(
    contract_id: ContractIdPath,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> ContractStateResponse:
    _assert_lifecycle_enabled()
    try:
        return service.get_contract(contract_id=contract_id)
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)


@router.post(
    "/contracts/{contract_id}/approvals",
    response_model=ApprovalDecisionResponse,
    status_code=status.HTTP_200_OK,
    summary="Decide Approval Level",
    description=(
        "Records one approval decision. Levels are decided strictly in order by the role "
        "assigned to each level. Approving level 5 opens settlement."
    ),
)
def decide_approval(
    contract_id: ContractIdPath,
    payload: ApprovalDecisionRequest,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> ApprovalDecisionResponse:
    _assert_lifecycle_enabled()
    try:
        return service.decide_approval(contract_id=contract_id, payload=payload)
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)


@router.post(
    "/contracts/{contract_id}/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_200_OK,
    summary="Record Milestone Transaction",
    description=(
        "Records a pending disbursement against one milestone. With the inflation clause "
        "enabled the amount must stay within the configured deviation of the allocation."
    ),
)
def record_transaction(
    contract_id: ContractIdPath,
    payload: TransactionRecordRequest,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> TransactionResponse:
    _assert_lifecycle_enabled()
    try:
        return service.record_transaction(contract_id=contract_id, payload=payload)
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)


@router.post(
    "/contracts/{contract_id}/transactions/{transaction_id}/verify",
    response_model=TransactionResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify Milestone Transaction",
    description="Verifies a pending transaction and completes its milestone if still open.",
)
def verify_transaction(
    contract_id: ContractIdPath,
    transaction_id: TransactionIdPath,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> TransactionResponse:
    _assert_lifecycle_enabled()
    try:
        return service.verify_transaction(contract_id=contract_id, transaction_id=transaction_id)
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)


@router.post(
    "/contracts/{contract_id}/transactions/{transaction_id}/dispute",
    response_model=TransactionResponse,
    status_code=status.HTTP_200_OK,
    summary="Dispute Milestone Transaction",
    description="Disputes a pending transaction. The milestone stays open for a corrected one.",
)
def dispute_transaction(
    contract_id: ContractIdPath,
    transaction_id: TransactionIdPath,
    payload: Optional[TransactionDisputeRequest] = None,
    service: Annotated[
        ContractWorkflowService, Depends(get_contract_workflow_service)
    ] = None,
) -> TransactionResponse:
    _assert_lifecycle_enabled()
    try:
        return service.dispute_transaction(
            contract_id=contract_id,
            transaction_id=transaction_id,
            payload=payload,
        )
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)
