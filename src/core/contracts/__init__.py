from src.core.contracts.approvals import APPROVAL_LEVEL_DEFINITIONS, ApprovalLadder
from src.core.contracts.errors import (
    AlreadyVerifiedError,
    ContractBoundsError,
    ContractIdempotencyConflictError,
    ContractLifecycleError,
    ContractNotFoundError,
    ContractStateViolationError,
    ContractValidationError,
    ExternalCommitFailureError,
    InflationBoundExceededError,
    InvalidScheduleError,
    MilestoneAlreadyCompletedError,
    OutOfOrderApprovalError,
    TransactionNotFoundError,
    TransactionNotPendingError,
    WrongApproverError,
    WrongStageError,
)
from src.core.contracts.ledger import MilestoneLedger
from src.core.contracts.models import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    BidBasicInfo,
    ContractCreateRequest,
    ContractCreateResponse,
    ContractEventTimelineResponse,
    ContractListResponse,
    ContractRecord,
    ContractStateResponse,
    ContractSupportabilityConfigResponse,
    InflationProtection,
    PaymentMilestoneInput,
    TransactionDisputeRequest,
    TransactionRecordRequest,
    TransactionResponse,
)
from src.core.contracts.repository import ContractRepository, SettlementGateway
from src.core.contracts.schedule import PaymentSchedule
from src.core.contracts.service import ContractWorkflowService
from src.core.contracts.workflow import ContractWorkflow

__all__ = [
    "APPROVAL_LEVEL_DEFINITIONS",
    "AlreadyVerifiedError",
    "ApprovalDecisionRequest",
    "ApprovalDecisionResponse",
    "ApprovalLadder",
    "BidBasicInfo",
    "ContractBoundsError",
    "ContractCreateRequest",
    "ContractCreateResponse",
    "ContractEventTimelineResponse",
    "ContractIdempotencyConflictError",
    "ContractLifecycleError",
    "ContractListResponse",
    "ContractNotFoundError",
    "ContractRecord",
    "ContractRepository",
    "ContractStateResponse",
    "ContractStateViolationError",
    "ContractSupportabilityConfigResponse",
    "ContractValidationError",
    "ContractWorkflow",
    "ContractWorkflowService",
    "ExternalCommitFailureError",
    "InflationBoundExceededError",
    "InflationProtection",
    "InvalidScheduleError",
    "MilestoneAlreadyCompletedError",
    "MilestoneLedger",
    "OutOfOrderApprovalError",
    "PaymentMilestoneInput",
    "PaymentSchedule",
    "SettlementGateway",
    "TransactionDisputeRequest",
    "TransactionNotFoundError",
    "TransactionNotPendingError",
    "TransactionRecordRequest",
    "TransactionResponse",
    "WrongApproverError",
    "WrongStageError",
]
