class ContractLifecycleError(Exception):
    pass


class ContractNotFoundError(ContractLifecycleError):
    pass


class TransactionNotFoundError(ContractLifecycleError):
    pass


class ContractIdempotencyConflictError(ContractLifecycleError):
    pass


class ContractValidationError(ContractLifecycleError):
    """Malformed or incomplete input. The caller corrects it and retries."""


class InvalidScheduleError(ContractValidationError):
    pass


class ContractStateViolationError(ContractLifecycleError):
    """Caller logic error against the current workflow state. Never retried automatically."""


class OutOfOrderApprovalError(ContractStateViolationError):
    pass


class WrongApproverError(ContractStateViolationError):
    pass


class WrongStageError(ContractStateViolationError):
    pass


class MilestoneAlreadyCompletedError(ContractStateViolationError):
    pass


class AlreadyVerifiedError(ContractStateViolationError):
    pass


class TransactionNotPendingError(ContractStateViolationError):
    pass


class ContractBoundsError(ContractLifecycleError):
    """Business-rule rejection of an amount. The actor resubmits a corrected amount."""


class InflationBoundExceededError(ContractBoundsError):
    pass


class ExternalCommitFailureError(ContractLifecycleError):
    """Repository or settlement write failed after the in-memory transition was rolled back."""
