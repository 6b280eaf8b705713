from typing import NoReturn

from fastapi import HTTPException, status

from src.core.contracts import (
    ContractBoundsError,
    ContractIdempotencyConflictError,
    ContractNotFoundError,
    ContractStateViolationError,
    ContractValidationError,
    ExternalCommitFailureError,
    TransactionNotFoundError,
    WrongApproverError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_contract_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, (ContractNotFoundError, TransactionNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, WrongApproverError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, (ContractIdempotencyConflictError, ContractStateViolationError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, (ContractValidationError, ContractBoundsError)):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    if isinstance(exc, ExternalCommitFailureError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    raise exc
