from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from src.core.contracts.errors import (
    ContractValidationError,
    OutOfOrderApprovalError,
    WrongApproverError,
)
from src.core.contracts.models import (
    ApprovalLadderRecord,
    ApprovalLadderState,
    ApprovalLevelRecord,
    ApprovalOutcome,
    ApproverRole,
)

APPROVAL_LEVEL_DEFINITIONS: tuple[tuple[int, str, ApproverRole], ...] = (
    (1, "Initial Technical Review", "TECHNICAL_OFFICER"),
    (2, "Financial Assessment", "FINANCIAL_OFFICER"),
    (3, "Legal Compliance", "LEGAL_OFFICER"),
    (4, "Department Head Review", "DEPARTMENT_HEAD"),
    (5, "Final Executive Approval", "EXECUTIVE_OFFICER"),
)
FINAL_APPROVAL_LEVEL = len(APPROVAL_LEVEL_DEFINITIONS)


class ApprovalLadder:
    """Five fixed sign-off levels decided strictly in order.

    A rejection at any level is terminal for the ladder. Decisions on one
    ladder instance are serialized.
    """

    def __init__(
        self,
        *,
        levels: list[ApprovalLevelRecord],
        state: ApprovalLadderState,
        current_level: Optional[int],
    ) -> None:
        if len(levels) != FINAL_APPROVAL_LEVEL:
            raise ContractValidationError("INVALID_APPROVAL_LADDER: exactly five levels required")
        self._lock = Lock()
        self._levels = [level.model_copy() for level in levels]
        self._state: ApprovalLadderState = state
        self._current_level = current_level

    @classmethod
    def open(cls) -> "ApprovalLadder":
        return cls(
            levels=[
                ApprovalLevelRecord(level=level, title=title, approver_role=role)
                for level, title, role in APPROVAL_LEVEL_DEFINITIONS
            ],
            state="IN_PROGRESS",
            current_level=1,
        )

    @classmethod
    def from_record(cls, record: ApprovalLadderRecord) -> "ApprovalLadder":
        return cls(levels=record.levels, state=record.state, current_level=record.current_level)

    @property
    def state(self) -> ApprovalLadderState:
        return self._state

    @property
    def current_level(self) -> Optional[int]:
        return self._current_level

    @property
    def is_fully_approved(self) -> bool:
        return self._state == "FULLY_APPROVED"

    def level(self, level: int) -> ApprovalLevelRecord:
        return self._levels[level - 1].model_copy()

    def decide(
        self,
        *,
        level: int,
        actor_role: str,
        outcome: ApprovalOutcome,
        comments: Optional[str] = None,
        decided_at: Optional[datetime] = None,
    ) -> ApprovalLevelRecord:
        if not 1 <= level <= FINAL_APPROVAL_LEVEL:
            raise ContractValidationError(
                f"INVALID_APPROVAL_LEVEL: level must be within 1..{FINAL_APPROVAL_LEVEL}"
            )
        if outcome not in ("APPROVED", "REJECTED"):
            raise ContractValidationError("INVALID_APPROVAL_OUTCOME")

        with self._lock:
            if self._state != "IN_PROGRESS":
                raise OutOfOrderApprovalError(
                    f"OUT_OF_ORDER_APPROVAL: approval ladder is {self._state}"
                )
            if level != self._current_level:
                raise OutOfOrderApprovalError(
                    f"OUT_OF_ORDER_APPROVAL: level {self._current_level} must be decided first"
                )
            target = self._levels[level - 1]
            if target.status != "PENDING":
                raise OutOfOrderApprovalError(
                    f"OUT_OF_ORDER_APPROVAL: level {level} is already {target.status}"
                )
            if actor_role != target.approver_role:
                raise WrongApproverError(
                    f"WRONG_APPROVER: level {level} requires {target.approver_role}"
                )

            decided = target.model_copy(
                update={
                    "status": outcome,
                    "decided_at": decided_at or datetime.now(timezone.utc),
                    "comments": comments,
                }
            )
            self._levels[level - 1] = decided
            if outcome == "REJECTED":
                self._state = "REJECTED"
            elif level == FINAL_APPROVAL_LEVEL:
                self._state = "FULLY_APPROVED"
                self._current_level = None
            else:
                self._current_level = level + 1
            return decided.model_copy()

    def to_record(self) -> ApprovalLadderRecord:
        return ApprovalLadderRecord(
            state=self._state,
            current_level=self._current_level,
            levels=[level.model_copy() for level in self._levels],
        )
