from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ContractStage = Literal["BID", "APPROVAL", "SETTLEMENT"]

ApproverRole = Literal[
    "TECHNICAL_OFFICER",
    "FINANCIAL_OFFICER",
    "LEGAL_OFFICER",
    "DEPARTMENT_HEAD",
    "EXECUTIVE_OFFICER",
]

ApprovalStatus = Literal["PENDING", "APPROVED", "REJECTED"]
ApprovalOutcome = Literal["APPROVED", "REJECTED"]
ApprovalLadderState = Literal["IN_PROGRESS", "FULLY_APPROVED", "REJECTED"]

TransactionStatus = Literal["PENDING", "VERIFIED", "DISPUTED"]

ContractEventType = Literal[
    "BID_SUBMITTED",
    "APPROVAL_STARTED",
    "LEVEL_APPROVED",
    "LEVEL_REJECTED",
    "SETTLEMENT_OPENED",
    "TRANSACTION_RECORDED",
    "TRANSACTION_VERIFIED",
    "MILESTONE_COMPLETED",
    "TRANSACTION_DISPUTED",
]


class BidBasicInfo(BaseModel):
    builder_name: str = Field(description="Builder submitting the bid.", examples=["Acme Builders"])
    agency_name: str = Field(
        description="Public agency that tendered the project.", examples=["City Works Dept"]
    )
    project_name: str = Field(description="Project name.", examples=["Riverside Bridge"])
    project_description: str = Field(
        description="Scope and requirements of the project.",
        examples=["Two-lane pedestrian bridge over the river walk."],
    )
    bid_amount: Decimal = Field(
        description="Base bid amount. Must be positive.", examples=["1000000.00"]
    )
    estimated_timeline_months: int = Field(
        description="Estimated delivery timeline in months. Must be positive.", examples=[18]
    )


class InflationProtection(BaseModel):
    inflation_clause_enabled: bool = Field(
        default=False,
        description="When enabled, transactions must stay within the inflation band.",
        examples=[True],
    )
    inflation_percentage: Decimal = Field(
        default=Decimal("20"),
        ge=1,
        le=50,
        description="Maximum symmetric deviation from the milestone amount, in percent.",
        examples=["20"],
    )
    pre_payment_enabled: bool = Field(
        default=False,
        description="Pre-payment option recorded on the bid. Informational only.",
        examples=[False],
    )


class PaymentMilestoneInput(BaseModel):
    description: str = Field(description="Milestone description.", examples=["Foundation Complete"])
    percentage: int = Field(
        description="Share of the total bid amount, integer percent.", examples=[30]
    )


class ContractCreateRequest(BaseModel):
    basic_info: BidBasicInfo = Field(description="Bid fields supplied by the input collector.")
    inflation_protection: InflationProtection = Field(
        default_factory=InflationProtection,
        description="Inflation clause and pre-payment configuration.",
    )
    payment_schedule: List[PaymentMilestoneInput] = Field(
        description="Ordered milestones. Percentages must sum to exactly 100.",
        examples=[
            [
                {"description": "Project Initiation", "percentage": 20},
                {"description": "Foundation Complete", "percentage": 30},
                {"description": "Structure Complete", "percentage": 30},
                {"description": "Final Completion", "percentage": 20},
            ]
        ],
    )


class ApprovalDecisionRequest(BaseModel):
    level: int = Field(description="Approval level being decided (1..5).", examples=[1])
    actor_role: ApproverRole = Field(
        description="Role asserted by the caller. Trusted as-is.", examples=["TECHNICAL_OFFICER"]
    )
    outcome: ApprovalOutcome = Field(description="Decision outcome.", examples=["APPROVED"])
    comments: Optional[str] = Field(
        default=None,
        description="Optional reviewer comments stored on the level.",
        examples=["Structural drawings reviewed."],
    )


class TransactionRecordRequest(BaseModel):
    milestone_index: int = Field(
        description="Zero-based index into the payment schedule.", examples=[0]
    )
    amount: Decimal = Field(description="Disbursement amount. Must be positive.", examples=["600"])


class TransactionDisputeRequest(BaseModel):
    reason: Optional[str] = Field(
        default=None,
        description="Optional dispute reason stored on the transaction.",
        examples=["Invoice does not match site inspection."],
    )


class PaymentMilestoneRecord(BaseModel):
    description: str = Field(description="Milestone description.", examples=["Foundation Complete"])
    percentage: int = Field(description="Integer percent of total amount.", examples=[30])
    amount: Decimal = Field(description="Allocated milestone amount.", examples=["300000.00"])
    completed: bool = Field(
        default=False, description="Set once by the first verified transaction.", examples=[False]
    )
    completed_by_transaction_id: Optional[str] = Field(
        default=None,
        description="Transaction whose verification completed this milestone.",
        examples=["txn_0a1b2c3d4e5f"],
    )


class PaymentScheduleRecord(BaseModel):
    total_amount: Decimal = Field(description="Total contract amount.", examples=["1000.00"])
    milestones: List[PaymentMilestoneRecord] = Field(description="Ordered milestones.")


class ApprovalLevelRecord(BaseModel):
    level: int = Field(description="Approval level (1..5).", examples=[1])
    title: str = Field(description="Level title.", examples=["Initial Technical Review"])
    approver_role: ApproverRole = Field(
        description="Role required to decide this level.", examples=["TECHNICAL_OFFICER"]
    )
    status: ApprovalStatus = Field(default="PENDING", description="Level status.")
    decided_at: Optional[datetime] = Field(default=None, description="UTC decision timestamp.")
    comments: Optional[str] = Field(default=None, description="Reviewer comments.")


class ApprovalLadderRecord(BaseModel):
    state: ApprovalLadderState = Field(description="Ladder state.", examples=["IN_PROGRESS"])
    current_level: Optional[int] = Field(
        default=None,
        description="Level awaiting a decision. Null once fully approved.",
        examples=[1],
    )
    levels: List[ApprovalLevelRecord] = Field(description="Exactly five levels in fixed order.")


class TransactionRecord(BaseModel):
    transaction_id: str = Field(description="Transaction identifier.", examples=["txn_0a1b2c3d4e5f"])
    milestone_index: int = Field(description="Referenced milestone index.", examples=[0])
    amount: Decimal = Field(description="Recorded amount.", examples=["600.00"])
    recorded_at: datetime = Field(description="UTC recording timestamp.")
    status: TransactionStatus = Field(default="PENDING", description="Transaction status.")
    inflation_adjustment: Decimal = Field(
        description="Recorded amount minus the milestone's nominal amount.", examples=["0.00"]
    )
    decided_at: Optional[datetime] = Field(
        default=None, description="UTC timestamp of verification or dispute."
    )
    reason: Optional[str] = Field(default=None, description="Dispute reason, when disputed.")


class MilestoneLedgerRecord(BaseModel):
    transactions: List[TransactionRecord] = Field(
        default_factory=list, description="Transactions in recording order."
    )


class ContractEventRecord(BaseModel):
    event_id: str = Field(description="Event identifier.", examples=["cev_0a1b2c3d4e5f"])
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    event_type: ContractEventType = Field(description="Event type.", examples=["BID_SUBMITTED"])
    stage: ContractStage = Field(description="Stage after the event.", examples=["APPROVAL"])
    actor_role: Optional[str] = Field(
        default=None, description="Role that triggered the event.", examples=["LEGAL_OFFICER"]
    )
    occurred_at: datetime = Field(description="UTC event timestamp.")
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Structured event payload forwarded to the settlement layer.",
        examples=[{"level": 1, "outcome": "APPROVED"}],
    )


class ContractRecord(BaseModel):
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    stage: ContractStage = Field(description="Workflow stage.", examples=["APPROVAL"])
    basic_info: BidBasicInfo
    inflation_protection: InflationProtection
    payment_schedule: PaymentScheduleRecord
    approval_ladder: Optional[ApprovalLadderRecord] = None
    ledger: Optional[MilestoneLedgerRecord] = None
    created_at: datetime
    updated_at: datetime
    revision: int = Field(default=1, description="Incremented on each accepted operation.")
    events: List[ContractEventRecord] = Field(default_factory=list)


class ContractIdempotencyRecord(BaseModel):
    idempotency_key: str = Field(description="Client idempotency key.", examples=["bid-001"])
    request_hash: str = Field(description="Canonical request hash.", examples=["sha256:abc"])
    contract_id: str = Field(description="Contract created for the key.", examples=["ctr_001"])
    created_at: datetime


class LedgerTotals(BaseModel):
    total_amount: Decimal = Field(description="Total contract amount.", examples=["1000.00"])
    total_verified: Decimal = Field(description="Sum of verified amounts.", examples=["600.00"])
    remaining_balance: Decimal = Field(
        description="Total amount minus verified amount.", examples=["400.00"]
    )
    completed_milestones: int = Field(description="Milestones marked completed.", examples=[1])
    over_verified_milestones: List[int] = Field(
        default_factory=list,
        description="Milestone indexes whose verified amount exceeds their allocation.",
        examples=[[]],
    )


class ContractSummary(BaseModel):
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    stage: ContractStage = Field(description="Workflow stage.", examples=["SETTLEMENT"])
    project_name: str = Field(description="Project name.", examples=["Riverside Bridge"])
    builder_name: str = Field(description="Builder name.", examples=["Acme Builders"])
    agency_name: str = Field(description="Agency name.", examples=["City Works Dept"])
    total_amount: Decimal = Field(description="Total contract amount.", examples=["1000.00"])
    approval_state: Optional[ApprovalLadderState] = Field(
        default=None, description="Approval ladder state.", examples=["FULLY_APPROVED"]
    )
    created_at: datetime
    updated_at: datetime
    revision: int


class ContractCreateResponse(BaseModel):
    contract: ContractSummary = Field(description="Created contract summary.")
    approval_ladder: ApprovalLadderRecord = Field(description="Freshly opened approval ladder.")
    latest_event: ContractEventRecord = Field(description="Last event emitted during creation.")


class ContractStateResponse(BaseModel):
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    stage: ContractStage = Field(description="Workflow stage.", examples=["SETTLEMENT"])
    basic_info: BidBasicInfo
    inflation_protection: InflationProtection
    payment_schedule: PaymentScheduleRecord
    approval_ladder: Optional[ApprovalLadderRecord] = None
    ledger: Optional[MilestoneLedgerRecord] = None
    totals: Optional[LedgerTotals] = Field(
        default=None, description="Ledger totals, present once in settlement."
    )
    created_at: datetime
    updated_at: datetime
    revision: int


class ContractListResponse(BaseModel):
    items: List[ContractSummary] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(
        default=None, description="Opaque cursor for the next page.", examples=["ctr_001"]
    )


class ApprovalDecisionResponse(BaseModel):
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    stage: ContractStage = Field(description="Stage after the decision.", examples=["APPROVAL"])
    decided_level: ApprovalLevelRecord = Field(description="The level just decided.")
    approval_ladder: ApprovalLadderRecord = Field(description="Ladder after the decision.")


class TransactionResponse(BaseModel):
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    transaction: TransactionRecord
    milestone: PaymentMilestoneRecord = Field(description="Referenced milestone after the call.")
    totals: LedgerTotals


class ContractEventTimelineResponse(BaseModel):
    contract_id: str = Field(description="Contract identifier.", examples=["ctr_0a1b2c3d4e5f"])
    stage: ContractStage = Field(description="Current stage.", examples=["SETTLEMENT"])
    events: List[ContractEventRecord] = Field(
        default_factory=list, description="Append-only journal in occurrence order."
    )


class ContractSupportabilityConfigResponse(BaseModel):
    store_backend: str = Field(description="Contract store backend.", examples=["IN_MEMORY"])
    backend_ready: bool = Field(description="Whether the store initialized.", examples=[True])
    backend_init_error: Optional[str] = Field(
        default=None,
        description="Stable initialization error code when the store is not ready.",
        examples=["CONTRACT_POSTGRES_DSN_REQUIRED"],
    )
    settlement_backend: str = Field(
        description="Settlement gateway backend.", examples=["IN_MEMORY"]
    )
    lifecycle_enabled: bool = Field(description="Lifecycle routes enabled.", examples=[True])
    support_apis_enabled: bool = Field(description="Support routes enabled.", examples=[True])
