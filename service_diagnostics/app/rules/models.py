"""
Diagnosis data models for the Diagnostics Service.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states known to the rule engine."""
    PENDING = "pending"
    INITIATED = "initiated"
    ACTIVE = "active"
    RESTRICTED = "restricted"
    ENDED = "ended"


class SimStatus(str, Enum):
    """SIM provisioning states."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


class DiagnosisAction(str, Enum):
    """Remediation a diagnosis can recommend."""
    REPROVISION = "reprovision"
    ROUTE_TO_PAYMENT = "route_to_payment"
    ROUTE_TO_PAYMENT_RESTORATION = "route_to_payment_restoration"
    ROUTE_TO_SETTINGS_GUIDE = "route_to_settings_guide"
    WAIT = "wait"
    INFORM_ONLY = "inform_only"
    ESCALATE = "escalate"


class DiagnosisMethod(str, Enum):
    """Which path produced a diagnosis."""
    RULE_ENGINE = "rule_engine"
    LLM = "llm"
    LLM_FAILED = "llm_failed"


class ProviderRecord(BaseModel):
    """Fields shared by provider payloads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @field_validator("created_at", mode="wrap")
    @classmethod
    def _unparseable_timestamp_is_missing(cls, value, handler):
        # Unparseable timestamps count as missing
        try:
            return handler(value)
        except ValidationError:
            return None


class SimRecord(ProviderRecord):
    """SIM as returned by the subscription provider."""


class SubscriptionRecord(ProviderRecord):
    """Subscription with its nested SIM.

    Status values are kept as raw strings: providers may add lifecycle
    states the rules do not know about, and those must simply fail to
    match rather than fail validation.
    """

    sim: Optional[SimRecord] = None

    @property
    def sim_status(self) -> Optional[str]:
        return self.sim.status if self.sim else None

    @property
    def sim_id(self) -> Optional[str]:
        return self.sim.id if self.sim else None


@dataclass
class DiagnosisResult:
    """Structured diagnosis from the rule engine or the reasoner."""
    confidence: int
    action: DiagnosisAction
    message: str
    reasoning: str
    method: DiagnosisMethod = DiagnosisMethod.RULE_ENGINE
    rule_name: Optional[str] = None
    sim_id: Optional[str] = None


@dataclass
class ActionOutcome:
    """Result of executing a recommended action."""
    success: bool
    action: DiagnosisAction
    sim_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    placeholder: bool = False


class DiagnoseRequest(BaseModel):
    """Request model for a diagnosis."""
    subscription_id: str = Field(..., min_length=1, description="Subscription ID")
    user_issue: str = Field(..., min_length=1, description="User description of the problem")


class ActionOutcomeResponse(BaseModel):
    """Response model for an executed action."""
    success: bool
    action: DiagnosisAction
    sim_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    placeholder: bool = Field(False, description="True when the provider call failed and the outcome was synthesized")


class DiagnoseResponse(BaseModel):
    """Response model for a diagnosis."""
    method: DiagnosisMethod = Field(..., description="Path that produced the diagnosis")
    rule: Optional[str] = Field(None, description="Matched rule name for rule engine diagnoses")
    confidence: int = Field(..., ge=0, le=100)
    action: DiagnosisAction
    message: str = Field(..., description="User-facing message")
    reasoning: str = Field(..., description="Diagnostic reasoning, not shown to end users")
    action_result: Optional[ActionOutcomeResponse] = None
    api_calls: List[str] = Field(default_factory=list, description="Upstream calls performed")
    processing_time_ms: float = Field(..., description="Time spent handling the request")


class RuleDescription(BaseModel):
    """Response model describing one rule."""
    position: int
    name: str
    action: DiagnosisAction
    confidence: int
    description: str


class RuleListResponse(BaseModel):
    """Response model for the rule catalogue."""
    rules: List[RuleDescription]
    total: int
