"""
Diagnosis pipeline for Diagnostics Service.

fetch subscription -> rule engine -> (no match) reasoner
-> confidence gate -> action executor -> response
"""

import dataclasses
import time
from typing import List, Optional

from shared.logging import get_logger, set_request_id, set_subscription_context
from shared.metrics import MetricsCollector
from .actions.executor import ActionExecutor
from .reasoner.client import FallbackReasoner
from .rules.engine import RuleEngine
from .rules.models import (
    ActionOutcome, ActionOutcomeResponse, DiagnoseResponse,
    DiagnosisAction, DiagnosisMethod, DiagnosisResult
)
from .subscriptions.client import SubscriptionClient

DEFAULT_CONFIDENCE_THRESHOLD = 80


def apply_confidence_gate(diagnosis: DiagnosisResult, threshold: int = DEFAULT_CONFIDENCE_THRESHOLD) -> DiagnosisResult:
    """Force escalation for diagnoses below the confidence threshold."""
    if diagnosis.confidence >= threshold or diagnosis.action == DiagnosisAction.ESCALATE:
        return diagnosis
    return dataclasses.replace(diagnosis, action=DiagnosisAction.ESCALATE)


class DiagnosisOrchestrator:
    """Runs one diagnosis request end to end."""

    def __init__(
        self,
        subscription_client: SubscriptionClient,
        rule_engine: RuleEngine,
        reasoner: FallbackReasoner,
        executor: ActionExecutor,
        metrics: Optional[MetricsCollector] = None,
        confidence_threshold: int = DEFAULT_CONFIDENCE_THRESHOLD
    ):
        self.subscription_client = subscription_client
        self.rule_engine = rule_engine
        self.reasoner = reasoner
        self.executor = executor
        self.metrics = metrics
        self.confidence_threshold = confidence_threshold
        self.logger = get_logger("diagnostics.orchestrator")

    async def diagnose(self, subscription_id: str, user_issue: str) -> DiagnoseResponse:
        """Diagnose a subscription's activation issue."""
        start_time = time.time()
        set_request_id()
        set_subscription_context(subscription_id)
        api_calls: List[str] = [f"GET /subscriptions/{subscription_id}"]

        self.logger.info("Starting diagnosis", user_issue=user_issue)

        subscription = await self.subscription_client.get_subscription(subscription_id)
        self.logger.info(
            "Subscription fetched",
            subscription_status=subscription.status,
            sim_status=subscription.sim_status
        )

        diagnosis = self.rule_engine.evaluate(subscription, user_issue)
        if diagnosis is not None:
            self.logger.info("Rule matched", rule=diagnosis.rule_name)
            self._count("rule_matches_total", rule=diagnosis.rule_name)
        else:
            self.logger.info("No rule matched, falling back to LLM")
            diagnosis = await self.reasoner.diagnose(subscription, user_issue)
            if diagnosis.method == DiagnosisMethod.LLM:
                api_calls.append(self.reasoner.endpoint)

        gated = apply_confidence_gate(diagnosis, self.confidence_threshold)
        if gated.action != diagnosis.action:
            self.logger.info(
                "Confidence too low, escalating to human",
                confidence=diagnosis.confidence,
                proposed_action=diagnosis.action.value
            )
            self._count("confidence_gate_escalations_total")
        diagnosis = gated

        outcome: Optional[ActionOutcome] = None
        if diagnosis.confidence >= self.confidence_threshold:
            outcome = await self.executor.execute(diagnosis, subscription)
            if outcome is not None:
                api_calls.append(self.executor.endpoint(outcome.action, outcome.sim_id))
                self._count(
                    "actions_executed_total",
                    action=outcome.action.value,
                    placeholder=str(outcome.placeholder).lower()
                )

        duration = time.time() - start_time
        self._count("diagnoses_total", method=diagnosis.method.value)
        if self.metrics:
            self.metrics.observe_histogram("diagnosis_duration_seconds", duration, method=diagnosis.method.value)

        self.logger.info(
            "Diagnosis complete",
            method=diagnosis.method.value,
            action=diagnosis.action.value,
            confidence=diagnosis.confidence
        )

        return DiagnoseResponse(
            method=diagnosis.method,
            rule=diagnosis.rule_name,
            confidence=diagnosis.confidence,
            action=diagnosis.action,
            message=diagnosis.message,
            reasoning=diagnosis.reasoning,
            action_result=ActionOutcomeResponse(**dataclasses.asdict(outcome)) if outcome else None,
            api_calls=api_calls,
            processing_time_ms=round(duration * 1000, 2)
        )

    def _count(self, metric_name: str, **labels):
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
