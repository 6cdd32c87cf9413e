"""
Rule evaluation engine for the Diagnostics Service.

Rules are evaluated in a fixed order and the first match wins. The order
is not sorted by confidence: it is part of the engine's observable
behaviour and must not be rearranged.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger
from .models import (
    DiagnosisAction, DiagnosisMethod, DiagnosisResult,
    SimStatus, SubscriptionRecord, SubscriptionStatus
)

PROVISIONING_THRESHOLD_MINUTES = 15

NO_SERVICE_KEYWORDS = ("no service", "no data", "not working", "no signal")
ACTIVATION_FAILED_KEYWORDS = ("activation failed",)

RESET_MESSAGE = (
    "We detected your activation was stuck. We've reset it. Please restart "
    "your phone in 2 minutes and check again."
)


def activation_started_at(subscription: SubscriptionRecord) -> Optional[datetime]:
    """Subscription creation time, falling back to the SIM's."""
    if subscription.created_at is not None:
        return subscription.created_at
    if subscription.sim is not None:
        return subscription.sim.created_at
    return None


def minutes_since_activation(subscription: SubscriptionRecord, now: Optional[datetime] = None) -> int:
    """Whole minutes elapsed since activation started.

    Without any timestamp the activation is assumed to have just started.
    Naive timestamps are read as UTC.
    """
    started_at = activation_started_at(subscription)
    if started_at is None:
        return 0

    now = now or datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed_seconds = (now - started_at).total_seconds()
    return max(0, int(elapsed_seconds // 60))


def mentions_any(user_issue: str, keywords) -> bool:
    """Case-insensitive substring match against any keyword."""
    text = (user_issue or "").lower()
    return any(keyword in text for keyword in keywords)


@dataclass
class EvaluationContext:
    """Inputs shared by every rule during one evaluation."""
    subscription: SubscriptionRecord
    user_issue: str
    now: datetime

    @property
    def minutes_elapsed(self) -> int:
        return minutes_since_activation(self.subscription, self.now)


@dataclass
class DiagnosticRule:
    """A named predicate producing a diagnosis or abstaining."""
    name: str
    action: DiagnosisAction
    confidence: int
    description: str
    check: Callable[[EvaluationContext], Optional[DiagnosisResult]]


class RuleEngine:
    """Ordered first-match rule evaluator."""

    def __init__(self, provisioning_threshold_minutes: int = PROVISIONING_THRESHOLD_MINUTES):
        self.logger = get_logger("diagnostics.rule_engine")
        self.provisioning_threshold_minutes = provisioning_threshold_minutes
        self.rules: List[DiagnosticRule] = [
            DiagnosticRule(
                "provisioning_stuck", DiagnosisAction.REPROVISION, 95,
                "SIM inactive, subscription pending, activation older than the threshold",
                self._rule_provisioning_stuck
            ),
            DiagnosticRule(
                "billing_hold", DiagnosisAction.ROUTE_TO_PAYMENT, 98,
                "SIM inactive, subscription initiated (first invoice unpaid)",
                self._rule_billing_hold
            ),
            DiagnosticRule(
                "normal_delay", DiagnosisAction.WAIT, 90,
                "SIM inactive, subscription pending, activation within the threshold",
                self._rule_normal_delay
            ),
            DiagnosticRule(
                "device_config", DiagnosisAction.ROUTE_TO_SETTINGS_GUIDE, 85,
                "SIM and subscription active but the user reports no service",
                self._rule_device_config
            ),
            DiagnosticRule(
                "payment_overdue", DiagnosisAction.ROUTE_TO_PAYMENT_RESTORATION, 98,
                "Subscription restricted",
                self._rule_payment_overdue
            ),
            DiagnosticRule(
                "subscription_ended", DiagnosisAction.INFORM_ONLY, 100,
                "Subscription ended",
                self._rule_subscription_ended
            ),
            DiagnosticRule(
                "activation_failed", DiagnosisAction.REPROVISION, 85,
                "User reports that activation failed",
                self._rule_activation_failed
            ),
        ]

    def evaluate(
        self,
        subscription: SubscriptionRecord,
        user_issue: str,
        now: Optional[datetime] = None
    ) -> Optional[DiagnosisResult]:
        """Return the first matching rule's diagnosis, or None when no rule matches."""
        context = EvaluationContext(
            subscription=subscription,
            user_issue=user_issue,
            now=now or datetime.now(timezone.utc)
        )

        for rule in self.rules:
            result = rule.check(context)
            if result is not None:
                self.logger.debug(
                    "Rule matched",
                    rule=rule.name,
                    action=result.action.value,
                    confidence=result.confidence
                )
                return result

        self.logger.debug(
            "No rule matched",
            subscription_status=subscription.status,
            sim_status=subscription.sim_status
        )
        return None

    def _diagnosis(self, rule_name: str, message: str, reasoning: str,
                   sim_id: Optional[str] = None) -> DiagnosisResult:
        rule = self.get_rule(rule_name)
        return DiagnosisResult(
            confidence=rule.confidence,
            action=rule.action,
            message=message,
            reasoning=reasoning,
            method=DiagnosisMethod.RULE_ENGINE,
            rule_name=rule.name,
            sim_id=sim_id
        )

    def _is_pending_activation(self, context: EvaluationContext) -> bool:
        return (
            context.subscription.sim_status == SimStatus.INACTIVE.value
            and context.subscription.status == SubscriptionStatus.PENDING.value
        )

    def _rule_provisioning_stuck(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        if not self._is_pending_activation(context):
            return None

        minutes = context.minutes_elapsed
        if minutes <= self.provisioning_threshold_minutes:
            return None

        return self._diagnosis(
            "provisioning_stuck",
            RESET_MESSAGE,
            f"Provisioning has been pending for {minutes} minutes "
            f"(>{self.provisioning_threshold_minutes} min threshold)",
            sim_id=context.subscription.sim_id
        )

    def _rule_billing_hold(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        subscription = context.subscription
        if (subscription.sim_status != SimStatus.INACTIVE.value
                or subscription.status != SubscriptionStatus.INITIATED.value):
            return None

        return self._diagnosis(
            "billing_hold",
            "Your activation is on hold due to a payment issue. "
            "Please update your payment method to continue.",
            "Subscription is in 'initiated' status, indicating unpaid first invoice"
        )

    def _rule_normal_delay(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        if not self._is_pending_activation(context):
            return None

        minutes = context.minutes_elapsed
        if minutes > self.provisioning_threshold_minutes:
            return None

        minutes_remaining = math.ceil(self.provisioning_threshold_minutes - minutes)
        return self._diagnosis(
            "normal_delay",
            "Your activation is in progress. This usually takes 10-15 minutes. "
            f"Please wait {minutes_remaining} more minute(s) and restart your phone.",
            f"Only {minutes} minutes have elapsed - still within normal activation window"
        )

    def _rule_device_config(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        subscription = context.subscription
        if (subscription.sim_status != SimStatus.ACTIVE.value
                or subscription.status != SubscriptionStatus.ACTIVE.value):
            return None
        if not mentions_any(context.user_issue, NO_SERVICE_KEYWORDS):
            return None

        return self._diagnosis(
            "device_config",
            "Your line is active on our end. Let's check your device settings:\n"
            "1. Is your eSIM selected as the default for calls/data?\n"
            "2. Is Airplane Mode off?\n"
            "3. Have you restarted your phone?",
            "Backend shows active status but user reports no service - "
            "likely device configuration issue"
        )

    def _rule_payment_overdue(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        if context.subscription.status != SubscriptionStatus.RESTRICTED.value:
            return None

        return self._diagnosis(
            "payment_overdue",
            "Your service is restricted due to an overdue payment. "
            "Update your payment method to restore service immediately.",
            "Subscription status is 'restricted' indicating service suspension"
        )

    def _rule_subscription_ended(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        if context.subscription.status != SubscriptionStatus.ENDED.value:
            return None

        return self._diagnosis(
            "subscription_ended",
            "This subscription has been canceled. If you'd like to reactivate service, "
            "please contact support or purchase a new plan.",
            "Subscription is in terminal 'ended' state"
        )

    def _rule_activation_failed(self, context: EvaluationContext) -> Optional[DiagnosisResult]:
        # Triggered by wording alone, whatever the provider reports
        if not mentions_any(context.user_issue, ACTIVATION_FAILED_KEYWORDS):
            return None

        return self._diagnosis(
            "activation_failed",
            RESET_MESSAGE,
            "User reports a failed activation; retrying provisioning",
            sim_id=context.subscription.sim_id
        )

    def get_rule(self, name: str) -> Optional[DiagnosticRule]:
        """Get a rule by name."""
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "total_rules": len(self.rules),
            "rule_order": [rule.name for rule in self.rules],
            "provisioning_threshold_minutes": self.provisioning_threshold_minutes,
            "min_rule_confidence": min(rule.confidence for rule in self.rules),
        }
