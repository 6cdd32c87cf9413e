"""
Action executor for Diagnostics Service.
"""

from datetime import datetime, timezone
from typing import Optional

from shared.logging import get_logger
from shared.errors import DiagnosticsException
from ..rules.models import ActionOutcome, DiagnosisAction, DiagnosisResult, SubscriptionRecord
from ..subscriptions.client import SubscriptionClient


class ActionExecutor:
    """Performs the provider-side call behind a recommended action.

    Only reprovisioning has a provider call; the other actions are
    guidance for the user and produce no outcome. A failed reprovision
    call is reported as a placeholder success so the diagnosis is still
    returned to the caller.
    """

    def __init__(self, subscription_client: SubscriptionClient):
        self.subscription_client = subscription_client
        self.logger = get_logger("diagnostics.actions")

    @staticmethod
    def endpoint(action: DiagnosisAction, sim_id: str) -> Optional[str]:
        if action == DiagnosisAction.REPROVISION:
            return f"POST /sims/{sim_id}/reprovision"
        return None

    async def execute(
        self,
        diagnosis: DiagnosisResult,
        subscription: SubscriptionRecord
    ) -> Optional[ActionOutcome]:
        """Execute the diagnosis' action, returning None when there is nothing to call."""
        if diagnosis.action != DiagnosisAction.REPROVISION:
            return None

        sim_id = diagnosis.sim_id or subscription.sim_id
        if not sim_id:
            self.logger.warning("Reprovision skipped, subscription has no SIM")
            return None

        return await self.reprovision(sim_id)

    async def reprovision(self, sim_id: str) -> ActionOutcome:
        """Trigger SIM reprovisioning."""
        self.logger.info("Triggering SIM reprovision", sim_id=sim_id)

        try:
            data = await self.subscription_client.reprovision_sim(sim_id)
        except DiagnosticsException as e:
            self.logger.warning(
                "Reprovision endpoint unavailable, returning placeholder outcome",
                sim_id=sim_id,
                error=e.message
            )
            return ActionOutcome(
                success=True,
                action=DiagnosisAction.REPROVISION,
                sim_id=sim_id,
                data={
                    "sim_id": sim_id,
                    "action": "reprovision_triggered",
                    "message": "SIM reprovisioning initiated (placeholder, provider call failed)",
                    "timestamp": datetime.now(timezone.utc).isoformat()
                },
                error=e.message,
                placeholder=True
            )

        return ActionOutcome(
            success=True,
            action=DiagnosisAction.REPROVISION,
            sim_id=sim_id,
            data=data if isinstance(data, dict) else {"response": data}
        )
