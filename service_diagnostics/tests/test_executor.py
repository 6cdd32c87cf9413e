"""
Unit tests for the action executor.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from service_diagnostics.app.actions.executor import ActionExecutor
from service_diagnostics.app.subscriptions.client import SubscriptionClient
from service_diagnostics.app.rules.models import (
    DiagnosisAction, DiagnosisResult, SubscriptionRecord
)
from shared.errors import ExternalServiceError, NotFoundError
from shared.test_helpers import create_mock_sim, create_mock_subscription


@pytest.fixture
def subscription_client():
    client = MagicMock()
    client.reprovision_sim = AsyncMock(return_value={"id": "sim_1", "status": "provisioning"})
    return client


@pytest.fixture
def executor(subscription_client):
    return ActionExecutor(subscription_client)


@pytest.fixture
def subscription():
    return SubscriptionRecord.model_validate(
        create_mock_subscription("sub_1", "pending", sim=create_mock_sim("sim_1", "inactive"))
    )


def diagnosis(action, sim_id=None):
    return DiagnosisResult(confidence=95, action=action, message="m", reasoning="r", sim_id=sim_id)


class TestActionExecutor:
    """Test cases for ActionExecutor."""

    @pytest.mark.asyncio
    async def test_reprovision_success(self, executor, subscription_client, subscription):
        outcome = await executor.execute(diagnosis(DiagnosisAction.REPROVISION, "sim_1"), subscription)

        subscription_client.reprovision_sim.assert_awaited_once_with("sim_1")
        assert outcome.success is True
        assert outcome.placeholder is False
        assert outcome.sim_id == "sim_1"
        assert outcome.data["status"] == "provisioning"

    @pytest.mark.asyncio
    async def test_reprovision_uses_subscription_sim(self, executor, subscription_client, subscription):
        """Diagnoses without a SIM id target the subscription's SIM."""
        outcome = await executor.execute(diagnosis(DiagnosisAction.REPROVISION), subscription)

        subscription_client.reprovision_sim.assert_awaited_once_with("sim_1")
        assert outcome.sim_id == "sim_1"

    @pytest.mark.asyncio
    async def test_missing_endpoint_returns_placeholder(self, executor, subscription_client, subscription):
        """A provider failure becomes a placeholder success outcome."""
        subscription_client.reprovision_sim.side_effect = NotFoundError("/sims/sim_1/reprovision not found")

        outcome = await executor.execute(diagnosis(DiagnosisAction.REPROVISION, "sim_1"), subscription)

        assert outcome.success is True
        assert outcome.placeholder is True
        assert outcome.data["action"] == "reprovision_triggered"
        assert outcome.data["sim_id"] == "sim_1"
        assert "timestamp" in outcome.data
        assert "not found" in outcome.error

    @pytest.mark.asyncio
    async def test_unavailable_provider_returns_placeholder(self, executor, subscription_client, subscription):
        subscription_client.reprovision_sim.side_effect = ExternalServiceError(
            "subscriptions", "Subscription API unavailable"
        )

        outcome = await executor.execute(diagnosis(DiagnosisAction.REPROVISION, "sim_1"), subscription)

        assert outcome.placeholder is True
        assert outcome.error == "subscriptions: Subscription API unavailable"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sim_id", ["sim_1", "sim\x00bad"])
    async def test_unexpected_client_error_returns_placeholder(self, subscription, sim_id):
        """Errors outside the HTTP error family still yield a placeholder outcome."""
        def handler(request):
            raise RuntimeError("transport blew up")

        executor = ActionExecutor(SubscriptionClient(
            "https://provider.test",
            transport=httpx.MockTransport(handler)
        ))

        outcome = await executor.execute(diagnosis(DiagnosisAction.REPROVISION, sim_id), subscription)

        assert outcome.success is True
        assert outcome.placeholder is True
        assert outcome.sim_id == sim_id
        assert outcome.error.startswith("subscriptions: Unexpected subscription API error")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [
        DiagnosisAction.WAIT,
        DiagnosisAction.ROUTE_TO_PAYMENT,
        DiagnosisAction.ROUTE_TO_PAYMENT_RESTORATION,
        DiagnosisAction.ROUTE_TO_SETTINGS_GUIDE,
        DiagnosisAction.INFORM_ONLY,
        DiagnosisAction.ESCALATE,
    ])
    async def test_non_provider_actions(self, executor, subscription_client, subscription, action):
        assert await executor.execute(diagnosis(action), subscription) is None
        subscription_client.reprovision_sim.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reprovision_without_sim(self, executor, subscription_client):
        record = SubscriptionRecord.model_validate({"status": "pending"})

        assert await executor.execute(diagnosis(DiagnosisAction.REPROVISION), record) is None
        subscription_client.reprovision_sim.assert_not_awaited()

    def test_endpoint(self):
        assert ActionExecutor.endpoint(DiagnosisAction.REPROVISION, "sim_1") == "POST /sims/sim_1/reprovision"
        assert ActionExecutor.endpoint(DiagnosisAction.WAIT, "sim_1") is None
