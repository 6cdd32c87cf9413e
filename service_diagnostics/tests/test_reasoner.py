"""
Unit tests for the generative-model fallback.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from service_diagnostics.app.reasoner.client import (
    FallbackReasoner, extract_reply, failure_diagnosis, FAILURE_MESSAGE
)
from service_diagnostics.app.rules.models import (
    DiagnosisAction, DiagnosisMethod, SubscriptionRecord
)
from shared.errors import ReasonerError
from shared.test_helpers import create_mock_sim, create_mock_subscription


@pytest.fixture
def subscription():
    """Active subscription with an unknown SIM state."""
    return SubscriptionRecord.model_validate(create_mock_subscription(
        "sub_test_error",
        "active",
        created_minutes_ago=30,
        sim=create_mock_sim("sim_test_error", "unknown"),
        error={"code": "ERR_CARRIER_SYNC_4031"}
    ))


@pytest.fixture
def reasoner():
    """Reasoner without credentials; tests stub the model call."""
    return FallbackReasoner(api_key=None, model="gemini-2.5-flash", timeout=1.0)


def model_reply(**overrides):
    reply = {
        "diagnosis": "Carrier profile sync failed",
        "recommendedAction": "reprovision",
        "confidence": 88,
        "reasoning": "Error code indicates a rejected profile push",
        "userMessage": "We're resetting your eSIM profile."
    }
    reply.update(overrides)
    return reply


class TestExtractReply:
    """Test cases for JSON extraction from model output."""

    def test_plain_json(self):
        reply = extract_reply(json.dumps(model_reply()))
        assert reply.recommended_action == DiagnosisAction.REPROVISION
        assert reply.confidence == 88

    def test_json_embedded_in_prose(self):
        """The JSON object is found inside surrounding text and code fences."""
        text = "Sure! Here is my analysis:\n```json\n" + json.dumps(model_reply()) + "\n```\nHope it helps."
        reply = extract_reply(text)
        assert reply.diagnosis == "Carrier profile sync failed"
        assert reply.user_message == "We're resetting your eSIM profile."

    def test_no_json(self):
        with pytest.raises(ReasonerError, match="did not return valid JSON"):
            extract_reply("I cannot help with that.")

    def test_malformed_json(self):
        with pytest.raises(ReasonerError, match="malformed JSON") as exc_info:
            extract_reply('{"diagnosis": "x", "confidence": }')
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    def test_unknown_action(self):
        with pytest.raises(ReasonerError, match="failed validation") as exc_info:
            extract_reply(json.dumps(model_reply(recommendedAction="factory_reset")))
        assert exc_info.value.__cause__ is not None

    def test_confidence_out_of_range(self):
        with pytest.raises(ReasonerError):
            extract_reply(json.dumps(model_reply(confidence=150)))

    def test_user_message_optional(self):
        payload = model_reply()
        del payload["userMessage"]
        assert extract_reply(json.dumps(payload)).user_message is None


class TestFallbackReasoner:
    """Test cases for FallbackReasoner."""

    def test_failure_diagnosis(self):
        result = failure_diagnosis("boom")
        assert result.action == DiagnosisAction.ESCALATE
        assert result.confidence == 0
        assert result.method == DiagnosisMethod.LLM_FAILED
        assert result.message == FAILURE_MESSAGE
        assert result.reasoning == "LLM error: boom"

    def test_prompt_contains_issue_and_state(self, reasoner, subscription):
        prompt = reasoner.build_prompt(subscription, "getting a weird error message")

        assert '"getting a weird error message"' in prompt
        assert '"status": "active"' in prompt
        assert "ERR_CARRIER_SYNC_4031" in prompt
        assert '"createdAt"' in prompt
        assert '"route_to_settings_guide"' in prompt
        assert "below 80%" in prompt

    def test_endpoint(self, reasoner):
        assert reasoner.endpoint == "POST /models/gemini-2.5-flash:generateContent"

    @pytest.mark.asyncio
    async def test_diagnose_success(self, reasoner, subscription):
        with patch.object(reasoner, "_generate", new_callable=AsyncMock) as mock_generate:
            mock_generate.return_value = "Analysis:\n" + json.dumps(model_reply())

            result = await reasoner.diagnose(subscription, "getting a weird error message")

        assert result.method == DiagnosisMethod.LLM
        assert result.action == DiagnosisAction.REPROVISION
        assert result.confidence == 88
        assert result.message == "We're resetting your eSIM profile."
        assert result.reasoning == "Error code indicates a rejected profile push"

    @pytest.mark.asyncio
    async def test_message_falls_back_to_diagnosis(self, reasoner, subscription):
        payload = model_reply()
        del payload["userMessage"]
        with patch.object(reasoner, "_generate", new_callable=AsyncMock, return_value=json.dumps(payload)):
            result = await reasoner.diagnose(subscription, "it just doesn't work")

        assert result.message == "Carrier profile sync failed"

    @pytest.mark.asyncio
    async def test_unconfigured_key_escalates(self, reasoner, subscription):
        """Without an API key the reasoner reports failure instead of raising."""
        result = await reasoner.diagnose(subscription, "it just doesn't work")

        assert result.method == DiagnosisMethod.LLM_FAILED
        assert result.action == DiagnosisAction.ESCALATE
        assert result.confidence == 0
        assert "not configured" in result.reasoning

    @pytest.mark.asyncio
    async def test_malformed_output_escalates(self, reasoner, subscription):
        with patch.object(reasoner, "_generate", new_callable=AsyncMock, return_value="no json here"):
            result = await reasoner.diagnose(subscription, "it just doesn't work")

        assert result.method == DiagnosisMethod.LLM_FAILED
        assert result.reasoning == "LLM error: LLM did not return valid JSON"

    @pytest.mark.asyncio
    async def test_transport_error_escalates(self, reasoner, subscription):
        with patch.object(reasoner, "_generate", new_callable=AsyncMock,
                          side_effect=ConnectionError("connection reset")):
            result = await reasoner.diagnose(subscription, "it just doesn't work")

        assert result.action == DiagnosisAction.ESCALATE
        assert result.confidence == 0
        assert "connection reset" in result.reasoning

    @pytest.mark.asyncio
    async def test_timeout_escalates(self, reasoner, subscription):
        with patch.object(reasoner, "_generate", new_callable=AsyncMock,
                          side_effect=asyncio.TimeoutError()):
            result = await reasoner.diagnose(subscription, "it just doesn't work")

        assert result.method == DiagnosisMethod.LLM_FAILED
        assert "timed out" in result.reasoning

    @pytest.mark.asyncio
    async def test_generate_calls_model(self, subscription):
        """The configured model is called through the async client."""
        with patch("service_diagnostics.app.reasoner.client.genai.Client") as mock_client_cls:
            mock_client = MagicMock()
            mock_client.aio.models.generate_content = AsyncMock(
                return_value=MagicMock(text=json.dumps(model_reply(confidence=91)))
            )
            mock_client_cls.return_value = mock_client

            reasoner = FallbackReasoner(api_key="test-key", model="gemini-2.5-flash")
            result = await reasoner.diagnose(subscription, "it just doesn't work")

        mock_client_cls.assert_called_once_with(api_key="test-key")
        call_kwargs = mock_client.aio.models.generate_content.call_args.kwargs
        assert call_kwargs["model"] == "gemini-2.5-flash"
        assert "it just doesn't work" in call_kwargs["contents"]
        assert result.confidence == 91
