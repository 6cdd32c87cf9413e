"""
Generative-model fallback for Diagnostics Service.

Used only when no rule matches. The model is asked for a JSON diagnosis,
but replies are free text, so the JSON object is located by pattern
search and validated before use. Every failure inside this boundary is
turned into an escalation diagnosis with confidence 0; callers never see
an exception from ``diagnose``.
"""

import asyncio
import json
import re
from typing import Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PayloadValidationError

from shared.logging import get_logger
from shared.errors import ReasonerError
from ..rules.models import DiagnosisAction, DiagnosisMethod, DiagnosisResult, SubscriptionRecord

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

FAILURE_MESSAGE = "Unable to diagnose automatically. A support agent will review your case."

PROMPT_TEMPLATE = """You are a diagnostic assistant for a mobile eSIM service. Your job is to diagnose eSIM activation issues when the rule engine cannot determine the problem.

**User's Issue:**
"{user_issue}"

**Current API State:**
{subscription}

**Your Task:**
Analyze the user's description and API state to determine:
1. The most likely root cause
2. What action should be taken
3. Your confidence level (0-100)

**Important Context:**
- eSIM activation normally takes 10-15 minutes
- Common issues: provisioning timeout, billing holds, device configuration, carrier sync errors
- If the API shows unknown error codes, interpret them based on the error message
- If confidence is below {threshold}%, recommend escalation to human support

**Respond ONLY with valid JSON in this exact format:**
{{
  "diagnosis": "brief description of the likely issue",
  "recommendedAction": {actions},
  "confidence": 0-100,
  "reasoning": "explanation of why you reached this conclusion",
  "userMessage": "friendly message to send to the user explaining next steps"
}}"""


class ReasonerReply(BaseModel):
    """Diagnosis payload expected inside the model's reply."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    diagnosis: str
    recommended_action: DiagnosisAction = Field(..., alias="recommendedAction")
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str = ""
    user_message: Optional[str] = Field(None, alias="userMessage")


def extract_reply(text: str) -> ReasonerReply:
    """Find and validate the JSON diagnosis embedded in free-form model output."""
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise ReasonerError("LLM did not return valid JSON")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ReasonerError(f"LLM returned malformed JSON: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ReasonerError("LLM JSON payload is not an object")

    try:
        return ReasonerReply.model_validate(payload)
    except PayloadValidationError as e:
        raise ReasonerError(f"LLM diagnosis failed validation: {e.error_count()} error(s)",
                            details={"errors": e.errors(include_url=False)}) from e


def failure_diagnosis(error: str) -> DiagnosisResult:
    """Escalation returned whenever the reasoner cannot produce a diagnosis."""
    return DiagnosisResult(
        confidence=0,
        action=DiagnosisAction.ESCALATE,
        message=FAILURE_MESSAGE,
        reasoning=f"LLM error: {error}",
        method=DiagnosisMethod.LLM_FAILED
    )


class FallbackReasoner:
    """Asks a generative model to diagnose issues the rules do not cover."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        timeout: float = 30.0,
        confidence_threshold: int = 80
    ):
        self.model = model
        self.timeout = timeout
        self.confidence_threshold = confidence_threshold
        self.logger = get_logger("diagnostics.reasoner")
        self.client = genai.Client(api_key=api_key) if api_key else None

    @property
    def endpoint(self) -> str:
        return f"POST /models/{self.model}:generateContent"

    def build_prompt(self, subscription: SubscriptionRecord, user_issue: str) -> str:
        state = subscription.model_dump(mode="json", by_alias=True, exclude_none=True)
        actions = " | ".join(f'"{action.value}"' for action in DiagnosisAction)
        return PROMPT_TEMPLATE.format(
            user_issue=user_issue,
            subscription=json.dumps(state, indent=2),
            threshold=self.confidence_threshold,
            actions=actions
        )

    async def _generate(self, prompt: str) -> str:
        if self.client is None:
            raise ReasonerError("Generative model API key is not configured")

        response = await asyncio.wait_for(
            self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(temperature=0.2)
            ),
            timeout=self.timeout
        )
        return response.text or ""

    async def diagnose(self, subscription: SubscriptionRecord, user_issue: str) -> DiagnosisResult:
        """Diagnose with the generative model; never raises."""
        prompt = self.build_prompt(subscription, user_issue)

        try:
            text = await self._generate(prompt)
            reply = extract_reply(text)
        except asyncio.TimeoutError:
            self.logger.error("LLM timeout", model=self.model, timeout=self.timeout)
            return failure_diagnosis(f"timed out after {self.timeout}s")
        except ReasonerError as e:
            self.logger.error("LLM reply unusable", model=self.model, error=e.message)
            return failure_diagnosis(e.message)
        except Exception as e:
            self.logger.error("LLM request failed", model=self.model, error=str(e))
            return failure_diagnosis(str(e))

        self.logger.info(
            "LLM diagnosis",
            diagnosis=reply.diagnosis,
            action=reply.recommended_action.value,
            confidence=reply.confidence
        )

        return DiagnosisResult(
            confidence=reply.confidence,
            action=reply.recommended_action,
            message=reply.user_message or reply.diagnosis,
            reasoning=reply.reasoning,
            method=DiagnosisMethod.LLM
        )
