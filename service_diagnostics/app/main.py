"""
Diagnostics service for the eSIM activation platform.
"""

import os
from datetime import datetime

from shared.base_service import BaseService

from .actions.executor import ActionExecutor
from .orchestrator import DiagnosisOrchestrator
from .reasoner.client import FallbackReasoner
from .rules.engine import RuleEngine
from .rules.models import (
    DiagnoseRequest, DiagnoseResponse, RuleDescription, RuleListResponse
)
from .subscriptions.client import SubscriptionClient


class DiagnosticsService(BaseService):
    """Diagnostics service implementation."""

    def __init__(self, port: int = 8020):
        super().__init__("diagnostics", port)

        self.subscription_client = SubscriptionClient(
            self.config.subscription_api_url,
            api_key=self.config.subscription_api_key,
            timeout=self.config.subscription_api_timeout
        )
        self.rule_engine = RuleEngine(self.config.provisioning_threshold_minutes)
        self.reasoner = FallbackReasoner(
            self.config.google_api_key,
            model=self.config.reasoner_model,
            timeout=self.config.reasoner_timeout,
            confidence_threshold=self.config.confidence_threshold
        )
        self.executor = ActionExecutor(self.subscription_client)
        self.orchestrator = DiagnosisOrchestrator(
            self.subscription_client,
            self.rule_engine,
            self.reasoner,
            self.executor,
            metrics=self.metrics,
            confidence_threshold=self.config.confidence_threshold
        )

        self._setup_diagnostics_routes()

    def _setup_diagnostics_routes(self):
        """Set up diagnostics-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint with API documentation."""
            return {
                "service": "diagnostics",
                "message": "eSIM Activation Platform - Diagnostics Service",
                "description": "Rule engine + LLM hybrid for eSIM activation issue diagnosis",
                "version": "1.0.0",
                "capabilities": ["rule_engine", "llm_fallback", "reprovision"],
                "endpoints": {
                    "POST /diagnose": {
                        "description": "Diagnose eSIM activation issues",
                        "body": {
                            "subscription_id": "string (required) - subscription ID",
                            "user_issue": "string (required) - user description of the problem"
                        },
                        "example": {
                            "subscription_id": "sub_test_stuck",
                            "user_issue": "my eSIM has been stuck for 2 hours"
                        }
                    },
                    "GET /diagnose/rules": {"description": "Rules in evaluation order"},
                    "GET /diagnose/stats": {"description": "Rule engine statistics"},
                    "GET /health": {"description": "Health check endpoint"}
                }
            }

        @self.app.post("/diagnose", response_model=DiagnoseResponse)
        async def diagnose(request: DiagnoseRequest):
            """Diagnose an eSIM activation issue."""
            response = await self.orchestrator.diagnose(request.subscription_id, request.user_issue)

            self.metrics.record_business_event(f"diagnosis_{response.method.value}")
            return response

        @self.app.get("/diagnose/rules", response_model=RuleListResponse)
        async def get_rules():
            """List rules in evaluation order."""
            rules = [
                RuleDescription(
                    position=position,
                    name=rule.name,
                    action=rule.action,
                    confidence=rule.confidence,
                    description=rule.description
                )
                for position, rule in enumerate(self.rule_engine.rules, start=1)
            ]
            return RuleListResponse(rules=rules, total=len(rules))

        @self.app.get("/diagnose/stats")
        async def get_stats():
            """Get diagnostics service statistics."""
            return {
                "engine": self.rule_engine.get_engine_stats(),
                "confidence_threshold": self.config.confidence_threshold,
                "reasoner": {
                    "model": self.reasoner.model,
                    "configured": self.reasoner.client is not None
                },
                "timestamp": datetime.now().isoformat()
            }

    def _required_fields(self):
        return ["subscription_id", "user_issue"]

    async def _check_dependencies(self):
        """Check diagnostics service dependencies."""
        healthy = await self.subscription_client.health_check()
        return {"subscription_api": "ok" if healthy else "error"}


def create_app():
    """Create diagnostics service application."""
    service = DiagnosticsService()
    return service.app


if __name__ == "__main__":
    service = DiagnosticsService(port=int(os.getenv("ESIM_PORT", "8020")))
    service.run()
