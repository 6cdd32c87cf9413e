"""
Mock subscription provider serving the demo diagnosis scenarios.
"""

from typing import Dict, Any
from fastapi import FastAPI, HTTPException

from shared.logging import get_logger
from shared.test_helpers import TestDataFactory


class MockSubscriptionServer:
    """Mock subscription provider implementation.

    Reprovisioning is deliberately not implemented so that callers
    exercise their handling of a missing provider capability.
    """

    def __init__(self, port: int = 8090):
        self.port = port
        self.logger = get_logger("mock.subscriptions")
        self.app = FastAPI(title="Mock Subscription Provider", version="1.0.0")

        # Timestamps are relative to server start
        self.subscriptions: Dict[str, Dict[str, Any]] = TestDataFactory.create_scenario_subscriptions()
        self.sims: Dict[str, Dict[str, Any]] = {
            sub["sim"]["id"]: sub["sim"] for sub in self.subscriptions.values()
        }

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock provider routes."""

        @self.app.get("/health")
        async def health():
            return {"status": "ok"}

        @self.app.get("/subscriptions/{subscription_id}")
        async def get_subscription(subscription_id: str):
            subscription = self.subscriptions.get(subscription_id)
            if subscription is None:
                self.logger.info("Unknown subscription", subscription_id=subscription_id)
                raise HTTPException(status_code=404, detail="Subscription not found")
            return subscription

        @self.app.get("/sims/{sim_id}")
        async def get_sim(sim_id: str):
            sim = self.sims.get(sim_id)
            if sim is None:
                raise HTTPException(status_code=404, detail="SIM not found")
            return sim


def create_app():
    """Create mock subscription provider application."""
    server = MockSubscriptionServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
