"""
Subscription provider client for Diagnostics Service.
"""

import httpx
from typing import Dict, Any, Optional
from pydantic import ValidationError as PayloadValidationError

from shared.logging import get_logger
from shared.errors import ExternalServiceError, NotFoundError
from ..rules.models import SimRecord, SubscriptionRecord


class SubscriptionClient:
    """Client for the subscription provider API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("diagnostics.subscriptions.client")

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport
        )

    async def _request(self, method: str, path: str) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path)
        except httpx.TimeoutException:
            self.logger.error("Subscription API timeout", method=method, path=path)
            raise ExternalServiceError("subscriptions", "Subscription API timeout", {"path": path})
        except httpx.RequestError as e:
            self.logger.error("Subscription API request error", method=method, path=path, error=str(e))
            raise ExternalServiceError(
                "subscriptions", "Subscription API unavailable", {"path": path, "error": str(e)}
            )
        except Exception as e:
            self.logger.error("Unexpected subscription API error", method=method, path=path, error=str(e))
            raise ExternalServiceError(
                "subscriptions", "Unexpected subscription API error", {"path": path, "error": str(e)}
            ) from e

        if response.status_code == 404:
            raise NotFoundError(
                f"{path} not found",
                details={"status_code": 404, "body": self._body(response)}
            )

        if response.status_code >= 400:
            self.logger.warning(
                "Subscription API error",
                method=method,
                path=path,
                status_code=response.status_code,
                response=response.text
            )
            raise ExternalServiceError(
                "subscriptions",
                "Subscription API error",
                {"path": path, "status_code": response.status_code, "body": self._body(response)}
            )

        return self._body(response)

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return {"message": response.text}

    async def get_subscription(self, subscription_id: str) -> SubscriptionRecord:
        """Get subscription details including SIM status."""
        data = await self._request("GET", f"/subscriptions/{subscription_id}")
        try:
            return SubscriptionRecord.model_validate(data)
        except PayloadValidationError as e:
            self.logger.error("Malformed subscription payload", error=str(e))
            raise ExternalServiceError(
                "subscriptions", "Malformed subscription payload", {"error": str(e)}
            ) from e

    async def get_sim(self, sim_id: str) -> SimRecord:
        """Get SIM details directly."""
        data = await self._request("GET", f"/sims/{sim_id}")
        try:
            return SimRecord.model_validate(data)
        except PayloadValidationError as e:
            self.logger.error("Malformed SIM payload", error=str(e))
            raise ExternalServiceError(
                "subscriptions", "Malformed SIM payload", {"error": str(e)}
            ) from e

    async def reprovision_sim(self, sim_id: str) -> Dict[str, Any]:
        """Trigger SIM reprovisioning."""
        return await self._request("POST", f"/sims/{sim_id}/reprovision")

    async def health_check(self) -> bool:
        """Check if the subscription provider is reachable."""
        try:
            async with self._client() as client:
                response = await client.get("/health")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
