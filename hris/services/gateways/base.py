"""
Shared plumbing for the payout provider clients.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Raised when a payout provider rejects a call or cannot be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class GatewayConfigurationError(PaymentGatewayError):
    """Raised when a provider is used without its credentials"""
    pass


class GatewayClient:
    """
    Base class holding the httpx client used to talk to a provider.

    `transport` lets callers swap the network layer, e.g. for
    `httpx.MockTransport` in tests.
    """

    provider_name = 'gateway'

    def __init__(self, base_url: str, timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.http_client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.HRIS_PROVIDER_TIMEOUT,
            transport=transport,
        )

    def close(self) -> None:
        self.http_client.close()

    def _send(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body"""
        try:
            response = self.http_client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.provider_name} request to {endpoint} failed: {e}")
            raise PaymentGatewayError(f"{self.provider_name} unreachable: {e}") from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {'raw': response.text}

        if response.status_code >= 400:
            logger.error(f"{self.provider_name} API error: {response.status_code} - {data}")
            message = data.get('message') or data.get('errorMessage') or response.reason_phrase
            raise PaymentGatewayError(
                f"{self.provider_name} API error: {message}",
                status_code=response.status_code,
                payload=data,
            )

        return data
