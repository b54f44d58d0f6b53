"""
Flutterwave client for salary bank transfers.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx
from django.conf import settings

from .base import GatewayClient, GatewayConfigurationError, PaymentGatewayError

logger = logging.getLogger(__name__)


class FlutterwaveClient(GatewayClient):
    """
    Thin wrapper over the Flutterwave v3 Transfers API.

    Amounts are sent in whole currency units.
    """

    provider_name = 'Flutterwave'

    def __init__(self, secret_key: str, base_url: Optional[str] = None, currency: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        if not secret_key:
            raise GatewayConfigurationError('Flutterwave not configured. Payment processing unavailable.')

        super().__init__(base_url or settings.FLUTTERWAVE_BASE_URL, timeout=timeout, transport=transport)
        self.secret_key = secret_key
        self.currency = currency or settings.FLUTTERWAVE_CURRENCY

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json',
        }

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        data = self._send(method, endpoint, headers=self._headers(), **kwargs)
        if data.get('status') == 'error':
            raise PaymentGatewayError(
                f"Flutterwave API error: {data.get('message', 'unknown error')}",
                payload=data,
            )
        return data

    def initiate_transfer(self, amount, account_number: str, account_bank: str,
                          narration: str, beneficiary_name: str,
                          reference: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a bank transfer.

        Returns the provider response; the transfer id is under `data.id`
        and our reference under `data.reference`.
        """
        try:
            amount = Decimal(str(amount))
        except (ArithmeticError, ValueError):
            raise PaymentGatewayError(f"Invalid amount provided: {amount}. Amount must be a positive number.")

        if amount <= 0:
            raise PaymentGatewayError(f"Invalid amount provided: {amount}. Amount must be a positive number.")

        validated_amount = int(amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        if validated_amount <= 0:
            raise PaymentGatewayError(f"Amount must be a positive number after validation. Provided: {amount}")

        payload = {
            'account_number': account_number,
            'account_bank': account_bank,
            'amount': validated_amount,
            'narration': narration,
            'currency': self.currency,
            'beneficiary_name': beneficiary_name,
        }
        if reference:
            payload['reference'] = reference

        logger.info(f"Initiating Flutterwave transfer of {validated_amount} {self.currency} to bank {account_bank}")
        return self._request('POST', '/transfers', json=payload)

    def verify_transfer(self, transfer_id: str) -> Dict[str, Any]:
        """Fetch the current state of a transfer"""
        if not transfer_id:
            raise PaymentGatewayError('Transfer id is required for verification')
        return self._request('GET', f'/transfers/{transfer_id}')


def get_flutterwave_client() -> FlutterwaveClient:
    """Build a client from settings"""
    if not settings.FLUTTERWAVE_SECRET_KEY:
        logger.warning('Flutterwave keys not configured. Payment functionality will not work.')
    return FlutterwaveClient(settings.FLUTTERWAVE_SECRET_KEY)


def get_supported_banks():
    """
    Banks available for transfers.

    Bank codes are maintained in our own database, not fetched from the provider.
    """
    from ...models import Bank

    return list(Bank.objects.order_by('name').values('id', 'name', 'code'))
