"""
Safaricom Daraja client for M-Pesa salary disbursements (B2C).
"""

import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx
from django.conf import settings

from .base import GatewayClient, GatewayConfigurationError, PaymentGatewayError

logger = logging.getLogger(__name__)


class DarajaClient(GatewayClient):
    """
    Daraja API client.

    Access tokens are fetched with client credentials and cached until
    shortly before they expire.
    """

    provider_name = 'Daraja'
    TOKEN_SAFETY_MARGIN = 60

    def __init__(self, consumer_key: str, consumer_secret: str, shortcode: str,
                 initiator_name: str, security_credential: str,
                 result_url: str, timeout_url: str,
                 base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        if not consumer_key or not consumer_secret:
            raise GatewayConfigurationError('M-Pesa not configured. Payment processing unavailable.')

        super().__init__(base_url or settings.DARAJA_BASE_URL, timeout=timeout, transport=transport)
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.initiator_name = initiator_name
        self.security_credential = security_credential
        self.result_url = result_url
        self.timeout_url = timeout_url

        self._access_token = None
        self._token_expires_at = 0.0

    def get_access_token(self) -> str:
        """Get an OAuth access token, reusing the cached one while valid"""
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        data = self._send(
            'GET',
            '/oauth/v1/generate',
            params={'grant_type': 'client_credentials'},
            auth=(self.consumer_key, self.consumer_secret),
        )
        token = data.get('access_token')
        if not token:
            raise PaymentGatewayError('Daraja did not return an access token', payload=data)

        expires_in = int(data.get('expires_in', 3600))
        self._access_token = token
        self._token_expires_at = time.monotonic() + max(expires_in - self.TOKEN_SAFETY_MARGIN, 0)
        return token

    def _request(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            'Authorization': f'Bearer {self.get_access_token()}',
            'Content-Type': 'application/json',
        }
        return self._send('POST', endpoint, headers=headers, json=payload)

    def b2c_payment(self, amount, phone: str, remarks: str, occasion: str = 'Salary') -> Dict[str, Any]:
        """
        Send money from the organisation shortcode to a phone number.

        The response carries `ConversationID`; the outcome arrives later on
        the result URL or through `transaction_status`.
        """
        amount = Decimal(str(amount))
        whole_amount = int(amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        if whole_amount <= 0:
            raise PaymentGatewayError(f"Invalid amount provided: {amount}. Amount must be a positive number.")

        payload = {
            'InitiatorName': self.initiator_name,
            'SecurityCredential': self.security_credential,
            'CommandID': 'SalaryPayment',
            'Amount': whole_amount,
            'PartyA': self.shortcode,
            'PartyB': phone,
            'Remarks': remarks[:100],
            'QueueTimeOutURL': self.timeout_url,
            'ResultURL': self.result_url,
            'Occasion': occasion,
        }

        logger.info(f"Initiating M-Pesa B2C payment of {whole_amount} to {phone}")
        data = self._request('/mpesa/b2c/v1/paymentrequest', payload)

        if str(data.get('ResponseCode', '0')) != '0':
            raise PaymentGatewayError(
                f"M-Pesa request rejected: {data.get('ResponseDescription', 'unknown error')}",
                payload=data,
            )
        return data

    def transaction_status(self, transaction_id: str) -> Dict[str, Any]:
        """
        Query the status of a B2C transaction.

        When the provider has already produced the outcome it is under
        `Result.ResultCode` (0 means success).
        """
        if not transaction_id:
            raise PaymentGatewayError('Transaction id is required for verification')

        payload = {
            'Initiator': self.initiator_name,
            'SecurityCredential': self.security_credential,
            'CommandID': 'TransactionStatusQuery',
            'TransactionID': transaction_id,
            'OriginatorConversationID': transaction_id,
            'PartyA': self.shortcode,
            'IdentifierType': '4',
            'ResultURL': self.result_url,
            'QueueTimeOutURL': self.timeout_url,
            'Remarks': 'Payroll verification',
            'Occasion': 'Salary',
        }
        return self._request('/mpesa/transactionstatus/v1/query', payload)


def get_daraja_client() -> DarajaClient:
    """Build a client from settings"""
    if not settings.DARAJA_CONSUMER_KEY:
        logger.warning('M-Pesa keys not configured. Payment functionality will not work.')
    return DarajaClient(
        consumer_key=settings.DARAJA_CONSUMER_KEY,
        consumer_secret=settings.DARAJA_CONSUMER_SECRET,
        shortcode=settings.DARAJA_SHORTCODE,
        initiator_name=settings.DARAJA_INITIATOR_NAME,
        security_credential=settings.DARAJA_SECURITY_CREDENTIAL,
        result_url=settings.DARAJA_RESULT_URL,
        timeout_url=settings.DARAJA_TIMEOUT_URL,
    )
