from .base import GatewayConfigurationError, PaymentGatewayError
from .daraja import DarajaClient, get_daraja_client
from .flutterwave import FlutterwaveClient, get_flutterwave_client, get_supported_banks

__all__ = [
    'DarajaClient',
    'FlutterwaveClient',
    'GatewayConfigurationError',
    'PaymentGatewayError',
    'get_daraja_client',
    'get_flutterwave_client',
    'get_supported_banks',
]
