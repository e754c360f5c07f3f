from core.stripe_client import StripeGateway, get_payment_gateway
from services.email import EmailService


def get_stripe_gateway() -> StripeGateway:
    """Shared Stripe handle. Missing secrets surface here as a 500 ConfigurationException."""
    return get_payment_gateway()


def get_email_service() -> EmailService:
    return EmailService()
