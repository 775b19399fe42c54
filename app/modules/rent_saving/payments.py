import requests
from flask import current_app

from app.core.logger import logger
from .errors import PaymentVerificationError


class PaystackClient:
    """
    Asks Paystack for the outcome of a payment by our reference.

    ``verify`` returns the provider's ``data`` object, which carries at least
    ``status`` ("success", "failed", "abandoned", ...) and ``amount`` in kobo.
    """

    def __init__(self, secret_key, base_url="https://api.paystack.co", timeout=10):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def verify(self, reference):
        if not self.secret_key:
            raise PaymentVerificationError("Payment provider is not configured")

        url = f"{self.base_url}/transaction/verify/{reference}"
        try:
            response = requests.get(
                url,
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            logger.error(f"Paystack verification for {reference} failed: {e}", exc_info=True)
            raise PaymentVerificationError(
                "Could not verify payment with the provider. Please try again later."
            ) from e
        except ValueError as e:
            logger.error(f"Paystack returned a non-JSON body for {reference}")
            raise PaymentVerificationError("Unexpected response from payment provider") from e

        if not body.get("status") or not isinstance(body.get("data"), dict):
            logger.warning(f"Paystack could not verify {reference}: {body.get('message')}")
            return {"status": "failed", "gateway_response": body.get("message")}
        return body["data"]


def payment_verifier_from_config():
    """The app's configured verifier, or a Paystack client built from settings."""
    config = current_app.config
    verifier = config.get("PAYMENT_VERIFIER")
    if verifier is not None:
        return verifier
    return PaystackClient(
        config.get("PAYSTACK_SECRET_KEY"),
        base_url=config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
        timeout=config.get("PAYSTACK_TIMEOUT", 10),
    )
