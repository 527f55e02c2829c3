from .api import PaymentClient, PaymentSession

__all__ = ["PaymentClient", "PaymentSession"]
