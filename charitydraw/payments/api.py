import os
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional
from urllib.parse import urljoin

import requests
from dotenv import load_dotenv

from ..draw.money import to_minor_units
from ..errors import ExternalPaymentFailure, ExternalTimeout
from .utils import configured_timeout, open_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """Hosted payment page the admin is redirected to."""

    url: str
    session_id: Optional[str] = None


class PaymentClient:
    def __init__(
        self,
        base_fqdn: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        currency: Optional[str] = None,
        return_url: Optional[str] = None,
    ):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("PAYMENT_API_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'PAYMENT_API_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        self.session = open_session(api_key)
        self.timeout = timeout if timeout is not None else configured_timeout()
        self.currency = (currency or os.getenv("PAYMENT_CURRENCY") or "aud").lower()
        self.return_url = return_url or os.getenv("PAYMENT_RETURN_URL")

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        try:
            r = self.session.request(
                method=method.upper(),
                url=url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
            r.raise_for_status()
            return r.json() if r.content else None
        except requests.Timeout as exc:
            raise ExternalTimeout(
                f"Payment provider did not respond within {self.timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise ExternalPaymentFailure(f"Payment provider request failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalPaymentFailure(f"Payment provider sent an unreadable reply: {exc}") from exc

    # -------- API callers --------
    def create_payment_session(
        self,
        payee_id: str,
        amount: Decimal,
        label: str,
        *,
        record_id: Optional[int] = None,
        record_kind: Optional[str] = None,
    ) -> PaymentSession:
        """Start a hosted payment of ``amount`` to ``payee_id``.

        The record identifiers travel as metadata so the provider's completion
        notice can be matched back to the winner entry or charity payout.
        """
        minor_units = to_minor_units(amount)
        if minor_units <= 0:
            raise ValueError("Payment amount must be positive")

        payload = {
            "payee": payee_id,
            "amount": minor_units,
            "currency": self.currency,
            "description": label,
            "metadata": {
                "record_kind": record_kind,
                "record_id": record_id,
            },
        }
        if self.return_url:
            payload["return_url"] = self.return_url

        logger.info(f"Requesting payment session for {record_kind} {record_id} ({minor_units} minor units)")
        response = self._request("POST", "/v1/payment-sessions", json=payload)
        if not isinstance(response, dict) or not response.get("url"):
            raise ExternalPaymentFailure(
                f"Unexpected payment session response: {response!r}",
                record_id=record_id,
            )
        return PaymentSession(url=response["url"], session_id=response.get("id"))
