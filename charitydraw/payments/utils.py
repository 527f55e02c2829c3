import os
import logging
from typing import Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


def open_session(api_key: Optional[str] = None) -> requests.Session:
    """Open a requests session authenticated against the payment provider.

    Parameters
    ----------
    api_key : Optional[str]
        Secret API key. Falls back to ``PAYMENT_API_KEY``.

    Returns
    -------
    requests.Session
        Session carrying the bearer token on every request.

    Raises
    ------
    RuntimeError
        If no API key is configured.
    """
    key = api_key or os.environ.get("PAYMENT_API_KEY")
    if not key:
        raise RuntimeError("Environment variable 'PAYMENT_API_KEY' is not set")

    session = requests.Session()
    session.headers.update(
        {"Accept": "application/json", "Authorization": f"Bearer {key}"}
    )
    # Never log the key itself.
    logger.debug("Payment provider session opened")
    return session


def configured_timeout(default: float = 30.0) -> float:
    """Return ``PAYMENT_API_TIMEOUT`` in seconds, or ``default``."""
    raw = os.environ.get("PAYMENT_API_TIMEOUT")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"PAYMENT_API_TIMEOUT must be a number, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError("PAYMENT_API_TIMEOUT must be positive")
    return value
