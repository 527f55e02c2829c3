import json as _json
import os
import unittest
from decimal import Decimal
from unittest.mock import patch

import requests

from charitydraw.errors import ExternalPaymentFailure, ExternalTimeout
from charitydraw.payments.api import PaymentClient
from charitydraw.payments.utils import configured_timeout, open_session


class DummyResponse:
    def __init__(self, json_data=None, content: bytes = b"", error=None):
        self._json = json_data
        if json_data is not None and not content:
            content = _json.dumps(json_data).encode()
        self.content = content
        self._error = error

    def json(self):
        return self._json

    def raise_for_status(self):
        if self._error is not None:
            raise self._error


class DummySession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "params": params,
                "json": json,
                "timeout": timeout,
            }
        )
        if self.exc is not None:
            raise self.exc
        return self.response


class TestPaymentClient(unittest.TestCase):
    @patch("charitydraw.payments.api.open_session")
    @patch("charitydraw.payments.api.load_dotenv")
    def test_requires_fqdn(self, mock_load_dotenv, mock_open_session):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                PaymentClient()
        mock_open_session.assert_not_called()

    @patch("charitydraw.payments.api.open_session")
    def test_create_payment_session_posts_minor_units(self, mock_open_session):
        session = DummySession(DummyResponse({"url": "https://pay.example.com/s/abc", "id": "sess_1"}))
        mock_open_session.return_value = session
        client = PaymentClient(
            base_fqdn="api.pay.example.com",
            timeout=5,
            currency="AUD",
            return_url="https://admin.example.com/payouts",
        )

        result = client.create_payment_session(
            "acct_123",
            Decimal("125.50"),
            "Donation payout - Coastal Care",
            record_id=42,
            record_kind="charity_payout",
        )

        self.assertEqual(result.url, "https://pay.example.com/s/abc")
        self.assertEqual(result.session_id, "sess_1")
        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(call["url"], "https://api.pay.example.com/v1/payment-sessions")
        self.assertEqual(call["timeout"], 5)
        self.assertEqual(call["json"]["amount"], 12550)
        self.assertEqual(call["json"]["currency"], "aud")
        self.assertEqual(call["json"]["payee"], "acct_123")
        self.assertEqual(call["json"]["metadata"], {"record_kind": "charity_payout", "record_id": 42})
        self.assertEqual(call["json"]["return_url"], "https://admin.example.com/payouts")

    @patch("charitydraw.payments.api.open_session")
    def test_timeout_maps_to_external_timeout(self, mock_open_session):
        mock_open_session.return_value = DummySession(exc=requests.Timeout("slow"))
        client = PaymentClient(base_fqdn="api.pay.example.com", timeout=1)

        with self.assertRaises(ExternalTimeout):
            client.create_payment_session("acct", Decimal("10"), "x")

    @patch("charitydraw.payments.api.open_session")
    def test_http_error_maps_to_external_failure(self, mock_open_session):
        error = requests.HTTPError("402 Payment Required")
        mock_open_session.return_value = DummySession(DummyResponse({}, error=error))
        client = PaymentClient(base_fqdn="api.pay.example.com")

        with self.assertRaises(ExternalPaymentFailure) as ctx:
            client.create_payment_session("acct", Decimal("10"), "x")
        self.assertNotIsInstance(ctx.exception, ExternalTimeout)

    @patch("charitydraw.payments.api.open_session")
    def test_non_json_reply_maps_to_external_failure(self, mock_open_session):
        reply = requests.Response()
        reply.status_code = 200
        reply._content = b"<html>gateway</html>"
        mock_open_session.return_value = DummySession(reply)
        client = PaymentClient(base_fqdn="api.pay.example.com")

        with self.assertRaises(ExternalPaymentFailure) as ctx:
            client.create_payment_session("acct", Decimal("10"), "x")
        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    @patch("charitydraw.payments.api.open_session")
    def test_response_without_url_is_a_failure(self, mock_open_session):
        mock_open_session.return_value = DummySession(DummyResponse({"id": "sess_2"}))
        client = PaymentClient(base_fqdn="api.pay.example.com")

        with self.assertRaises(ExternalPaymentFailure) as ctx:
            client.create_payment_session("acct", Decimal("10"), "x", record_id=9)
        self.assertEqual(ctx.exception.record_id, 9)

    @patch("charitydraw.payments.api.open_session")
    def test_non_positive_amount_rejected_before_request(self, mock_open_session):
        session = DummySession(DummyResponse({"url": "u"}))
        mock_open_session.return_value = session
        client = PaymentClient(base_fqdn="api.pay.example.com")

        with self.assertRaises(ValueError):
            client.create_payment_session("acct", Decimal("0.00"), "x")
        self.assertEqual(session.calls, [])


class TestPaymentUtils(unittest.TestCase):
    def test_open_session_requires_key(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(RuntimeError):
                open_session()

    def test_open_session_sets_bearer(self):
        session = open_session("sk_test_123")
        self.assertEqual(session.headers["Authorization"], "Bearer sk_test_123")

    def test_configured_timeout(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(configured_timeout(), 30.0)
        with patch.dict(os.environ, {"PAYMENT_API_TIMEOUT": "12.5"}):
            self.assertEqual(configured_timeout(), 12.5)
        with patch.dict(os.environ, {"PAYMENT_API_TIMEOUT": "soon"}):
            with self.assertRaises(RuntimeError):
                configured_timeout()


if __name__ == "__main__":
    unittest.main()
