from __future__ import annotations

import unittest
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from unittest.mock import patch

import requests
from sqlalchemy import func, select

from charitydraw.db.engine import get_sessionmaker, make_engine
from charitydraw.errors import (
    ExternalPaymentFailure,
    ExternalTimeout,
    InvalidTransition,
    MissingReference,
    PersistenceConflict,
    RecordNotFound,
    SettlementExists,
)
from charitydraw.lifecycle import DrawLifecycleManager
from charitydraw.models import (
    ActivityLog,
    Base,
    Charity,
    CharityPayout,
    Donation,
    DonationStatus,
    DrawCycle,
    DrawStatus,
    PaymentStatus,
    PayoutStatus,
    Score,
    Subscriber,
    Subscription,
    VerificationStatus,
    WinnerEntry,
)
from charitydraw.payments import PaymentClient, PaymentSession
from charitydraw.settlement import PAYOUT_RECORD, WINNER_RECORD, SettlementOrchestrator

TODAY = date(2025, 3, 15)

# Winning numbers 1, 2, 3, 5, 6. "a" and "e" support the linked charity,
# "f" supports one without a payment account.
SCORES = {
    "a": [5, 6, 1, 2, 3],
    "b": [5, 6, 7, 8, 9],
    "c": [5, 6, 7, 8, 9],
    "d": [5, 6, 7, 8, 9],
    "e": [5, 6, 1, 2, 9],
    "f": [5, 6, 1, 7, 8],
}


class DummyPaymentClient(PaymentClient):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: list[dict] = []

    def create_payment_session(
        self, payee_id, amount, label, *, record_id=None, record_kind=None
    ) -> PaymentSession:
        self.calls.append(
            {
                "payee_id": payee_id,
                "amount": amount,
                "label": label,
                "record_id": record_id,
                "record_kind": record_kind,
            }
        )
        if self.error is not None:
            raise self.error
        return PaymentSession(
            url=f"https://pay.example.com/s/{record_kind}-{record_id}",
            session_id=f"sess_{record_id}",
        )


class SettlementTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _seed(self, session, *, publish=True):
        linked = Charity(name="Junior Golf Foundation", payment_account_id="acct_junior")
        unlinked = Charity(name="Coastal Care Trust")
        draw = DrawCycle(month_year="March 2025", status=DrawStatus.OPEN)
        session.add_all([linked, unlinked, draw])
        session.flush()

        subs = {}
        for key, values in SCORES.items():
            subscriber = Subscriber(
                full_name=f"Player {key}",
                email=f"{key}@example.com",
                charity=unlinked if key == "f" else linked,
                donation_percent=Decimal("10"),
            )
            subscriber.subscriptions.append(
                Subscription(plan="monthly", assigned_draw_id=draw.id)
            )
            for n, value in enumerate(values):
                subscriber.scores.append(
                    Score(value=value, played_on=date(2025, 3, 1) + timedelta(days=n))
                )
            session.add(subscriber)
            subs[key] = subscriber
        session.flush()

        manager = DrawLifecycleManager(session, clock=lambda: TODAY)
        manager.run_analysis(1, 45)
        manager.finalize_draft(draw.id)
        winners = {w.subscriber_id: w for w in manager.winners(draw.id)}
        if publish:
            for winner in winners.values():
                manager.verify_winner(winner.id, VerificationStatus.VERIFIED, "admin-1")
            manager.publish(draw.id)
        by_key = {key: winners.get(sub.id) for key, sub in subs.items()}
        return manager, draw, linked, unlinked, by_key


class WinnerSettlementTests(SettlementTestCase):
    def test_manual_payment_requires_reference(self):
        with self.Session.begin() as session:
            _, _, _, _, winners = self._seed(session)
            orchestrator = SettlementOrchestrator(session)
            for reference in ("", "   ", None):
                with self.subTest(reference=reference):
                    with self.assertRaises(MissingReference):
                        orchestrator.mark_winner_paid(winners["a"].id, reference)
            self.assertEqual(winners["a"].payment_status, PaymentStatus.UNPAID)

    def test_manual_payment_and_idempotence(self):
        with self.Session.begin() as session:
            _, _, _, _, winners = self._seed(session)
            orchestrator = SettlementOrchestrator(session)

            paid = orchestrator.mark_winner_paid(winners["a"].id, " BANK-001 ", "admin-2")
            self.assertEqual(paid.payment_status, PaymentStatus.PAID)
            self.assertEqual(paid.payment_reference, "BANK-001")
            self.assertEqual(paid.paid_by, "admin-2")
            self.assertIsNotNone(paid.paid_at)

            again = orchestrator.mark_winner_paid(winners["a"].id, "BANK-999", "admin-3")
            self.assertEqual(again.payment_reference, "BANK-001")
            self.assertEqual(again.paid_by, "admin-2")

    def test_unpublished_draw_cannot_be_paid(self):
        with self.Session.begin() as session:
            _, _, _, _, winners = self._seed(session, publish=False)
            with self.assertRaises(InvalidTransition):
                SettlementOrchestrator(session).mark_winner_paid(winners["a"].id, "BANK-1")

    def test_unknown_winner(self):
        with self.Session.begin() as session:
            self._seed(session)
            with self.assertRaises(RecordNotFound):
                SettlementOrchestrator(session).mark_winner_paid(9999, "BANK-1")

    def test_batch_payment_marks_all(self):
        with self.Session.begin() as session:
            _, draw, _, _, winners = self._seed(session)
            ids = [winners[k].id for k in ("a", "e", "f")]

            paid = SettlementOrchestrator(session).mark_batch_winners_paid(ids, "BATCH-7", "admin-1")

            self.assertEqual(len(paid), 3)
            for winner in paid:
                self.assertEqual(winner.payment_status, PaymentStatus.PAID)
                self.assertEqual(winner.payment_reference, "BATCH-7")
            log = session.scalars(
                select(ActivityLog).where(ActivityLog.action == "winners_batch_paid")
            ).one()
            self.assertEqual(log.details["draw_id"], draw.id)

    def test_batch_payment_is_all_or_nothing(self):
        with self.Session.begin() as session:
            _, _, _, _, winners = self._seed(session)
            ids = [winners[k].id for k in ("a", "e", "f")]
            orchestrator = SettlementOrchestrator(session)

            with self.assertRaises(RecordNotFound):
                orchestrator.mark_batch_winners_paid(ids + [9999], "BATCH-1")

            repo = orchestrator._repo
            original = repo.mark_winner_paid
            seen = []

            def flaky(winner, reference, actor_id):
                seen.append(winner.id)
                if len(seen) == 2:
                    raise PersistenceConflict("simulated write failure")
                return original(winner, reference, actor_id)

            with patch.object(repo, "mark_winner_paid", side_effect=flaky):
                with self.assertRaises(PersistenceConflict):
                    orchestrator.mark_batch_winners_paid(ids, "BATCH-2")

            statuses = session.scalars(
                select(WinnerEntry.payment_status).where(WinnerEntry.id.in_(ids))
            ).all()
            self.assertEqual(set(statuses), {PaymentStatus.UNPAID})

    def test_batch_payment_rejects_mixed_draws(self):
        with self.Session.begin() as session:
            _, _, _, _, winners = self._seed(session)
            other = DrawCycle(month_year="January 2025", status=DrawStatus.PUBLISHED)
            session.add(other)
            session.flush()
            stray = WinnerEntry(
                draw=other,
                subscriber_id=winners["a"].subscriber_id,
                tier=3,
                match_count=3,
                gross_prize=Decimal("10.00"),
                verification_status=VerificationStatus.VERIFIED,
            )
            session.add(stray)
            session.flush()

            with self.assertRaises(ValueError):
                SettlementOrchestrator(session).mark_batch_winners_paid(
                    [winners["a"].id, stray.id], "BATCH-3"
                )

    def test_external_winner_payment(self):
        with self.Session.begin() as session:
            _, _, _, _, winners = self._seed(session)
            client = DummyPaymentClient()
            orchestrator = SettlementOrchestrator(session, client)

            payment = orchestrator.start_winner_payment(winners["e"].id, "acct_player_e")

            self.assertTrue(payment.url.startswith("https://pay.example.com/"))
            self.assertEqual(client.calls[0]["amount"], winners["e"].net_payout)
            self.assertEqual(client.calls[0]["record_kind"], WINNER_RECORD)
            self.assertEqual(winners["e"].payment_status, PaymentStatus.UNPAID)

            orchestrator.complete_external_payment(WINNER_RECORD, winners["e"].id, "pi_555")
            self.assertEqual(winners["e"].payment_status, PaymentStatus.PAID)
            self.assertEqual(winners["e"].payment_reference, "pi_555")


class CharitySettlementTests(SettlementTestCase):
    def test_pending_donations_grouped_by_charity(self):
        with self.Session.begin() as session:
            _, _, linked, unlinked, _ = self._seed(session)
            totals = {t.charity_id: t for t in SettlementOrchestrator(session).pending_charity_donations()}

            self.assertEqual(totals[linked.id].amount, Decimal("4.50"))
            self.assertEqual(len(totals[linked.id].donation_ids), 2)
            self.assertEqual(totals[linked.id].payment_account_id, "acct_junior")
            self.assertEqual(totals[unlinked.id].amount, Decimal("1.50"))

    def test_manual_charity_settlement(self):
        with self.Session.begin() as session:
            _, _, linked, _, _ = self._seed(session)
            orchestrator = SettlementOrchestrator(session)

            with self.assertRaises(MissingReference):
                orchestrator.settle_charity_manual(linked.id, "  ")

            payout = orchestrator.settle_charity_manual(linked.id, "EFT-2025-03", "admin-1")

            self.assertEqual(payout.status, PayoutStatus.PAID)
            self.assertEqual(payout.amount, Decimal("4.50"))
            self.assertEqual(payout.payout_ref, "EFT-2025-03")
            self.assertEqual(len(payout.source_donation_ids), 2)
            self.assertEqual(
                sum((d.amount for d in payout.donations), Decimal("0")), payout.amount
            )
            self.assertTrue(all(d.status is DonationStatus.PAID for d in payout.donations))
            remaining = {t.charity_id for t in orchestrator.pending_charity_donations()}
            self.assertNotIn(linked.id, remaining)

            with self.assertRaises(InvalidTransition):
                orchestrator.settle_charity_manual(linked.id, "EFT-again")

    def test_external_charity_settlement_success(self):
        with self.Session.begin() as session:
            _, _, linked, _, _ = self._seed(session)
            client = DummyPaymentClient()
            orchestrator = SettlementOrchestrator(session, client)

            result = orchestrator.start_charity_payment(linked.id, "admin-1")

            self.assertEqual(result.payout.status, PayoutStatus.PENDING)
            self.assertEqual(result.session.url, f"https://pay.example.com/s/{PAYOUT_RECORD}-{result.payout.id}")
            self.assertEqual(client.calls[0]["payee_id"], "acct_junior")
            self.assertEqual(client.calls[0]["amount"], Decimal("4.50"))
            pending = {t.charity_id for t in orchestrator.pending_charity_donations()}
            self.assertNotIn(linked.id, pending)

            payout = orchestrator.complete_external_payment(PAYOUT_RECORD, result.payout.id, "tr_abc")
            self.assertEqual(payout.status, PayoutStatus.PAID)
            self.assertEqual(payout.payout_ref, "tr_abc")
            self.assertTrue(all(d.status is DonationStatus.PAID for d in payout.donations))

    def _assert_rolled_back(self, client) -> ExternalPaymentFailure:
        with self.Session.begin() as session:
            _, _, linked, _, _ = self._seed(session)
            orchestrator = SettlementOrchestrator(session, client)

            with self.assertRaises(ExternalPaymentFailure) as ctx:
                orchestrator.start_charity_payment(linked.id, "admin-1")
            self.assertIsNotNone(ctx.exception.record_id)

            self.assertEqual(session.scalar(select(func.count(CharityPayout.id))), 0)
            donations = session.scalars(
                select(Donation).where(Donation.charity_id == linked.id)
            ).all()
            self.assertEqual(len(donations), 2)
            self.assertTrue(all(d.charity_payout_id is None for d in donations))
            self.assertTrue(all(d.status is DonationStatus.PENDING for d in donations))
            actions = session.scalars(select(ActivityLog.action)).all()
            self.assertIn("charity_payout_rolled_back", actions)
        return ctx.exception

    def test_failed_payment_session_rolls_back_pending_payout(self):
        error = ExternalPaymentFailure("provider rejected the payee")
        self.assertIs(self._assert_rolled_back(DummyPaymentClient(error)), error)

    def test_timed_out_payment_session_rolls_back_pending_payout(self):
        error = ExternalTimeout("provider timed out")
        self.assertIs(self._assert_rolled_back(DummyPaymentClient(error)), error)

    def test_unexpected_client_error_rolls_back_pending_payout(self):
        error = RuntimeError("boom")
        raised = self._assert_rolled_back(DummyPaymentClient(error))
        self.assertIs(raised.__cause__, error)

    @patch("charitydraw.payments.api.open_session")
    def test_unreadable_provider_reply_rolls_back_pending_payout(self, mock_open_session):
        reply = requests.Response()
        reply.status_code = 200
        reply._content = b"<html>gateway</html>"
        mock_open_session.return_value.request.return_value = reply
        client = PaymentClient(base_fqdn="api.pay.example.com")

        raised = self._assert_rolled_back(client)
        self.assertIsInstance(raised.__cause__, ValueError)

    def test_cancel_external_payment(self):
        with self.Session.begin() as session:
            _, _, linked, _, _ = self._seed(session)
            orchestrator = SettlementOrchestrator(session, DummyPaymentClient())
            result = orchestrator.start_charity_payment(linked.id)
            payout_id = result.payout.id

            self.assertTrue(orchestrator.cancel_external_payment(payout_id))
            self.assertIsNone(session.get(CharityPayout, payout_id))
            self.assertFalse(orchestrator.cancel_external_payment(payout_id))

            paid = orchestrator.settle_charity_manual(linked.id, "EFT-1")
            with self.assertRaises(InvalidTransition):
                orchestrator.cancel_external_payment(paid.id)

    def test_settle_charity_dispatch(self):
        with self.Session.begin() as session:
            _, _, linked, unlinked, _ = self._seed(session)
            orchestrator = SettlementOrchestrator(session, DummyPaymentClient())

            with self.assertRaises(MissingReference):
                orchestrator.settle_charity(unlinked.id)
            with self.assertRaises(InvalidTransition):
                orchestrator.start_charity_payment(unlinked.id)

            external = orchestrator.settle_charity(linked.id)
            self.assertEqual(external.payout.status, PayoutStatus.PENDING)

            manual = orchestrator.settle_charity(unlinked.id, reference="CHQ-0042")
            self.assertEqual(manual.status, PayoutStatus.PAID)

    def test_reset_refused_once_donations_are_bundled(self):
        with self.Session.begin() as session:
            manager, draw, linked, _, _ = self._seed(session)
            SettlementOrchestrator(session, DummyPaymentClient()).start_charity_payment(linked.id)

            with self.assertRaises(SettlementExists):
                manager.reset(draw.id)
            self.assertEqual(draw.status, DrawStatus.PUBLISHED)

    def test_reset_refused_once_a_winner_is_paid(self):
        with self.Session.begin() as session:
            manager, draw, _, _, winners = self._seed(session)
            SettlementOrchestrator(session).mark_winner_paid(winners["a"].id, "BANK-1")

            with self.assertRaises(SettlementExists):
                manager.reset(draw.id)


if __name__ == "__main__":
    unittest.main()
