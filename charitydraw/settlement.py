"""Settlement/Payout Orchestrator for winner prizes and charity donations.

Two settlement paths exist for every payee:

* manual: the admin supplies the reference of a payment made elsewhere and the
  record is marked paid in one update;
* external: a pending record is written first, then the payment provider is
  asked for a hosted session. If that request fails the pending record is
  deleted before the error propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from .draw.money import ZERO, to_money
from .errors import (
    ExternalPaymentFailure,
    InvalidTransition,
    MissingReference,
)
from .models import (
    CharityPayout,
    Donation,
    DonationStatus,
    DrawStatus,
    VerificationStatus,
    WinnerEntry,
)
from .payments import PaymentClient, PaymentSession
from .repository import DrawRepository

logger = logging.getLogger(__name__)

WINNER_RECORD = "winner_entry"
PAYOUT_RECORD = "charity_payout"


def _require_reference(reference: Optional[str]) -> str:
    cleaned = (reference or "").strip()
    if not cleaned:
        raise MissingReference()
    return cleaned


@dataclass(frozen=True)
class PendingCharityTotal:
    """Unsettled donations owed to one charity."""

    charity_id: int
    charity_name: str
    amount: Decimal
    donation_ids: tuple[int, ...]
    payment_account_id: Optional[str] = None


@dataclass(frozen=True)
class ExternalSettlement:
    payout: Optional[CharityPayout]
    session: PaymentSession


class SettlementOrchestrator:
    """Drive winner and charity payout records to ``paid``.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session; the caller commits.
    payment_client : Optional[PaymentClient], default: None
        Provider client for the external path. Manual settlement works
        without one.
    repository : Optional[DrawRepository], default: None
        Persistence collaborator; built over ``session`` if omitted.
    """

    def __init__(
        self,
        session: Session,
        payment_client: Optional[PaymentClient] = None,
        *,
        repository: Optional[DrawRepository] = None,
    ) -> None:
        self._session = session
        self._client = payment_client
        self._repo = repository or DrawRepository(session)

    # -------- winners --------
    def _check_winner_payable(self, winner: WinnerEntry) -> None:
        if winner.draw.status is not DrawStatus.PUBLISHED:
            raise InvalidTransition(
                f"Winner {winner.id} cannot be paid while draw {winner.draw_id} is "
                f"{winner.draw.status.value}"
            )
        if winner.verification_status is not VerificationStatus.VERIFIED:
            raise InvalidTransition(
                f"Winner {winner.id} is {winner.verification_status.value}, not verified"
            )

    def mark_winner_paid(
        self, winner_id: int, reference: str, actor_id: Optional[str] = None
    ) -> WinnerEntry:
        """Settle one winner manually.

        Paying an already paid winner returns it unchanged.

        Raises
        ------
        MissingReference
            If ``reference`` is empty or whitespace.
        InvalidTransition
            If the draw is not published or the winner is not verified.
        """
        ref = _require_reference(reference)
        winner = self._repo.get_winner(winner_id)
        if winner.is_paid:
            logger.debug(f"Winner {winner.id} already paid; ignoring")
            return winner
        self._check_winner_payable(winner)

        self._repo.mark_winner_paid(winner, ref, actor_id)
        self._repo.log(
            "winner_paid",
            "winner_entries",
            winner.id,
            actor_id=actor_id,
            details={"reference": ref, "net_payout": str(winner.net_payout)},
        )
        self._repo.flush()
        logger.info(f"Winner {winner.id} marked paid ({winner.net_payout})")
        return winner

    def mark_batch_winners_paid(
        self,
        winner_ids: Iterable[int],
        reference: str,
        actor_id: Optional[str] = None,
    ) -> list[WinnerEntry]:
        """Mark several winners of one draw paid with a shared reference.

        Either every unpaid winner is marked paid or none is. Winners that are
        already paid are left as they are.

        Raises
        ------
        MissingReference
            If ``reference`` is empty.
        ValueError
            If no ids are given or the winners belong to different draws.
        InvalidTransition
            If any winner is not payable.
        """
        ref = _require_reference(reference)
        winners = self._repo.get_winners(winner_ids)
        if not winners:
            raise ValueError("At least one winner id is required")
        draw_ids = {w.draw_id for w in winners}
        if len(draw_ids) != 1:
            raise ValueError("Batch settlement requires winners of a single draw")

        unpaid = [w for w in winners if not w.is_paid]
        for winner in unpaid:
            self._check_winner_payable(winner)
        if not unpaid:
            return winners

        with self._session.begin_nested():
            for winner in unpaid:
                self._repo.mark_winner_paid(winner, ref, actor_id)
            self._repo.log(
                "winners_batch_paid",
                "winner_entries",
                None,
                actor_id=actor_id,
                details={
                    "draw_id": draw_ids.pop(),
                    "winner_ids": [w.id for w in unpaid],
                    "reference": ref,
                },
            )
            self._repo.flush()
        logger.info(f"Batch settled {len(unpaid)} winner(s) with reference {ref}")
        return winners

    def start_winner_payment(
        self, winner_id: int, payee_id: str, actor_id: Optional[str] = None
    ) -> PaymentSession:
        """Request a hosted payment session for a winner's net payout.

        The winner stays unpaid until :meth:`complete_external_payment`.
        """
        client = self._require_client()
        winner = self._repo.get_winner(winner_id)
        if winner.is_paid:
            raise InvalidTransition(f"Winner {winner.id} is already paid")
        self._check_winner_payable(winner)

        label = f"Tier {winner.tier} prize - {winner.draw.month_year}"
        payment = client.create_payment_session(
            payee_id,
            winner.net_payout,
            label,
            record_id=winner.id,
            record_kind=WINNER_RECORD,
        )
        self._repo.log(
            "winner_payment_started",
            "winner_entries",
            winner.id,
            actor_id=actor_id,
            details={"session_id": payment.session_id},
        )
        self._repo.flush()
        return payment

    # -------- charities --------
    def pending_charity_donations(self) -> list[PendingCharityTotal]:
        """Group unsettled donations by charity."""
        grouped: dict[int, list[Donation]] = {}
        for donation in self._repo.pending_donations():
            grouped.setdefault(donation.charity_id, []).append(donation)

        totals = []
        for charity_id, donations in grouped.items():
            charity = donations[0].charity
            totals.append(
                PendingCharityTotal(
                    charity_id=charity_id,
                    charity_name=charity.name,
                    amount=to_money(sum((Decimal(d.amount) for d in donations), ZERO)),
                    donation_ids=tuple(d.id for d in donations),
                    payment_account_id=charity.payment_account_id,
                )
            )
        return totals

    def _select_donations(
        self, charity_id: int, donation_ids: Optional[Sequence[int]]
    ) -> list[Donation]:
        if donation_ids is None:
            donations = self._repo.pending_donations(charity_id)
        else:
            donations = self._repo.get_donations(donation_ids)
        for donation in donations:
            if donation.charity_id != charity_id:
                raise InvalidTransition(
                    f"Donation {donation.id} belongs to charity {donation.charity_id}"
                )
            if donation.status is not DonationStatus.PENDING or donation.charity_payout_id:
                raise InvalidTransition(f"Donation {donation.id} is already settled")
        if not donations:
            raise InvalidTransition(f"Charity {charity_id} has no pending donations")
        return donations

    def settle_charity_manual(
        self,
        charity_id: int,
        reference: str,
        actor_id: Optional[str] = None,
        *,
        donation_ids: Optional[Sequence[int]] = None,
    ) -> CharityPayout:
        """Record a payment made outside the system as a paid payout."""
        ref = _require_reference(reference)
        self._repo.get_charity(charity_id)
        donations = self._select_donations(charity_id, donation_ids)

        payout = self._repo.create_payout(
            charity_id, donations, reference=ref, actor_id=actor_id
        )
        self._repo.log(
            "charity_payout_paid",
            "charity_payouts",
            payout.id,
            actor_id=actor_id,
            details={"reference": ref, "donation_ids": sorted(payout.source_donation_ids)},
        )
        self._repo.flush()
        logger.info(f"Charity {charity_id} settled manually: {payout.amount}")
        return payout

    def mark_charity_payout_paid(
        self, payout_id: int, reference: str, actor_id: Optional[str] = None
    ) -> CharityPayout:
        """Move a pending payout to ``paid``; paid payouts are returned as is."""
        ref = _require_reference(reference)
        payout = self._repo.get_payout(payout_id)
        if payout.is_paid:
            logger.debug(f"Charity payout {payout.id} already paid; ignoring")
            return payout

        self._repo.mark_payout_paid(payout, ref, actor_id)
        self._repo.log(
            "charity_payout_paid",
            "charity_payouts",
            payout.id,
            actor_id=actor_id,
            details={"reference": ref},
        )
        self._repo.flush()
        logger.info(f"Charity payout {payout.id} marked paid")
        return payout

    def start_charity_payment(
        self,
        charity_id: int,
        actor_id: Optional[str] = None,
        *,
        donation_ids: Optional[Sequence[int]] = None,
    ) -> ExternalSettlement:
        """Create a pending payout and request a hosted payment for it.

        Raises
        ------
        InvalidTransition
            If the charity has no linked payment account or nothing to settle.
        ExternalPaymentFailure
            If the provider call fails for any reason; unexpected errors are
            wrapped. The pending payout has been deleted and its donations
            unlinked by then.
        """
        client = self._require_client()
        charity = self._repo.get_charity(charity_id)
        if not charity.payment_account_id:
            raise InvalidTransition(f"Charity {charity_id} has no linked payment account")
        donations = self._select_donations(charity_id, donation_ids)

        payout = self._repo.create_payout(charity_id, donations, actor_id=actor_id)
        payout_id = payout.id
        try:
            payment = client.create_payment_session(
                charity.payment_account_id,
                payout.amount,
                f"Donation payout - {charity.name}",
                record_id=payout_id,
                record_kind=PAYOUT_RECORD,
            )
        except ExternalPaymentFailure as exc:
            logger.error(f"Payment session for charity payout {payout_id} failed: {exc}; rolling back")
            self._rollback_payout(payout_id, actor_id, reason=str(exc))
            if exc.record_id is None:
                exc.record_id = payout_id
            raise
        except Exception as exc:
            logger.error(f"Payment session for charity payout {payout_id} errored: {exc!r}; rolling back")
            self._rollback_payout(payout_id, actor_id, reason=repr(exc))
            raise ExternalPaymentFailure(
                f"Payment session for charity payout {payout_id} failed: {exc!r}",
                record_id=payout_id,
            ) from exc

        self._repo.log(
            "charity_payment_started",
            "charity_payouts",
            payout_id,
            actor_id=actor_id,
            details={"session_id": payment.session_id, "amount": str(payout.amount)},
        )
        self._repo.flush()
        logger.info(f"Charity payout {payout_id} pending external payment")
        return ExternalSettlement(payout=payout, session=payment)

    def settle_charity(
        self,
        charity_id: int,
        *,
        reference: Optional[str] = None,
        actor_id: Optional[str] = None,
        donation_ids: Optional[Sequence[int]] = None,
    ):
        """Settle a charity on the manual path when a reference is given, else externally.

        Returns the paid :class:`CharityPayout` for manual settlement or an
        :class:`ExternalSettlement` carrying the redirect URL.
        """
        if reference is not None and reference.strip():
            return self.settle_charity_manual(
                charity_id, reference, actor_id, donation_ids=donation_ids
            )
        charity = self._repo.get_charity(charity_id)
        if charity.payment_account_id and self._client is not None:
            return self.start_charity_payment(
                charity_id, actor_id, donation_ids=donation_ids
            )
        raise MissingReference()

    # -------- provider notices --------
    def complete_external_payment(
        self,
        record_kind: str,
        record_id: int,
        reference: str,
        actor_id: Optional[str] = None,
    ):
        """Apply the provider's success notice to the matching record."""
        if record_kind == PAYOUT_RECORD:
            return self.mark_charity_payout_paid(record_id, reference, actor_id)
        if record_kind == WINNER_RECORD:
            return self.mark_winner_paid(record_id, reference, actor_id)
        raise ValueError(f"Unknown payment record kind '{record_kind}'")

    def cancel_external_payment(
        self, payout_id: int, actor_id: Optional[str] = None
    ) -> bool:
        """Apply the provider's failure notice: drop the still-pending payout.

        Returns ``False`` if the payout no longer exists.
        """
        payout = self._session.get(CharityPayout, payout_id)
        if payout is None:
            return False
        if payout.is_paid:
            raise InvalidTransition(f"Charity payout {payout_id} is already paid")
        return self._rollback_payout(payout_id, actor_id, reason="cancelled by provider")

    # -------- helpers --------
    def _rollback_payout(
        self, payout_id: int, actor_id: Optional[str], *, reason: str
    ) -> bool:
        removed = self._repo.rollback_pending_record(payout_id)
        if removed:
            self._repo.log(
                "charity_payout_rolled_back",
                "charity_payouts",
                payout_id,
                actor_id=actor_id,
                details={"reason": reason},
            )
            self._repo.flush()
            logger.warning(f"Charity payout {payout_id} rolled back: {reason}")
        return removed

    def _require_client(self) -> PaymentClient:
        if self._client is None:
            raise InvalidTransition("No payment client configured for external settlement")
        return self._client


__all__ = [
    "SettlementOrchestrator",
    "PendingCharityTotal",
    "ExternalSettlement",
    "WINNER_RECORD",
    "PAYOUT_RECORD",
]
