"""Cancellation policy domain logic.

Scenarios, evaluated in order:
- system_expired: owner never accepted; borrower gets a full rebook credit
- pre-acceptance: borrower paid, owner has not deposited; borrower gets a
  full rebook credit whoever cancels
- post-acceptance, more than 5 days out: canceller gets 75% of the flat
  deposit back, platform keeps 25%
- post-acceptance, 5 days or less: canceller gets nothing, platform keeps
  the full deposit

After acceptance the other party always gets a full rebook credit.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class CancelledBy(str, Enum):
    """Who asked for the cancellation."""

    BORROWER = "borrower"
    OWNER = "owner"
    SYSTEM_EXPIRED = "system_expired"


class CancellationScenario(str, Enum):
    """Policy branch a cancellation fell into."""

    SYSTEM_EXPIRED = "system_expired"
    BORROWER_CANCEL_PRE_ACCEPT = "borrower_cancel_pre_accept"
    OWNER_DECLINED_PRE_ACCEPT = "owner_declined_pre_accept"
    BORROWER_CANCEL_EARLY = "borrower_cancel_early"
    BORROWER_CANCEL_LATE = "borrower_cancel_late"
    OWNER_CANCEL_EARLY = "owner_cancel_early"
    OWNER_CANCEL_LATE = "owner_cancel_late"


# Status label written to the booking for each scenario
SCENARIO_STATUS: dict[CancellationScenario, str] = {
    CancellationScenario.SYSTEM_EXPIRED: "expired_no_owner_acceptance",
    CancellationScenario.BORROWER_CANCEL_PRE_ACCEPT: "cancelled_by_borrower",
    CancellationScenario.OWNER_DECLINED_PRE_ACCEPT: "declined_by_owner",
    CancellationScenario.BORROWER_CANCEL_EARLY: "cancelled",
    CancellationScenario.BORROWER_CANCEL_LATE: "cancelled",
    CancellationScenario.OWNER_CANCEL_EARLY: "cancelled",
    CancellationScenario.OWNER_CANCEL_LATE: "cancelled",
}

POST_ACCEPTANCE_SCENARIOS = frozenset(
    {
        CancellationScenario.BORROWER_CANCEL_EARLY,
        CancellationScenario.BORROWER_CANCEL_LATE,
        CancellationScenario.OWNER_CANCEL_EARLY,
        CancellationScenario.OWNER_CANCEL_LATE,
    }
)

EARLY_CANCEL_MIN_DAYS = 5
EARLY_CANCEL_RETURN_PERCENT = Decimal("75")


@dataclass(frozen=True)
class CancellationTerms:
    """Money consequence of a cancellation, in cents."""

    scenario: CancellationScenario
    canceller_return_cents: int
    platform_fee_cents: int
    other_party_credit_cents: int
    early: bool | None = None


def _percent_of(amount_cents: int, percent: Decimal) -> int:
    return int((Decimal(amount_cents) * percent / Decimal("100")).quantize(Decimal("1")))


def pre_acceptance_terms(cancelled_by: CancelledBy | str, deposit_cents: int) -> CancellationTerms:
    """Terms before the owner deposited. The borrower is made whole with credit."""
    cancelled_by = CancelledBy(cancelled_by)
    if cancelled_by == CancelledBy.SYSTEM_EXPIRED:
        scenario = CancellationScenario.SYSTEM_EXPIRED
    elif cancelled_by == CancelledBy.OWNER:
        scenario = CancellationScenario.OWNER_DECLINED_PRE_ACCEPT
    else:
        scenario = CancellationScenario.BORROWER_CANCEL_PRE_ACCEPT
    return CancellationTerms(
        scenario=scenario,
        canceller_return_cents=0,
        platform_fee_cents=0,
        other_party_credit_cents=deposit_cents,
    )


def post_acceptance_terms(
    cancelled_by: CancelledBy | str,
    days_until_start: float,
    deposit_cents: int,
) -> CancellationTerms:
    """Terms once both parties have paid.

    Args:
        cancelled_by: ``borrower`` or ``owner``
        days_until_start: Fractional days until the scheduled start
        deposit_cents: Flat deposit each party paid

    Returns:
        CancellationTerms: canceller return and fee always add up to the deposit
    """
    cancelled_by = CancelledBy(cancelled_by)
    if cancelled_by == CancelledBy.SYSTEM_EXPIRED:
        raise ValueError("system expiry only applies before acceptance")

    early = days_until_start > EARLY_CANCEL_MIN_DAYS
    if early:
        canceller_return = _percent_of(deposit_cents, EARLY_CANCEL_RETURN_PERCENT)
    else:
        canceller_return = 0

    if cancelled_by == CancelledBy.BORROWER:
        scenario = (
            CancellationScenario.BORROWER_CANCEL_EARLY
            if early
            else CancellationScenario.BORROWER_CANCEL_LATE
        )
    else:
        scenario = (
            CancellationScenario.OWNER_CANCEL_EARLY
            if early
            else CancellationScenario.OWNER_CANCEL_LATE
        )

    return CancellationTerms(
        scenario=scenario,
        canceller_return_cents=canceller_return,
        platform_fee_cents=deposit_cents - canceller_return,
        other_party_credit_cents=deposit_cents,
        early=early,
    )


def get_policy_description(early: bool) -> str:
    """Get human-readable policy description for a post-acceptance cancellation."""
    if early:
        return (
            "Cancelled more than 5 days before the start: 75% of your deposit "
            "is returned and the other party receives a full rebook credit."
        )
    return (
        "Cancelled 5 days or less before the start: your deposit is kept "
        "as a cancellation fee and the other party receives a full rebook credit."
    )
