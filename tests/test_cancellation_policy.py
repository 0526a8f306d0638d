"""Tests for cancellation policy terms."""

import pytest

from app.domain.cancellation_policy import (
    SCENARIO_STATUS,
    CancellationScenario,
    CancelledBy,
    get_policy_description,
    post_acceptance_terms,
    pre_acceptance_terms,
)

DEPOSIT = 15000


class TestPreAcceptance:
    @pytest.mark.parametrize(
        "cancelled_by,scenario,status",
        [
            ("system_expired", CancellationScenario.SYSTEM_EXPIRED, "expired_no_owner_acceptance"),
            ("borrower", CancellationScenario.BORROWER_CANCEL_PRE_ACCEPT, "cancelled_by_borrower"),
            ("owner", CancellationScenario.OWNER_DECLINED_PRE_ACCEPT, "declined_by_owner"),
        ],
    )
    def test_borrower_gets_full_credit(self, cancelled_by, scenario, status):
        """Test every pre-acceptance cancellation credits the borrower in full with no fee."""
        terms = pre_acceptance_terms(cancelled_by, DEPOSIT)

        assert terms.scenario == scenario
        assert SCENARIO_STATUS[terms.scenario] == status
        assert terms.canceller_return_cents == 0
        assert terms.platform_fee_cents == 0
        assert terms.other_party_credit_cents == DEPOSIT


class TestPostAcceptance:
    def test_early_borrower_cancel(self):
        """Test cancelling 10 days out returns 75% and keeps 25% as fee."""
        terms = post_acceptance_terms(CancelledBy.BORROWER, 10, DEPOSIT)

        assert terms.scenario == CancellationScenario.BORROWER_CANCEL_EARLY
        assert terms.canceller_return_cents == 11250
        assert terms.platform_fee_cents == 3750
        assert terms.other_party_credit_cents == DEPOSIT
        assert terms.early is True

    def test_late_owner_cancel(self):
        """Test cancelling 3 days out forfeits the whole deposit."""
        terms = post_acceptance_terms("owner", 3, DEPOSIT)

        assert terms.scenario == CancellationScenario.OWNER_CANCEL_LATE
        assert terms.canceller_return_cents == 0
        assert terms.platform_fee_cents == DEPOSIT
        assert terms.early is False

    def test_exactly_five_days_is_late(self):
        """Test the early branch needs strictly more than 5 days."""
        assert post_acceptance_terms("borrower", 5.0, DEPOSIT).early is False
        assert post_acceptance_terms("borrower", 5.0001, DEPOSIT).early is True

    @pytest.mark.parametrize("days", [0.1, 4.9, 5.5, 30])
    def test_return_and_fee_add_up_to_deposit(self, days):
        """Test money is conserved in every post-acceptance branch."""
        terms = post_acceptance_terms("owner", days, DEPOSIT)
        assert terms.canceller_return_cents + terms.platform_fee_cents == DEPOSIT

    def test_system_expiry_is_rejected(self):
        """Test system expiry cannot use post-acceptance terms."""
        with pytest.raises(ValueError):
            post_acceptance_terms("system_expired", 10, DEPOSIT)


def test_policy_description_mentions_outcome():
    """Test the description differs for early and late cancellations."""
    assert "75%" in get_policy_description(True)
    assert "cancellation fee" in get_policy_description(False)
