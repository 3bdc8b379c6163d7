from datetime import datetime, timedelta, timezone

import pytest

from motosouq.models.auction_history import AuctionHistory
from motosouq.models.listing import Listing
from motosouq.models.promo_code import PromoCode
from motosouq.models.submission import Submission
from motosouq.models.user import User


def accepted_submission(acceptance_date, **kwargs):
    return Submission(status="accepted", acceptance_date=acceptance_date, sale_validated=False, **kwargs)


class TestSubmissionValidationWindow:
    def test_scenario_last_second_of_window(self):
        submission = accepted_submission(datetime(2024, 1, 1, 0, 0, 0))

        assert submission.can_be_validated(now=datetime(2024, 1, 5, 23, 59, 59)) is True
        assert submission.can_be_validated(now=datetime(2024, 1, 6, 0, 0, 1)) is False

    def test_deadline_is_inclusive(self):
        submission = accepted_submission(datetime(2024, 1, 1, tzinfo=timezone.utc))
        deadline = datetime(2024, 1, 6, tzinfo=timezone.utc)

        assert submission.validation_deadline == deadline
        assert submission.is_validation_expired(now=deadline) is False
        assert submission.is_validation_expired(now=deadline + timedelta(seconds=1)) is True

    def test_without_acceptance_date_never_expires(self):
        submission = Submission(status="pending")

        assert submission.validation_deadline is None
        assert submission.is_validation_expired(now=datetime(2030, 1, 1)) is False
        assert submission.can_be_validated() is False

    def test_validated_or_rejected_cannot_be_validated(self):
        validated = accepted_submission(datetime(2024, 1, 1))
        validated.sale_validated = True
        rejected = Submission(status="rejected", acceptance_date=datetime(2024, 1, 1))

        assert validated.can_be_validated(now=datetime(2024, 1, 2)) is False
        assert rejected.can_be_validated(now=datetime(2024, 1, 2)) is False

    def test_mixed_naive_and_aware_datetimes(self):
        submission = accepted_submission(datetime(2024, 1, 1))
        now = datetime(2024, 1, 3, tzinfo=timezone.utc)

        assert submission.can_be_validated(now=now) is True

    def test_expires_within(self):
        submission = accepted_submission(datetime(2024, 1, 1, tzinfo=timezone.utc))
        day = timedelta(hours=24)

        assert submission.expires_within(day, now=datetime(2024, 1, 5, 12, tzinfo=timezone.utc)) is True
        assert submission.expires_within(day, now=datetime(2024, 1, 3, tzinfo=timezone.utc)) is False
        assert submission.expires_within(day, now=datetime(2024, 1, 7, tzinfo=timezone.utc)) is False

    def test_accept_and_reject_bump_version(self):
        submission = Submission(status="pending", version=1)
        submission.accept(now=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert submission.status == "accepted"
        assert submission.version == 2

        submission.reject("Precio demasiado bajo")
        assert submission.status == "rejected"
        assert submission.rejection_reason == "Precio demasiado bajo"
        assert submission.version == 3


class TestSubmissionScopes:
    def _seed(self, db):
        seller = User(email="s@example.com", hashed_password="x")
        buyer = User(email="b@example.com", hashed_password="x")
        db.add_all([seller, buyer])
        db.flush()
        listing = Listing(title="CBR 600", price=10, seller_id=seller.id)
        db.add(listing)
        db.flush()
        rows = {
            "pending": Submission(listing_id=listing.id, user_id=buyer.id, amount=1, status="pending"),
            "accepted": Submission(listing_id=listing.id, user_id=buyer.id, amount=2, status="accepted",
                                   acceptance_date=datetime.now(timezone.utc)),
            "validated": Submission(listing_id=listing.id, user_id=buyer.id, amount=3, status="accepted",
                                    acceptance_date=datetime.now(timezone.utc), sale_validated=True),
            "rejected": Submission(listing_id=listing.id, user_id=buyer.id, amount=4, status="rejected"),
        }
        db.add_all(rows.values())
        db.commit()
        return rows

    def test_scopes_filter_by_status(self, db):
        rows = self._seed(db)

        def ids(expr):
            return {s.id for s in db.query(Submission).filter(expr).all()}

        assert ids(Submission.pending()) == {rows["pending"].id}
        assert ids(Submission.accepted()) == {rows["accepted"].id, rows["validated"].id}
        assert ids(Submission.rejected()) == {rows["rejected"].id}
        assert ids(Submission.validated()) == {rows["validated"].id}
        assert ids(Submission.pending_validation()) == {rows["accepted"].id}

    def test_new_submission_defaults(self, db):
        rows = self._seed(db)
        pending = rows["pending"]

        assert pending.version == 1
        assert pending.sale_validated is False
        assert pending.submission_date is not None


class TestAuctionHistory:
    def test_mark_validated_sets_timestamp_and_validator(self):
        bid_date = datetime(2024, 1, 1, tzinfo=timezone.utc)
        history = AuctionHistory(bid_amount=100, bid_date=bid_date)

        history.mark_validated("seller-1", at=bid_date + timedelta(days=1))

        assert history.validated is True
        assert history.validated_at >= history.bid_date
        assert history.validator_id == "seller-1"

    def test_validated_at_before_bid_date_is_rejected(self):
        bid_date = datetime(2024, 1, 2, tzinfo=timezone.utc)
        history = AuctionHistory(bid_amount=100, bid_date=bid_date, validated=False)

        with pytest.raises(ValueError):
            history.mark_validated("seller-1", at=bid_date - timedelta(seconds=1))
        assert history.validated is False
        assert history.validated_at is None

    def test_clear_validation(self):
        history = AuctionHistory(bid_amount=100, bid_date=datetime(2024, 1, 1))
        history.mark_validated("seller-1", at=datetime(2024, 1, 2))

        history.clear_validation()

        assert history.validated is False
        assert history.validated_at is None


class TestPromoCode:
    NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)

    def make(self, **kwargs):
        defaults = dict(
            code="summer",
            discount_type="percentage",
            discount_value=10,
            status="active",
            max_uses=5,
            used_count=0,
            start_date=datetime(2024, 6, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 6, 30, tzinfo=timezone.utc),
        )
        defaults.update(kwargs)
        return PromoCode(**defaults)

    def test_valid_when_active_unused_and_in_window(self):
        assert self.make().is_valid(now=self.NOW) is True

    def test_code_is_normalized(self):
        assert self.make(code="  summer24 ").code == "SUMMER24"

    @pytest.mark.parametrize("overrides", [
        {"status": "inactive"},
        {"used_count": 5},
        {"start_date": datetime(2024, 6, 20, tzinfo=timezone.utc)},
        {"end_date": datetime(2024, 6, 10, tzinfo=timezone.utc)},
    ])
    def test_invalid_cases(self, overrides):
        assert self.make(**overrides).is_valid(now=self.NOW) is False

    def test_unlimited_uses_and_open_dates(self):
        promo = self.make(max_uses=None, used_count=1000, start_date=None, end_date=None)
        assert promo.is_valid(now=self.NOW) is True

    def test_discount_calculation(self):
        assert self.make(discount_value=20, max_discount=50).calculate_discount(1000) == 50
        assert self.make(discount_value=20).calculate_discount(100) == 20
        assert self.make(discount_type="fixed", discount_value=300).calculate_discount(200) == 200


class TestListing:
    def test_title_is_stripped(self):
        assert Listing(title="  Ducati Monster  ", price=0).title == "Ducati Monster"

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            Listing(title="X", price=-1)

    def test_minimum_soom_amount(self):
        listing = Listing(title="X", price=0, minimum_bid=500)

        assert listing.minimum_soom_amount(None, 1.0) == 500
        assert listing.minimum_soom_amount(400, 1.0) == 500
        assert listing.minimum_soom_amount(600, 1.0) == 601
