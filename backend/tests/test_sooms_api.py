from datetime import timedelta

from sqlalchemy import update

from conftest import API

from motosouq.core.utils import utcnow
from motosouq.models.auction_history import AuctionHistory
from motosouq.models.listing import Listing
from motosouq.models.submission import Submission
from motosouq.services import soom_service
from motosouq.tasks.sooms import close_listing_after_sale_task


def send_soom(client, listing, user, amount):
    return client.post(f"{API}/listings/{listing['id']}/sooms", json={"amount": amount}, headers=user["headers"])


def soom_id(response):
    assert response.status_code == 201, response.text
    return response.json()["submission"]["id"]


class TestCreateSoom:
    def test_below_listing_minimum_bid(self, client, listing, buyer):
        response = send_soom(client, listing, buyer, 20000)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["minimum_required"] == 25000
        assert detail["current_highest"] is None

    def test_must_beat_highest_by_increment(self, client, listing, buyer, other_buyer, enqueued):
        soom_id(send_soom(client, listing, buyer, 26000))

        response = send_soom(client, listing, other_buyer, 26000.5)
        assert response.status_code == 422
        assert response.json()["detail"]["minimum_required"] == 26001

        response = send_soom(client, listing, other_buyer, 26001)
        assert response.status_code == 201
        submission = response.json()["submission"]
        assert submission["status"] == "pending"
        assert submission["min_soom"] == 26001
        assert submission["version"] == 1
        assert [c["task"] for c in enqueued].count("motosouq.tasks.sooms.notify_soom_created_task") == 2

    def test_seller_cannot_soom_own_listing(self, client, listing, seller):
        assert send_soom(client, listing, seller, 30000).status_code == 403

    def test_unknown_listing(self, client, buyer):
        response = client.post(f"{API}/listings/nope/sooms", json={"amount": 10}, headers=buyer["headers"])
        assert response.status_code == 404

    def test_listing_not_accepting_submissions(self, client, listing, seller, buyer):
        client.put(f"{API}/listings/{listing['id']}", json={"allow_submission": False}, headers=seller["headers"])

        assert send_soom(client, listing, buyer, 30000).status_code == 403
        assert client.get(f"{API}/listings/{listing['id']}/minimum-soom").status_code == 403

    def test_draft_listing_neither_quotes_nor_accepts(self, client, seller, buyer):
        draft = client.post(
            f"{API}/listings/",
            json={"title": "Honda CB500F", "price": 20000, "status": "draft"},
            headers=seller["headers"],
        ).json()

        assert client.get(f"{API}/listings/{draft['id']}/minimum-soom").status_code == 403
        assert send_soom(client, draft, buyer, 20000).status_code == 403

    def test_requires_authentication(self, client, listing):
        response = client.post(f"{API}/listings/{listing['id']}/sooms", json={"amount": 30000})
        assert response.status_code == 401


class TestListingSoomQueries:
    def test_list_minimum_and_last(self, client, listing, buyer, other_buyer):
        soom_id(send_soom(client, listing, buyer, 25000))
        soom_id(send_soom(client, listing, other_buyer, 27000))

        body = client.get(f"{API}/listings/{listing['id']}/sooms", headers=buyer["headers"]).json()
        assert body["total"] == 2
        assert body["highest"] == 27000
        assert [s["amount"] for s in body["sooms"]] == [27000, 25000]

        body = client.get(f"{API}/listings/{listing['id']}/minimum-soom").json()
        assert body == {"minimum_soom": 27001, "current_highest": 27000, "minimum_bid": 25000}

        anonymous = client.get(f"{API}/listings/{listing['id']}/last-soom").json()
        assert anonymous["total_sooms"] == 2
        assert anonymous["is_seller"] is False
        assert anonymous["my_pending_soom"] is None

        mine = client.get(f"{API}/listings/{listing['id']}/last-soom", headers=buyer["headers"]).json()
        assert mine["my_pending_soom"]["amount"] == 25000


class TestAcceptReject:
    def test_only_seller_can_accept(self, client, listing, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        assert client.post(f"{API}/sooms/{sid}/accept", headers=buyer["headers"]).status_code == 403

    def test_accept_opens_validation_window(self, client, listing, seller, buyer, other_buyer, enqueued):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        soom_id(send_soom(client, listing, other_buyer, 27000))

        response = client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])

        assert response.status_code == 200
        body = response.json()
        assert body["submission"]["status"] == "accepted"
        assert body["validation_deadline"] is not None
        assert body["pending_sooms_count"] == 1
        assert "motosouq.tasks.sooms.notify_soom_accepted_task" in [c["task"] for c in enqueued]

        detail = client.get(f"{API}/sooms/{sid}", headers=buyer["headers"]).json()
        assert [r["response"] for r in detail["responses"]] == ["accepted"]

        assert client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"]).status_code == 422

    def test_reject_with_reason(self, client, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        response = client.post(f"{API}/sooms/{sid}/reject", json={"reason": "Muy bajo"}, headers=seller["headers"])

        assert response.status_code == 200
        assert response.json()["submission"]["rejection_reason"] == "Muy bajo"
        assert client.post(f"{API}/sooms/{sid}/reject", headers=seller["headers"]).status_code == 422
        assert client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"]).status_code == 422

    def test_cannot_reject_validated_sale(self, client, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])
        assert client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"]).status_code == 200

        assert client.post(f"{API}/sooms/{sid}/reject", headers=seller["headers"]).status_code == 403


class TestValidateSale:
    def test_full_validation_flow(self, client, db, listing, seller, buyer, other_buyer, enqueued):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        other_id = soom_id(send_soom(client, listing, other_buyer, 27000))
        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])

        response = client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"])

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["submission"]["sale_validated"] is True
        assert body["submission"]["sale_validation_date"] is not None
        assert body["rejected_sooms_count"] == 1

        db.expire_all()
        assert db.get(Submission, other_id).status == "rejected"
        listing_row = db.get(Listing, listing["id"])
        assert listing_row.status == "sold"
        assert listing_row.allow_submission is False

        history = db.query(AuctionHistory).filter(AuctionHistory.submission_id == sid).one()
        assert history.validated is True
        assert history.validator_id == seller["user_id"]
        assert history.buyer_id == buyer["user_id"]
        assert history.bid_amount == 26000
        assert history.validated_at >= history.bid_date

        close = [c for c in enqueued if c["task"] == "motosouq.tasks.sooms.close_listing_after_sale_task"]
        assert close == [{
            "task": "motosouq.tasks.sooms.close_listing_after_sale_task",
            "args": (listing["id"],),
            "kwargs": {},
            "countdown": 5 * 86400,
        }]

        # Segunda validación: ya consta como validada
        assert client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"]).status_code == 422
        assert db.query(AuctionHistory).filter(AuctionHistory.submission_id == sid).count() == 1

    def test_only_seller_and_only_accepted(self, client, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        assert client.post(f"{API}/sooms/{sid}/validate-sale", headers=buyer["headers"]).status_code == 403
        response = client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"])
        assert response.status_code == 403
        assert response.json()["detail"]["current_status"] == "pending"

    def test_expired_window(self, client, db, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])

        submission = db.get(Submission, sid)
        submission.acceptance_date = utcnow() - timedelta(days=5, seconds=1)
        db.commit()

        response = client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"])

        assert response.status_code == 422
        assert "validation_deadline" in response.json()["detail"]
        db.expire_all()
        assert db.get(Submission, sid).sale_validated is False
        assert db.query(AuctionHistory).count() == 0

    def test_stale_version_conflicts(self, client, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        accepted = client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"]).json()["submission"]

        response = client.post(
            f"{API}/sooms/{sid}/validate-sale",
            json={"version": accepted["version"] - 1},
            headers=seller["headers"],
        )

        assert response.status_code == 409

    def test_concurrent_claim_loses(self, client, db, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])

        submission = db.get(Submission, sid)
        # Otra petición valida primero: la versión en memoria queda desfasada
        db.execute(
            update(Submission)
            .where(Submission.id == sid)
            .values(sale_validated=True, version=Submission.version + 1)
            .execution_options(synchronize_session=False)
        )

        assert soom_service.claim_sale_validation(db, submission, utcnow()) is False
        db.rollback()

        fresh = db.get(Submission, sid)
        assert soom_service.claim_sale_validation(db, fresh, utcnow()) is True
        assert fresh.sale_validated is True

    def test_one_sale_per_listing(self, client, db, listing, seller, buyer, other_buyer, enqueued):
        first = soom_id(send_soom(client, listing, buyer, 26000))
        second = soom_id(send_soom(client, listing, other_buyer, 27000))
        client.post(f"{API}/sooms/{first}/accept", headers=seller["headers"])
        client.post(f"{API}/sooms/{second}/accept", headers=seller["headers"])

        assert client.post(f"{API}/sooms/{first}/validate-sale", headers=seller["headers"]).status_code == 200
        response = client.post(f"{API}/sooms/{second}/validate-sale", headers=seller["headers"])

        assert response.status_code == 422
        assert response.json()["detail"]["listing_status"] == "sold"
        db.expire_all()
        validated = db.query(AuctionHistory).filter(
            AuctionHistory.listing_id == listing["id"],
            AuctionHistory.validated.is_(True),
        ).all()
        assert [h.submission_id for h in validated] == [first]
        assert db.get(Submission, second).sale_validated is False
        closes = [c for c in enqueued if c["task"] == "motosouq.tasks.sooms.close_listing_after_sale_task"]
        assert len(closes) == 1

    def test_closed_listing_cannot_be_sold(self, client, db, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])
        client.post(f"{API}/listings/{listing['id']}/close", headers=seller["headers"])

        response = client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"])

        assert response.status_code == 422
        db.expire_all()
        assert db.get(Listing, listing["id"]).status == "closed"
        assert db.get(Submission, sid).sale_validated is False
        assert db.query(AuctionHistory).count() == 0

    def test_delayed_close_task(self, client, db, listing, seller, buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])
        client.post(f"{API}/sooms/{sid}/validate-sale", headers=seller["headers"])

        assert close_listing_after_sale_task(listing["id"]) is True
        assert close_listing_after_sale_task(listing["id"]) is False

        db.expire_all()
        row = db.get(Listing, listing["id"])
        assert row.status == "sold"
        assert row.closing_reason == "sold_via_soom"
        assert row.closed_at is not None


class TestBuyerActions:
    def test_edit_amount(self, client, listing, buyer, other_buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        soom_id(send_soom(client, listing, other_buyer, 28000))

        response = client.put(f"{API}/sooms/{sid}", json={"amount": 28000}, headers=buyer["headers"])
        assert response.status_code == 422
        assert response.json()["detail"]["minimum_required"] == 28001

        response = client.put(f"{API}/sooms/{sid}", json={"amount": 29000, "version": 1}, headers=buyer["headers"])
        assert response.status_code == 200
        assert response.json()["submission"]["version"] == 2

        response = client.put(f"{API}/sooms/{sid}", json={"amount": 30000, "version": 1}, headers=buyer["headers"])
        assert response.status_code == 409

    def test_edit_only_by_buyer_and_while_pending(self, client, listing, seller, buyer, other_buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        assert client.put(f"{API}/sooms/{sid}", json={"amount": 27000}, headers=other_buyer["headers"]).status_code == 403

        client.post(f"{API}/sooms/{sid}/accept", headers=seller["headers"])
        assert client.put(f"{API}/sooms/{sid}", json={"amount": 27000}, headers=buyer["headers"]).status_code == 403

    def test_cancel(self, client, listing, seller, buyer, other_buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))
        assert client.delete(f"{API}/sooms/{sid}", headers=other_buyer["headers"]).status_code == 403

        assert client.delete(f"{API}/sooms/{sid}", headers=buyer["headers"]).status_code == 200
        assert client.get(f"{API}/sooms/{sid}", headers=buyer["headers"]).status_code == 404

        accepted = soom_id(send_soom(client, listing, buyer, 26000))
        client.post(f"{API}/sooms/{accepted}/accept", headers=seller["headers"])
        assert client.delete(f"{API}/sooms/{accepted}", headers=buyer["headers"]).status_code == 403


class TestDashboards:
    def test_mine_received_pending_and_stats(self, client, db, listing, seller, buyer, other_buyer):
        first = soom_id(send_soom(client, listing, buyer, 26000))
        soom_id(send_soom(client, listing, other_buyer, 27000))
        client.post(f"{API}/sooms/{first}/accept", headers=seller["headers"])

        # La ventana cierra en menos de 24 horas
        submission = db.get(Submission, first)
        submission.acceptance_date = utcnow() - timedelta(days=4, hours=12)
        db.commit()

        mine = client.get(f"{API}/sooms/mine", headers=buyer["headers"]).json()
        assert mine["stats"] == {"total": 1, "pending": 0, "accepted": 1, "rejected": 0}

        received = client.get(f"{API}/sooms/received", headers=seller["headers"]).json()
        assert received["stats"]["total"] == 2
        assert received["stats"]["pending_validation"] == 1

        pending = client.get(f"{API}/sooms/pending-validations", headers=seller["headers"]).json()
        assert pending["total"] == 1
        assert pending["expiring_soon"] == 1
        assert pending["expired"] == 0

        stats = client.get(f"{API}/sooms/stats", headers=seller["headers"]).json()
        assert stats["as_seller"] == {
            "total_received": 2,
            "pending": 1,
            "accepted": 1,
            "rejected": 0,
            "validated_sales": 0,
            "pending_validation": 1,
        }
        assert stats["as_buyer"]["total_sent"] == 0

    def test_detail_visible_only_to_parties(self, client, listing, buyer, other_buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        assert client.get(f"{API}/sooms/{sid}", headers=other_buyer["headers"]).status_code == 403


class TestNegotiations:
    def test_counter_offer_round_trip(self, client, listing, seller, buyer, other_buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        response = client.post(
            f"{API}/sooms/{sid}/negotiations",
            json={"offer_amount": 28500, "message": "¿Lo dejamos en 28.500?"},
            headers=seller["headers"],
        )
        assert response.status_code == 201
        negotiation = response.json()
        assert negotiation["receiver_id"] == buyer["user_id"]

        response = client.post(f"{API}/sooms/{sid}/negotiations", json={"offer_amount": 27000}, headers=buyer["headers"])
        assert response.status_code == 422

        response = client.post(
            f"{API}/sooms/negotiations/{negotiation['id']}/respond",
            json={"response": "accepted"},
            headers=seller["headers"],
        )
        assert response.status_code == 403

        response = client.post(
            f"{API}/sooms/negotiations/{negotiation['id']}/respond",
            json={"response": "accepted"},
            headers=buyer["headers"],
        )
        assert response.status_code == 200
        assert response.json()["response"] == "accepted"

        detail = client.get(f"{API}/sooms/{sid}", headers=buyer["headers"]).json()
        assert detail["amount"] == 28500

        rounds = client.get(f"{API}/sooms/{sid}/negotiations", headers=seller["headers"]).json()
        assert len(rounds) == 1

        response = client.post(
            f"{API}/sooms/negotiations/{negotiation['id']}/respond",
            json={"response": "rejected"},
            headers=buyer["headers"],
        )
        assert response.status_code == 422

    def test_outsiders_cannot_negotiate(self, client, listing, buyer, other_buyer):
        sid = soom_id(send_soom(client, listing, buyer, 26000))

        response = client.post(f"{API}/sooms/{sid}/negotiations", json={"offer_amount": 1}, headers=other_buyer["headers"])

        assert response.status_code == 403
