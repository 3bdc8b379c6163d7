from conftest import API

from motosouq.models.auction_history import AuctionHistory
from motosouq.models.submission import Submission


def post_soom(client, listing_id, user, amount):
    response = client.post(f"{API}/listings/{listing_id}/sooms", json={"amount": amount}, headers=user["headers"])
    assert response.status_code == 201, response.text
    return response.json()["submission"]["id"]


class TestListingCrud:
    def test_create_strips_title_and_publishes(self, listing, seller):
        assert listing["title"] == "Yamaha MT-07 2021"
        assert listing["status"] == "published"
        assert listing["published_at"] is not None
        assert listing["seller_id"] == seller["user_id"]

    def test_public_list_and_detail(self, client, listing, seller):
        client.post(f"{API}/listings/", json={"title": "Borrador", "status": "draft"}, headers=seller["headers"])

        titles = [item["title"] for item in client.get(f"{API}/listings/").json()]
        assert titles == ["Yamaha MT-07 2021"]
        assert len(client.get(f"{API}/listings/mine", headers=seller["headers"]).json()) == 2
        assert client.get(f"{API}/listings/{listing['id']}").json()["id"] == listing["id"]
        assert client.get(f"{API}/listings/no-existe").status_code == 404

    def test_negative_price_fails_validation(self, client, seller):
        response = client.post(f"{API}/listings/", json={"title": "X", "price": -5}, headers=seller["headers"])
        assert response.status_code == 422

    def test_only_owner_can_update_or_delete(self, client, listing, seller, buyer):
        url = f"{API}/listings/{listing['id']}"

        assert client.put(url, json={"price": 1}, headers=buyer["headers"]).status_code == 403
        assert client.delete(url, headers=buyer["headers"]).status_code == 403

        response = client.put(url, json={"price": 28000}, headers=seller["headers"])
        assert response.status_code == 200
        assert response.json()["price"] == 28000

        assert client.put(url, json={"status": "sold"}, headers=seller["headers"]).status_code == 422

        assert client.delete(url, headers=seller["headers"]).status_code == 200
        assert client.get(url).status_code == 404

    def test_with_auction_records_initial_bid(self, client, db, seller):
        response = client.post(
            f"{API}/listings/with-auction",
            json={"title": "Kawasaki Z900", "price": 40000, "minimum_bid": 35000},
            headers=seller["headers"],
        )

        assert response.status_code == 201
        body = response.json()
        assert body["auction_enabled"] is True
        assert body["price_type"] == "auction"

        history = db.query(AuctionHistory).filter(AuctionHistory.listing_id == body["id"]).one()
        assert history.bid_amount == 35000
        assert history.validated is False
        assert history.submission_id is None


class TestListingLifecycle:
    def test_close_rejects_pending_and_reopen(self, client, db, listing, seller, buyer, enqueued):
        sid = post_soom(client, listing["id"], buyer, 26000)

        response = client.post(
            f"{API}/listings/{listing['id']}/close",
            json={"closing_reason": "Ya no la vendo"},
            headers=seller["headers"],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "closed"
        assert body["allow_submission"] is False
        assert body["closing_reason"] == "Ya no la vendo"
        db.expire_all()
        assert db.get(Submission, sid).status == "rejected"
        assert "motosouq.tasks.sooms.notify_soom_rejected_task" in [c["task"] for c in enqueued]

        assert client.post(f"{API}/listings/{listing['id']}/close", headers=seller["headers"]).status_code == 422

        response = client.post(
            f"{API}/listings/{listing['id']}/reopen",
            json={"reopening_notes": "Otra vez disponible"},
            headers=seller["headers"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "published"
        assert body["allow_submission"] is True
        assert body["reopened_at"] is not None

    def test_reopen_requires_closed(self, client, listing, seller):
        response = client.post(f"{API}/listings/{listing['id']}/reopen", headers=seller["headers"])
        assert response.status_code == 422

    def test_mark_sold_rejects_pending(self, client, db, listing, seller, buyer, other_buyer):
        first = post_soom(client, listing["id"], buyer, 26000)
        second = post_soom(client, listing["id"], other_buyer, 27000)

        response = client.post(f"{API}/listings/{listing['id']}/sold", headers=seller["headers"])

        assert response.status_code == 200
        assert response.json()["status"] == "sold"
        db.expire_all()
        assert {db.get(Submission, first).status, db.get(Submission, second).status} == {"rejected"}

        # Un anuncio vendido no se reabre ni se modifica
        assert client.post(f"{API}/listings/{listing['id']}/reopen", headers=seller["headers"]).status_code == 422
        assert client.put(
            f"{API}/listings/{listing['id']}", json={"price": 1}, headers=seller["headers"]
        ).status_code == 422
        assert client.delete(f"{API}/listings/{listing['id']}", headers=seller["headers"]).status_code == 422

    def test_lifecycle_endpoints_require_owner(self, client, listing, buyer):
        for action in ("sold", "close", "reopen"):
            response = client.post(f"{API}/listings/{listing['id']}/{action}", headers=buyer["headers"])
            assert response.status_code == 403
