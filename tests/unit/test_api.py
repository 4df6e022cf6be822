"""HTTP surface: listings, bidding, closing and admin endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

import orjson
import pytest
import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from fastapi.testclient import TestClient

from farmbid.config import get_server_config
from farmbid.identity.signatures import request_envelope, sign_payload
from farmbid.main import app
from farmbid.transport.timestamps import format_timestamp

from .conftest import listing_payload

FARMER = {"X-Actor-Id": "farmer-1"}
BUYER_1 = {"X-Actor-Id": "buyer-1"}
BUYER_2 = {"X-Actor-Id": "buyer-2"}
ADMIN = {"X-Actor-Id": "admin-1"}


def write_config(tmp_path, monkeypatch, *, mode: str, farmer_key: str = "") -> None:
    server = tmp_path / "server.yaml"
    server.write_text(
        yaml.safe_dump(
            {
                "logging": {"level": "WARNING"},
                "identity": {"mode": mode},
                "ledger": {"backend": "in_memory"},
                "notifications": {"backend": "local"},
            }
        )
    )
    actors = tmp_path / "actors.yaml"
    actors.write_text(
        yaml.safe_dump(
            {
                "actors": [
                    {"id": "farmer-1", "role": "farmer", "public_key": farmer_key},
                    {"id": "buyer-1", "role": "buyer"},
                    {"id": "buyer-2", "role": "buyer"},
                    {"id": "admin-1", "role": "admin"},
                ]
            }
        )
    )
    monkeypatch.setenv("FARMBID_CONFIG_PATH", str(server))
    monkeypatch.setenv("FARMBID_ACTORS_PATH", str(actors))
    get_server_config.cache_clear()


@pytest.fixture
def client(tmp_path, monkeypatch):
    write_config(tmp_path, monkeypatch, mode="trusted_header")
    with TestClient(app) as test_client:
        yield test_client
    get_server_config.cache_clear()


def create_listing(client: TestClient, **overrides) -> dict:
    response = client.post("/listings", json=listing_payload(**overrides), headers=FARMER)
    assert response.status_code == 201, response.text
    return response.json()


class TestMeta:
    def test_root_and_ping(self, client):
        assert client.get("/ping").json()["status"] == "ok"
        root = client.get("/").json()
        assert root["service"] == "farmbid"
        assert root["identity_mode"] == "trusted_header"


class TestListings:
    def test_farmer_creates_listing(self, client):
        listing = create_listing(client)

        assert listing["status"] == "open"
        assert listing["owner_id"] == "farmer-1"
        assert listing["current_highest"] == "100"
        assert listing["bid_count"] == 0
        assert listing["leading_bid"] is None
        assert client.get(f"/listings/{listing['listing_id']}").json()["title"] == "Alphonso mangoes"

    def test_buyer_cannot_create_listing(self, client):
        response = client.post("/listings", json=listing_payload(), headers=BUYER_1)
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "forbidden"

    def test_missing_identity(self, client):
        response = client.post("/listings", json=listing_payload())
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "unauthenticated"

    def test_schema_violation_names_field(self, client):
        response = client.post("/listings", json=listing_payload(quantity=0), headers=FARMER)
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "validation_error"
        assert detail["field"] == "quantity"

    def test_past_deadline_rejected(self, client):
        response = client.post(
            "/listings",
            json=listing_payload(closes_at="2001-01-01T00:00:00Z"),
            headers=FARMER,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_listing"

    def test_sub_cent_base_price_rejected(self, client):
        response = client.post("/listings", json=listing_payload(base_price=100.005), headers=FARMER)
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_listing"

    def test_unknown_listing(self, client):
        response = client.get("/listings/lst_missing")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "listing_not_found"

    def test_status_filter(self, client):
        first = create_listing(client)
        create_listing(client)
        client.post(f"/listings/{first['listing_id']}/close", headers=FARMER)

        open_ids = [item["listing_id"] for item in client.get("/listings", params={"status": "open"}).json()]
        closed_ids = [item["listing_id"] for item in client.get("/listings", params={"status": "closed"}).json()]

        assert first["listing_id"] not in open_ids
        assert closed_ids == [first["listing_id"]]
        assert client.get("/listings", params={"status": "bogus"}).status_code == 422


class TestBidding:
    def test_bid_sequence(self, client):
        listing_id = create_listing(client)["listing_id"]
        url = f"/listings/{listing_id}/bids"

        first = client.post(url, json={"amount": 150}, headers=BUYER_1)
        too_low = client.post(url, json={"amount": 120}, headers=BUYER_2)
        higher = client.post(url, json={"amount": "200"}, headers=BUYER_2)

        assert first.status_code == 201
        assert first.json()["current_highest"] == "150"
        assert too_low.status_code == 409
        assert too_low.json()["detail"] == {
            "error": "bid_too_low",
            "message": "bid must be higher than 150",
            "retryable": True,
            "current_highest": "150",
        }
        assert higher.status_code == 201
        assert higher.json()["bid_count"] == 2

        history = client.get(url).json()
        assert history["current_highest"] == "200"
        assert [bid["amount"] for bid in history["bids"]] == ["200", "150"]
        acceptance = client.get(url, params={"order": "acceptance"}).json()
        assert [bid["amount"] for bid in acceptance["bids"]] == ["150", "200"]
        assert client.get(url, params={"order": "sideways"}).status_code == 422

    def test_non_positive_amount(self, client):
        listing_id = create_listing(client)["listing_id"]
        response = client.post(f"/listings/{listing_id}/bids", json={"amount": 0}, headers=BUYER_1)
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_amount"

    def test_malformed_bid_body(self, client):
        listing_id = create_listing(client)["listing_id"]
        response = client.post(f"/listings/{listing_id}/bids", json={"price": 10}, headers=BUYER_1)
        assert response.status_code == 422

    def test_owner_cannot_bid(self, client):
        listing_id = create_listing(client)["listing_id"]
        response = client.post(f"/listings/{listing_id}/bids", json={"amount": 500}, headers=FARMER)
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "own_listing_bid"

    def test_bid_on_unknown_listing(self, client):
        response = client.post("/listings/lst_missing/bids", json={"amount": 500}, headers=BUYER_1)
        assert response.status_code == 404


class TestClosing:
    def test_owner_closes_and_winner_is_accepted(self, client):
        listing_id = create_listing(client)["listing_id"]
        client.post(f"/listings/{listing_id}/bids", json={"amount": 150}, headers=BUYER_1)
        client.post(f"/listings/{listing_id}/bids", json={"amount": 175}, headers=BUYER_2)

        assert client.post(f"/listings/{listing_id}/close", headers=BUYER_1).status_code == 403
        closed = client.post(f"/listings/{listing_id}/close", headers=FARMER)

        assert closed.status_code == 200
        body = closed.json()
        assert body["status"] == "sold"
        assert body["leading_bid"]["bidder_id"] == "buyer-2"
        assert body["leading_bid"]["status"] == "accepted"
        assert body["winning_bid_id"] == body["leading_bid"]["id"]

        late = client.post(f"/listings/{listing_id}/bids", json={"amount": 900}, headers=BUYER_1)
        assert late.status_code == 409
        assert late.json()["detail"]["error"] == "listing_closed"
        assert late.json()["detail"]["status"] == "sold"


class TestAdmin:
    def test_health_config_and_actors(self, client):
        health = client.get("/admin/health").json()
        assert health["status"] == "healthy"
        assert health["identity_mode"] == "trusted_header"
        assert health["notification_backend"] == "local"
        config = client.get("/admin/config").json()
        assert config["identity_mode"] == "trusted_header"
        assert config["actors_by_role"] == {
            "admin": ["admin-1"],
            "buyer": ["buyer-1", "buyer-2"],
            "farmer": ["farmer-1"],
        }
        actors = {actor["id"]: actor for actor in client.get("/admin/actors").json()}
        assert actors["buyer-1"]["permissions"] == ["submit-bid"]

    def test_stats(self, client):
        sold = create_listing(client)["listing_id"]
        create_listing(client, category="vegetable")
        client.post(f"/listings/{sold}/bids", json={"amount": 150}, headers=BUYER_1)
        client.post(f"/listings/{sold}/bids", json={"amount": 160}, headers=BUYER_2)
        client.post(f"/listings/{sold}/close", headers=FARMER)

        stats = client.get("/admin/stats").json()

        assert stats["total_listings"] == 2
        assert stats["total_bids"] == 2
        assert stats["listings_by_status"] == {"open": 1, "closed": 0, "sold": 1}
        assert stats["bids_by_status"] == {"rejected": 1, "accepted": 1}
        assert stats["sell_through_rate"] == 1.0
        assert stats["bidder_win_rates"] == {"buyer-1": 0.0, "buyer-2": 1.0}
        assert stats["category_distribution"] == {"fruit": 1, "vegetable": 1}

    def test_settle_without_expired_listings(self, client):
        create_listing(client)
        response = client.post("/admin/settle", headers=ADMIN)
        assert response.status_code == 200
        assert response.json() == {"settled": 0, "settled_by": "admin-1", "listings": []}

    def test_settle_requires_admin(self, client):
        assert client.post("/admin/settle").status_code == 401
        forbidden = client.post("/admin/settle", headers=BUYER_1)
        assert forbidden.status_code == 403
        assert forbidden.json()["detail"]["error"] == "forbidden"


class TestSignedMode:
    @pytest.fixture
    def signed(self, tmp_path, monkeypatch):
        private_key = Ed25519PrivateKey.generate()
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        write_config(tmp_path, monkeypatch, mode="signed", farmer_key=public_pem)
        with TestClient(app) as test_client:
            yield test_client, private_pem
        get_server_config.cache_clear()

    def _signed_headers(self, private_pem: str, body: bytes, nonce: str) -> dict[str, str]:
        timestamp = format_timestamp(datetime.now(timezone.utc))
        envelope = request_envelope(
            actor_id="farmer-1",
            method="POST",
            path="/listings",
            timestamp=timestamp,
            nonce=nonce,
            body=body,
        )
        return {
            "X-Actor-Id": "farmer-1",
            "X-Timestamp": timestamp,
            "X-Nonce": nonce,
            "X-Signature": sign_payload(envelope, private_pem),
            "Content-Type": "application/json",
        }

    def test_signed_request_accepted_once(self, signed):
        client, private_pem = signed
        body = orjson.dumps(listing_payload())
        headers = self._signed_headers(private_pem, body, nonce="nonce-1")

        first = client.post("/listings", content=body, headers=headers)
        replay = client.post("/listings", content=body, headers=headers)

        assert first.status_code == 201, first.text
        assert replay.status_code == 401

    def test_unsigned_request_rejected(self, signed):
        client, _ = signed
        response = client.post("/listings", json=listing_payload(), headers=FARMER)
        assert response.status_code == 401
