"""Tests for the memstore REST server."""

import json

import pytest
from fastapi.testclient import TestClient

from connectors_sdk.config import Settings
from connectors_sdk.memstore.server import app_from_settings, create_app


@pytest.fixture
def client(memstore):
    return TestClient(create_app(memstore))


class TestControlPlane:
    def test_health(self, client):
        assert client.get("/_memstore/health").json() == {"status": "healthy"}

    def test_seed_and_info(self, client):
        resp = client.post(
            "/_memstore/seed",
            json={"account": 3, "opportunity": [{"id": "opp-1", "name": "Renewal"}]},
        )
        assert resp.status_code == 200
        assert resp.json()["seeded"] == {"account": 3, "opportunity": 1}

        info = client.get("/_memstore/info").json()
        assert info["objects"]["account"] == 3
        assert info["objects"]["contact"] == 0
        assert info["subscriptions"] == 0

    def test_seed_rejects_bad_spec(self, client):
        resp = client.post("/_memstore/seed", json={"account": "many"})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "invalid_seed"

    def test_reset(self, client):
        client.post("/_memstore/seed", json={"account": 2})
        client.post("/_memstore/reset")
        assert client.get("/_memstore/info").json()["objects"]["account"] == 0


class TestRecords:
    def test_crud(self, client):
        created = client.post("/objects/account", json={"name": "Acme"})
        assert created.status_code == 201
        record_id = created.json()["recordId"]

        fetched = client.get(f"/objects/account/{record_id}")
        assert fetched.json()["raw"]["name"] == "Acme"

        updated = client.patch(f"/objects/account/{record_id}", json={"tier": "pro"})
        assert updated.json()["data"]["tier"] == "pro"

        assert client.delete(f"/objects/account/{record_id}").json() == {"success": True}
        assert client.get(f"/objects/account/{record_id}").status_code == 404

    def test_read_page_with_associations(self, client):
        client.post("/objects/account", json={"id": "acc-1", "name": "Acme"})
        client.post("/objects/contact", json={"id": "cont-1", "name": "Ada", "account_id": "acc-1"})

        page = client.get("/objects/contact", params={"fields": "name", "associations": "account_id"}).json()

        assert page["rows"] == 1
        assert page["done"] is True
        row = page["data"][0]
        assert row["fields"] == {"name": "Ada"}
        assert row["associations"]["account_id"][0]["raw"]["name"] == "Acme"

    def test_pagination(self, client):
        client.post("/_memstore/seed", json={"account": 3})
        first = client.get("/objects/account", params={"page_size": 2}).json()
        assert first["nextPage"] == "2"
        second = client.get("/objects/account", params={"page_size": 2, "next_page": first["nextPage"]}).json()
        assert second["rows"] == 1 and second["done"]

    def test_validation_error(self, client):
        resp = client.post("/objects/account", json={"name": "Acme", "tier": "platinum"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "ValidationFailedError"
        assert body["errors"]

    def test_foreign_key_error(self, client):
        resp = client.post("/objects/contact", json={"name": "X", "account_id": "acc-99"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidForeignKeyError"

    def test_unknown_object(self, client):
        assert client.get("/objects/widget").status_code == 404

    def test_delete_missing(self, client):
        resp = client.delete("/objects/account/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "RecordNotFoundError"

    def test_missing_data(self, client):
        resp = client.post("/objects/account", json={})
        assert resp.status_code == 400

    def test_bad_page_token(self, client):
        assert client.get("/objects/account", params={"next_page": "abc"}).status_code == 400


class TestMetadata:
    def test_selected_objects(self, client):
        body = client.get("/metadata", params={"objects": "account,widget"}).json()
        assert body["result"]["account"]["displayName"] == "Account"
        assert "widget" in body["errors"]

    def test_all_objects(self, client):
        body = client.get("/metadata").json()
        assert set(body["result"]) == {"account", "contact", "opportunity", "opportunityContact"}


def test_app_from_settings(tmp_path, schemas):
    path = tmp_path / "schemas.json"
    path.write_text(json.dumps(schemas))
    app = app_from_settings(Settings(memstore_schemas=str(path)))
    assert TestClient(app).get("/_memstore/health").status_code == 200


def test_app_from_settings_requires_schemas():
    with pytest.raises(SystemExit):
        app_from_settings(Settings())
