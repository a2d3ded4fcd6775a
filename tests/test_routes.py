"""
HTTP endpoint tests: app.py, scan_routes.py
"""
import pytest

from app import create_app
from shielded.config import ShieldedConfig, ScanConfig, StorageConfig
from shielded.scan.ledger import MemoryLedger

from conftest import TOKEN, OTHER_TOKEN


class UnreachableLedger(MemoryLedger):

    async def read_membership(self, identifier):
        raise ConnectionRefusedError("node offline")


def make_client(ledger, store, **scan_kwargs):
    config = ShieldedConfig(
        scan=ScanConfig(**scan_kwargs),
        storage=StorageConfig(in_memory=True),
    )
    app = create_app(config, ledger=ledger, store=store)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def client(ledger, store):
    return make_client(ledger, store)


class TestApp:

    def test_index(self, client):
        res = client.get("/")
        assert res.status_code == 200
        assert res.get_json()["service"] == "shielded-scan"

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            create_app(ShieldedConfig(scan=ScanConfig(max_slots=0)))

    def test_default_in_memory_app(self):
        app = create_app(ShieldedConfig(storage=StorageConfig(in_memory=True)))
        assert app.test_client().get("/").status_code == 200


class TestDiscover:
    """POST /scan/discover"""

    def test_discover(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN), (40, OTHER_TOKEN)])
        res = client.post("/scan/discover", json={"signature": signature})
        assert res.status_code == 200

        data = res.get_json()
        assert data["account_id"] == keys.account_id
        assert data["current_slot"] == 2
        assert data["fast_path"] is False
        assert data["saved"] is True
        assert data["decrypted_slots"] == [1, 0]
        assert data["entries"][0] == {"slot": 1, "token_id": str(OTHER_TOKEN), "amount": "40"}
        assert data["accumulator"]["count"] == 2

    def test_second_call_is_fast(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        client.post("/scan/discover", json={"signature": signature})
        data = client.post("/scan/discover", json={"signature": signature}).get_json()
        assert data["fast_path"] is True
        assert data["saved"] is False
        assert data["accumulator"] is None

    def test_missing_signature(self, client):
        res = client.post("/scan/discover", json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "INVALID_INPUT"

    def test_bad_signature(self, client):
        res = client.post("/scan/discover", json={"signature": "0x1234"})
        assert res.status_code == 400

    def test_non_json_body(self, client):
        res = client.post("/scan/discover", data="nope", content_type="text/plain")
        assert res.status_code == 400

    def test_ledger_unavailable(self, store, signature):
        client = make_client(UnreachableLedger(), store)
        res = client.post("/scan/discover", json={"signature": signature})
        assert res.status_code == 503
        assert res.get_json()["error"] == "LEDGER_UNAVAILABLE"

    def test_search_exhausted(self, ledger, store, keys, publish, signature):
        publish(ledger, keys, [(1, TOKEN)] * 3)
        client = make_client(ledger, store, max_slots=2)
        res = client.post("/scan/discover", json={"signature": signature})
        assert res.status_code == 422
        assert res.get_json()["error"] == "SEARCH_EXHAUSTED"

    def test_consistency_violation(self, ledger, store, keys, other_keys, publish, signature):
        publish(ledger, keys, [(1, TOKEN)])
        publish(ledger, other_keys, [(1, TOKEN)])
        client = make_client(ledger, store, aggregate_check="exact")
        res = client.post("/scan/discover", json={"signature": signature})
        assert res.status_code == 409
        assert res.get_json()["error"] == "CONSISTENCY_VIOLATION"


class TestHistoryAndState:
    """POST /scan/history, POST /scan/personal-state"""

    def test_history(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        publish(ledger, keys, [(60, TOKEN)], start=1, kind="send", receiver_public_key=(3, 4))
        data = client.post("/scan/history", json={"signature": signature}).get_json()
        assert data["current_slot"] == 2
        assert [e["kind"] for e in data["entries"]] == ["send", "initialize"]
        assert data["entries"][0]["receiver_public_key"] == ["3", "4"]

    def test_personal_state(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN), (80, TOKEN)])
        res = client.post("/scan/personal-state", json={"signature": signature, "token_id": str(TOKEN)})
        assert res.status_code == 200

        data = res.get_json()
        assert data["previous_slot"] == 1
        assert data["balance"]["amount"] == "80"
        assert data["personal"]["inner_m"] == "80"
        assert data["reference"]["source"] == "stored"
        assert data["main"]["outer_opening"] == ["1", "1", "1"]

    def test_personal_state_hex_token(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        res = client.post("/scan/personal-state", json={"signature": signature, "token_id": hex(TOKEN)})
        assert res.status_code == 200
        assert res.get_json()["reference"]["source"] == "computed"

    def test_personal_state_leading_zero_decimal_token(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        res = client.post("/scan/personal-state", json={"signature": signature, "token_id": "007"})
        assert res.status_code == 200
        assert res.get_json()["balance"]["token_id"] == str(TOKEN)

    @pytest.mark.parametrize("token_id", ["0x", "7z", ["7"]])
    def test_personal_state_malformed_token(self, client, signature, token_id):
        res = client.post("/scan/personal-state", json={"signature": signature, "token_id": token_id})
        assert res.status_code == 400
        assert res.get_json()["error"] == "INVALID_INPUT"

    def test_personal_state_requires_token(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        res = client.post("/scan/personal-state", json={"signature": signature})
        assert res.status_code == 400

    def test_personal_state_bad_token(self, client, signature):
        res = client.post("/scan/personal-state", json={"signature": signature, "token_id": "seven"})
        assert res.status_code == 400

    def test_personal_state_unknown_token(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        res = client.post("/scan/personal-state", json={"signature": signature, "token_id": OTHER_TOKEN})
        assert res.status_code == 400


class TestSnapshotEndpoints:
    """GET /scan/snapshot/<id>, POST /scan/snapshot/<id>/clear"""

    def test_missing(self, client, keys):
        res = client.get(f"/scan/snapshot/{keys.account_id}")
        assert res.status_code == 404
        assert res.get_json()["error"] == "NOT_FOUND"

    def test_get_and_clear(self, client, ledger, keys, publish, signature):
        publish(ledger, keys, [(100, TOKEN)])
        client.post("/scan/discover", json={"signature": signature})

        res = client.get(f"/scan/snapshot/{keys.account_id}")
        assert res.status_code == 200
        assert res.get_json()["snapshot"]["current_slot"] == 1

        res = client.post(f"/scan/snapshot/{keys.account_id}/clear")
        assert res.get_json()["cleared"] is True
        assert client.get(f"/scan/snapshot/{keys.account_id}").status_code == 404
