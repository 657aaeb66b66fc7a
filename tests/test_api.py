from datetime import date, timedelta

from dawacare.config import settings
from dawacare.utils.auth_internal import create_access_token, decode_access_token

from tests.conftest import auth_headers


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestIdentity:
    def test_missing_token(self, client):
        response = client.get("/api/medicines")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_garbage_token(self, client):
        response = client.get("/api/medicines", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}

    def test_expired_token(self, client, cashier):
        token = create_access_token(str(cashier.id), cashier.email, expires_delta=timedelta(minutes=-1))
        response = client.get("/api/medicines", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_session_cookie(self, client, cashier):
        client.cookies.set(settings.SESSION_COOKIE_NAME, create_access_token(str(cashier.id), cashier.email))
        assert client.get("/api/medicines").status_code == 200

    def test_inactive_user(self, client, db, cashier):
        headers = auth_headers(cashier)
        cashier.is_active = False
        db.commit()
        assert client.get("/api/medicines", headers=headers).status_code == 401

    def test_token_claims(self, cashier):
        payload = decode_access_token(create_access_token(str(cashier.id), cashier.email))
        assert payload["sub"] == str(cashier.id)
        assert payload["type"] == "access"


class TestMedicines:
    def test_list_orders_by_expiry(self, client, make_medicine, cashier):
        make_medicine(name="Amoxicillin 500mg", batch_number="LATE", expiry_date=None, quantity=5)
        make_medicine(name="Amoxicillin 500mg", batch_number="EARLY", quantity=5, expiry_date=date(2027, 3, 1))
        make_medicine(name="Amoxicillin 500mg", batch_number="MID", quantity=5, expiry_date=date(2027, 9, 1))

        body = client.get("/api/medicines", params={"search": "amox"}, headers=auth_headers(cashier)).json()
        assert [m["batch_number"] for m in body] == ["EARLY", "MID", "LATE"]

    def test_unknown_medicine(self, client, cashier):
        response = client.get("/api/medicines/00000000-0000-0000-0000-000000000000", headers=auth_headers(cashier))
        assert response.status_code == 404
        assert "error" in response.json()

    def test_manual_adjustment_and_history(self, client, make_medicine, pharmacist):
        medicine = make_medicine(quantity=10)
        response = client.post(
            f"/api/medicines/{medicine.id}/adjust",
            json={"quantity_delta": -3, "reason": "Broken bottles"},
            headers=auth_headers(pharmacist),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["medicine"]["quantity"] == 7
        assert body["movement"]["quantity_before"] == 10
        assert body["movement"]["notes"] == "Broken bottles"
        assert body["register_entry_id"] is None

        history = client.get(f"/api/medicines/{medicine.id}/movements", headers=auth_headers(pharmacist)).json()
        assert [m["quantity_delta"] for m in history] == [-3]

    def test_adjustment_below_zero(self, client, make_medicine, pharmacist):
        medicine = make_medicine(quantity=2)
        response = client.post(
            f"/api/medicines/{medicine.id}/adjust", json={"quantity_delta": -3}, headers=auth_headers(pharmacist)
        )
        assert response.status_code == 409

    def test_zero_adjustment_is_a_bad_request(self, client, make_medicine, pharmacist):
        medicine = make_medicine(quantity=2)
        response = client.post(
            f"/api/medicines/{medicine.id}/adjust", json={"quantity_delta": 0}, headers=auth_headers(pharmacist)
        )
        assert response.status_code == 400
        assert "quantity_delta" in response.json()["error"]

    def test_controlled_adjustment_goes_through_register(self, client, make_medicine, pharmacist, cashier):
        medicine = make_medicine(name="Tramadol 50mg", batch_number="T-5", quantity=20, is_controlled=True)

        denied = client.post(
            f"/api/medicines/{medicine.id}/adjust", json={"quantity_delta": -1}, headers=auth_headers(cashier)
        )
        assert denied.status_code == 403

        response = client.post(
            f"/api/medicines/{medicine.id}/adjust",
            json={"quantity_delta": -2, "reason": "Count correction", "witness_name": "Grace"},
            headers=auth_headers(pharmacist),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["register_entry_id"] is not None
        assert body["movement"]["reference_id"] == body["register_entry_id"]
        assert body["medicine"]["quantity"] == 18
