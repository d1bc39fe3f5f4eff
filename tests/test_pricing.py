"""Tests for the estimator and tariff pricing."""

import pytest

from courier.shipping import pricing


class TestEstimateCost:
    def test_standard_formula(self):
        # 15.99 + 5*2.5 + 80000/1000
        assert pricing.estimate_cost("10001", "90001", 5, "standard") == 108.49

    def test_overnight_multiplier(self):
        assert pricing.estimate_cost(10001, 90001, 5, "overnight") == pytest.approx(433.96)

    def test_distance_is_absolute(self):
        assert pricing.estimate_cost(90001, 10001, 5) == pricing.estimate_cost(10001, 90001, 5)

    def test_non_numeric_zip(self):
        with pytest.raises(ValueError):
            pricing.estimate_cost("M5V", "90001", 5)

    def test_non_positive_weight(self):
        with pytest.raises(ValueError):
            pricing.estimate_cost("10001", "90001", 0)

    @pytest.mark.parametrize("weight", [float("nan"), float("inf"), "nan", 1e308, pricing.MAX_WEIGHT + 1])
    def test_weight_out_of_range(self, weight):
        with pytest.raises(ValueError):
            pricing.estimate_cost("10001", "90001", weight)

    def test_max_weight_is_priced(self):
        assert pricing.estimate_cost("10001", "90001", pricing.MAX_WEIGHT) == 25095.99

    def test_oversized_zip(self):
        with pytest.raises(ValueError):
            pricing.estimate_cost("9" * 4000, "90001", 5)

    def test_postal_code_error_names_tariff_customers(self):
        with pytest.raises(ValueError, match="tariff customers"):
            pricing.estimate_cost("M5V 2T6", "K1A 0B1", 5)

    def test_estimate_dict(self):
        est = pricing.estimate("10001", "90001", 5, "express")
        assert est["estimated_days"] == 2
        assert est["currency"] == "USD"

    def test_unknown_service_falls_back_to_standard(self):
        assert pricing.estimate("10001", "90001", 5, "teleport")["service_type"] == "standard"


class TestTariffs:
    def test_tariff_price(self):
        assert pricing.tariff_price("APS", "rush") == 29.5
        assert pricing.tariff_price("Nobody", "rush") is None

    def test_quote_uses_tariff(self):
        assert pricing.quote_price("MACKIE", "sameday") == 89.5

    def test_quote_tariff_customer_needs_tier(self):
        with pytest.raises(ValueError):
            pricing.quote_price("APS", "standard", "10001", "90001", 5)

    def test_quote_custom_uses_estimator(self):
        assert pricing.quote_price("Custom Shipment", "standard", "10001", "90001", 5) == 108.49

    def test_labels(self):
        assert pricing.service_label("rush") == "Rush 3-4 Hours (Before 1pm)"
        assert pricing.service_label("express") == "Express"


class TestEstimateApi:
    def test_estimate_is_persisted(self, client):
        body = {"origin_zip": "10001", "destination_zip": "90001", "weight": 5, "service_type": "standard"}
        response = client.post("/api/estimate", json=body)
        assert response.status_code == 200
        assert response.json()["estimated_cost"] == 108.49

        recent = client.get("/api/estimates").json()
        assert len(recent) == 1
        assert recent[0]["estimated_cost"] == 108.49

    def test_recent_estimates_capped_at_ten(self, client):
        for i in range(12):
            client.post("/api/estimate", json={"origin_zip": "10001", "destination_zip": str(20000 + i), "weight": 1})
        assert len(client.get("/api/estimates").json()) == 10

    def test_bad_zip(self, client):
        response = client.post("/api/estimate", json={"origin_zip": "abc", "destination_zip": "90001", "weight": 5})
        assert response.status_code == 400

    def test_missing_weight_is_validation_error(self, client):
        response = client.post("/api/estimate", json={"origin_zip": "10001", "destination_zip": "90001"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_tariff_table(self, client):
        data = client.get("/api/tariffs").json()
        assert len(data["customers"]) == 10
        assert [t["key"] for t in data["tiers"]] == ["exclusive", "direct", "rush", "sameday"]

    def test_huge_weight_is_rejected_and_list_still_renders(self, client):
        body = {"origin_zip": "10001", "destination_zip": "90001", "weight": 1e308}
        assert client.post("/api/estimate", json=body).status_code == 400

        recent = client.get("/api/estimates")
        assert recent.status_code == 200
        assert recent.json() == []

    def test_nan_weight_is_rejected(self, client):
        raw = b'{"origin_zip": "10001", "destination_zip": "90001", "weight": NaN}'
        response = client.post("/api/estimate", content=raw, headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert client.get("/api/estimates").status_code == 200
