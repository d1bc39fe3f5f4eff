"""Tests for tracking lookups and status updates."""

import pytest


@pytest.fixture
def tracked(client, user_headers, shipment):
    data = client.post("/api/ship", json=shipment, headers=user_headers).json()
    return data["tracking_number"]


def set_status(client, headers, tracking_number, status, location=None, description=None):
    body = {"status": status, "location": location, "description": description}
    return client.post(f"/api/packages/{tracking_number}/status", json=body, headers=headers)


class TestTrackLookup:
    def test_unknown_number_get(self, client):
        response = client.get("/api/track/TRK00000000ZZZZ")
        assert response.status_code == 404
        assert response.json()["error"] == "Package not found"

    def test_unknown_number_post(self, client):
        response = client.post("/api/track", json={"tracking_number": "TRK00000000ZZZZ"})
        assert response.status_code == 404

    def test_known_number(self, client, tracked):
        data = client.get(f"/api/track/{tracked}").json()
        assert data["package"]["status"] == "pending"
        assert data["package"]["status_display"] == "PENDING"
        assert data["shipment"]["tracking_number"] == tracked
        assert len(data["tracking_history"]) == 1
        assert data["tracking_url"] == f"https://track.example.com/track/{tracked}"

    def test_zip_must_match_destination(self, client, tracked):
        ok = client.post("/api/track", json={"tracking_number": tracked, "zip_code": "90001"})
        assert ok.status_code == 200
        wrong = client.post("/api/track", json={"tracking_number": tracked, "zip_code": "10001"})
        assert wrong.status_code == 404

    def test_search(self, client, tracked):
        results = client.get(f"/api/search/track/{tracked[3:9]}").json()
        assert [r["tracking_number"] for r in results] == [tracked]

    def test_search_too_short(self, client):
        assert client.get("/api/search/track/TR").status_code == 400

    def test_qr_label(self, client, tracked):
        response = client.get(f"/api/track/{tracked}/qr")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")


class TestStatusUpdates:
    def test_update_appends_history_newest_first(self, client, admin_headers, tracked):
        response = set_status(client, admin_headers, tracked, "in_transit", "Toronto Hub")
        assert response.status_code == 200
        assert response.json()["history_entry"]["description"] == "Package is in transit at Toronto Hub"

        set_status(client, admin_headers, tracked, "out_for_delivery", "Los Angeles")
        history = client.get(f"/api/track/{tracked}").json()["tracking_history"]
        assert [h["status"] for h in history] == ["out_for_delivery", "in_transit", "pending"]

    def test_status_mirrored_on_shipment(self, client, admin_headers, user_headers, tracked):
        set_status(client, admin_headers, tracked, "in_transit", "Toronto Hub")
        data = client.get(f"/api/track/{tracked}").json()
        assert data["package"]["current_location"] == "Toronto Hub"
        assert data["shipment"]["status"] == "in_transit"

    def test_custom_description(self, client, admin_headers, tracked):
        response = set_status(client, admin_headers, tracked, "cancelled", description="Customer request")
        assert response.json()["history_entry"]["description"] == "Customer request"

    def test_invalid_transition(self, client, admin_headers, tracked):
        response = set_status(client, admin_headers, tracked, "delivered")
        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "INVALID_TRANSITION"
        assert data["details"]["current_status"] == "pending"

    def test_unknown_status(self, client, admin_headers, tracked):
        assert set_status(client, admin_headers, tracked, "teleported").status_code == 400

    def test_non_admin_forbidden(self, client, user_headers, tracked):
        response = set_status(client, user_headers, tracked, "in_transit")
        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"

    def test_unknown_package(self, client, admin_headers):
        assert set_status(client, admin_headers, "TRK0", "in_transit").status_code == 404


class TestOwnerViews:
    def test_packages(self, client, user_headers, tracked):
        packages = client.get("/api/packages", headers=user_headers).json()
        assert [p["tracking_number"] for p in packages] == [tracked]

    def test_packages_with_history(self, client, user_headers, tracked):
        packages = client.get("/api/packages/with-history", headers=user_headers).json()
        assert len(packages[0]["tracking_history"]) == 1

    def test_history_by_id(self, client, user_headers, tracked):
        package_id = client.get("/api/packages", headers=user_headers).json()[0]["id"]
        history = client.get(f"/api/packages/{package_id}/history", headers=user_headers).json()
        assert history[0]["status"] == "pending"

    def test_history_hidden_from_other_users(self, client, make_user, tracked, user_headers):
        package_id = client.get("/api/packages", headers=user_headers).json()[0]["id"]
        _, other = make_user("mallory")
        assert client.get(f"/api/packages/{package_id}/history", headers=other).status_code == 404

    def test_update_by_package_id(self, client, admin_headers, user_headers, tracked):
        package_id = client.get("/api/packages", headers=user_headers).json()[0]["id"]
        response = set_status(client, admin_headers, str(package_id), "in_transit", "Kingston")
        assert response.status_code == 200
        assert response.json()["package"]["tracking_number"] == tracked
