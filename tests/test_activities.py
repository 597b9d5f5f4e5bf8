"""Tests for the activity log.

Covers:
- Listing is scoped to visible dealerships plus the caller's own entries
- Appending: default subjects, dealership taken from the deal or contact
- Status-change entries are reserved for the services
- Mismatched contact / deal and dealership are rejected
- 403 / 404 on referenced records
"""

import pytest

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity


def _note(dealership_id, subject, user_id=None):
    db.session.add(Activity(
        activity_type="NOTE",
        subject=subject,
        dealership_id=dealership_id,
        user_id=user_id,
    ))


class TestListActivities:

    def test_scoped_to_visible_dealerships(self, client, login, seed_data):
        _note(seed_data["northside_id"], "North note")
        _note(seed_data["southside_id"], "South note")
        db.session.commit()

        login("bob")
        data = client.get("/api/activities").get_json()
        assert [a["subject"] for a in data["activities"]] == ["South note"]

        login("admin")
        assert client.get("/api/activities").get_json()["pagination"]["total"] == 2

    def test_filters(self, client, login, seed_data):
        _note(seed_data["northside_id"], "North note")
        _note(seed_data["lakeside_id"], "Lake note")
        db.session.commit()

        login("alice")
        data = client.get(
            f"/api/activities?dealership_id={seed_data['lakeside_id']}"
        ).get_json()
        assert [a["subject"] for a in data["activities"]] == ["Lake note"]
        assert client.get("/api/activities?type=CALL").get_json()["activities"] == []

    def test_bad_type_filter(self, client, login):
        login("alice")
        assert client.get("/api/activities?type=SMOKE_SIGNAL").status_code == 400


class TestLogActivity:

    def test_default_subject_and_author(self, client, login, seed_data, app):
        login("alice")
        resp = client.post("/api/activities", json={
            "type": "call",
            "dealership_id": seed_data["northside_id"],
            "description": "Talked pricing",
        })
        assert resp.status_code == 201
        activity = resp.get_json()["activity"]
        assert activity["type"] == "CALL"
        assert activity["subject"] == "Phone call"
        assert activity["user"]["id"] == seed_data["alice_id"]
        assert activity["completed_at"] is not None

        with app.app_context():
            assert Activity.query.filter_by(
                dealership_id=seed_data["northside_id"]
            ).count() == 1

    def test_dealership_taken_from_deal(self, client, login, seed_data):
        login("alice")
        activity = client.post("/api/activities", json={
            "type": "MEETING",
            "subject": "Contract walkthrough",
            "deal_id": seed_data["north_lead"].id,
        }).get_json()["activity"]
        assert activity["dealership_id"] == seed_data["northside_id"]
        assert activity["subject"] == "Contract walkthrough"

    def test_dealership_taken_from_contact(self, client, login, seed_data):
        login("alice")
        activity = client.post("/api/activities", json={
            "type": "EMAIL", "contact_id": seed_data["contact"].id,
        }).get_json()["activity"]
        assert activity["dealership_id"] == seed_data["northside_id"]
        assert activity["contact_id"] == seed_data["contact"].id

    def test_deal_owner_can_log_outside_territory(self, client, login, seed_data):
        login("carol")
        resp = client.post("/api/activities", json={
            "type": "NOTE", "deal_id": seed_data["carol_qualified"].id,
        })
        assert resp.status_code == 201
        data = client.get("/api/activities").get_json()
        assert [a["subject"] for a in data["activities"]] == ["Note added"]

    @pytest.mark.parametrize("extra", [
        {},
        {"type": "STATUS_CHANGE"},
        {"type": "SMOKE_SIGNAL"},
        {"type": "NOTE", "completed_at": "yesterday"},
    ])
    def test_invalid(self, client, login, seed_data, extra):
        login("alice")
        body = dict(extra, dealership_id=seed_data["northside_id"])
        assert client.post("/api/activities", json=body).status_code == 400

    def test_target_required(self, client, login):
        login("alice")
        assert client.post("/api/activities", json={"type": "NOTE"}).status_code == 400

    def test_contact_on_other_dealership(self, client, login, seed_data, app):
        login("alice")
        resp = client.post("/api/activities", json={
            "type": "NOTE",
            "dealership_id": seed_data["lakeside_id"],
            "contact_id": seed_data["contact"].id,
        })
        assert resp.status_code == 400
        with app.app_context():
            assert Activity.query.count() == 0

    @pytest.mark.parametrize("key", ["deal_id", "contact_id", "dealership_id"])
    def test_unknown_record(self, client, login, key):
        login("alice")
        resp = client.post("/api/activities", json={"type": "NOTE", key: "missing"})
        assert resp.status_code == 404

    def test_invisible_dealership(self, client, login, seed_data):
        login("alice")
        resp = client.post("/api/activities", json={
            "type": "NOTE", "dealership_id": seed_data["southside_id"],
        })
        assert resp.status_code == 403

    def test_invisible_deal(self, client, login, seed_data):
        login("alice")
        resp = client.post("/api/activities", json={
            "type": "NOTE", "deal_id": seed_data["south_proposal"].id,
        })
        assert resp.status_code == 403
