"""Tests for pipeline grouping and the analytics dashboard.

Covers:
- Deal pipeline grouping, totals and weighted value per role
- Unknown stages reported as unbucketed instead of dropped
- Search / value / owner filters
- Dealership funnel, status board and closed customers
- Win rate rounding
- Analytics counts, revenue, tasks and activities per role
- The HTTP views over the same aggregations
"""

from datetime import datetime, timedelta, timezone

import pytest

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.deal import Deal
from supreme_crm.models.enums import OPEN_DEAL_STAGES
from supreme_crm.models.task import Task
from supreme_crm.services import pipeline_service
from supreme_crm.services.access import AccessDenied
from supreme_crm.services.pipeline_service import PipelineFilters, group_by_stage, win_rate


class TestWinRate:

    @pytest.mark.parametrize("won, lost, expected", [
        (0, 0, 0.0),
        (1, 0, 100.0),
        (0, 3, 0.0),
        (1, 2, 33.3),
        (2, 1, 66.7),
        (1, 15, 6.3),
    ])
    def test_win_rate(self, won, lost, expected):
        assert win_rate(won, lost) == expected


class TestGroupByStage:

    def test_every_stage_present_even_when_empty(self, seed_data):
        result = pipeline_service.deal_pipeline(seed_data["carol"])
        assert list(result["groups"]) == [
            "LEAD", "QUALIFIED", "MEETING_SCHEDULED", "PROPOSAL_SENT", "NEGOTIATION",
        ]
        assert result["groups"]["LEAD"] == {"items": [], "count": 0, "value": 0.0}

    def test_none_value_counts_as_zero(self):
        rows = [("LEAD", None), ("lead", 10.0), ("BOGUS", 99.0)]
        groups, unbucketed = group_by_stage(
            rows, OPEN_DEAL_STAGES, lambda r: r[0], lambda r: r[1]
        )
        assert groups["LEAD"]["count"] == 2
        assert groups["LEAD"]["value"] == 10.0
        assert unbucketed == 1


class TestDealPipeline:

    def test_admin_sees_all_open_deals(self, seed_data):
        result = pipeline_service.deal_pipeline(seed_data["admin"])
        groups, summary = result["groups"], result["summary"]

        assert groups["LEAD"]["count"] == 1
        assert groups["QUALIFIED"]["count"] == 1
        assert groups["PROPOSAL_SENT"]["count"] == 1
        assert groups["NEGOTIATION"]["count"] == 1
        assert summary["total_deals"] == 4
        assert summary["total_pipeline_value"] == 39000.0
        assert summary["weighted_value"] == pytest.approx(21000.0)
        assert summary["unbucketed"] == 0

    def test_closed_deals_are_excluded(self, seed_data):
        result = pipeline_service.deal_pipeline(seed_data["admin"])
        titles = [d.title for g in result["groups"].values() for d in g["items"]]
        assert "Lakeside Platform" not in titles

    def test_user_sees_territory_deals(self, seed_data):
        result = pipeline_service.deal_pipeline(seed_data["alice"])
        assert result["summary"]["total_deals"] == 2
        assert result["summary"]["total_pipeline_value"] == 30000.0
        assert result["summary"]["weighted_value"] == pytest.approx(17000.0)

    def test_user_sees_deals_on_territory_dealerships_owned_by_others(self, seed_data):
        result = pipeline_service.deal_pipeline(seed_data["bob"])
        titles = {d.title for g in result["groups"].values() for d in g["items"]}
        assert titles == {"Southside Inventory Feed", "Southside Service Lane"}

    def test_user_without_territory_sees_owned_deals_only(self, seed_data):
        result = pipeline_service.deal_pipeline(seed_data["carol"])
        assert result["summary"]["total_deals"] == 1
        assert result["groups"]["QUALIFIED"]["value"] == 4000.0

    def test_unknown_stage_is_counted_as_unbucketed(self, seed_data):
        db.session.add(Deal(
            title="Legacy Import",
            value=1000.0,
            stage="ON_HOLD",
            probability=50,
            dealership_id=seed_data["northside_id"],
            owner_id=seed_data["alice_id"],
        ))
        db.session.commit()

        summary = pipeline_service.deal_pipeline(seed_data["admin"])["summary"]
        assert summary["total_deals"] == 5
        assert summary["unbucketed"] == 1
        assert summary["total_pipeline_value"] == 39000.0
        assert summary["weighted_value"] == pytest.approx(21500.0)

    def test_search_matches_title_or_dealership(self, seed_data):
        filters = PipelineFilters(search="southside")
        result = pipeline_service.deal_pipeline(seed_data["admin"], filters)
        assert result["summary"]["total_deals"] == 2

    def test_value_range(self, seed_data):
        filters = PipelineFilters(min_value=5000, max_value=15000)
        result = pipeline_service.deal_pipeline(seed_data["admin"], filters)
        assert result["summary"]["total_deals"] == 2

    def test_admin_owner_filter(self, seed_data):
        filters = PipelineFilters(owner_id=seed_data["carol_id"])
        result = pipeline_service.deal_pipeline(seed_data["admin"], filters)
        assert result["summary"]["total_deals"] == 1

    def test_user_cannot_filter_by_another_owner(self, seed_data):
        filters = PipelineFilters(owner_id=seed_data["bob_id"])
        with pytest.raises(AccessDenied):
            pipeline_service.deal_pipeline(seed_data["alice"], filters)

    def test_user_may_filter_by_self(self, seed_data):
        filters = PipelineFilters(owner_id=seed_data["alice_id"])
        result = pipeline_service.deal_pipeline(seed_data["alice"], filters)
        assert result["summary"]["total_deals"] == 2


class TestPipelineFilters:

    def test_min_greater_than_max_rejected(self):
        with pytest.raises(ValueError):
            PipelineFilters(min_value=10, max_value=5)

    @pytest.mark.parametrize("raw", ["abc", "-5", "nan", "inf"])
    def test_bad_amounts_rejected(self, raw):
        with pytest.raises(ValueError):
            PipelineFilters.from_args({"min_value": raw})

    def test_from_args(self):
        filters = PipelineFilters.from_args({
            "search": "  motors ",
            "assigned_user_id": "u-1",
            "min_value": "100",
            "max_value": "",
        })
        assert filters == PipelineFilters(
            search="motors", owner_id="u-1", min_value=100.0, max_value=None
        )


class TestDealershipViews:

    def test_pipeline_excludes_customers(self, seed_data):
        result = pipeline_service.dealership_pipeline(seed_data["admin"])
        assert result["summary"]["total_dealerships"] == 2
        assert result["summary"]["total_pipeline_value"] == 3000.0
        assert result["groups"]["PROSPECT"]["count"] == 1
        assert result["groups"]["QUALIFIED"]["count"] == 1
        assert "ACTIVE_CUSTOMER" not in result["groups"]

    def test_pipeline_user_list_is_admin_only(self, seed_data):
        assert len(pipeline_service.dealership_pipeline(seed_data["admin"])["users"]) == 4
        assert pipeline_service.dealership_pipeline(seed_data["alice"])["users"] == []

    def test_status_board_includes_customers(self, seed_data):
        result = pipeline_service.dealership_status_board(seed_data["alice"])
        assert result["summary"]["total_dealerships"] == 2
        assert result["groups"]["ACTIVE_CUSTOMER"]["count"] == 1
        assert result["groups"]["CHURNED"]["count"] == 0

    def test_closed_dealerships(self, seed_data):
        result = pipeline_service.closed_dealerships(seed_data["admin"])
        assert [d.name for d in result["dealerships"]] == ["Lakeside Ford"]
        assert result["states"] == ["OK"]
        assert result["summary"] == {"total_count": 1, "total_monthly_value": 3000.0}

    def test_closed_dealerships_state_filter_keeps_state_list(self, seed_data):
        result = pipeline_service.closed_dealerships(seed_data["admin"], state="TX")
        assert result["dealerships"] == []
        assert result["states"] == ["OK"]

    def test_closed_dealerships_scoped(self, seed_data):
        result = pipeline_service.closed_dealerships(seed_data["bob"])
        assert result["summary"]["total_count"] == 0


class TestAnalytics:

    @pytest.fixture
    def now(self):
        return datetime.now(timezone.utc)

    @pytest.fixture
    def work_items(self, seed_data, now):
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        db.session.add_all([
            Task(
                title="Call Nina",
                due_date=today + timedelta(hours=12),
                dealership_id=seed_data["northside_id"],
                assigned_to_id=seed_data["alice_id"],
            ),
            Task(
                title="Send proposal",
                due_date=now - timedelta(days=2),
                dealership_id=seed_data["northside_id"],
                assigned_to_id=seed_data["alice_id"],
            ),
            Task(
                title="Kickoff",
                status="COMPLETED",
                completed_at=now - timedelta(days=1),
                dealership_id=seed_data["southside_id"],
                assigned_to_id=seed_data["bob_id"],
            ),
            Activity(
                activity_type="CALL",
                subject="Intro call",
                dealership_id=seed_data["northside_id"],
                user_id=seed_data["alice_id"],
            ),
            Activity(
                activity_type="EMAIL",
                subject="Follow up",
                dealership_id=seed_data["southside_id"],
                user_id=seed_data["bob_id"],
            ),
        ])
        db.session.commit()

    def test_admin_totals(self, seed_data, now):
        result = pipeline_service.crm_analytics(seed_data["admin"], now=now)

        assert result["dealerships"] == {
            "total": 3, "live": 1, "prospects": 1, "active": 1, "churned": 0,
        }
        assert result["deals"] == {
            "total": 5, "open": 4, "won": 1, "lost": 0,
            "recent_won": 1, "win_rate": 100.0,
        }
        revenue = result["revenue"]
        assert revenue["pipeline_value"] == 39000.0
        assert revenue["weighted_pipeline_value"] == pytest.approx(21000.0)
        assert revenue["won_value"] == 30000.0
        assert revenue["recent_won_value"] == 30000.0
        assert revenue["mrr"] == 500.0
        assert revenue["arr"] == 6000.0
        assert result["contacts"] == {"total": 1, "hot_leads": 1}
        assert result["pipeline"]["NEGOTIATION"] == {"count": 1, "value": 20000.0}
        assert [d.name for d in result["top_dealerships"]] == ["Lakeside Ford"]
        assert [d.title for d in result["recent_wins"]] == ["Lakeside Platform"]
        assert result["period"] == 30

    def test_win_outside_period_is_not_recent(self, seed_data, now):
        result = pipeline_service.crm_analytics(
            seed_data["admin"], period_days=1, now=now
        )
        assert result["deals"]["won"] == 1
        assert result["deals"]["recent_won"] == 0
        assert result["recent_wins"] == []

    def test_user_scope(self, seed_data, now):
        result = pipeline_service.crm_analytics(seed_data["bob"], now=now)
        assert result["dealerships"]["total"] == 1
        assert result["deals"]["total"] == 2
        assert result["deals"]["win_rate"] == 0.0
        assert result["revenue"]["pipeline_value"] == 9000.0
        assert result["contacts"]["total"] == 0
        assert result["top_dealerships"] == []

    def test_tasks_and_activities(self, seed_data, work_items, now):
        admin = pipeline_service.crm_analytics(seed_data["admin"], now=now)
        assert admin["tasks"] == {"due_today": 1, "overdue": 1, "completed_recently": 1}
        assert admin["activities"]["total"] == 2
        assert admin["activities"]["by_type"] == {"CALL": 1, "EMAIL": 1}

        alice = pipeline_service.crm_analytics(seed_data["alice"], now=now)
        assert alice["tasks"] == {"due_today": 1, "overdue": 1, "completed_recently": 0}
        assert alice["activities"]["by_type"] == {"CALL": 1}

    @pytest.mark.parametrize("period", ["abc", 0, -7])
    def test_bad_period(self, seed_data, period):
        with pytest.raises(ValueError):
            pipeline_service.crm_analytics(seed_data["admin"], period_days=period)


class TestPipelineRoutes:

    def test_deal_pipeline_view(self, client, login):
        login("alice")
        resp = client.get("/api/deals?view=pipeline")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["summary"]["total_deals"] == 2
        assert data["pipeline"]["LEAD"]["items"][0]["title"] == "Northside CRM"

    def test_deal_pipeline_bad_filter(self, client, login):
        login("alice")
        resp = client.get("/api/deals?view=pipeline&min_value=lots")
        assert resp.status_code == 400
        assert "min_value" in resp.get_json()["error"]

    def test_deal_pipeline_foreign_owner_forbidden(self, client, login, seed_data):
        login("alice")
        resp = client.get(f"/api/deals?view=pipeline&owner_id={seed_data['bob_id']}")
        assert resp.status_code == 403

    def test_dealership_pipeline_route(self, client, login):
        login("admin")
        data = client.get("/api/dealerships/pipeline").get_json()
        assert data["summary"]["total_dealerships"] == 2
        assert len(data["users"]) == 4
        assert data["pipeline"]["PROSPECT"]["items"][0]["name"] == "Northside Motors"

    def test_board_route(self, client, login):
        login("bob")
        data = client.get("/api/dealerships/board").get_json()
        assert data["board"]["QUALIFIED"]["count"] == 1

    def test_closed_route(self, client, login):
        login("alice")
        data = client.get("/api/dealerships/closed?state=ALL").get_json()
        assert data["summary"]["total_count"] == 1
        assert data["dealerships"][0]["is_live"] is True

    def test_analytics_route(self, client, login):
        login("admin")
        resp = client.get("/api/analytics?period=90")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["period"] == 90
        assert data["recent_wins"][0]["title"] == "Lakeside Platform"
        assert data["top_dealerships"][0]["name"] == "Lakeside Ford"

    def test_analytics_bad_period(self, client, login):
        login("admin")
        resp = client.get("/api/analytics?period=soon")
        assert resp.status_code == 400

    def test_analytics_requires_login(self, client, seed_data):
        resp = client.get("/api/analytics")
        assert resp.status_code == 401
