"""Dashboard counts, category distribution, monthly trends and regional stats."""

from __future__ import annotations

from datetime import datetime

from standwithnepal.services.analytics import regional_stats, resolution_trends


class TestDashboard:
    def test_public_counts(self, client, make_issue):
        make_issue(status="new")
        make_issue(status="new")
        make_issue(status="in-progress")
        make_issue(status="resolved", district="Lalitpur")

        stats = client.get("/api/analytics/dashboard").json()["stats"]
        assert stats == {"total": 4, "new": 2, "acknowledged": 0, "in_progress": 1, "resolved": 1}

    def test_official_counts_are_scoped(self, client, make_issue, official_headers):
        make_issue(status="new", ward_no=5)
        make_issue(status="resolved", ward_no=6)
        make_issue(status="resolved", district="Lalitpur", ward_no=5)

        stats = client.get("/api/analytics/dashboard", headers=official_headers).json()["stats"]
        assert stats["total"] == 1
        assert stats["new"] == 1
        assert stats["resolved"] == 0


def test_category_distribution(client, make_issue):
    for category in ("road", "road", "water", "electricity", "road", "water"):
        make_issue(category=category)
    categories = client.get("/api/analytics/categories").json()["categories"]
    assert categories == [
        {"category": "road", "count": 3},
        {"category": "water", "count": 2},
        {"category": "electricity", "count": 1},
    ]


class TestResolutionTrends:
    def test_six_months_with_zero_buckets(self, db, make_issue):
        now = datetime(2025, 3, 15, 6, 0)
        make_issue(created_at=datetime(2025, 3, 2, 4, 0), status="resolved")
        make_issue(created_at=datetime(2025, 1, 10, 4, 0))
        make_issue(created_at=datetime(2024, 9, 30, 4, 0))

        trends = resolution_trends(db, now=now)
        assert [t["month"] for t in trends] == ["2024-10", "2024-11", "2024-12", "2025-01", "2025-02", "2025-03"]
        by_month = {t["month"]: (t["reported"], t["resolved"]) for t in trends}
        assert by_month["2025-03"] == (1, 1)
        assert by_month["2025-01"] == (1, 0)
        assert by_month["2025-02"] == (0, 0)

    def test_months_follow_kathmandu_time(self, db, make_issue):
        # 20:00 UTC on Feb 28 is already March 1 in Kathmandu (UTC+5:45)
        make_issue(created_at=datetime(2025, 2, 28, 20, 0))
        trends = resolution_trends(db, now=datetime(2025, 3, 15))
        by_month = {t["month"]: t["reported"] for t in trends}
        assert by_month["2025-03"] == 1
        assert by_month["2025-02"] == 0

    def test_endpoint_shape(self, client):
        trends = client.get("/api/analytics/trends").json()["trends"]
        assert len(trends) == 6
        assert set(trends[0]) == {"month", "reported", "resolved"}


class TestRegionalStats:
    def test_counts_and_resolution_days(self, db, make_issue):
        make_issue(district="Kathmandu")
        make_issue(district="Kathmandu")
        make_issue(
            district="Kathmandu",
            status="resolved",
            created_at=datetime(2025, 1, 1, 23, 0),
            updated_at=datetime(2025, 1, 3, 1, 0),
        )
        make_issue(district="Lalitpur")

        stats = regional_stats(db)
        assert stats[0] == {
            "district": "Kathmandu",
            "total_issues": 3,
            "resolved_issues": 1,
            "avg_resolution_days": 2.0,
        }
        assert stats[1]["district"] == "Lalitpur"
        assert stats[1]["avg_resolution_days"] is None

    def test_top_ten(self, db, make_issue):
        for n in range(12):
            make_issue(district=f"District {n:02d}")
        assert len(regional_stats(db)) == 10

    def test_endpoint(self, client, make_issue):
        make_issue()
        body = client.get("/api/analytics/regions").json()
        assert body["regional_stats"][0]["district"] == "Kathmandu"
