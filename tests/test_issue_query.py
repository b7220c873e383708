"""Issue query service: predicates, scoping, pagination, nearby and trending."""

from __future__ import annotations

from datetime import timedelta

import pytest

from standwithnepal.auth.context import RequestContext
from standwithnepal.models.models import IssueComment, IssueUpvote, utcnow
from standwithnepal.services.geo import haversine_km
from standwithnepal.services.issue_cache import IssueListCache
from standwithnepal.services.issue_query import (
    Contains,
    Equals,
    IssueFilters,
    build_predicates,
    clamp_page,
    coerce_float,
    coerce_int,
    hours_since,
    jurisdiction_predicates,
    list_issues,
    nearby_issues,
    trending_issues,
    trending_score,
)


def ward_official(ward_no=5, district="Kathmandu", jurisdiction="ward") -> RequestContext:
    return RequestContext(
        user_type="official",
        jurisdiction=jurisdiction,
        district=district,
        ward_no=ward_no,
    )


class TestPredicates:
    def test_blank_filters_are_ignored(self):
        filters = IssueFilters.from_params(category="  ", status="", district=None)
        assert build_predicates(filters, RequestContext.anonymous()) == ()

    def test_client_filters(self):
        filters = IssueFilters.from_params(category="road", status="new", district="Kath")
        preds = build_predicates(filters, RequestContext.anonymous())
        assert preds == (Equals("category", "road"), Equals("status", "new"), Contains("district", "Kath"))

    def test_ward_official_gets_forced_district_and_ward(self):
        preds = jurisdiction_predicates(ward_official())
        assert preds == [
            Equals("district", "Kathmandu", forced=True),
            Equals("ward_no", 5, forced=True),
        ]

    def test_district_official_gets_district_only(self):
        preds = jurisdiction_predicates(ward_official(jurisdiction="district"))
        assert preds == [Equals("district", "Kathmandu", forced=True)]

    def test_citizens_are_not_scoped(self):
        assert jurisdiction_predicates(RequestContext(user_type="citizen", district="Kathmandu")) == []

    def test_forced_predicates_follow_client_ones(self):
        filters = IssueFilters.from_params(district="Lalitpur")
        preds = build_predicates(filters, ward_official())
        assert preds[0] == Contains("district", "Lalitpur")
        assert all(p.forced for p in preds[1:])


class TestCoercion:
    @pytest.mark.parametrize("raw,expected", [(None, 7), ("", 7), ("12", 12), ("abc", 7), ("3.9", 3), (8, 8)])
    def test_coerce_int(self, raw, expected):
        assert coerce_int(raw, 7) == expected

    def test_coerce_float_rejects_non_finite(self):
        assert coerce_float("nan", 1.5) == 1.5
        assert coerce_float("inf", 1.5) == 1.5
        assert coerce_float("27.7", 0.0) == 27.7

    @pytest.mark.parametrize(
        "limit,offset,expected",
        [(None, None, (50, 0)), ("0", "-5", (1, 0)), ("500", "20", (100, 20)), ("x", "y", (50, 0))],
    )
    def test_clamp_page(self, limit, offset, expected):
        assert clamp_page(limit, offset) == expected


class TestListIssues:
    def test_newest_first_with_id_tiebreak(self, db, make_issue):
        now = utcnow()
        a = make_issue(title="A", created_at=now)
        b = make_issue(title="B", created_at=now)
        c = make_issue(title="C", created_at=now - timedelta(hours=1))

        page, hit = list_issues(db, IssueFilters(), RequestContext.anonymous())
        assert hit is False
        assert [i["id"] for i in page.issues] == [b.id, a.id, c.id]

    def test_pagination_envelope(self, db, make_issue):
        for n in range(5):
            make_issue(title=f"Issue {n}")
        page, _ = list_issues(db, IssueFilters(), RequestContext.anonymous(), limit="2", offset="2")
        assert len(page.issues) == 2
        assert page.pagination() == {"total": 5, "limit": 2, "offset": 2, "has_more": True}

        last, _ = list_issues(db, IssueFilters(), RequestContext.anonymous(), limit="2", offset="4")
        assert last.pagination()["has_more"] is False

    def test_district_filter_escapes_wildcards(self, db, make_issue):
        make_issue(district="Kathmandu")
        page, _ = list_issues(db, IssueFilters(district="%"), RequestContext.anonymous())
        assert page.issues == []

    def test_official_cannot_widen_scope(self, db, make_issue):
        make_issue(district="Kathmandu", ward_no=5)
        make_issue(district="Kathmandu", ward_no=6)
        make_issue(district="Lalitpur", ward_no=5)

        page, _ = list_issues(db, IssueFilters(district="Lalitpur"), ward_official())
        assert page.issues == []
        assert page.total == 0

        page, _ = list_issues(db, IssueFilters(), ward_official())
        assert [(i["district"], i["ward_no"]) for i in page.issues] == [("Kathmandu", 5)]

    def test_official_without_district_sees_nothing(self, db, make_issue):
        make_issue()
        page, _ = list_issues(db, IssueFilters(), ward_official(district=None, ward_no=None))
        assert page.total == 0

    def test_counts_only_moderated_comments(self, db, make_issue):
        issue = make_issue()
        db.add_all([
            IssueUpvote(issue_id=issue.id, ip_address="10.0.0.1"),
            IssueUpvote(issue_id=issue.id, ip_address="10.0.0.2"),
            IssueComment(issue_id=issue.id, comment_text="ok", moderated=True),
            IssueComment(issue_id=issue.id, comment_text="pending", moderated=False),
        ])
        db.commit()
        page, _ = list_issues(db, IssueFilters(), RequestContext.anonymous())
        assert page.issues[0]["upvotes"] == 2
        assert page.issues[0]["comments"] == 1

    def test_anonymous_reporter_is_masked(self, db, make_issue, citizen):
        make_issue(anonymous=True, user_id=None)
        make_issue(anonymous=False, user_id=citizen.id)
        page, _ = list_issues(db, IssueFilters(), RequestContext.anonymous())
        by_anon = {i["anonymous"]: i for i in page.issues}
        assert by_anon[True]["reporter_name"] == "Anonymous"
        assert by_anon[True]["user_id"] is None
        assert by_anon[False]["reporter_name"] == "Sita Sharma"

    def test_cache_hit_matches_miss(self, db, make_issue):
        make_issue()
        cache = IssueListCache(ttl_seconds=60)
        miss, hit1 = list_issues(db, IssueFilters(), RequestContext.anonymous(), cache=cache)
        hit, hit2 = list_issues(db, IssueFilters(), RequestContext.anonymous(), cache=cache)
        assert (hit1, hit2) == (False, True)
        assert hit.issues == miss.issues
        assert hit.pagination() == miss.pagination()

    def test_cache_keys_include_jurisdiction(self, db, make_issue):
        make_issue(ward_no=5)
        make_issue(ward_no=9)
        cache = IssueListCache(ttl_seconds=60)
        public, _ = list_issues(db, IssueFilters(), RequestContext.anonymous(), cache=cache)
        scoped, hit = list_issues(db, IssueFilters(), ward_official(), cache=cache)
        assert hit is False
        assert public.total == 2
        assert scoped.total == 1


class TestNearby:
    CENTER = (27.7172, 85.3240)

    def test_strict_radius_and_ordering(self, db, make_issue):
        near = make_issue(latitude=27.7200, longitude=85.3250)
        far = make_issue(latitude=27.8000, longitude=85.3240)
        make_issue(latitude=None, longitude=None)
        boundary = haversine_km(*self.CENTER, far.latitude, far.longitude)

        rows = nearby_issues(db, *self.CENTER, radius_km=boundary)
        assert [r["id"] for r in rows] == [near.id]

        rows = nearby_issues(db, *self.CENTER, radius_km=boundary + 0.01)
        assert [r["id"] for r in rows] == [near.id, far.id]
        assert rows[0]["distance"] < rows[1]["distance"]

    def test_anonymous_reporter_is_masked(self, db, make_issue, citizen):
        make_issue(latitude=27.7180, longitude=85.3245, anonymous=True, user_id=citizen.id)
        rows = nearby_issues(db, *self.CENTER, radius_km=5)
        assert rows[0]["reporter_name"] == "Anonymous"
        assert rows[0]["user_id"] is None

    def test_result_cap(self, db, make_issue):
        for _ in range(4):
            make_issue(latitude=27.7172, longitude=85.3241)
        assert len(nearby_issues(db, *self.CENTER, radius_km=5, max_results=3)) == 3


class TestTrending:
    def test_score_decays_with_age(self):
        assert trending_score(10, 4, 1) > trending_score(10, 4, 100)
        assert trending_score(0, 0, 0) == 0

    def test_score_formula(self):
        assert trending_score(3, 2, 3) == (2 * 3 + 2) / 4

    def test_hours_are_truncated(self):
        now = utcnow()
        assert hours_since(now - timedelta(minutes=119), now) == 1
        assert hours_since(now + timedelta(minutes=5), now) == 0

    def test_ranking_and_window(self, db, make_issue):
        now = utcnow()
        fresh = make_issue(title="fresh", created_at=now - timedelta(minutes=30))
        older = make_issue(title="older", created_at=now - timedelta(hours=50))
        make_issue(title="stale", created_at=now - timedelta(days=8))
        db.add_all([IssueUpvote(issue_id=older.id, ip_address=f"10.0.0.{n}") for n in range(5)])
        db.add(IssueUpvote(issue_id=fresh.id, ip_address="10.0.1.1"))
        db.commit()

        rows = trending_issues(db, now=now)
        # fresh: 2/1 = 2.0; older: 10/51 < 1
        assert [r["title"] for r in rows] == ["fresh", "older"]
        assert rows[0]["trending_score"] == pytest.approx(2.0)

    def test_anonymous_reporter_is_masked(self, db, make_issue, citizen):
        make_issue(anonymous=True, user_id=citizen.id)
        rows = trending_issues(db)
        assert rows[0]["reporter_name"] == "Anonymous"
        assert rows[0]["user_id"] is None

    def test_top_ten_only(self, db, make_issue):
        for n in range(12):
            make_issue(title=f"t{n}")
        assert len(trending_issues(db)) == 10
