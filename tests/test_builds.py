"""Tests for build history queries."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from butler.builds import (
    abort_build,
    get_build_info,
    get_builds,
    get_console_text,
    get_last_build,
    resolve_build_number,
)
from butler.client import Reply
from butler.errors import (
    BuildActionError,
    BuildQueryError,
    LogRetrievalError,
    ProtocolViolation,
    TransportError,
)
from butler.models import BuildQuery, BuildRecord, SortKey, SortOrder

BUILDS_PATH = "/job/team/job/app/api/json"
BASE_TS = 1_700_000_000_000
HOUR = 3_600_000


def _build(number: int, result: str | None, ts: int, building: bool = False) -> dict:
    return {
        "number": number,
        "url": f"https://ci/job/team/job/app/{number}/",
        "result": result,
        "timestamp": ts,
        "duration": 1000 * number,
        "building": building,
        "displayName": f"#{number}",
    }


@pytest.fixture
def builds_client(fake_client):
    # Server order is newest first; results 40-45: S, S, F, S, U, S
    results = {40: "SUCCESS", 41: "SUCCESS", 42: "FAILURE", 43: "SUCCESS", 44: "UNSTABLE", 45: "SUCCESS"}
    fake_client.routes[BUILDS_PATH] = {"builds": [
        _build(n, results[n], BASE_TS + (n - 40) * HOUR) for n in range(45, 39, -1)
    ]}
    return fake_client


def _numbers(records):
    return [b.number for b in records]


class TestBuildQuery:
    def test_defaults(self):
        q = BuildQuery()
        assert (q.offset, q.limit, q.sort_key, q.sort_order) == (0, 50, SortKey.NUMBER, SortOrder.DESC)

    def test_string_enums_accepted(self):
        q = BuildQuery(sort_key="TIMESTAMP", sort_order="asc")
        assert q.sort_key is SortKey.TIMESTAMP
        assert q.sort_order is SortOrder.ASC

    def test_invalid_sort_key(self):
        with pytest.raises(ValueError):
            BuildQuery(sort_key="duration")

    def test_negative_offset(self):
        with pytest.raises(ValueError):
            BuildQuery(offset=-1)


class TestGetBuilds:
    def test_default_sort_desc(self, builds_client):
        assert _numbers(get_builds(builds_client, "team/app")) == [45, 44, 43, 42, 41, 40]

    def test_status_filter(self, builds_client):
        result = get_builds(builds_client, "team/app", BuildQuery(status="SUCCESS"))
        assert _numbers(result) == [45, 43, 41, 40]

    def test_status_filter_case_insensitive(self, builds_client):
        result = get_builds(builds_client, "team/app", BuildQuery(status="unstable"))
        assert _numbers(result) == [44]

    def test_running_matches_building_flag(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"builds": [
            _build(3, None, BASE_TS, building=True),
            _build(2, None, BASE_TS),
            _build(1, "SUCCESS", BASE_TS),
        ]}
        result = get_builds(fake_client, "team/app", BuildQuery(status="running"))
        assert _numbers(result) == [3]

    def test_inconsistent_build_tolerated(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"builds": [_build(2, None, BASE_TS)]}
        [record] = get_builds(fake_client, "team/app")
        assert record.result is None and not record.building
        assert record.status == "UNKNOWN"

    def test_pagination(self, builds_client):
        result = get_builds(builds_client, "team/app", BuildQuery(offset=2, limit=2))
        assert _numbers(result) == [43, 42]

    def test_offset_past_end(self, builds_client):
        assert get_builds(builds_client, "team/app", BuildQuery(offset=100)) == []

    def test_ascending(self, builds_client):
        result = get_builds(builds_client, "team/app", BuildQuery(sort_order="asc", limit=3))
        assert _numbers(result) == [40, 41, 42]

    def test_sort_by_timestamp(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"builds": [
            _build(3, "SUCCESS", BASE_TS + 1),
            _build(2, "SUCCESS", BASE_TS + 5),
            _build(1, "SUCCESS", BASE_TS + 3),
        ]}
        result = get_builds(fake_client, "team/app", BuildQuery(sort_key="timestamp"))
        assert _numbers(result) == [2, 1, 3]

    def test_ties_keep_server_order(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"builds": [
            _build(7, "SUCCESS", BASE_TS),
            _build(5, "SUCCESS", BASE_TS),
            _build(6, "SUCCESS", BASE_TS),
        ]}
        for order in ("asc", "desc"):
            result = get_builds(fake_client, "team/app", BuildQuery(sort_key="timestamp", sort_order=order))
            assert _numbers(result) == [7, 5, 6]

    def test_time_bounds_inclusive(self, builds_client):
        start = datetime.fromtimestamp((BASE_TS + HOUR) / 1000, tz=timezone.utc)
        end = datetime.fromtimestamp((BASE_TS + 3 * HOUR) / 1000, tz=timezone.utc)
        result = get_builds(builds_client, "team/app", BuildQuery(start_time=start, end_time=end))
        assert _numbers(result) == [43, 42, 41]

    def test_filters_compose(self, builds_client):
        start = datetime.fromtimestamp((BASE_TS + 2 * HOUR) / 1000, tz=timezone.utc)
        result = get_builds(builds_client, "team/app", BuildQuery(status="SUCCESS", start_time=start))
        assert _numbers(result) == [45, 43]

    def test_branch_ignored(self, builds_client):
        result = get_builds(builds_client, "team/app", BuildQuery(branch="main"))
        assert len(result) == 6

    def test_no_builds(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"builds": []}
        assert get_builds(fake_client, "team/app") == []

    def test_missing_builds_key(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {}
        assert get_builds(fake_client, "team/app") == []

    def test_transport_error_wrapped(self, fake_client):
        fake_client.routes[BUILDS_PATH] = TransportError("HTTP 500", status_code=500)
        with pytest.raises(BuildQueryError) as excinfo:
            get_builds(fake_client, "team/app")
        assert "team/app" in str(excinfo.value)
        assert excinfo.value.status_code == 500
        assert not excinfo.value.not_found

    def test_not_found_preserved(self, fake_client):
        with pytest.raises(BuildQueryError) as excinfo:
            get_builds(fake_client, "team/missing")
        assert excinfo.value.not_found
        assert excinfo.value.status_code == 404

    def test_malformed_payload(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"builds": [{"result": "SUCCESS"}]}
        with pytest.raises(BuildQueryError):
            get_builds(fake_client, "team/app")


class TestSingleBuild:
    def test_get_build_info(self, fake_client):
        fake_client.routes["/job/team/job/app/45/api/json"] = _build(45, None, BASE_TS, building=True)
        record = get_build_info(fake_client, "team/app", 45)
        assert isinstance(record, BuildRecord)
        assert record.in_progress
        assert record.status == "IN_PROGRESS"

    def test_get_build_info_not_found(self, fake_client):
        with pytest.raises(BuildQueryError) as excinfo:
            get_build_info(fake_client, "team/app", 999)
        assert excinfo.value.build_number == 999
        assert excinfo.value.not_found

    def test_get_last_build(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"lastBuild": _build(12, "FAILURE", BASE_TS)}
        assert get_last_build(fake_client, "team/app").number == 12

    def test_get_last_build_never_ran(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"lastBuild": None}
        assert get_last_build(fake_client, "team/app") is None

    def test_get_last_build_missing_job(self, fake_client):
        with pytest.raises(BuildQueryError) as excinfo:
            get_last_build(fake_client, "team/app")
        assert excinfo.value.not_found
        assert excinfo.value.job_path == "team/app"

    def test_get_last_build_malformed_entry(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"lastBuild": {"url": "https://ci/job/team/job/app/9/"}}
        with pytest.raises(BuildQueryError) as excinfo:
            get_last_build(fake_client, "team/app")
        assert isinstance(excinfo.value.__cause__, ProtocolViolation)


class TestResolveBuildNumber:
    def test_int_passthrough(self, fake_client):
        assert resolve_build_number(fake_client, "team/app", 5) == 5
        assert fake_client.calls == []

    def test_numeric_string(self, fake_client):
        assert resolve_build_number(fake_client, "team/app", "17") == 17

    def test_latest(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"lastBuild": _build(12, "SUCCESS", BASE_TS)}
        assert resolve_build_number(fake_client, "team/app", "Latest") == 12

    def test_latest_without_history(self, fake_client):
        fake_client.routes[BUILDS_PATH] = {"lastBuild": None}
        with pytest.raises(BuildQueryError):
            resolve_build_number(fake_client, "team/app", "latest")

    def test_garbage(self, fake_client):
        with pytest.raises(ValueError):
            resolve_build_number(fake_client, "team/app", "last-one")


class TestConsoleText:
    def test_returns_text(self, fake_client):
        fake_client.routes["/job/team/job/app/3/consoleText"] = Reply("line 1\nline 2\n")
        assert get_console_text(fake_client, "team/app", 3) == "line 1\nline 2\n"

    def test_missing_build_carries_context(self, fake_client):
        with pytest.raises(LogRetrievalError) as excinfo:
            get_console_text(fake_client, "team/app", 3)
        assert excinfo.value.not_found
        assert excinfo.value.build_number == 3
        assert excinfo.value.job_path == "team/app"


class TestAbortBuild:
    def test_running_build_is_stopped(self, fake_client):
        fake_client.routes["/job/team/job/app/45/api/json"] = _build(45, None, BASE_TS, building=True)
        fake_client.routes["/job/team/job/app/45/stop"] = Reply(None)
        assert abort_build(fake_client, "team/app", 45) is True
        assert fake_client.posts == [("/job/team/job/app/45/stop", None, None)]

    def test_finished_build_is_left_alone(self, fake_client):
        fake_client.routes["/job/team/job/app/44/api/json"] = _build(44, "SUCCESS", BASE_TS)
        assert abort_build(fake_client, "team/app", 44) is False
        assert fake_client.posts == []

    def test_missing_build(self, fake_client):
        with pytest.raises(BuildQueryError) as excinfo:
            abort_build(fake_client, "team/app", 999)
        assert excinfo.value.not_found
        assert fake_client.posts == []

    def test_forbidden_stop(self, fake_client):
        fake_client.routes["/job/team/job/app/45/api/json"] = _build(45, None, BASE_TS, building=True)
        fake_client.routes["/job/team/job/app/45/stop"] = TransportError("HTTP 403", status_code=403)
        with pytest.raises(BuildActionError) as excinfo:
            abort_build(fake_client, "team/app", 45)
        assert excinfo.value.status_code == 403
        assert excinfo.value.build_number == 45
