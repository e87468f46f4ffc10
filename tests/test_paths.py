"""Tests for job path encoding and decoding."""

from __future__ import annotations

import pytest

from butler.errors import InvalidPathError
from butler.paths import api_url, build_url, decode_job_url, encode_job_path, parse_job_path


class TestParseJobPath:
    def test_root(self):
        assert parse_job_path("") == ()

    def test_nested(self):
        assert parse_job_path("team/service/main") == ("team", "service", "main")

    def test_sequence_passthrough(self):
        assert parse_job_path(["a", "b"]) == ("a", "b")

    @pytest.mark.parametrize("value", ["/a", "a/", "a//b", "/"])
    def test_empty_segment_rejected(self, value):
        with pytest.raises(InvalidPathError):
            parse_job_path(value)

    def test_segment_with_delimiter_rejected(self):
        with pytest.raises(InvalidPathError):
            parse_job_path(["a/b", "c"])

    def test_invalid_path_is_value_error(self):
        with pytest.raises(ValueError):
            parse_job_path("a//b")


class TestEncodeJobPath:
    def test_simple_job(self):
        assert encode_job_path("my-job") == "/job/my-job"

    def test_folder_path(self):
        assert encode_job_path("org/repo/main") == "/job/org/job/repo/job/main"

    def test_root_is_empty(self):
        assert encode_job_path("") == ""

    def test_spaces_encoded(self):
        assert encode_job_path("My Job") == "/job/My%20Job"

    def test_special_chars_encoded(self):
        assert "%23" in encode_job_path("team/feat#123")
        assert "%25" in encode_job_path("job%name")

    def test_api_url_root(self):
        assert api_url("") == "/api/json"

    def test_api_url_nested(self):
        assert api_url("a/b") == "/job/a/job/b/api/json"

    def test_build_url(self):
        assert build_url("a/b", 7, "wfapi/describe") == "/job/a/job/b/7/wfapi/describe"


class TestRoundTrip:
    @pytest.mark.parametrize("path", [
        ("a",),
        ("team", "service"),
        ("org", "repo", "feature%2Fx"),
        ("with space", "job#1", "job"),
    ])
    def test_decode_inverts_encode(self, path):
        assert decode_job_url(encode_job_path(path)) == path

    def test_marker_count(self):
        assert encode_job_path("a/b/c").count("/job/") == 3

    def test_decode_absolute_url_with_suffix(self):
        url = "https://ci.example.com/job/team/job/svc/42/console"
        assert decode_job_url(url) == ("team", "svc")

    def test_decode_root(self):
        assert decode_job_url("https://ci.example.com/") == ()
