"""Shared test fixtures: a scripted stand-in for JenkinsClient."""

from __future__ import annotations

import pytest

from butler.client import Reply
from butler.errors import NotFoundError


class FakeClient:
    """Answers GET/POST from a path -> response table.

    A response may be a Reply, plain data (wrapped in a Reply), an exception
    instance (raised), or a list of those consumed one per request.
    Unknown paths raise NotFoundError, like Jenkins would.
    """

    def __init__(self) -> None:
        self.routes: dict[str, object] = {}
        self.calls: list[str] = []
        self.posts: list[tuple[str, object, object]] = []

    def _answer(self, path: str):
        if path not in self.routes:
            raise NotFoundError(path)
        resp = self.routes[path]
        if isinstance(resp, list):
            if not resp:
                raise AssertionError(f"unexpected extra request to {path}")
            resp = resp.pop(0)
        if isinstance(resp, Exception):
            raise resp
        if isinstance(resp, Reply):
            return resp
        return Reply(resp)

    def get(self, path: str, params: dict | None = None, *, text: bool = False) -> Reply:
        self.calls.append(path)
        return self._answer(path)

    def post(self, path: str, data=None, headers=None) -> Reply:
        self.calls.append(path)
        self.posts.append((path, data, headers))
        return self._answer(path)


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
