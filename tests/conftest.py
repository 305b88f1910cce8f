"""Pytest configuration and shared fixtures for importmap_resolver tests."""

import logging
import os
from pathlib import Path

import httpx
import pytest


class TempProject:
    """A throwaway project directory with helpers to create source files."""

    def __init__(self, root: Path):
        self.root = root

    def write(self, rel_path: str, content: str) -> Path:
        path = self.root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def path(self, rel_path: str) -> str:
        return os.path.normpath(os.path.abspath(self.root / rel_path))

    @property
    def dir(self) -> str:
        return os.path.normpath(os.path.abspath(self.root))


class MockServer:
    """Canned HTTP responses served through httpx.MockTransport.

    Every request is recorded in `calls`, so tests can assert how many
    network fetches actually happened.
    """

    def __init__(self):
        self.routes: dict[str, httpx.Response] = {}
        self.calls: list[str] = []

    def add(
        self,
        url: str,
        body: str = "",
        status: int = 200,
        content_type: str | None = "application/javascript",
    ) -> None:
        headers = {"content-type": content_type} if content_type else {}
        self.routes[url] = httpx.Response(status, content=body.encode("utf-8"), headers=headers)

    def redirect(self, url: str, location: str, status: int = 302) -> None:
        self.routes[url] = httpx.Response(status, headers={"location": location})

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        return httpx.Response(route.status_code, content=route.content, headers=route.headers)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, url: str) -> int:
        return self.calls.count(url)


@pytest.fixture
def project(tmp_path):
    """Temporary project directory."""
    return TempProject(tmp_path / "project")


@pytest.fixture
def server():
    """Mock HTTP server."""
    return MockServer()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer environment variables out of the tests."""
    for name in ("IMPORTMAP_ENABLE_HTTP", "IMPORTMAP_TIMEOUT_MS", "IMPORTMAP_BASE_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo handlers and level changes made by init_json_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
