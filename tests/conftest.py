# File: tests/conftest.py
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Dict

import pytest
import pytest_asyncio
from aiohttp import web

from site_fetch.config import FetchConfig
from site_fetch.crawler.models import CrawlBudget

Routes = Dict[str, Callable[[web.Request], Awaitable[web.StreamResponse]]]


@pytest_asyncio.fixture
async def serve(unused_tcp_port_factory) -> AsyncIterator[Callable[[Routes], Awaitable[str]]]:
    """Start aiohttp apps on free localhost ports; returns the base URL of each."""
    runners = []

    async def _serve(routes: Routes) -> str:
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_get(path, handler)
        runner = web.AppRunner(app)
        await runner.setup()
        runners.append(runner)
        port = unused_tcp_port_factory()
        await web.TCPSite(runner, "localhost", port).start()
        return f"http://localhost:{port}"

    yield _serve
    for runner in runners:
        await runner.cleanup()


@pytest.fixture(autouse=True)
def reset_project_logger():
    """CLI tests attach handlers bound to CliRunner streams; drop them afterwards."""
    yield
    lg = logging.getLogger("SiteFetch")
    lg.handlers.clear()
    lg.addHandler(logging.NullHandler())
    lg.setLevel(logging.NOTSET)
    lg.propagate = True


@pytest.fixture()
def fast_budget() -> CrawlBudget:
    """Small, quick crawl budget for local test servers."""
    return CrawlBudget(max_depth=2, max_pages=20, timeout_per_page=2.0, user_agent="TestAgent/1.0")


@pytest.fixture()
def cache_config(tmp_path) -> FetchConfig:
    """FetchConfig with a filesystem cache rooted in *tmp_path*."""
    return FetchConfig(cache_backend="filesystem", cache_dir=tmp_path / "cache", cache_namespace="tests")
