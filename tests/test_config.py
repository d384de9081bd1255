# File: tests/test_config.py
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from site_fetch.config import FetchConfig, load_config
from site_fetch.crawler.models import CrawlBudget


def write_file(tmp_path: Path, content: str, suffix: str) -> Path:
    path = tmp_path / f"config{suffix}"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "content,suffix,expect_exc",
    [
        ("max_pages: 10\ncache_backend: memory", ".yaml", None),
        ("max_pages: 10\ncache_backend: memory", ".yml", None),
        (json.dumps({"max_pages": 10, "cache_backend": "memory"}), ".json", None),
        ("max_pages: 0", ".yaml", ValidationError),
        ("unknown_option: 1", ".yaml", ValidationError),
        ("cache_backend: redis", ".yaml", ValidationError),
        ("not: a: mapping", ".yaml", ValueError),
        ("{broken json", ".json", ValueError),
        ("- just\n- a list", ".yaml", TypeError),
        ("[1, 2]", ".json", TypeError),
        ("max_pages = 10", ".toml", ValueError),
    ],
)
def test_load_config_variants(tmp_path, content, suffix, expect_exc):
    cfg_path = write_file(tmp_path, content, suffix)
    if expect_exc:
        with pytest.raises(expect_exc):
            load_config(cfg_path)
    else:
        cfg = load_config(cfg_path)
        assert isinstance(cfg, FetchConfig)
        assert cfg.max_pages == 10
        assert cfg.cache_backend == "memory"


def test_load_config_defaults():
    cfg = load_config(None)
    assert cfg == FetchConfig()
    assert (cfg.max_depth, cfg.max_pages, cfg.timeout_per_page) == (2, 50, 10.0)
    assert cfg.cache_backend == "auto"
    assert cfg.cache_ttl == 3600


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_empty_yaml_gives_defaults(tmp_path):
    assert load_config(write_file(tmp_path, "", ".yaml")) == FetchConfig()


def test_extensions_get_a_leading_dot():
    assert FetchConfig(extensions=["py", ".md", " ts "]).extensions == [".py", ".md", ".ts"]
    assert FetchConfig(extensions="py,md").extensions == [".py", ".md"]


def test_config_is_frozen():
    cfg = FetchConfig()
    with pytest.raises(ValidationError):
        cfg.max_pages = 5


def test_crawl_budget_is_derived():
    cfg = FetchConfig(max_depth=4, max_pages=9, timeout_per_page=3, concurrency=2, ignore_robots=True)
    budget = cfg.crawl_budget()
    assert isinstance(budget, CrawlBudget)
    assert (budget.max_depth, budget.max_pages, budget.timeout_per_page) == (4, 9, 3.0)
    assert budget.concurrency == 2
    assert budget.ignore_robots


def test_key_options_only_output_shape():
    cfg = FetchConfig(format="json", max_tokens=1000, extensions=["py"], max_pages=3)
    assert cfg.key_options() == {
        "format": "json",
        "max_tokens": 1000,
        "token_encoder": None,
        "extensions": [".py"],
        "exclude_dirs": [],
    }
