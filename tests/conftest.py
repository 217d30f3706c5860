"""Shared pytest fixtures and options."""

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-redis",
        action="store_true",
        default=False,
        help="Run tests that require a live Redis instance",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("--run-redis"):
        return
    skip_redis = pytest.mark.skip(reason="needs --run-redis flag")
    for item in items:
        if "requires_redis" in item.keywords:
            item.add_marker(skip_redis)
