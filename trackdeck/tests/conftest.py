"""pytest configuration file."""

import logging
import os

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pytest

from trackdeck.session import ItemTree

from .helpers import make_group, make_track


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (may take several seconds)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "qt: marks tests that need a Qt event loop"
    )


@pytest.fixture(autouse=True, scope="session")
def _isolate_user_dirs_and_logs(tmp_path_factory):
    os.environ["TRACKDECK_DATA_DIR"] = str(tmp_path_factory.mktemp("trackdeck-data"))
    logging.getLogger("trackdeck.session.events").setLevel(logging.WARNING)
    yield


@pytest.fixture
def nested_tree():
    """Root: a, G1[b, G2[c, d]], e"""
    return ItemTree([
        make_track("a", 100),
        make_group("G1", make_track("b", 200), make_group("G2", make_track("c", 300), make_track("d", 400))),
        make_track("e", 500),
    ])


@pytest.fixture
def flat_tree():
    """Root: a, b, c, d"""
    return ItemTree([make_track(name, 60) for name in "abcd"])
