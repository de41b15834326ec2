"""Mark everything under tests/api so the HTTP suite can be selected with ``-m api``."""

import pytest


def pytest_collection_modifyitems(items):
    for item in items:
        if "api" in item.path.parts:
            item.add_marker(pytest.mark.api)
