import sys

import pytest


@pytest.fixture(autouse=True)
def _restore_main_module():
    """functions_framework.create_app re-imports main.py into sys.modules["main"];
    restore the original so later patch("main.…") targets the module tests use."""
    original = sys.modules.get("main")
    yield
    if original is not None:
        sys.modules["main"] = original
