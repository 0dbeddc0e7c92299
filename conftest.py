from pathlib import Path

import pytest


@pytest.hookimpl(tryfirst=True)
def pytest_collection_modifyitems(config, items):
    """Mark tests by directory; integration and e2e tests need Docker."""
    for item in items:
        test_path = Path(item.fspath).as_posix()

        if "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)
        elif "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
