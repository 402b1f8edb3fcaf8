import logging

import pytest


@pytest.fixture(autouse=True)
def restore_root_logging():
    # The CLI reconfigures the root logger; keep that from leaking across tests.
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
