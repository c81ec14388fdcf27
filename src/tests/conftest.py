import logging

import pytest

from hapkmer.utils.logging import loggit


def clear_hapkmer_handlers() -> logging.Logger:
    logger = logging.getLogger()
    for handler in list(logger.handlers):
        if getattr(handler, loggit.HAPKMER_HANDLER_ATTR, None) in {"console", "file"}:
            logger.removeHandler(handler)
            handler.close()
    return logger


@pytest.fixture(autouse=True)
def reset_hapkmer_logging():
    """Commands install root handlers pointing into tmp_path; drop them after each test."""
    yield
    clear_hapkmer_handlers()
