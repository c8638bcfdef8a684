import pytest

from newsdesk import log as newsdesk_log


@pytest.fixture(autouse=True)
def _log_to_tmp(tmp_path):
    newsdesk_log.configure(tmp_path / "logs", file_logging=True)
    yield
    newsdesk_log.configure(file_logging=False)
