import logging

import pytest

from clusterup.logging.log import init_logging


@pytest.fixture
def restore_clusterup_logger():
    logger = logging.getLogger("clusterup-test-run")
    yield
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


def test_init_logging_writes_run_file(tmp_path, restore_clusterup_logger):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="clusterup-test-run")

    logger.debug("debug detail")
    for h in logger.handlers:
        h.flush()

    assert log_path.parent == tmp_path
    assert run_id in log_path.name
    text = log_path.read_text()
    assert f"run_id={run_id}" in text
    assert "debug detail" in text
    assert logging.getLogger("paramiko").level == logging.WARNING


def test_console_level_follows_verbose(tmp_path, restore_clusterup_logger):
    logger, _, _ = init_logging(base_dir=tmp_path, name="clusterup-test-run", verbose=True)

    console = [h for h in logger.handlers if not isinstance(h, logging.FileHandler)]
    assert console[0].level == logging.DEBUG
