import logging

from utils.logger import ROOT_LOGGER_NAME, get_logger, setup_logging


def test_setup_logging_writes_debug_to_file(tmp_path):
    log_file = setup_logging(tmp_path)
    logger = get_logger('tests.logging')
    logger.debug('batch detail')
    for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
        handler.flush()

    assert log_file.parent == tmp_path
    assert log_file.name.startswith('spagg_')
    assert 'batch detail' in log_file.read_text(encoding='utf-8')


def test_setup_logging_replaces_handlers(tmp_path):
    setup_logging(tmp_path)
    setup_logging(tmp_path)
    assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 2


def test_get_logger_hierarchy():
    assert get_logger('core.pipeline').name == 'spagg.core.pipeline'
