import logging
import os

import pytest

from adbtree.config import DEFAULT_TIMEOUT, load_config
from adbtree.log import CallbackHandler, setup_logging


def test_defaults():
    config = load_config({})

    assert config.adb_path is None
    assert config.timeout == DEFAULT_TIMEOUT
    assert config.download_dir == os.path.join(os.path.expanduser('~'), 'Downloads')
    assert config.log_level == 'INFO'
    assert config.temp_dir


def test_environment_overrides():
    config = load_config({
        'ADBTREE_ADB': '/opt/adb',
        'ADBTREE_TIMEOUT': '2.5',
        'ADBTREE_TEMP': '/scratch',
        'TEMP': '/ignored',
        'ADBTREE_DOWNLOADS': '/dl',
        'ADBTREE_LOG_LEVEL': 'debug',
    })

    assert config.adb_path == '/opt/adb'
    assert config.timeout == 2.5
    assert config.temp_dir == '/scratch'
    assert config.download_dir == '/dl'
    assert config.log_level == 'DEBUG'


def test_temp_falls_back_to_temp_variable():
    assert load_config({'TEMP': '/win/temp'}).temp_dir == '/win/temp'


@pytest.mark.parametrize('value', ['soon', '0', '-3'])
def test_invalid_timeout(value):
    with pytest.raises(ValueError, match='ADBTREE_TIMEOUT'):
        load_config({'ADBTREE_TIMEOUT': value})


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError, match='Unknown log level'):
        setup_logging('chatty')


def test_callback_handler_formats_records():
    lines = []
    log = logging.getLogger('adbtree.test_callback')
    handler = CallbackHandler(lines.append)
    log.addHandler(handler)
    log.setLevel(logging.INFO)
    try:
        log.warning('device offline')
    finally:
        log.removeHandler(handler)

    assert lines == ['[WARNING] device offline']
