"""
Runtime settings, read from ADBTREE_* environment variables
"""

import os
import tempfile
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_TIMEOUT = 10


def _default_download_dir() -> str:
    return os.path.join(os.path.expanduser('~'), "Downloads")


@dataclass
class Config:
    adb_path: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    temp_dir: str = field(default_factory=tempfile.gettempdir)
    download_dir: str = field(default_factory=_default_download_dir)
    log_level: str = "INFO"


def _read_timeout(environ: Mapping[str, str]) -> float:
    raw = environ.get('ADBTREE_TIMEOUT')
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        raise ValueError(f"ADBTREE_TIMEOUT must be a number of seconds, got '{raw}'")
    if timeout <= 0:
        raise ValueError(f"ADBTREE_TIMEOUT must be positive, got '{raw}'")
    return timeout


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build a Config from the environment"""
    if environ is None:
        environ = os.environ

    temp_dir = environ.get('ADBTREE_TEMP') or environ.get('TEMP') or tempfile.gettempdir()
    return Config(
        adb_path=environ.get('ADBTREE_ADB') or None,
        timeout=_read_timeout(environ),
        temp_dir=temp_dir,
        download_dir=environ.get('ADBTREE_DOWNLOADS') or _default_download_dir(),
        log_level=(environ.get('ADBTREE_LOG_LEVEL') or "INFO").upper(),
    )
