"""
Helper functions
Remote path policy, size formatting and opening local files
"""

import os
import platform
import re
import subprocess
from typing import Optional

DATA_DATA_PREFIX = '/data/data/'


def run_as_package_for(path: Optional[str]) -> Optional[str]:
    """Return the package owning a /data/data/<package>/... path, if any"""
    if not path or not path.startswith(DATA_DATA_PREFIX):
        return None
    package = path[len(DATA_DATA_PREFIX):].split('/')[0]
    return package or None


def format_entry_size(size_bytes: int) -> str:
    """Format a size the way the tree shows it: KB with one decimal above 1 KiB"""
    if size_bytes > 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes} B"


def get_human_readable_size(size_bytes: int) -> str:
    """Convert a byte count to a human readable string"""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB", "PB"]
    i = 0
    while size_bytes >= 1024 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1

    return f"{size_bytes:.1f} {size_names[i]}"


def flatten_remote_path(remote_path: str) -> str:
    """Turn a remote path into a single file name: /data/data/pkg/a.txt -> data_data_pkg_a.txt"""
    return re.sub(r'[/\\]', '_', remote_path).lstrip('_')


def open_with_system(local_path: str) -> None:
    """Open a local file with the platform's default viewer"""
    if platform.system() == 'Darwin':
        subprocess.run(['open', local_path], check=True)
    elif platform.system() == 'Windows':
        os.startfile(local_path)
    else:
        subprocess.run(['xdg-open', local_path], check=True)
