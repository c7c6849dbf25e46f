"""
Records produced by parsing adb output
"""

from dataclasses import dataclass


@dataclass
class Device:
    """A device line from `adb devices -l`"""
    id: str
    status: str  # 'device', 'offline', 'unauthorized'
    model: str = "Unknown"


@dataclass
class FileEntry:
    """One parsed `ls -Al` line"""
    name: str
    path: str
    is_directory: bool
    size: int
    permissions: str
    date: str  # raw text, the format depends on the Android version
