"""
Tree provider
Hands out device, folder, file and error nodes on demand for the front ends
"""

import logging
from typing import Callable, List, Optional

from .adb_manager import ADBManager, AdbError
from .models import FileEntry
from .utils import format_entry_size, run_as_package_for

logger = logging.getLogger(__name__)

DEVICE = 'device'
FOLDER = 'folder'
FILE = 'file'
ERROR = 'error'

PERMISSION_DENIED = 'Permission denied'
NOT_DEBUGGABLE = 'not debuggable'

# Folders shown under /data when it cannot be listed directly
DATA_SUBFOLDERS = ('app', 'data', 'local', 'user')


class TreeNode:
    """A node of the device tree"""

    def __init__(self, label: str, kind: str, device_id: Optional[str] = None,
                 path: Optional[str] = None, file_entry: Optional[FileEntry] = None,
                 tooltip: Optional[str] = None):
        self.label = label
        self.kind = kind
        self.device_id = device_id
        self.path = path
        self.file_entry = file_entry
        self.tooltip = tooltip

    @property
    def expandable(self) -> bool:
        return self.kind in (DEVICE, FOLDER)

    @property
    def description(self) -> str:
        if self.kind == DEVICE:
            return self.device_id or ''
        if self.kind == FOLDER and self.file_entry:
            return self.file_entry.permissions
        if self.kind == FILE and self.file_entry:
            return f"{format_entry_size(self.file_entry.size)}  •  {self.file_entry.permissions}"
        return ''

    def __repr__(self):
        return f"TreeNode({self.label!r}, {self.kind!r}, path={self.path!r})"


def sort_entries(entries: List[FileEntry]) -> List[FileEntry]:
    """Directories first, then by case-folded name"""
    return sorted(entries, key=lambda e: (not e.is_directory, e.name.casefold()))


def error_label(path: str, error_message: str, run_as_package: Optional[str]) -> str:
    """Turn raw adb error text into a short label"""
    if PERMISSION_DENIED in error_message:
        return f"ls: {path}: {PERMISSION_DENIED}"
    if NOT_DEBUGGABLE in error_message:
        return f"run-as: package not debuggable: {run_as_package}"
    return error_message


class DeviceTreeProvider:
    """Builds tree nodes from adb output"""

    def __init__(self, adb: ADBManager):
        self.adb = adb
        self._listeners: List[Callable[[Optional[TreeNode]], None]] = []

    def add_listener(self, listener: Callable[[Optional[TreeNode]], None]) -> None:
        self._listeners.append(listener)

    def refresh(self, node: Optional[TreeNode] = None) -> None:
        """Tell listeners that `node` (or the whole tree when None) is stale"""
        for listener in self._listeners:
            listener(node)

    def get_children(self, node: Optional[TreeNode] = None) -> List[TreeNode]:
        if node is None:
            return [
                TreeNode(device.model, DEVICE, device.id)
                for device in self.adb.get_devices()
            ]

        device_id = node.device_id
        if not device_id:
            return []

        if node.kind == DEVICE:
            return [
                TreeNode('/', FOLDER, device_id, '/'),
                TreeNode('sdcard', FOLDER, device_id, '/sdcard'),
                TreeNode('data', FOLDER, device_id, '/data'),
            ]

        if node.kind == FOLDER and node.path:
            return self._folder_children(device_id, node.path)

        return []

    def _folder_children(self, device_id: str, path: str) -> List[TreeNode]:
        run_as_package = run_as_package_for(path)
        try:
            entries = self.adb.list_files(device_id, path, run_as_package)
        except AdbError as e:
            return self._fallback_children(device_id, path, str(e), run_as_package)

        return [
            TreeNode(entry.name, FOLDER if entry.is_directory else FILE,
                     device_id, entry.path, entry)
            for entry in sort_entries(entries)
        ]

    def _fallback_children(self, device_id: str, path: str, error_message: str,
                           run_as_package: Optional[str]) -> List[TreeNode]:
        denied = PERMISSION_DENIED in error_message

        if path == '/data/data' and denied:
            packages = self.adb.get_installed_packages(device_id)
            if packages:
                logger.info(f"{path} is not readable, listing {len(packages)} installed packages instead")
                return [
                    TreeNode(package, FOLDER, device_id, f"/data/data/{package}")
                    for package in packages
                ]

        if path == '/data' and denied:
            children = [
                TreeNode(name, FOLDER, device_id, f"/data/{name}")
                for name in DATA_SUBFOLDERS
            ]
            children.append(TreeNode(f"ls: {path}: {PERMISSION_DENIED}", ERROR))
            return children

        label = error_label(path, error_message, run_as_package)
        return [TreeNode(label, ERROR, tooltip=error_message)]
