"""
File transfer management
Downloads, open-in-viewer and root restarts for tree nodes
"""

import logging
import os
from typing import Callable, Optional

from .adb_manager import ADBManager
from .config import Config
from .tree_provider import DEVICE, FILE, TreeNode
from .utils import flatten_remote_path, open_with_system, run_as_package_for

logger = logging.getLogger(__name__)


class FileManager:
    """Carries out the actions the front ends offer on tree nodes"""

    def __init__(self, adb_manager: ADBManager, config: Config):
        self.adb_manager = adb_manager
        self.config = config

    @staticmethod
    def _require_file(node: Optional[TreeNode]) -> TreeNode:
        if not node or node.kind != FILE or not node.file_entry or not node.device_id or not node.path:
            raise ValueError("Please select a file to download.")
        return node

    def _pull(self, node: TreeNode, local_path: str,
              progress_callback: Optional[Callable[[int, int], None]]) -> None:
        self.adb_manager.pull_file(node.device_id, node.path, local_path,
                                   run_as_package_for(node.path), progress_callback)

    def download(self, node: TreeNode, target_dir: Optional[str] = None,
                 progress_callback: Optional[Callable[[int, int], None]] = None) -> str:
        """Pull a file node into target_dir and return the local path"""
        node = self._require_file(node)
        target_dir = target_dir or self.config.download_dir
        os.makedirs(target_dir, exist_ok=True)

        local_path = os.path.join(target_dir, node.file_entry.name)
        logger.info(f"Downloading {node.path} to {local_path}")
        self._pull(node, local_path, progress_callback)
        return local_path

    def temp_path_for(self, node: TreeNode) -> str:
        return os.path.join(self.config.temp_dir, flatten_remote_path(node.path))

    def open_file(self, node: TreeNode,
                  progress_callback: Optional[Callable[[int, int], None]] = None,
                  opener: Callable[[str], None] = open_with_system) -> str:
        """Pull a file node into the temp directory and open it"""
        node = self._require_file(node)
        os.makedirs(self.config.temp_dir, exist_ok=True)

        local_path = self.temp_path_for(node)
        logger.info(f"Opening {node.path} via {local_path}")
        self._pull(node, local_path, progress_callback)
        opener(local_path)
        return local_path

    def root_device(self, node: TreeNode) -> str:
        """Restart adbd as root on the device behind a device node"""
        if not node or node.kind != DEVICE or not node.device_id:
            raise ValueError("Please select a device to root.")
        logger.info(f"Restarting ADB as root for {node.device_id}")
        result = self.adb_manager.root(node.device_id)
        logger.info(f"ADB Root: {result}")
        return result
