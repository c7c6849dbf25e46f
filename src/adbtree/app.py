import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import toga
from toga.style import Pack
from toga.style.pack import BOLD, CENTER, COLUMN, MONOSPACE, ROW

from .adb_manager import ADBManager, AdbError
from .config import Config, load_config
from .file_manager import FileManager
from .log import CallbackHandler
from .tree_provider import DEVICE, ERROR, FILE, FOLDER, DeviceTreeProvider, TreeNode

logger = logging.getLogger(__name__)

ICONS = {DEVICE: "📱", FOLDER: "📁", FILE: "📄", ERROR: "⚠️"}
PLACEHOLDER = "…"
ROOT_REFRESH_DELAY = 2


@asynccontextmanager
async def busy_cursor(window):
    try:
        window.cursor = "wait"
        yield
    finally:
        window.cursor = toga.constants.NORMAL


def log_task_exception(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Background task failed: {error}", exc_info=error)


def track_task(tasks: set, task: asyncio.Task) -> asyncio.Task:
    """Hold a reference to task until it finishes and log how it failed"""
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    task.add_done_callback(log_task_exception)
    return task


class AdbTree(toga.App):
    def __init__(self, *args, adb: Optional[ADBManager] = None, config: Optional[Config] = None, **kwargs):
        self.config = config or load_config()
        self.adb_manager = adb or ADBManager(self.config.adb_path, self.config.timeout)
        self._tasks = set()
        super().__init__(*args, **kwargs)

    def startup(self):
        """Construct and show the Toga application."""
        self.provider = DeviceTreeProvider(self.adb_manager)
        self.provider.add_listener(self.on_tree_changed)
        self.file_manager = FileManager(self.adb_manager, self.config)

        main_box = toga.Box(style=Pack(direction=COLUMN, padding=10))

        # --- Toolbar ---
        toolbar = toga.Box(style=Pack(direction=ROW, alignment=CENTER, padding_bottom=10))
        toolbar.add(toga.Button("Refresh", on_press=self.refresh_all, style=Pack(flex=1)))
        toolbar.add(toga.Button("Synchronize", on_press=self.synchronize_selected, style=Pack(flex=1)))
        toolbar.add(toga.Button("Open", on_press=self.open_selected, style=Pack(flex=1)))
        toolbar.add(toga.Button("Download", on_press=self.download_selected, style=Pack(flex=1)))
        toolbar.add(toga.Button("Copy Path", on_press=self.copy_selected_path, style=Pack(flex=1)))
        toolbar.add(toga.Button("Root", on_press=self.root_selected, style=Pack(flex=1)))

        path_box = toga.Box(style=Pack(direction=ROW, alignment=CENTER, padding_bottom=5))
        path_box.add(toga.Label("Path:", style=Pack(padding_right=10)))
        self.path_input = toga.TextInput(readonly=True, style=Pack(flex=1))
        path_box.add(self.path_input)

        # --- Device tree ---
        main_box.add(toga.Label("Android Devices", style=Pack(font_weight=BOLD, text_align=CENTER)))
        self.tree = toga.Tree(
            headings=["Name", "Details"],
            accessors=["name", "details"],
            on_activate=self.on_node_activate,
            on_select=self.on_node_select,
            style=Pack(flex=1),
        )
        self.status_label = toga.Label("", style=Pack(padding_top=5, text_align=CENTER))

        # --- Log Area ---
        log_box = toga.Box(style=Pack(direction=COLUMN, padding_top=10))
        log_box.add(toga.Label("Log", style=Pack(font_weight=BOLD)))
        self.log_view = toga.MultilineTextInput(readonly=True, style=Pack(flex=1, height=150, font_family=MONOSPACE))
        self.progress_bar = toga.ProgressBar(max=100, style=Pack(padding_top=5))
        log_box.add(self.log_view)
        log_box.add(self.progress_bar)

        main_box.add(toolbar)
        main_box.add(path_box)
        main_box.add(self.tree)
        main_box.add(self.status_label)
        main_box.add(log_box)

        self.log_handler = CallbackHandler(self.log_message_threadsafe)
        logging.getLogger('adbtree').addHandler(self.log_handler)

        self.main_window = toga.MainWindow(title=self.formal_name)
        self.main_window.content = main_box
        self.main_window.show()

        self.add_background_task(self.refresh_all)

    # --- Logging ---

    def log_message(self, message):
        self.log_view.value += message + '\n'
        self.log_view.scroll_to_bottom()

    def log_message_threadsafe(self, message):
        self.loop.call_soon_threadsafe(self.log_message, message)

    # --- Tree population ---

    @staticmethod
    def _row(node: TreeNode) -> dict:
        return {
            'name': f"{ICONS[node.kind]} {node.label}",
            'details': node.description or node.tooltip or '',
            'tree_node': node,
        }

    def _add_rows(self, parent, nodes):
        for node in nodes:
            children = [self._row(TreeNode(PLACEHOLDER, ERROR))] if node.expandable else None
            if parent is None:
                self.tree.data.append(self._row(node), children=children)
            else:
                parent.append(self._row(node), children=children)

    async def _load_children(self, row=None):
        node = row.tree_node if row is not None else None
        async with busy_cursor(self.main_window):
            try:
                children = await self.loop.run_in_executor(None, self.provider.get_children, node)
            except Exception as e:
                logger.error(f"Failed to load {node.label if node else 'devices'}: {e}", exc_info=True)
                children = [TreeNode(str(e) or type(e).__name__, ERROR, tooltip=repr(e))]

        if row is None:
            self.tree.data.clear()
        else:
            for child in list(row):
                row.remove(child)
        self._add_rows(row, children)
        if row is not None:
            row.loaded = True

        if row is None and not children:
            logger.info("No devices found.")
        else:
            logger.debug(f"Loaded {len(children)} nodes under {node.path if node else 'root'}")

    def _schedule(self, coro) -> asyncio.Task:
        return track_task(self._tasks, self.loop.create_task(coro))

    def on_tree_changed(self, node: Optional[TreeNode]):
        if node is None:
            self._schedule(self._load_children())
            return
        row = self._find_row(node)
        if row is not None:
            self._schedule(self._load_children(row))

    def _find_row(self, node: TreeNode, rows=None):
        rows = self.tree.data if rows is None else rows
        for row in rows:
            if row.tree_node is node:
                return row
            if row.can_have_children():
                found = self._find_row(node, row)
                if found is not None:
                    return found
        return None

    # --- Event handlers ---

    async def on_node_select(self, widget, **kwargs):
        row = self.tree.selection
        if row is not None and row.tree_node.path:
            self.path_input.value = row.tree_node.path

    async def on_node_activate(self, widget, node=None, **kwargs):
        row = node or self.tree.selection
        if row is None:
            return

        tree_node = row.tree_node
        if tree_node.kind == ERROR:
            if tree_node.tooltip:
                await self.main_window.info_dialog("Error", tree_node.tooltip)
            return

        if tree_node.expandable:
            if not getattr(row, 'loaded', False):
                await self._load_children(row)
            return

        await self._open(tree_node)

    def _selected_node(self) -> Optional[TreeNode]:
        row = self.tree.selection
        return row.tree_node if row is not None else None

    async def refresh_all(self, widget=None, **kwargs):
        logger.info("Refreshing devices...")
        self.provider.refresh()

    async def synchronize_selected(self, widget=None):
        node = self._selected_node()
        if node is None or not node.expandable:
            self.provider.refresh()
        else:
            self.provider.refresh(node)

    def copy_selected_path(self, widget=None):
        node = self._selected_node()
        if node and node.path:
            self.path_input.value = node.path
            self.status_label.text = f"Copied path: {node.path}"
            logger.info(f"Copied path: {node.path}")

    # --- Transfers ---

    def _progress_handler(self, transferred, total):
        def update_progress():
            if total > 0:
                self.progress_bar.value = (transferred / total) * 100
        self.loop.call_soon_threadsafe(update_progress)

    async def _run_transfer(self, title, func, *args):
        self.status_label.text = title
        self.progress_bar.value = 0
        try:
            async with busy_cursor(self.main_window):
                return await self.loop.run_in_executor(None, func, *args)
        finally:
            self.progress_bar.value = 0
            self.status_label.text = ""

    async def _open(self, node: TreeNode):
        try:
            await self._run_transfer(f"Opening {node.label}...", self.file_manager.open_file,
                                     node, self._progress_handler)
        except (AdbError, OSError, ValueError) as e:
            logger.error(f"Failed to open file: {e}")
            await self.main_window.error_dialog("Error", f"Failed to open file: {e}")

    async def open_selected(self, widget=None):
        node = self._selected_node()
        if node is None or node.kind != FILE:
            await self.main_window.error_dialog("Open", "Please select a file to open.")
            return
        await self._open(node)

    async def download_selected(self, widget=None):
        node = self._selected_node()
        if node is None or node.kind != FILE:
            await self.main_window.error_dialog("Download", "Please select a file to download.")
            return

        try:
            target_dir = await self.main_window.select_folder_dialog("Select Destination")
        except ValueError:
            return
        if not target_dir:
            return

        try:
            local_path = await self._run_transfer(f"Downloading {node.label}...", self.file_manager.download,
                                                  node, str(target_dir), self._progress_handler)
        except (AdbError, OSError, ValueError) as e:
            logger.error(f"Failed to download file: {e}")
            await self.main_window.error_dialog("Error", f"Failed to download file: {e}")
            return
        await self.main_window.info_dialog("Download", f"Successfully downloaded to {local_path}")

    async def root_selected(self, widget=None):
        node = self._selected_node()
        if node is None or node.kind != DEVICE:
            await self.main_window.error_dialog("Root", "Please select a device to root.")
            return

        try:
            result = await self._run_transfer(f"Restarting ADB as Root for {node.device_id}...",
                                              self.file_manager.root_device, node)
        except AdbError as e:
            logger.error(f"Failed to restart as root: {e}")
            await self.main_window.error_dialog("Error", f"Failed to restart as root: {e}")
            return

        self.status_label.text = f"ADB Root: {result}"
        # adbd restarts and the device drops off the bus for a moment
        await asyncio.sleep(ROOT_REFRESH_DELAY)
        self.provider.refresh()


def main(adb: Optional[ADBManager] = None, config: Optional[Config] = None):
    return AdbTree("adbtree", "org.adbtree.adbtree", adb=adb, config=config)
