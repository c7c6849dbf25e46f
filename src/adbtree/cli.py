import argparse
import logging
import os.path
import posixpath
import sys
from typing import List, Optional

from .adb_manager import ADBManager, AdbError
from .config import Config, load_config
from .file_manager import FileManager
from .log import setup_logging
from .models import FileEntry
from .tree_provider import DEVICE, ERROR, FILE, FOLDER, DeviceTreeProvider, TreeNode
from .utils import get_human_readable_size

logger = logging.getLogger(__name__)

MARKERS = {DEVICE: '@', FOLDER: 'd', FILE: '-', ERROR: '!'}


class CliError(Exception):
    pass


def select_device(adb: ADBManager, serial: Optional[str]) -> str:
    """Returns the requested serial, or the only connected device."""
    if serial:
        return serial
    devices = [d for d in adb.get_devices() if d.status == 'device']
    if not devices:
        raise CliError("No ADB device found. Ensure a device is connected and authorized.")
    if len(devices) > 1:
        ids = ', '.join(d.id for d in devices)
        raise CliError(f"Multiple devices found ({ids}), pick one with -s.")
    return devices[0].id


def folder_node(device_id: str, path: str) -> TreeNode:
    # The fallback chain matches exact paths, so "/data/data/" must become "/data/data"
    path = posixpath.normpath(path)
    if path.startswith('//'):
        path = '/' + path.lstrip('/')
    label = posixpath.basename(path) or '/'
    return TreeNode(label, FOLDER, device_id, path)


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def format_node(node: TreeNode, indent: int = 0) -> str:
    line = f"{'  ' * indent}{MARKERS[node.kind]} {node.label}"
    if node.description:
        line += f"  ({node.description})"
    return line


def print_tree(provider: DeviceTreeProvider, node: TreeNode, depth: int, indent: int = 0) -> None:
    for child in provider.get_children(node):
        print(format_node(child, indent))
        if child.expandable and depth > 1:
            print_tree(provider, child, depth - 1, indent + 1)


def cmd_devices(args, adb: ADBManager, config: Config) -> int:
    devices = adb.get_devices()
    if not devices:
        print("No devices found.", file=sys.stderr)
        return 1
    for device in devices:
        print(f"{device.id}\t{device.status}\t{device.model}")
    return 0


def cmd_ls(args, adb: ADBManager, config: Config) -> int:
    provider = DeviceTreeProvider(adb)
    node = folder_node(select_device(adb, args.serial), args.path)
    children = provider.get_children(node)
    for child in children:
        print(format_node(child))
    return 1 if any(child.kind == ERROR for child in children) else 0


def cmd_tree(args, adb: ADBManager, config: Config) -> int:
    provider = DeviceTreeProvider(adb)
    if args.path:
        node = folder_node(select_device(adb, args.serial), args.path)
        print(format_node(node))
        print_tree(provider, node, args.depth, 1)
        return 0

    for device in provider.get_children():
        if args.serial and device.device_id != args.serial:
            continue
        print(format_node(device))
        print_tree(provider, device, args.depth, 1)
    return 0


def cmd_pull(args, adb: ADBManager, config: Config) -> int:
    device_id = select_device(adb, args.serial)
    name = posixpath.basename(args.remote.rstrip('/'))
    if not name:
        raise CliError(f"Not a file path: {args.remote}")

    # Pulling does not need the listing, a synthetic entry is enough
    entry = FileEntry(name=name, path=args.remote, is_directory=False, size=0,
                      permissions='', date='')
    node = TreeNode(name, FILE, device_id, args.remote, entry)

    def progress(done, total):
        print(f"\r{args.remote}: {done * 100 // total}%", end='', file=sys.stderr, flush=True)

    local_path = FileManager(adb, config).download(node, args.dest, progress)
    print(file=sys.stderr)
    print(f"{local_path} ({get_human_readable_size(os.path.getsize(local_path))})")
    return 0


def cmd_root(args, adb: ADBManager, config: Config) -> int:
    device_id = select_device(adb, args.serial)
    print(FileManager(adb, config).root_device(TreeNode(device_id, DEVICE, device_id)))
    return 0


def cmd_gui(args, adb: ADBManager, config: Config) -> int:
    # toga is only imported when the window is actually wanted
    from .app import main as app_main
    app_main(adb, config).main_loop()
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="adbtree",
                                     description="Browse and pull files from Android devices through adb.")
    parser.add_argument("--adb", help="Path to the adb executable (default: $ADBTREE_ADB, bundled copy, then PATH).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every adb command.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    devices = subparsers.add_parser("devices", help="List connected devices.")
    devices.set_defaults(func=cmd_devices)

    ls = subparsers.add_parser("ls", help="List a remote folder.")
    ls.add_argument("path", help="Remote folder, e.g. /sdcard or /data/data/com.example.app")
    ls.add_argument("-s", "--serial", help="Device serial.")
    ls.set_defaults(func=cmd_ls)

    tree = subparsers.add_parser("tree", help="Print the device tree.")
    tree.add_argument("path", nargs="?", help="Remote folder to start from (default: every device).")
    tree.add_argument("-s", "--serial", help="Device serial.")
    tree.add_argument("-d", "--depth", type=positive_int, default=2, help="How many levels to expand.")
    tree.set_defaults(func=cmd_tree)

    pull = subparsers.add_parser("pull", help="Download a remote file.")
    pull.add_argument("remote", help="Remote file path.")
    pull.add_argument("dest", nargs="?", help="Local folder (default: $ADBTREE_DOWNLOADS or ~/Downloads).")
    pull.add_argument("-s", "--serial", help="Device serial.")
    pull.set_defaults(func=cmd_pull)

    root = subparsers.add_parser("root", help="Restart adbd as root.")
    root.add_argument("-s", "--serial", help="Device serial.")
    root.set_defaults(func=cmd_root)

    gui = subparsers.add_parser("gui", help="Open the tree window.")
    gui.set_defaults(func=cmd_gui)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config()
    except ValueError as e:
        print(e, file=sys.stderr)
        return 1

    setup_logging("DEBUG" if args.verbose else config.log_level)
    adb = ADBManager(args.adb or config.adb_path, config.timeout)
    try:
        return args.func(args, adb, config)
    except (AdbError, CliError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
