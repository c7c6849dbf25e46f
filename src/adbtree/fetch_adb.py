"""
Download Google's platform-tools and install adb next to the package,
where ADBManager.get_adb_path() looks for a bundled binary.
"""

import argparse
import logging
import os
import shutil
import sys
import tempfile
import zipfile
from typing import Optional

import requests

from .log import setup_logging

logger = logging.getLogger(__name__)

PLATFORM_TOOLS_URLS = {
    'darwin': 'https://dl.google.com/android/repository/platform-tools-latest-darwin.zip',
    'win32': 'https://dl.google.com/android/repository/platform-tools-latest-windows.zip',
    'linux': 'https://dl.google.com/android/repository/platform-tools-latest-linux.zip',
}
WINDOWS_DLLS = ('AdbWinApi.dll', 'AdbWinUsbApi.dll')
PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def platform_key(platform_name: str = sys.platform) -> Optional[str]:
    if platform_name.startswith('linux'):
        return 'linux'
    if platform_name in PLATFORM_TOOLS_URLS:
        return platform_name
    return None


def download_and_unzip(url: str, dest_folder: str) -> bool:
    """Downloads and unzips a file."""
    os.makedirs(dest_folder, exist_ok=True)
    zip_path = os.path.join(dest_folder, 'platform-tools.zip')

    logger.info(f"Downloading {url} to {zip_path}...")
    try:
        with requests.get(url, stream=True, timeout=60) as r:
            r.raise_for_status()
            with open(zip_path, 'wb') as f:
                for chunk in r.iter_content(chunk_size=8192):
                    f.write(chunk)
    except requests.RequestException as e:
        logger.error(f"Failed to download: {e}")
        return False

    logger.info(f"Unzipping {zip_path}...")
    try:
        with zipfile.ZipFile(zip_path, 'r') as zip_ref:
            zip_ref.extractall(dest_folder)
    except zipfile.BadZipFile as e:
        logger.error(f"Failed to unzip: {e}")
        return False
    finally:
        os.remove(zip_path)

    return True


def install_adb(dest_dir: str = PACKAGE_DIR, platform_name: str = sys.platform) -> bool:
    """Fetch platform-tools and copy adb (and its Windows DLLs) into dest_dir"""
    key = platform_key(platform_name)
    if key is None:
        logger.error(f"Unsupported platform: {platform_name}")
        return False

    adb_exe = 'adb.exe' if key == 'win32' else 'adb'
    temp_dir = tempfile.mkdtemp(prefix='adbtree-platform-tools-')
    try:
        if not download_and_unzip(PLATFORM_TOOLS_URLS[key], temp_dir):
            return False

        platform_tools_dir = os.path.join(temp_dir, 'platform-tools')
        src_adb_path = os.path.join(platform_tools_dir, adb_exe)
        if not os.path.exists(src_adb_path):
            logger.error(f"{adb_exe} not found in {platform_tools_dir}")
            return False

        os.makedirs(dest_dir, exist_ok=True)
        logger.info(f"Copying {adb_exe} to {dest_dir}...")
        dest_adb_path = os.path.join(dest_dir, adb_exe)
        shutil.copy(src_adb_path, dest_adb_path)
        os.chmod(dest_adb_path, 0o755)

        if key == 'win32':
            for dll in WINDOWS_DLLS:
                src_dll_path = os.path.join(platform_tools_dir, dll)
                if os.path.exists(src_dll_path):
                    shutil.copy(src_dll_path, dest_dir)
    finally:
        logger.info("Cleaning up temporary files...")
        shutil.rmtree(temp_dir, ignore_errors=True)

    logger.info("ADB setup complete.")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Download adb from Android platform-tools.")
    parser.add_argument("--dest", default=PACKAGE_DIR,
                        help="Directory to install adb into (default: next to the adbtree package).")
    args = parser.parse_args(argv)

    setup_logging("INFO")
    return 0 if install_adb(args.dest) else 1


if __name__ == '__main__':
    sys.exit(main())
