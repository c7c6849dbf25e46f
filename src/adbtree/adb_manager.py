"""
ADB command wrapper
Device enumeration, directory listing and file pulls through the adb executable
"""

import logging
import os
import posixpath
import re
import shutil
import subprocess
import sys
from typing import Callable, List, Optional

from .config import DEFAULT_TIMEOUT
from .models import Device, FileEntry

logger = logging.getLogger(__name__)

LS_LINE = re.compile(
    r'^([d\-\w]+)\s+\d+\s+\w+\s+\w+\s+(\d+)\s+'
    r'(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}|\w{3}\s+\d+\s+\d{2}:\d{2}|\d{4}-\d{2}-\d{2})\s+'
    r'(.+)$'
)
PROGRESS = re.compile(r'\[\s*(\d+)%\]')


class AdbError(Exception):
    """Base class for adb failures"""


class AdbNotFoundError(AdbError):
    """The adb executable could not be launched"""


class AdbCommandError(AdbError):
    """An adb command exited with an error"""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def _parse_size(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def _remove_partial(local_path: str) -> None:
    if os.path.exists(local_path):
        os.remove(local_path)


def parse_ls_output(output: str, remote_path: str) -> List[FileEntry]:
    """Parse `ls -Al` output into FileEntry records.

    Android toolbox and toybox print different date columns, so a regex is
    tried first and a whitespace split is used for anything it misses.
    """
    files = []
    for line in output.splitlines():
        trimmed = line.strip()
        # run-as mixes its complaints into stdout on some builds
        if not trimmed or trimmed.startswith('total') or 'not debuggable' in trimmed:
            continue

        match = LS_LINE.match(trimmed)
        if match:
            permissions, size, date, name = match.groups()
            size = int(size)
        else:
            parts = trimmed.split()
            if len(parts) <= 7:
                logger.debug(f"Unparsed ls line: {trimmed}")
                continue
            permissions = parts[0]
            size = _parse_size(parts[4])
            date = ' '.join(parts[5:7])
            name = ' '.join(parts[7:])

        # Symlinks print as "name -> target"
        if ' -> ' in name:
            name = name.split(' -> ')[0].strip()

        if name in ('.', '..'):
            continue

        files.append(FileEntry(
            name=name,
            path=posixpath.join(remote_path, name),
            is_directory=permissions.startswith('d'),
            size=size,
            permissions=permissions,
            date=date,
        ))
    return files


def parse_devices_output(output: str) -> List[Device]:
    """Parse `adb devices -l` output"""
    lines = [line for line in output.splitlines() if line.strip()]
    devices = []
    # The first line is the "List of devices attached" header
    for line in lines[1:]:
        parts = line.split()
        if len(parts) < 2:
            continue
        model = "Unknown"
        for part in parts[2:]:
            if part.startswith('model:'):
                model = part.split(':')[1]
                break
        devices.append(Device(id=parts[0], status=parts[1], model=model))
    return devices


def parse_packages_output(output: str) -> List[str]:
    """Parse `pm list packages` output into a sorted list of package names"""
    return sorted(
        line[len('package:'):].strip()
        for line in output.splitlines()
        if line.startswith('package:')
    )


class ADBManager:
    """Runs adb commands against connected devices"""

    def __init__(self, adb_path: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.adb_path = self.get_adb_path(adb_path)
        self.timeout = timeout

    @staticmethod
    def get_adb_path(explicit: Optional[str] = None) -> str:
        """Find the path to the adb executable."""
        if explicit:
            return explicit

        configured = os.environ.get('ADBTREE_ADB')
        if configured:
            return configured

        # fetch_adb drops a platform-tools binary next to this module
        base_path = os.path.dirname(os.path.abspath(__file__))
        exe_name = 'adb.exe' if sys.platform == 'win32' else 'adb'
        bundled = os.path.join(base_path, exe_name)
        if os.path.exists(bundled):
            return bundled

        return shutil.which('adb') or 'adb'

    def _run(self, args: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        command = [self.adb_path] + args
        logger.debug(f"Running: {' '.join(command)}")
        try:
            return subprocess.run(command, capture_output=True, encoding='utf-8', errors='replace',
                                  timeout=timeout or self.timeout)
        except FileNotFoundError:
            raise AdbNotFoundError(f"adb executable not found: {self.adb_path}")
        except subprocess.TimeoutExpired:
            raise AdbCommandError(f"Command timed out: {' '.join(command)}")

    def _check(self, args: List[str]) -> str:
        result = self._run(args)
        if result.returncode != 0:
            error_text = (result.stderr or '').strip() or (result.stdout or '').strip()
            raise AdbCommandError(error_text or f"adb exited with code {result.returncode}",
                                  result.returncode, result.stderr or '')
        return result.stdout

    def check_adb_available(self) -> bool:
        """Check that adb can be launched"""
        try:
            self._check(['version'])
            return True
        except AdbError:
            return False

    def get_devices(self) -> List[Device]:
        """List connected devices, empty when adb is unavailable"""
        try:
            output = self._check(['devices', '-l'])
        except AdbError as e:
            logger.error(f"Error fetching devices: {e}")
            return []
        return parse_devices_output(output)

    def get_installed_packages(self, device_id: str) -> List[str]:
        """List installed package names, sorted"""
        try:
            output = self._check(['-s', device_id, 'shell', 'pm', 'list', 'packages'])
        except AdbError as e:
            logger.error(f"Error fetching packages: {e}")
            return []
        return parse_packages_output(output)

    def list_files(self, device_id: str, remote_path: str,
                   run_as_package: Optional[str] = None) -> List[FileEntry]:
        """List a remote directory.

        Raises AdbCommandError with adb's error text when the listing fails,
        so callers can react to "Permission denied" and friends.
        """
        # A trailing slash makes ls follow symlinked folders such as /sdcard
        target_path = remote_path if remote_path.endswith('/') else remote_path + '/'

        args = ['-s', device_id, 'shell']
        if run_as_package:
            args += ['run-as', run_as_package]
        args += ['ls', '-Al', f'"{target_path}"']

        try:
            output = self._check(args)
        except AdbError as e:
            logger.error(f"Error listing files for {remote_path}: {e}")
            raise
        return parse_ls_output(output, remote_path)

    def pull_file(self, device_id: str, remote_path: str, local_path: str,
                  run_as_package: Optional[str] = None,
                  progress_callback: Optional[Callable[[int, int], None]] = None) -> None:
        """Copy a remote file to local_path.

        Files inside a package's private storage are streamed through
        `exec-out run-as <package> cat`, since `adb pull` cannot read them.
        """
        if run_as_package:
            self._pull_run_as(device_id, remote_path, local_path, run_as_package)
        else:
            self._pull(device_id, remote_path, local_path, progress_callback)

        if progress_callback:
            progress_callback(100, 100)
        logger.info(f"Pulled {remote_path} to {local_path}")

    def _pull(self, device_id: str, remote_path: str, local_path: str,
              progress_callback: Optional[Callable[[int, int], None]]) -> None:
        command = [self.adb_path, '-s', device_id, 'pull', remote_path, local_path]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            process = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                       encoding='utf-8', errors='replace', bufsize=1)
        except FileNotFoundError:
            raise AdbNotFoundError(f"adb executable not found: {self.adb_path}")

        output = []
        for line in iter(process.stdout.readline, ''):
            output.append(line)
            match = PROGRESS.search(line)
            if match and progress_callback:
                progress_callback(int(match.group(1)), 100)
        process.stdout.close()

        return_code = process.wait()
        if return_code != 0:
            _remove_partial(local_path)
            message = ''.join(output).strip()
            logger.error(f"adb pull stderr: {message}")
            raise AdbCommandError(f"adb pull failed with code {return_code}", return_code, message)

    def _pull_run_as(self, device_id: str, remote_path: str, local_path: str,
                     run_as_package: str) -> None:
        # exec-out keeps binary data intact, `shell` would mangle line endings
        command = [self.adb_path, '-s', device_id, 'exec-out', 'run-as', run_as_package,
                   'cat', remote_path]
        logger.debug(f"Running: {' '.join(command)}")
        with open(local_path, 'wb') as f:
            try:
                result = subprocess.run(command, stdout=f, stderr=subprocess.PIPE)
            except FileNotFoundError:
                result = None
        if result is None:
            _remove_partial(local_path)
            raise AdbNotFoundError(f"adb executable not found: {self.adb_path}")

        if result.returncode != 0:
            _remove_partial(local_path)
            stderr = result.stderr.decode(errors='replace').strip()
            logger.error(f"adb pull stderr: {stderr}")
            raise AdbCommandError(f"adb pull failed with code {result.returncode}",
                                  result.returncode, stderr)

    def root(self, device_id: str) -> str:
        """Restart adbd on the device with root permissions"""
        output = self._check(['-s', device_id, 'root'])
        return output.strip()
