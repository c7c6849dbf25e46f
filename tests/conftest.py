import subprocess

import pytest

from adbtree.adb_manager import ADBManager


class FakeSubprocess:
    """Answers subprocess.run calls for known adb argument lists"""

    def __init__(self):
        self.calls = []
        self.responses = {}

    def on(self, *args, stdout='', stderr='', returncode=0):
        self.responses[tuple(args)] = (returncode, stdout, stderr)

    def run(self, command, **kwargs):
        self.calls.append(command)
        returncode, stdout, stderr = self.responses.get(
            tuple(command[1:]), (1, '', f"unexpected command: {command}"))
        return subprocess.CompletedProcess(command, returncode, stdout, stderr)


@pytest.fixture
def fake_subprocess(monkeypatch):
    fake = FakeSubprocess()
    monkeypatch.setattr(subprocess, 'run', fake.run)
    return fake


@pytest.fixture
def adb():
    return ADBManager(adb_path='adb', timeout=5)
