import asyncio
import logging
from types import SimpleNamespace

from adbtree import app
from adbtree.tree_provider import ERROR


async def _explode():
    raise RuntimeError('listing exploded')


async def _finish(*coros):
    tasks = set()
    for coro in coros:
        app.track_task(tasks, asyncio.get_running_loop().create_task(coro))
    held = len(tasks)
    await asyncio.wait(set(tasks))
    # done callbacks run on the next loop iteration
    await asyncio.sleep(0)
    return held, tasks


def test_failed_background_task_is_logged(caplog):
    with caplog.at_level(logging.ERROR, logger='adbtree'):
        held, tasks = asyncio.run(_finish(_explode()))

    assert held == 1
    assert tasks == set()
    assert 'Background task failed: listing exploded' in caplog.text


def test_successful_and_cancelled_tasks_log_nothing(caplog):
    async def run():
        tasks = set()
        sleeper = app.track_task(tasks, asyncio.get_running_loop().create_task(asyncio.sleep(10)))
        sleeper.cancel()
        await asyncio.gather(sleeper, return_exceptions=True)
        held, _ = await _finish(asyncio.sleep(0))
        await asyncio.sleep(0)
        return held, tasks

    with caplog.at_level(logging.ERROR, logger='adbtree'):
        held, tasks = asyncio.run(run())

    assert held == 1
    assert tasks == set()
    assert caplog.text == ''


class FakeTreeData(list):
    def append(self, row, children=None):
        super().append((row, children))


class BrokenProvider:
    def get_children(self, node=None):
        raise OSError('adb pipe closed')


class Harness(app.AdbTree):
    # toga exposes these as properties backed by a running app
    loop = None
    main_window = None


def test_load_failure_becomes_error_row(caplog):
    window = Harness.__new__(Harness)
    window.provider = BrokenProvider()
    window.main_window = SimpleNamespace(cursor=None)
    window.tree = SimpleNamespace(data=FakeTreeData([('stale', None)]))

    async def run():
        window.loop = asyncio.get_running_loop()
        await window._load_children()

    with caplog.at_level(logging.ERROR, logger='adbtree'):
        asyncio.run(run())

    (row, children), = window.tree.data
    assert row['tree_node'].kind == ERROR
    assert row['tree_node'].label == 'adb pipe closed'
    assert children is None
    assert 'Failed to load devices: adb pipe closed' in caplog.text
