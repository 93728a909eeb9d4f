import asyncio

from jnihost.api.adapters.process_executor import CANCELLED
from jnihost.api.models.task_models import JdkLocation, TaskRequest
from jnihost.api.task_runner import TaskController

JDK = JdkLocation(path="/opt/jdk17", major=17)


def test_cancel_running_task(tmp_path):
    started = []

    async def blocking(invocation, log_cb, cancel_event=None):
        started.append(invocation.program)
        while not cancel_event.is_set():
            await asyncio.sleep(0.01)
        return CANCELLED

    async def go():
        ctl = TaskController(project_root=tmp_path, probe=lambda major: JDK, executor=blocking)
        task_id = await ctl.start(TaskRequest())
        while not started:
            await asyncio.sleep(0.01)
        assert await ctl.cancel(task_id)
        while ctl.status(task_id).status == "running":
            await asyncio.sleep(0.01)
        return ctl.status(task_id)

    status = asyncio.run(go())
    assert status.status == "cancelled"
    assert started == ["cmake"]


def test_runs_on_same_build_dir_are_serialized(tmp_path):
    active = []
    peak = []

    async def slow(invocation, log_cb, cancel_event=None):
        active.append(1)
        peak.append(len(active))
        await asyncio.sleep(0.02)
        active.pop()
        return 0

    async def go():
        ctl = TaskController(project_root=tmp_path, probe=lambda major: JDK, executor=slow)
        ids = [await ctl.start(TaskRequest()) for _ in range(3)]
        while any(ctl.status(i).status in ("queued", "running") for i in ids):
            await asyncio.sleep(0.01)
        return [ctl.status(i).status for i in ids]

    assert asyncio.run(go()) == ["success"] * 3
    assert max(peak) == 1
    assert len(peak) == 6


def test_finished_runs_release_locks_and_trim_history(tmp_path):
    async def ok(invocation, log_cb, cancel_event=None):
        return 0

    async def go():
        ctl = TaskController(project_root=tmp_path, probe=lambda major: JDK, executor=ok, max_history=2)
        ids = []
        for d in ("a", "b", "c", "d"):
            ids.append(await ctl.start(TaskRequest(build_dir=d)))
            while ctl.tasks:
                await asyncio.sleep(0.01)
        return ctl, ids

    ctl, ids = asyncio.run(go())
    assert ctl.dir_locks == {}
    assert ctl.task_dirs == {}
    assert [s.task_id for s in ctl.history()] == [ids[3], ids[2]]
