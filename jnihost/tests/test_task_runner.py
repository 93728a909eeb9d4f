import asyncio
import os

import pytest

from jnihost.api.errors import BuildFailed, ConfigureFailed, DirectoryCreateFailed, JdkNotFound
from jnihost.api.models.task_models import JdkLocation, TaskConfig
from jnihost.api.task_runner import run_host_build

JDK = JdkLocation(path="/opt/jdk17", major=17, version="17.0.8")


class FakeExecutor:
    def __init__(self, codes=None):
        self.codes = codes or {}
        self.calls = []

    async def __call__(self, invocation, log_cb, cancel_event=None):
        self.calls.append(invocation)
        return self.codes.get(invocation.program, 0)


def probe_returning(jdk):
    asked = []

    def probe(major):
        asked.append(major)
        return jdk
    probe.asked = asked
    return probe


def run(config, root, probe, executor):
    asyncio.run(run_host_build(config, root, probe=probe, executor=executor))


def test_defaults_only(tmp_path):
    ex = FakeExecutor()
    probe = probe_returning(JDK)
    run(TaskConfig(), tmp_path, probe, ex)

    build_dir = tmp_path / ".cxx" / "cmake" / "debug" / "host"
    assert build_dir.is_dir()
    assert probe.asked == [17]
    assert [c.argv for c in ex.calls] == [["cmake", "../../../../"], ["make"]]
    for c in ex.calls:
        assert c.working_dir == str(build_dir)
        assert os.path.isabs(c.working_dir)
        assert c.env_overlay == {"JAVA_HOME": "/opt/jdk17"}


def test_extra_configure_args_and_target(tmp_path):
    ex = FakeExecutor()
    cfg = TaskConfig().with_configure_args("-DFOO=1", "-DBAR=2").with_build_targets("mylib")
    run(cfg, tmp_path, probe_returning(JDK), ex)
    assert ex.calls[0].argv == ["cmake", "../../../../", "-DFOO=1", "-DBAR=2"]
    assert ex.calls[1].argv == ["make", "mylib"]


def test_duplicate_args_pass_through(tmp_path):
    ex = FakeExecutor()
    cfg = TaskConfig().with_configure_args("-DX=1", "-DX=1").with_build_targets("b", "a", "b")
    run(cfg, tmp_path, probe_returning(JDK), ex)
    assert ex.calls[0].argv == ["cmake", "../../../../", "-DX=1", "-DX=1"]
    assert ex.calls[1].argv == ["make", "b", "a", "b"]


def test_jdk_missing(tmp_path):
    ex = FakeExecutor()
    with pytest.raises(JdkNotFound) as info:
        run(TaskConfig(required_jdk_major=21), tmp_path, probe_returning(None), ex)
    assert info.value.major == 21
    assert ex.calls == []
    assert not (tmp_path / ".cxx").exists()


def test_configure_failure_skips_build(tmp_path):
    ex = FakeExecutor({"cmake": 2})
    with pytest.raises(ConfigureFailed) as info:
        run(TaskConfig(), tmp_path, probe_returning(JDK), ex)
    assert info.value.exit_status == 2
    assert "configure" in str(info.value) and "2" in str(info.value)
    assert [c.program for c in ex.calls] == ["cmake"]


def test_build_failure(tmp_path):
    ex = FakeExecutor({"make": 1})
    with pytest.raises(BuildFailed) as info:
        run(TaskConfig(), tmp_path, probe_returning(JDK), ex)
    assert info.value.exit_status == 1
    assert [c.program for c in ex.calls] == ["cmake", "make"]


def test_spawn_failure_is_configure_failure(tmp_path):
    ex = FakeExecutor({"cmake": 127})
    with pytest.raises(ConfigureFailed) as info:
        run(TaskConfig(), tmp_path, probe_returning(JDK), ex)
    assert info.value.exit_status == 127


def test_preexisting_build_dir_left_intact(tmp_path):
    build_dir = tmp_path / "out"
    build_dir.mkdir()
    (build_dir / "CMakeCache.txt").write_text("stale")
    ex = FakeExecutor()
    run(TaskConfig(build_dir="out"), tmp_path, probe_returning(JDK), ex)
    assert (build_dir / "CMakeCache.txt").read_text() == "stale"
    assert len(ex.calls) == 2


def test_rerun_uses_same_invocations(tmp_path):
    ex = FakeExecutor()
    cfg = TaskConfig().with_build_targets("mylib")
    run(cfg, tmp_path, probe_returning(JDK), ex)
    run(cfg, tmp_path, probe_returning(JDK), ex)
    assert ex.calls[:2] == ex.calls[2:]


def test_missing_ancestors_created(tmp_path):
    run(TaskConfig(build_dir="a/b/c/d"), tmp_path, probe_returning(JDK), FakeExecutor())
    assert (tmp_path / "a" / "b" / "c" / "d").is_dir()


def test_build_dir_collides_with_file(tmp_path):
    (tmp_path / "out").write_text("not a dir")
    ex = FakeExecutor()
    with pytest.raises(DirectoryCreateFailed):
        run(TaskConfig(build_dir="out"), tmp_path, probe_returning(JDK), ex)
    assert ex.calls == []


def test_jdk_path_logged_before_configure(tmp_path):
    events = []

    async def log_cb(level, message):
        events.append((level, message))

    class RecordingExecutor(FakeExecutor):
        async def __call__(self, invocation, cb, cancel_event=None):
            events.append(("spawn", invocation.program))
            return 0

    asyncio.run(run_host_build(TaskConfig(), tmp_path, probe=probe_returning(JDK), executor=RecordingExecutor(), log_cb=log_cb))
    jdk_idx = next(i for i, (lvl, msg) in enumerate(events) if "/opt/jdk17" in msg)
    assert events[jdk_idx][0] == "warn"
    assert jdk_idx < events.index(("spawn", "cmake"))
