from __future__ import annotations
import asyncio
import os
import uuid
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from jnihost.api.adapters.jdk_probe import JdkProbe
from jnihost.api.adapters.process_executor import Executor, LogCallback, run_and_stream
from jnihost.api.errors import BuildFailed, ConfigureFailed, HostBuildError, JdkNotFound
from jnihost.api.models.task_models import JdkLocation, ProcessInvocation, TaskConfig, TaskRequest, TaskStatus
from jnihost.api.utils.fs_utils import ensure_dir
from jnihost.services.logger import log_manager

log = logging.getLogger("jnihost.task")

Probe = Callable[[int], Optional[JdkLocation]]

CONFIGURE_PROGRAM = "cmake"
BUILD_PROGRAM = "make"


async def _discard(level: str, message: str) -> None:
    return None


async def run_host_build(
    config: TaskConfig,
    project_root: Path,
    probe: Optional[Probe] = None,
    executor: Executor = run_and_stream,
    log_cb: Optional[LogCallback] = None,
    cancel_event: Optional[asyncio.Event] = None,
    on_jdk: Optional[Callable[[JdkLocation], None]] = None,
) -> None:
    """Configure with cmake, then build with make, inside config.build_dir.

    The JDK is located before anything touches the filesystem, so a missing
    JDK leaves no directory behind. Raises a HostBuildError subclass on failure.
    """
    log_cb = log_cb or _discard
    probe = probe or JdkProbe()
    build_dir = config.resolve_build_dir(project_root)
    await log_cb("debug", f"Build dir: {build_dir}")

    # Probe may shell out to java / java_home; keep the loop free
    jdk = await asyncio.to_thread(probe, config.required_jdk_major)
    if jdk is None:
        raise JdkNotFound(config.required_jdk_major)
    if on_jdk is not None:
        on_jdk(jdk)
    await log_cb("warn", f"Using JDK {jdk.version or jdk.major} at {jdk.path}")

    await log_cb("info", "Phase: prepare build dir")
    ensure_dir(build_dir)

    env_overlay = {"JAVA_HOME": jdk.path}

    await log_cb("info", "Phase: configure")
    configure = ProcessInvocation(
        working_dir=str(build_dir),
        program=CONFIGURE_PROGRAM,
        args=config.configure_args,
        env_overlay=env_overlay,
    )
    code = await executor(configure, log_cb, cancel_event)
    if code != 0:
        raise ConfigureFailed(CONFIGURE_PROGRAM, code)

    await log_cb("info", "Phase: build")
    build = ProcessInvocation(
        working_dir=str(build_dir),
        program=BUILD_PROGRAM,
        args=config.build_targets,
        env_overlay=env_overlay,
    )
    code = await executor(build, log_cb, cancel_event)
    if code != 0:
        raise BuildFailed(BUILD_PROGRAM, code)

    await log_cb("info", "Phase: complete")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TaskController:
    """Runs host builds in the background for the HTTP surface."""

    def __init__(self, project_root: Optional[Path] = None, default_jdk_major: int = 17, probe: Optional[Probe] = None, executor: Executor = run_and_stream, max_history: int = 200):
        self.project_root = Path(project_root or Path.cwd())
        self.default_jdk_major = default_jdk_major
        self.probe = probe
        self.executor = executor
        self.tasks: Dict[str, asyncio.Task] = {}
        self.cancel_events: Dict[str, asyncio.Event] = {}
        self.statuses: Dict[str, TaskStatus] = {}
        # Runs against one build tree are serialized
        self.dir_locks: Dict[str, asyncio.Lock] = {}
        # build dir key of every queued or running task
        self.task_dirs: Dict[str, str] = {}
        self.max_history = max_history

    def configure(self, project_root: Path, default_jdk_major: int) -> None:
        self.project_root = Path(project_root)
        self.default_jdk_major = default_jdk_major

    def _update(self, task_id: str, **changes) -> TaskStatus:
        status = self.statuses[task_id].model_copy(update=changes)
        self.statuses[task_id] = status
        return status

    async def _publish(self, status: TaskStatus) -> None:
        await log_manager.emit_status(status.model_dump(mode="json"))

    async def start(self, req: TaskRequest) -> str:
        task_id = str(uuid.uuid4())
        config = req.to_config(self.default_jdk_major)
        build_dir = config.resolve_build_dir(self.project_root)
        cancel_event = asyncio.Event()
        self.cancel_events[task_id] = cancel_event
        self.statuses[task_id] = TaskStatus(
            task_id=task_id,
            status="queued",
            started_at=_now(),
            output_dir=str(build_dir),
        )
        log_manager.set_verbose(task_id, req.verbose)
        log.info(f"queue task id={task_id} dir={build_dir} jdk={config.required_jdk_major} targets={list(config.build_targets)}")
        dir_key = os.path.normcase(str(build_dir))
        self.task_dirs[task_id] = dir_key
        lock = self.dir_locks.setdefault(dir_key, asyncio.Lock())
        log_cb = log_manager.callback_for(task_id)

        def remember_jdk(jdk: JdkLocation) -> None:
            self._update(task_id, jdk_home=jdk.path)

        async def runner():
            try:
                async with lock:
                    await self._publish(self._update(task_id, status="running"))
                    await run_host_build(
                        config,
                        self.project_root,
                        probe=self.probe,
                        executor=self.executor,
                        log_cb=log_cb,
                        cancel_event=cancel_event,
                        on_jdk=remember_jdk,
                    )
                    if cancel_event.is_set():
                        raise asyncio.CancelledError()
                await self._publish(self._update(task_id, status="success", finished_at=_now()))
            except asyncio.CancelledError:
                await self._publish(self._update(task_id, status="cancelled", finished_at=_now(), error="Cancelled by user"))
            except HostBuildError as e:
                # A cancelled child shows up as a failed stage; report the cancel instead
                if cancel_event.is_set():
                    await self._publish(self._update(task_id, status="cancelled", finished_at=_now(), error="Cancelled by user"))
                else:
                    await log_cb("error", str(e))
                    await self._publish(self._update(
                        task_id,
                        status="failed",
                        finished_at=_now(),
                        error=str(e),
                        error_kind=type(e).__name__,
                        exit_status=e.exit_status,
                    ))
            except Exception as e:
                log.exception(f"task crashed id={task_id}")
                await self._publish(self._update(task_id, status="failed", finished_at=_now(), error=str(e), error_kind=type(e).__name__))
            finally:
                self.cancel_events.pop(task_id, None)
                self.tasks.pop(task_id, None)
                log_manager.set_verbose(task_id, False)
                self._release(task_id)

        self.tasks[task_id] = asyncio.create_task(runner())
        return task_id

    def _release(self, task_id: str) -> None:
        """Forget the dir lock once no run needs it and trim finished history."""
        dir_key = self.task_dirs.pop(task_id, None)
        if dir_key is not None and dir_key not in self.task_dirs.values():
            self.dir_locks.pop(dir_key, None)
        finished = [s for s in self.statuses.values() if s.status not in ("queued", "running")]
        if len(finished) > self.max_history:
            finished.sort(key=lambda s: s.started_at)
            for s in finished[:len(finished) - self.max_history]:
                self.statuses.pop(s.task_id, None)

    async def cancel(self, task_id: str) -> bool:
        ev = self.cancel_events.get(task_id)
        if not ev:
            return False
        ev.set()
        t = self.tasks.get(task_id)
        if t:
            t.cancel()
        await log_manager.emit_log(task_id, "warn", "Cancellation requested")
        return True

    def status(self, task_id: str) -> Optional[TaskStatus]:
        return self.statuses.get(task_id)

    def history(self, limit: int = 50, offset: int = 0) -> List[TaskStatus]:
        rows = sorted(self.statuses.values(), key=lambda s: s.started_at, reverse=True)
        return rows[offset:offset + limit]


task_controller = TaskController()
