from __future__ import annotations
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime

# Host-variant debug tree; not parameterised by build type or target triple.
DEFAULT_BUILD_DIR = ".cxx/cmake/debug/host/"
# Relative to DEFAULT_BUILD_DIR this points back at the top-level source root.
DEFAULT_SOURCE_ROOT = "../../../../"
DEFAULT_JDK_MAJOR = 17


class TaskConfig(BaseModel):
    """Frozen configuration for one host JNI build run."""
    model_config = ConfigDict(frozen=True)

    build_dir: str = DEFAULT_BUILD_DIR  # relative to the project root
    configure_args: Tuple[str, ...] = (DEFAULT_SOURCE_ROOT,)
    build_targets: Tuple[str, ...] = ()  # empty means the default make target
    required_jdk_major: int = Field(default=DEFAULT_JDK_MAJOR, ge=1)

    @field_validator("build_dir")
    @classmethod
    def _non_empty_build_dir(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("build_dir must not be empty")
        return v

    def with_configure_args(self, *args: str) -> "TaskConfig":
        return self.model_copy(update={"configure_args": self.configure_args + tuple(args)})

    def with_build_targets(self, *targets: str) -> "TaskConfig":
        return self.model_copy(update={"build_targets": self.build_targets + tuple(targets)})

    def with_build_dir(self, build_dir: str) -> "TaskConfig":
        # Re-validate instead of model_copy so an empty path is still rejected
        return TaskConfig(**{**self.model_dump(), "build_dir": build_dir})

    def with_jdk_major(self, major: int) -> "TaskConfig":
        return TaskConfig(**{**self.model_dump(), "required_jdk_major": major})

    def resolve_build_dir(self, project_root: Path) -> Path:
        return Path(os.path.abspath(Path(project_root) / self.build_dir))

    def declared_outputs(self, project_root: Path) -> List[Path]:
        """Output directories to report to the caller for up-to-date checks."""
        return [self.resolve_build_dir(project_root)]


class JdkLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str  # absolute JDK installation root
    major: int
    version: Optional[str] = None


class ProcessInvocation(BaseModel):
    """One child process: program + args run in working_dir with env_overlay applied."""
    model_config = ConfigDict(frozen=True)

    working_dir: str
    program: str
    args: Tuple[str, ...] = ()
    env_overlay: Dict[str, str] = {}

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def merged_env(self, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ if base is None else base)
        env.update(self.env_overlay)
        return env


class TaskRequest(BaseModel):
    """Body of POST /start-task. Lists are appended to the TaskConfig defaults."""
    extra_configure_args: List[str] = []
    build_targets: List[str] = []
    build_dir: Optional[str] = None
    required_jdk_major: Optional[int] = Field(default=None, ge=1)
    # Controls whether 'debug' logs are emitted for this run
    verbose: bool = False

    def to_config(self, default_jdk_major: int = DEFAULT_JDK_MAJOR) -> TaskConfig:
        cfg = TaskConfig(required_jdk_major=self.required_jdk_major or default_jdk_major)
        if self.build_dir is not None:
            cfg = cfg.with_build_dir(self.build_dir)
        return cfg.with_configure_args(*self.extra_configure_args).with_build_targets(*self.build_targets)


class TaskStatus(BaseModel):
    task_id: str
    status: str = Field(pattern=r"^(queued|running|success|failed|cancelled)$")
    started_at: datetime
    finished_at: Optional[datetime] = None
    output_dir: Optional[str] = None
    jdk_home: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    exit_status: Optional[int] = None


class LogEvent(BaseModel):
    task_id: str
    timestamp: datetime
    level: str = Field(pattern=r"^(info|warn|error|debug)$")
    message: str
