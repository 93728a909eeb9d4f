from __future__ import annotations
from typing import Optional


class HostBuildError(Exception):
    """Base for every failure that ends a host build run."""
    stage = "task"

    def __init__(self, message: str, exit_status: Optional[int] = None):
        super().__init__(message)
        self.exit_status = exit_status


class JdkNotFound(HostBuildError):
    stage = "probe"

    def __init__(self, major: int):
        super().__init__(f"probe: no JDK {major} with JNI headers found")
        self.major = major


class DirectoryCreateFailed(HostBuildError):
    stage = "prepare"

    def __init__(self, path: str, reason: str):
        super().__init__(f"prepare: cannot create build directory {path}: {reason}")
        self.path = path


class StageFailed(HostBuildError):
    def __init__(self, program: str, exit_status: int):
        super().__init__(f"{self.stage}: {program} exited with status {exit_status}", exit_status)
        self.program = program


class ConfigureFailed(StageFailed):
    stage = "configure"


class BuildFailed(StageFailed):
    stage = "build"
