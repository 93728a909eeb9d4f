import os

import pytest
from pydantic import ValidationError

from jnihost.api.models.task_models import ProcessInvocation, TaskConfig, TaskRequest


def test_defaults():
    cfg = TaskConfig()
    assert cfg.build_dir == ".cxx/cmake/debug/host/"
    assert cfg.configure_args == ("../../../../",)
    assert cfg.build_targets == ()
    assert cfg.required_jdk_major == 17


def test_appenders_return_new_config():
    base = TaskConfig()
    cfg = base.with_configure_args("-DFOO=1").with_configure_args("-DBAR=2").with_build_targets("mylib")
    assert base.configure_args == ("../../../../",)
    assert cfg.configure_args == ("../../../../", "-DFOO=1", "-DBAR=2")
    assert cfg.build_targets == ("mylib",)


def test_config_is_frozen():
    cfg = TaskConfig()
    with pytest.raises(ValidationError):
        cfg.build_dir = "elsewhere"


def test_empty_build_dir_rejected():
    with pytest.raises(ValidationError):
        TaskConfig(build_dir="")
    with pytest.raises(ValidationError):
        TaskConfig().with_build_dir("  ")


def test_bad_jdk_major_rejected():
    with pytest.raises(ValidationError):
        TaskConfig().with_jdk_major(0)


def test_resolve_build_dir_is_absolute(tmp_path):
    resolved = TaskConfig().resolve_build_dir(tmp_path)
    assert os.path.isabs(resolved)
    assert resolved == tmp_path / ".cxx" / "cmake" / "debug" / "host"
    assert TaskConfig().declared_outputs(tmp_path) == [resolved]


def test_invocation_env_overlay_wins():
    inv = ProcessInvocation(working_dir="/w", program="make", args=("all",), env_overlay={"JAVA_HOME": "/jdk"})
    env = inv.merged_env({"JAVA_HOME": "/old", "PATH": "/bin"})
    assert env == {"JAVA_HOME": "/jdk", "PATH": "/bin"}
    assert inv.argv == ["make", "all"]


def test_request_to_config():
    req = TaskRequest(extra_configure_args=["-DFOO=1"], build_targets=["mylib"], build_dir="out")
    cfg = req.to_config(default_jdk_major=21)
    assert cfg.configure_args == ("../../../../", "-DFOO=1")
    assert cfg.build_targets == ("mylib",)
    assert cfg.build_dir == "out"
    assert cfg.required_jdk_major == 21
    assert TaskRequest(required_jdk_major=11).to_config().required_jdk_major == 11
