from __future__ import annotations
import os
from pathlib import Path
from typing import Dict, Mapping, Optional
from pydantic import BaseModel, Field

from jnihost.api.models.task_models import DEFAULT_JDK_MAJOR


def parse_env_file(p: Path) -> Dict[str, str]:
    env: Dict[str, str] = {}
    if not p.exists():
        return env
    for line in p.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if '=' in line:
            k, v = line.split('=', 1)
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


class Settings(BaseModel):
    project_root: Path = Field(default_factory=Path.cwd)
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = 45556
    jdk_major: int = Field(default=DEFAULT_JDK_MAJOR, ge=1)


def load_settings(environ: Optional[Mapping[str, str]] = None, project_root: Optional[Path] = None) -> Settings:
    """Defaults, then <project_root>/.env, then the process environment."""
    environ = os.environ if environ is None else environ
    root = Path(project_root or environ.get("JNIHOST_PROJECT_ROOT") or Path.cwd())
    values: Dict[str, str] = parse_env_file(root / ".env")
    values.update({k: v for k, v in environ.items() if k.startswith("JNIHOST_")})

    raw = {
        "project_root": values.get("JNIHOST_PROJECT_ROOT"),
        "log_level": values.get("JNIHOST_LOG_LEVEL"),
        "log_dir": values.get("JNIHOST_LOG_DIR"),
        "host": values.get("JNIHOST_HOST"),
        "port": values.get("JNIHOST_PORT"),
        "jdk_major": values.get("JNIHOST_JDK_MAJOR"),
    }
    settings = Settings(**{k: v for k, v in raw.items() if v})
    if project_root is not None:
        settings = settings.model_copy(update={"project_root": Path(project_root)})
    settings = settings.model_copy(update={
        "project_root": settings.project_root.resolve(),
        "log_level": settings.log_level.upper(),
    })
    return settings
