from pathlib import Path

from jnihost.api.errors import DirectoryCreateFailed


def ensure_dir(path: Path) -> Path:
    """Create path and any missing parents; an existing directory is left as-is."""
    p = Path(path)
    try:
        p.mkdir(parents=True, exist_ok=True)
    except FileExistsError as e:
        # exist_ok only covers directories; a file squatting on the path lands here
        raise DirectoryCreateFailed(str(p), "path exists and is not a directory") from e
    except OSError as e:
        raise DirectoryCreateFailed(str(p), e.strerror or str(e)) from e
    return p
