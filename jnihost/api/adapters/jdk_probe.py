"""
JDK discovery for the host JNI build.

Candidates come from explicit per-version environment variables, JAVA_HOME,
the macOS java_home helper and well-known installation roots. A candidate is
accepted only when it ships JNI headers (include/jni.h) and advertises the
requested major version. Nothing is installed or written.
"""
from __future__ import annotations
import logging
import os
import platform
import re
import subprocess
from pathlib import Path
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple

from jnihost.api.models.task_models import JdkLocation

log = logging.getLogger("jnihost.probe")

_RELEASE_VERSION = re.compile(r'^JAVA_VERSION="?([^"\s]+)"?', re.MULTILINE)
_JAVA_VERSION_LINE = re.compile(r'version "([^"]+)"')


def default_search_roots() -> List[Path]:
    home = Path.home()
    return [
        Path("/usr/lib/jvm"),                       # Debian / Ubuntu / Fedora
        Path("/usr/java"),
        Path("/opt"),
        home / ".gradle" / "jdks",                  # Gradle auto-provisioned toolchains
        home / ".sdkman" / "candidates" / "java",
        home / ".jdks",                             # IntelliJ downloads
        Path("/Library/Java/JavaVirtualMachines"),  # macOS, homes live under Contents/Home
        Path(r"C:\Program Files\Java"),
        Path(r"C:\Program Files\Eclipse Adoptium"),
    ]


def parse_major(version: str) -> Optional[int]:
    """Map a Java version string to its major number ("1.8.0_372" -> 8, "17.0.8" -> 17)."""
    m = re.match(r"^(\d+)(?:\.(\d+))?", version.strip())
    if not m:
        return None
    first = int(m.group(1))
    if first == 1 and m.group(2):
        return int(m.group(2))
    return first


def _read_text_safe(p: Path) -> str:
    try:
        return p.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return ""


def _version_from_java_binary(home: Path) -> Optional[str]:
    exe = home / "bin" / ("java.exe" if os.name == "nt" else "java")
    if not exe.exists():
        return None
    try:
        result = subprocess.run(
            [str(exe), "-version"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log.debug(f"java -version failed for {home}: {e}")
        return None
    # java -version prints to stderr on most JDKs; merged via STDOUT
    m = _JAVA_VERSION_LINE.search(result.stdout or "")
    return m.group(1) if m else None


def read_version(home: Path) -> Optional[str]:
    text = _read_text_safe(home / "release")
    m = _RELEASE_VERSION.search(text)
    if m:
        return m.group(1)
    return _version_from_java_binary(home)


def has_jni_headers(home: Path) -> bool:
    return (home / "include" / "jni.h").is_file()


def inspect_jdk(home: Path) -> Optional[JdkLocation]:
    """Return a JdkLocation for home if it is a JDK with JNI headers, else None."""
    if not home.is_dir():
        return None
    if not has_jni_headers(home):
        log.debug(f"skip {home}: no include/jni.h")
        return None
    version = read_version(home)
    major = parse_major(version) if version else None
    if major is None:
        log.debug(f"skip {home}: version unknown")
        return None
    return JdkLocation(path=str(home.resolve()), major=major, version=version)


def _macos_java_home(major: int) -> Optional[str]:
    try:
        out = subprocess.run(
            ["/usr/libexec/java_home", "-v", str(major)],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if out.returncode != 0:
        return None
    return out.stdout.strip() or None


def _children(root: Path) -> Iterator[Path]:
    try:
        entries = sorted(p for p in root.iterdir() if p.is_dir())
    except OSError:
        return
    for p in entries:
        mac_home = p / "Contents" / "Home"
        yield mac_home if mac_home.is_dir() else p


class JdkProbe:
    """Locates a JDK of a given major version on this machine."""

    def __init__(self, env: Optional[Mapping[str, str]] = None, search_roots: Optional[Iterable[Path]] = None, use_macos_helper: Optional[bool] = None):
        self.env = os.environ if env is None else env
        self.search_roots = list(search_roots) if search_roots is not None else default_search_roots()
        if use_macos_helper is None:
            use_macos_helper = platform.system() == "Darwin"
        self.use_macos_helper = use_macos_helper

    def candidates(self, major: int) -> Iterator[Tuple[str, Path]]:
        """Yield (source, path) pairs in search order."""
        for key in (f"JDK_{major}", f"JAVA_HOME_{major}_X64", f"JAVA_HOME_{major}_ARM64", f"JAVA_HOME_{major}_AARCH64"):
            val = self.env.get(key)
            if val:
                yield key, Path(val).expanduser()
        java_home = self.env.get("JAVA_HOME")
        if java_home:
            yield "JAVA_HOME", Path(java_home).expanduser()
        if self.use_macos_helper:
            found = _macos_java_home(major)
            if found:
                yield "java_home", Path(found)
        for root in self.search_roots:
            for child in _children(root):
                yield str(root), child

    def find(self, major: int) -> Optional[JdkLocation]:
        seen = set()
        for source, path in self.candidates(major):
            if path in seen:
                continue
            seen.add(path)
            jdk = inspect_jdk(path)
            if jdk is None:
                continue
            if jdk.major != major:
                log.debug(f"skip {path} from {source}: JDK {jdk.major}, want {major}")
                continue
            log.debug(f"JDK {major} found via {source}: {jdk.path}")
            return jdk
        log.info(f"no JDK {major} found")
        return None

    __call__ = find


def find_jdk(major: int) -> Optional[JdkLocation]:
    return JdkProbe().find(major)
