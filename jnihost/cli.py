from __future__ import annotations
import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import List, Optional

from jnihost.api.adapters.jdk_probe import JdkProbe
from jnihost.api.errors import HostBuildError, StageFailed
from jnihost.api.models.task_models import TaskConfig
from jnihost.api.task_runner import run_host_build
from jnihost.services.logger import log_manager
from jnihost.services.settings import Settings, load_settings


def _parser() -> argparse.ArgumentParser:
    a = argparse.ArgumentParser(prog='jnihost',
            description='Configure and build the host JNI library with cmake and make.',
            epilog='Environment: JNIHOST_PROJECT_ROOT, JNIHOST_LOG_LEVEL, JNIHOST_LOG_DIR, JNIHOST_JDK_MAJOR.')
    a.add_argument('--project-root', metavar='dir', help="project root (default: JNIHOST_PROJECT_ROOT or cwd)")
    sub = a.add_subparsers(dest='command', required=True)

    b = sub.add_parser('build', help="run configure and build stages")
    b.add_argument('--build-dir', metavar='dir', help="build tree, relative to the project root")
    b.add_argument('--jdk-major', type=int, metavar='N', help="required JDK major version")
    b.add_argument('--configure-arg', dest='configure_args', action='append', default=[], metavar='arg',
            help="extra cmake argument, appended after the source root (repeatable)")
    b.add_argument('--target', dest='targets', action='append', default=[], metavar='target',
            help="make target (repeatable; none builds the default target)")
    b.add_argument('-v', dest='verbose', action='store_true', help="verbose output")

    j = sub.add_parser('jdk', help="print the JDK home that would be used")
    j.add_argument('--jdk-major', type=int, metavar='N', help="required JDK major version")

    s = sub.add_parser('serve', help="run the HTTP task service")
    s.add_argument('--host', help="bind address")
    s.add_argument('--port', type=int, help="bind port")
    return a


def config_from_args(args: argparse.Namespace, settings: Settings) -> TaskConfig:
    cfg = TaskConfig(required_jdk_major=args.jdk_major or settings.jdk_major)
    if args.build_dir:
        cfg = cfg.with_build_dir(args.build_dir)
    return cfg.with_configure_args(*args.configure_args).with_build_targets(*args.targets)


def exit_code_for(err: HostBuildError) -> int:
    if isinstance(err, StageFailed) and err.exit_status and err.exit_status > 0:
        return err.exit_status
    return 1


def _build(args: argparse.Namespace, settings: Settings) -> int:
    config = config_from_args(args, settings)
    task_id = uuid.uuid4().hex[:8]
    log_manager.set_verbose(task_id, args.verbose)
    try:
        asyncio.run(run_host_build(config, settings.project_root, log_cb=log_manager.callback_for(task_id)))
    except HostBuildError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return exit_code_for(e)
    print(f"Output: {config.declared_outputs(settings.project_root)[0]}")
    return 0


def _jdk(args: argparse.Namespace, settings: Settings) -> int:
    major = args.jdk_major or settings.jdk_major
    found = JdkProbe().find(major)
    if found is None:
        print(f"ERROR: no JDK {major} with JNI headers found", file=sys.stderr)
        return 1
    print(found.path)
    return 0


def _serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn
    from jnihost.main import create_app
    uvicorn.run(create_app(settings), host=args.host or settings.host, port=args.port or settings.port, reload=False)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return _main(argv)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


def _main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    settings = load_settings(project_root=Path(args.project_root) if args.project_root else None)
    if args.command == 'serve':
        return _serve(args, settings)
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    log_manager.configure(settings.log_dir)
    if args.command == 'jdk':
        return _jdk(args, settings)
    return _build(args, settings)


if __name__ == "__main__":
    sys.exit(main())
