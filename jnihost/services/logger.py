from __future__ import annotations
import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, List, Optional
from fastapi import WebSocket
from asyncio import Lock

_PY_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class LogManager:
    """Build-log sink: python logging mirror, optional JSON-lines file, websocket fan-out."""

    def __init__(self, base: Optional[Path] = None):
        if base is not None:
            base = Path(base)
            base.mkdir(parents=True, exist_ok=True)
        self.base = base
        self.subscribers: Dict[str, List[WebSocket]] = {}
        self.lock = Lock()
        # Per-task verbosity: when False (default), drop 'debug' log events entirely
        self.verbose: Dict[str, bool] = {}
        self._log = logging.getLogger("jnihost.log")

    def configure(self, base: Optional[Path]) -> None:
        if base is not None:
            base = Path(base)
            base.mkdir(parents=True, exist_ok=True)
        self.base = base

    async def subscribe(self, task_id: str, ws: WebSocket):
        async with self.lock:
            self.subscribers.setdefault(task_id, []).append(ws)

    async def unsubscribe(self, task_id: str, ws: WebSocket):
        async with self.lock:
            subs = self.subscribers.get(task_id, [])
            if ws in subs:
                subs.remove(ws)
            if not subs and task_id in self.subscribers:
                self.subscribers.pop(task_id, None)

    def log_path(self, task_id: str) -> Optional[Path]:
        if self.base is None:
            return None
        return self.base / f"{task_id}.log"

    async def emit_log(self, task_id: str, level: str, message: str):
        if level == 'debug' and not self.verbose.get(task_id, False):
            return
        payload = {
            "task_id": task_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
        }
        path = self.log_path(task_id)
        if path is not None:
            with path.open('a', encoding='utf-8') as f:
                f.write(json.dumps(payload) + "\n")
        self._log.log(_PY_LEVELS.get(level, logging.INFO), f"[{task_id}] {message}")
        await self._broadcast(task_id, payload)

    async def emit_status(self, status_obj: dict):
        # status_obj must contain task_id
        task_id = status_obj.get("task_id")
        await self._broadcast(task_id, {"type": "status", **status_obj})

    async def _broadcast(self, task_id: str, payload: dict):
        for ws in list(self.subscribers.get(task_id, [])):
            try:
                await ws.send_json(payload)
            except Exception as e:
                # Peer went away; drop the socket and keep the run going
                self._log.debug(f"dropping subscriber for {task_id}: {e}")
                await self.unsubscribe(task_id, ws)

    def set_verbose(self, task_id: str, enable: bool) -> None:
        if enable:
            self.verbose[task_id] = True
        else:
            self.verbose.pop(task_id, None)

    def callback_for(self, task_id: str):
        """Bind emit_log to one task, in the (level, message) shape the executor expects."""
        return lambda lvl, msg: self.emit_log(task_id, lvl, msg)


log_manager = LogManager()
