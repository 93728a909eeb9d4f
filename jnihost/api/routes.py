from __future__ import annotations
import asyncio
from typing import Dict
import logging

from fastapi import APIRouter

from jnihost.api.adapters.jdk_probe import JdkProbe
from jnihost.api.models.task_models import TaskRequest
from jnihost.api.task_runner import task_controller

log = logging.getLogger("jnihost.api")
router = APIRouter()


@router.post("/start-task")
async def start_task(req: TaskRequest):
    log.info(f"start-task: dir={req.build_dir} jdk={req.required_jdk_major} args={req.extra_configure_args} targets={req.build_targets}")
    task_id = await task_controller.start(req)
    log.info(f"start-task queued id={task_id}")
    return {"task_id": task_id, "status": "queued"}


@router.post("/cancel-task")
async def cancel_task(payload: Dict[str, str]):
    task_id = payload.get("task_id")
    log.info(f"cancel-task id={task_id}")
    ok = await task_controller.cancel(task_id)
    return {"ok": ok}


@router.get("/task-status/{task_id}")
async def task_status(task_id: str):
    status = task_controller.status(task_id)
    if status is None:
        return {"error": "not_found"}
    log.debug(f"task-status id={task_id} status={status.status}")
    return status.model_dump(mode="json")


@router.get("/task-history")
async def task_history(limit: int = 50, offset: int = 0):
    rows = task_controller.history(limit=limit, offset=offset)
    log.debug(f"task-history count={len(rows)}")
    return [r.model_dump(mode="json") for r in rows]


@router.get("/jdk/{major}")
async def jdk(major: int):
    probe = task_controller.probe or JdkProbe()
    found = await asyncio.to_thread(probe, major)
    if found is None:
        return {"error": "not_found", "major": major}
    return found.model_dump()
