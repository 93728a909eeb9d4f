import asyncio
import time
import logging
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Request
from starlette.websockets import WebSocketState
from jnihost.api.routes import router
from jnihost.api.task_runner import task_controller
from jnihost.services.logger import log_manager
from jnihost.services.settings import Settings, load_settings


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    for _name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(_name).setLevel(getattr(logging, level, logging.INFO))


def create_app(settings: Settings) -> FastAPI:
    configure_logging(settings.log_level)
    log_manager.configure(settings.log_dir)
    task_controller.configure(settings.project_root, settings.jdk_major)
    app = FastAPI(title="jnihost", version="1.0.0")
    app.include_router(router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        try:
            response = await call_next(request)
            dur_ms = (time.time() - start) * 1000
            logging.getLogger("jnihost.http").info(f"{request.method} {request.url.path} -> {response.status_code} took={dur_ms:.1f}ms")
            return response
        except Exception as e:
            logging.getLogger("jnihost.http").exception(f"Unhandled error for {request.method} {request.url.path}: {e}")
            raise

    @app.websocket("/ws/tasks")
    async def ws_tasks(ws: WebSocket):
        await ws.accept()
        task_id = None
        wslog = logging.getLogger("jnihost.ws")
        try:
            # Expect a subscribe message first
            msg = await ws.receive_json()
            if not (isinstance(msg, dict) and msg.get("type") == "subscribe" and msg.get("task_id")):
                await ws.send_json({"error": "first message must be subscribe with task_id"})
                await ws.close()
                return
            task_id = msg["task_id"]
            await log_manager.subscribe(task_id, ws)
            wslog.debug(f"WS subscribed to task {task_id}")
            await ws.send_json({"type": "subscribed", "task_id": task_id})

            # Keep-alive ping loop
            while ws.client_state == WebSocketState.CONNECTED:
                await asyncio.sleep(15)
                await ws.send_json({"type": "ping"})
        except WebSocketDisconnect:
            wslog.debug("WS disconnect")
        except Exception as ex:
            wslog.debug(f"WS loop exception: {ex}")
        finally:
            if task_id:
                await log_manager.unsubscribe(task_id, ws)
                wslog.debug(f"WS unsubscribed from task {task_id}")

    return app


_app = None


def get_app() -> FastAPI:
    """App built from the environment, created on first use."""
    global _app
    if _app is None:
        _app = create_app(load_settings())
    return _app


def __getattr__(name):
    # "uvicorn jnihost.main:app" resolves the attribute lazily
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    uvicorn.run(get_app(), host=settings.host, port=settings.port, reload=False)
