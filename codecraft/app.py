import logging
import os
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from codecraft.assist.api_assist import router as assist_router
from codecraft.config import VERSION, Settings, load_settings
from codecraft.errors import CodeCraftError
from codecraft.shell.api_socket import router as socket_router
from codecraft.shell.registry import ProcessRegistry
from codecraft.workspace.api_files import router as files_router
from codecraft.workspace.service import WorkspaceService
from codecraft.workspace.storage import LocalWorkspaceStore, WorkspaceStore, build_store

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("codecraft.app")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


def render_status_page(settings: Settings) -> str:
    server_time = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    return f"""<!DOCTYPE html>
<html>
  <head>
    <title>CodeCraft AI Backend</title>
    <style>
      body {{
        font-family: Arial, sans-serif;
        display: flex;
        justify-content: center;
        align-items: center;
        height: 100vh;
        margin: 0;
        background-color: #f5f5f5;
      }}
      .container {{
        text-align: center;
        padding: 2rem;
        background-color: white;
        border-radius: 8px;
        box-shadow: 0 2px 4px rgba(0,0,0,0.1);
      }}
      .status {{ color: #4CAF50; font-size: 1.2rem; margin-bottom: 1rem; }}
      .info {{ color: #666; }}
    </style>
  </head>
  <body>
    <div class="container">
      <h1>CodeCraft AI Backend</h1>
      <div class="status">Server is running</div>
      <p class="info">Server Time: {server_time}</p>
      <p class="info">Environment: {settings.environment}</p>
    </div>
  </body>
</html>
"""


def create_app(settings: Settings | None = None, store: WorkspaceStore | None = None) -> FastAPI:
    """Build the FastAPI application with its shared registry and storage."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    registry = ProcessRegistry()
    store = store or build_store(settings)

    app = FastAPI(title="CodeCraft Backend", version=VERSION)
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store
    app.state.workspace = WorkspaceService(
        store=store,
        registry=registry,
        workspace_dir=settings.workspace_dir,
        grace_seconds=settings.delete_grace_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(files_router)
    app.include_router(assist_router)
    app.include_router(socket_router)

    @app.exception_handler(CodeCraftError)
    async def handle_codecraft_error(request: Request, exc: CodeCraftError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
            for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": details or "invalid request", "error_code": "REQUEST_INVALID"})

    @app.on_event("startup")
    async def startup_event():
        # Commands run in the local workspace directory whichever storage backend is active.
        try:
            settings.workspace_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Error creating workspace directory %s: %s", settings.workspace_dir, exc)
        if isinstance(store, LocalWorkspaceStore):
            store.ensure_root()
        logger.info(
            "Workspace %s (storage=%s, env=%s)",
            settings.workspace_dir,
            settings.storage_backend,
            settings.environment,
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        pids = registry.terminate_all()
        if pids:
            logger.info("Terminated %d running process(es) on shutdown.", len(pids))

    @app.get("/", response_class=HTMLResponse)
    async def status_page():
        return render_status_page(settings)

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "version": VERSION,
            "environment": settings.environment,
            "active_processes": len(registry),
            "pid": os.getpid(),
        }

    return app
