"""Entry point for the FastAPI-powered EditorsChoice plugin service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from functools import partial
from importlib import resources

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .config import Settings, settings
from .database import Database
from .models import CarouselPayload, TransformPayload
from .services.library import LibraryFactory, SqlLibrary
from .services.selection import SelectionEngine
from .services.startup import StartupCoordinator, resolve_base_path
from .utils import insert_before_body, script_tag

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CLIENT_SCRIPT = "static/client.js"

app: FastAPI


def create_app(app_settings: Settings | None = None) -> FastAPI:
    resolved_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        exit_stack = AsyncExitStack()
        http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
        )
        database = Database(resolved_settings.database_url)
        await database.create_all()

        coordinator = StartupCoordinator(resolved_settings, http_client)
        fastapi_app.state.database = database
        fastapi_app.state.library_factory = partial(
            SqlLibrary.session_scope, database.session_factory
        )
        fastapi_app.state.startup = coordinator
        await coordinator.start()

        try:
            yield
        finally:  # pragma: no cover - teardown path exercised at runtime
            await coordinator.stop()
            await database.dispose()
            await exit_stack.aclose()

    fastapi_app = FastAPI(
        title=resolved_settings.app_name,
        description="Editor's choice media carousel for the web client",
        version="1.0.0",
        lifespan=lifespan,
    )
    register_routes(fastapi_app, resolved_settings)
    return fastapi_app


def get_library_factory(fastapi_app: FastAPI) -> LibraryFactory:
    factory = getattr(fastapi_app.state, "library_factory", None)
    if factory is None:
        raise RuntimeError("Library backend not initialised")
    return factory


def load_client_script() -> bytes | None:
    """Return the packaged carousel script, or ``None`` when it is missing."""

    asset = resources.files(__package__).joinpath(CLIENT_SCRIPT)
    try:
        return asset.read_bytes()
    except (FileNotFoundError, NotADirectoryError):
        return None


def register_routes(fastapi_app: FastAPI, app_settings: Settings | None = None) -> None:
    route_settings = app_settings or settings

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/editorschoice/script")
    async def client_script() -> Response:
        script = load_client_script()
        if script is None:
            raise HTTPException(status_code=404, detail="Client script not found")
        return Response(content=script, media_type="application/javascript")

    @fastapi_app.get("/editorschoice/favourites")
    async def favourites(request: Request) -> JSONResponse:
        user_name = (request.headers.get(route_settings.user_header) or "").strip()
        if not user_name:
            raise HTTPException(status_code=401, detail="Authentication required")

        try:
            async with get_library_factory(fastapi_app)() as library:
                user = await library.get_user_by_name(user_name)
                if user is None:
                    raise HTTPException(status_code=404, detail="User not found")
                engine = SelectionEngine(route_settings, library)
                items = await engine.select(user)
        except HTTPException:
            raise
        except Exception:
            logger.exception("EditorsChoice: favourites error")
            raise HTTPException(status_code=503, detail="Service unavailable") from None

        payload = CarouselPayload.from_selection(items, route_settings)
        return JSONResponse(payload.to_response())

    @fastapi_app.post("/editorschoice/transform", response_class=HTMLResponse)
    async def transform(payload: TransformPayload) -> HTMLResponse:
        base_path = resolve_base_path(route_settings)
        element = script_tag(base_path, "FileTransformation")
        return HTMLResponse(insert_before_body(payload.contents or "", element))


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
