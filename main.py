import inspect
import os
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from openai import AsyncOpenAI
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file before modules read them

from routes.workflow_route import router as workflow_router
from services.edit_workflow import EditWorkflow
from services.image_ingestion import ImageIngestor, fetch_timeout
from services.openai.image_editor import ImageEditService
from services.output_sink import FileOutputSink
from services.workflow_store import WorkflowStore

BASE_DIR = Path(__file__).resolve().parent


def build_workflow_store(openai_client: AsyncOpenAI, sink: FileOutputSink, http_client: httpx.AsyncClient) -> WorkflowStore:
    """Return a store whose workflows share one edit service, sink and HTTP client."""
    service = ImageEditService(openai_client)
    ingestor = ImageIngestor(http_client=http_client)
    return WorkflowStore(lambda: EditWorkflow(service, sink, ingestor=ingestor))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the OpenAI async client (no automatic retries)
      - the download directory sink (DOWNLOAD_DIR)
      - the HTTP client used to fetch example images
      - the in-memory workflow store
    and attach them to `app.state`.
    """
    openai_api_key = os.getenv("OPENAI_API_KEY")
    if not openai_api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is not set")
    timeout = fetch_timeout()

    try:
        openai_client = AsyncOpenAI(max_retries=0)
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc

    sink = FileOutputSink(os.getenv("DOWNLOAD_DIR", str(BASE_DIR / "downloads")))
    http_client = httpx.AsyncClient(timeout=timeout)

    app.state.openai_client = openai_client
    app.state.http_client = http_client
    app.state.workflow_store = build_workflow_store(openai_client, sink, http_client)

    try:
        yield
    finally:
        await http_client.aclose()
        # Gracefully close the OpenAI client if it exposes a close/aclose method.
        client = getattr(app.state, "openai_client", None)
        if client is not None:
            aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
            if aclose is not None:
                try:
                    if inspect.iscoroutinefunction(aclose):
                        await aclose()
                    else:
                        result = aclose()
                        if inspect.isawaitable(result):
                            await result
                except Exception:
                    # Ignore shutdown errors to avoid masking more important issues.
                    pass


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies the workflow store and OpenAI client presence.
        """
        store = getattr(request.app.state, "workflow_store", None)
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        return {
            "ok": True,
            "openai_available": has_openai,
            "workflows": len(store) if store is not None else 0,
        }

    app.include_router(workflow_router)

    return app


app = create_app()
