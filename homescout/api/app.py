"""
HomeScout HTTP API - search, pricing, subject lookup and nearby listings.

Run with: python run_server.py
Or: uvicorn homescout.api.app:app --port 8000
"""
import asyncio
import logging
import threading
from contextlib import closing
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictStr

from ..client.catalog import CatalogClient
from ..client.explain import ExplainClient
from ..config import get_config
from ..errors import InvalidFieldError, RequestCancelled, UpstreamError
from ..models.intent import Role
from ..pipeline.orchestrator import find_nearby, find_subjects, run_pricing, run_search


logger = logging.getLogger(__name__)


DISCONNECT_POLL_SECONDS = 0.25
CLIENT_CLOSED_REQUEST = 499


class SearchRequest(BaseModel):
    query: StrictStr
    role: Optional[Role] = None


class PricingRequest(BaseModel):
    address: StrictStr
    subject_id: Optional[StrictStr] = None
    county: Optional[StrictStr] = None
    zip: Optional[StrictStr] = None


class SubjectsRequest(BaseModel):
    query: StrictStr


class NearbyRequest(PricingRequest):
    pass


CatalogFactory = Callable[[threading.Event], Any]
ExplainerFactory = Callable[[], Any]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(exc: RequestValidationError) -> str:
    """Name the first offending field, e.g. "query is required"."""
    errors = exc.errors()
    if not errors:
        return "Invalid request: body is malformed"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "body"
    kind = first.get("type", "")
    if kind == "missing":
        return f"Invalid request: {field} is required"
    if kind.startswith("string"):
        return f"Invalid request: {field} must be a string"
    return f"Invalid request: {field} is invalid ({first.get('msg', 'bad value')})"


def _dump(result: BaseModel) -> dict[str, Any]:
    data = result.model_dump(mode="json")
    if "debug" in data and data["debug"] is None:
        del data["debug"]
    return data


async def _run_cancellable(request: Request, work: Callable[[threading.Event], Any]) -> Any:
    """
    Run blocking pipeline work on a worker thread.
    If the client disconnects the cancel flag is set, so the catalog client
    refuses to start further upstream calls.
    """
    cancel = threading.Event()
    job = asyncio.ensure_future(asyncio.to_thread(work, cancel))
    while not job.done():
        done, _ = await asyncio.wait({job}, timeout=DISCONNECT_POLL_SECONDS)
        if done:
            break
        if await request.is_disconnected():
            logger.warning("Client disconnected; cancelling upstream calls")
            cancel.set()
            break
    return await job


async def _respond(request: Request, operation: str, work: Callable[[threading.Event], Any]):
    try:
        result = await _run_cancellable(request, work)
    except InvalidFieldError as e:
        return _error(400, str(e))
    except RequestCancelled:
        logger.info(f"{operation} cancelled by client")
        return _error(CLIENT_CLOSED_REQUEST, f"{operation} cancelled")
    except UpstreamError as e:
        logger.error(f"{operation} failed: {e}")
        return _error(500, f"{operation} failed")
    except Exception:
        logger.exception(f"{operation} failed with an unexpected error")
        return _error(500, f"{operation} failed")
    return _dump(result)


def create_app(
    catalog_factory: Optional[CatalogFactory] = None,
    explainer_factory: Optional[ExplainerFactory] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        catalog_factory: Builds a per-request catalog client bound to the cancel flag
        explainer_factory: Builds the explanation service client

    Returns:
        FastAPI app
    """
    config = get_config()
    logging.basicConfig(
        level=config.logging.level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    make_catalog = catalog_factory or (lambda cancel: CatalogClient(cancel=cancel))
    make_explainer = explainer_factory or ExplainClient

    app = FastAPI(title="HomeScout", version="1.0.0")

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.info(f"Rejected {request.url.path}: {message}")
        return _error(400, message)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/search")
    async def search(body: SearchRequest, request: Request):
        def work(cancel: threading.Event):
            with closing(make_catalog(cancel)) as catalog, closing(make_explainer()) as explainer:
                return run_search(body.query, body.role, catalog=catalog, explainer=explainer)

        return await _respond(request, "Search", work)

    @app.post("/pricing")
    async def pricing(body: PricingRequest, request: Request):
        def work(cancel: threading.Event):
            with closing(make_catalog(cancel)) as catalog, closing(make_explainer()) as explainer:
                return run_pricing(
                    body.address,
                    subject_id=body.subject_id,
                    county=body.county,
                    zip_code=body.zip,
                    catalog=catalog,
                    explainer=explainer,
                )

        return await _respond(request, "Pricing", work)

    @app.post("/pricing/subjects")
    async def pricing_subjects(body: SubjectsRequest, request: Request):
        def work(cancel: threading.Event):
            with closing(make_catalog(cancel)) as catalog:
                return find_subjects(body.query, catalog=catalog)

        return await _respond(request, "Subject lookup", work)

    @app.post("/nearby")
    async def nearby(body: NearbyRequest, request: Request):
        def work(cancel: threading.Event):
            with closing(make_catalog(cancel)) as catalog:
                return find_nearby(
                    body.address,
                    subject_id=body.subject_id,
                    county=body.county,
                    zip_code=body.zip,
                    catalog=catalog,
                )

        return await _respond(request, "Active nearby lookup", work)

    return app


app = create_app()
