"""FastAPI application setup and error rendering for Moongazer."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .api import router as api_router
from .errors import InvalidInput, LocationNotFound, MoongazerError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="moongazer/main")

LOCATION_REQUIRED = "Location is required"
GENERIC_FAILURE = "Failed to fetch moongazing data"

app = FastAPI(title="Moongazer")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def _invalid_body(request: Request, exc: RequestValidationError):
    logger.info("Rejected request body", extra={"path": request.url.path, "errors": len(exc.errors())})
    return _error(400, LOCATION_REQUIRED)


@app.exception_handler(InvalidInput)
async def _invalid_input(request: Request, exc: InvalidInput):
    return _error(400, str(exc) or LOCATION_REQUIRED)


@app.exception_handler(LocationNotFound)
async def _location_not_found(request: Request, exc: LocationNotFound):
    logger.warning("Location not found", extra={"location_text": exc.location_text})
    return _error(
        500,
        f"Could not find location '{exc.location_text}'. "
        "Try a city name or a postal code with country (e.g. '60540' or 'SW1A 1AA, UK').",
    )


@app.exception_handler(MoongazerError)
async def _domain_failure(request: Request, exc: MoongazerError):
    logger.error("Request failed", extra={"path": request.url.path, "error_type": type(exc).__name__,
                                          "error": str(exc)})
    return _error(500, GENERIC_FAILURE)


@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    logger.exception("Request failed", extra={"path": request.url.path, "error_type": type(exc).__name__})
    return _error(500, GENERIC_FAILURE)


# API routes
app.include_router(api_router, prefix="/api")
