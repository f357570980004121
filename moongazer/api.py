"""HTTP API for the moongazing window finder."""

from fastapi import APIRouter

from .pipeline import find_best_windows
from .schemas import BestWindowsRequest, BestWindowsResponse, ErrorResponse
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="moongazer/api")

router = APIRouter()


@router.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok"}


@router.post(
    "/best-windows",
    response_model=BestWindowsResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def best_windows(req: BestWindowsRequest):
    """Return up to three ranked observing windows for a free-text location."""
    logger.info("Best windows requested", extra={"location_text": req.location})
    return find_best_windows(req.location)
