"""
Scheduled job endpoints, called by the platform scheduler
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import secrets
import structlog

from restaurant_os.core.config import get_settings
from restaurant_os.core.database import get_session_factory
from restaurant_os.schemas.payments import SweepRead, SweepResponse
from restaurant_os.services.sweeper import sweep_abandoned_orders

logger = structlog.get_logger(__name__)

router = APIRouter()


def is_authorized_cron_call(request: Request) -> bool:
    """Authorization: Bearer <CRON_SECRET>; an unset secret rejects every call"""
    cron_secret = get_settings().CRON_SECRET
    if not cron_secret:
        return False
    header = request.headers.get("authorization") or ""
    return secrets.compare_digest(header.encode(), f"Bearer {cron_secret}".encode())


@router.post("/cleanup-pending-orders", response_model=SweepResponse)
async def cleanup_pending_orders(request: Request, session_factory=Depends(get_session_factory)):
    """Cancel online-payment orders left unpaid past the abandonment window"""
    if not is_authorized_cron_call(request):
        logger.warning("Rejected unauthorized cron call", path=request.url.path)
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

    result = await sweep_abandoned_orders(session_factory)
    return SweepResponse(data=SweepRead(**result.to_dict()))
