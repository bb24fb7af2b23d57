from __future__ import annotations

from fastapi import APIRouter, Depends

from ..config import Settings, get_settings
from ..models import AuthenticatedUser, MetricsResponse
from ..services.auth import require_admin
from ..services.metrics import MetricsService
from .dependencies import get_current_user, get_metrics_dependency

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    user: AuthenticatedUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    metrics: MetricsService = Depends(get_metrics_dependency),
) -> MetricsResponse:
    require_admin(user, settings.admin_emails)
    return MetricsResponse(metrics=metrics.snapshot().as_dict())
