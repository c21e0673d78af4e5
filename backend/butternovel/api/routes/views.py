"""
View tracking API: POST /views/track counts a read of a novel at most once per viewer per window.

Viewer = X-User-Id when signed in, else client IP (x-forwarded-for, x-real-ip, socket) + user-agent.
Tracking never fails the reader's page: store problems and rate limiting come back as counted=false.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from butternovel.api.deps import optional_user_id
from butternovel.core.rate_limit import RateLimitResult, client_ip, rate_limit_dependency
from butternovel.db.session import get_db
from butternovel.services.view_tracker import ViewerIdentity, track_view

router = APIRouter()
logger = logging.getLogger(__name__)


class TrackViewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    novel_id: int = Field(..., alias="novelId", ge=1)


@router.post("/views/track")
def track_novel_view(
    body: TrackViewRequest,
    request: Request,
    db: Session = Depends(get_db),
    user_id: str | None = Depends(optional_user_id),
    rate_limit: RateLimitResult = Depends(rate_limit_dependency("views", raise_on_limit=False)),
) -> dict[str, Any]:
    """Count this read if the viewer has not been counted for the novel recently."""
    identity = ViewerIdentity(
        user_id=user_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    result = track_view(db, body.novel_id, identity, countable=rate_limit.allowed)
    return {"success": True, "counted": result.counted, "viewCount": result.view_count}
