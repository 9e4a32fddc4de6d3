"""
패턴 알림 API
- 알림 목록 / 안 읽은 개수
- 읽음 / 실행 / 무시 / 피드백
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Literal, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from pattern_alerts.api.deps import get_current_user_id, to_http_exception
from pattern_alerts.database import get_db
from pattern_alerts.exceptions import PatternAlertError, PatternValidationError
from pattern_alerts.services.alert_service import AlertService

router = APIRouter()
logger = logging.getLogger(__name__)


class AlertAction(BaseModel):
    """알림 상태 변경 요청"""
    action: Literal["read", "acted", "dismiss", "feedback"]
    feedback: Optional[Literal["thumbs_up", "thumbs_down"]] = None


@router.get("")
async def list_alerts(
    limit: int = 50,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """🔔 내 알림 목록 (최신순) + 안 읽은 개수"""
    service = AlertService(db)
    alerts = await service.list_alerts(user_id, limit=max(1, min(limit, 200)))
    unread_count = await service.get_unread_count(user_id)

    return {
        "alerts": [a.to_dict() for a in alerts],
        "unread_count": unread_count,
    }


@router.get("/{alert_id}")
async def open_alert(
    alert_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """알림 열람 (첫 열람 시 자동으로 read 처리)"""
    try:
        alert = await AlertService(db).mark_as_read(alert_id, user_id)
    except PatternAlertError as e:
        raise to_http_exception(e)
    return {"alert": alert.to_dict()}


@router.patch("/{alert_id}")
async def update_alert(
    alert_id: int,
    request: AlertAction,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    알림 상태 / 피드백 변경

    - read: 읽음 (이미 읽었으면 변화 없음)
    - acted: 실제 매매함
    - dismiss: 무시
    - feedback: 👍 thumbs_up / 👎 thumbs_down
    """
    service = AlertService(db)
    try:
        if request.action == "read":
            alert = await service.mark_as_read(alert_id, user_id)
        elif request.action == "acted":
            alert = await service.mark_as_acted(alert_id, user_id)
        elif request.action == "dismiss":
            alert = await service.dismiss(alert_id, user_id)
        else:
            if not request.feedback:
                raise PatternValidationError("feedback is required for action 'feedback'")
            alert = await service.submit_feedback(alert_id, user_id, request.feedback)
    except PatternAlertError as e:
        raise to_http_exception(e)

    return {"success": True, "alert": alert.to_dict()}
