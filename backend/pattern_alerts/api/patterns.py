"""
차트 패턴 API
- 패턴 등록/조회/수정/삭제
- 패턴 체크 트리거 (크론 / 수동)
- 피드백 기반 임계값 조정
"""

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from pattern_alerts.api.deps import (
    get_check_trigger,
    get_current_user_id,
    get_feature_extractor,
    get_pattern_scheduler,
    to_http_exception,
)
from pattern_alerts.database import get_db
from pattern_alerts.exceptions import PatternAlertError
from pattern_alerts.services.alert_service import AlertService
from pattern_alerts.services.feature_extractor import FeatureExtractor
from pattern_alerts.services.pattern_check_scheduler import CheckTrigger, PatternCheckScheduler
from pattern_alerts.services.pattern_service import PatternService

router = APIRouter()
logger = logging.getLogger(__name__)


class PatternCreate(BaseModel):
    """패턴 등록 요청"""
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    image_url: str = Field(min_length=1)
    currency_pair: str
    timeframe: str
    direction: Optional[str] = None
    tags: List[str] = []
    similarity_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    check_frequency: Optional[str] = None


class PatternUpdate(BaseModel):
    """패턴 수정 요청 (보낸 필드만 반영)"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = None
    currency_pair: Optional[str] = None
    timeframe: Optional[str] = None
    direction: Optional[str] = None
    tags: Optional[List[str]] = None
    similarity_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    check_frequency: Optional[str] = None
    is_active: Optional[bool] = None


class MatchRequest(BaseModel):
    chart_image_url: str
    timeframe: str


class ThresholdUpdate(BaseModel):
    threshold: int = Field(ge=50, le=100)


# ===== 패턴 체크 (크론 / 수동) =====

async def _run_check(trigger: CheckTrigger, scheduler: PatternCheckScheduler):
    try:
        summary = await scheduler.run_check(trigger)
    except PatternAlertError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"❌ Pattern check error: {e}")
        raise HTTPException(status_code=500, detail="Pattern check failed")

    message = "Pattern check completed" if summary["results"] else "No active patterns to check"
    return {"message": message, **summary}


@router.get("/check")
async def check_patterns(
    trigger: CheckTrigger = Depends(get_check_trigger),
    scheduler: PatternCheckScheduler = Depends(get_pattern_scheduler)
):
    """
    🎯 활성 패턴 전체 체크

    크론 잡(Authorization: Bearer <CRON_SECRET>)은 전체 사용자,
    로그인 사용자는 본인 패턴만 체크합니다.
    """
    return await _run_check(trigger, scheduler)


@router.post("/check")
async def check_patterns_post(
    trigger: CheckTrigger = Depends(get_check_trigger),
    scheduler: PatternCheckScheduler = Depends(get_pattern_scheduler)
):
    return await _run_check(trigger, scheduler)


# ===== 패턴 CRUD =====

@router.get("")
async def list_patterns(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """활성 패턴 목록 (최신순)"""
    service = PatternService(db)
    patterns = await service.list_patterns(user_id)
    return {"patterns": [p.to_dict() for p in patterns]}


@router.post("", status_code=201)
async def create_pattern(
    request: PatternCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    extractor: FeatureExtractor = Depends(get_feature_extractor)
):
    """
    📝 패턴 등록

    이미지 URL에서 핑거프린트를 생성해 함께 저장합니다.
    플랜별 활성 패턴 개수 제한을 넘으면 403을 반환합니다.
    """
    try:
        service = PatternService(db, extractor=extractor)
        pattern = await service.create_pattern(user_id=user_id, **request.model_dump())
    except PatternAlertError as e:
        raise to_http_exception(e)

    return {"pattern": pattern.to_dict()}


@router.post("/match")
async def match_chart(
    request: MatchRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    extractor: FeatureExtractor = Depends(get_feature_extractor)
):
    """🔍 차트 이미지와 같은 타임프레임의 내 패턴 비교"""
    try:
        service = PatternService(db, extractor=extractor)
        matches = await service.find_matches(user_id, request.chart_image_url, request.timeframe)
    except PatternAlertError as e:
        raise to_http_exception(e)

    return {
        "count": len(matches),
        "matches": [
            {
                "pattern": m["pattern"].to_dict(),
                "similarity": m["similarity"],
                "percent": m["percent"],
            }
            for m in matches
        ]
    }


@router.get("/{pattern_id}")
async def get_pattern(
    pattern_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    try:
        pattern = await PatternService(db).get_owned_pattern(pattern_id, user_id)
    except PatternAlertError as e:
        raise to_http_exception(e)
    return {"pattern": pattern.to_dict()}


@router.patch("/{pattern_id}")
async def update_pattern(
    pattern_id: int,
    request: PatternUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    extractor: FeatureExtractor = Depends(get_feature_extractor)
):
    """패턴 수정 (이미지 변경 시 핑거프린트 재계산)"""
    try:
        service = PatternService(db, extractor=extractor)
        pattern = await service.update_pattern(
            pattern_id, user_id, request.model_dump(exclude_unset=True)
        )
    except PatternAlertError as e:
        raise to_http_exception(e)
    return {"pattern": pattern.to_dict()}


@router.delete("/{pattern_id}")
async def delete_pattern(
    pattern_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """소프트 삭제 (알림 이력은 유지)"""
    try:
        await PatternService(db).delete_pattern(pattern_id, user_id)
    except PatternAlertError as e:
        raise to_http_exception(e)
    return {"success": True}


@router.get("/{pattern_id}/alerts")
async def get_pattern_alerts(
    pattern_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """패턴 알림 이력 (비활성 패턴 포함)"""
    try:
        await PatternService(db).get_owned_pattern(pattern_id, user_id)
    except PatternAlertError as e:
        raise to_http_exception(e)

    alerts = await AlertService(db).list_for_pattern(pattern_id)
    return {"alerts": [a.to_dict() for a in alerts]}


# ===== 피드백 기반 임계값 =====

@router.get("/{pattern_id}/feedback-stats")
async def get_feedback_stats(
    pattern_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    📊 피드백 통계

    👍/👎 피드백의 평균 유사도로 추천 임계값을 계산합니다.
    """
    try:
        await PatternService(db).get_owned_pattern(pattern_id, user_id)
    except PatternAlertError as e:
        raise to_http_exception(e)

    return await AlertService(db).get_feedback_stats(pattern_id, user_id)


@router.post("/{pattern_id}/feedback-stats")
async def apply_threshold(
    pattern_id: int,
    request: ThresholdUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """추천 임계값 적용 (50 ~ 100)"""
    try:
        pattern = await PatternService(db).update_threshold(pattern_id, user_id, request.threshold)
    except PatternAlertError as e:
        raise to_http_exception(e)
    return {"success": True, "new_threshold": pattern.similarity_threshold}
