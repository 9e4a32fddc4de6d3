"""
API 공통 의존성
- 사용자 식별 (업스트림 인증 게이트웨이가 X-User-Id 헤더 설정)
- 크론 트리거 (Authorization: Bearer <CRON_SECRET>)
- 서비스 예외 → HTTP 상태 코드 변환
"""

from typing import Optional

from fastapi import Header, HTTPException

from pattern_alerts.config import get_settings
from pattern_alerts.database import get_session_factory
from pattern_alerts.exceptions import (
    AlertNotFoundError,
    AuthorizationError,
    FingerprintError,
    InvalidAlertTransitionError,
    PatternAlertError,
    PatternLimitError,
    PatternNotFoundError,
    PatternValidationError,
)
from pattern_alerts.services.feature_extractor import FeatureExtractor
from pattern_alerts.services.pattern_check_scheduler import CheckTrigger, PatternCheckScheduler


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


async def get_check_trigger(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None)
) -> CheckTrigger:
    """인증 여부 판단은 스케줄러가 담당, 여기서는 자격 정보만 추출"""
    cron_secret = None
    if authorization and authorization.startswith("Bearer "):
        cron_secret = authorization[len("Bearer "):]
    return CheckTrigger(cron_secret=cron_secret, user_id=x_user_id or None)


def get_feature_extractor() -> FeatureExtractor:
    return FeatureExtractor(dim=get_settings().fingerprint_dim)


def get_pattern_scheduler() -> PatternCheckScheduler:
    return PatternCheckScheduler(get_session_factory())


def to_http_exception(error: PatternAlertError) -> HTTPException:
    if isinstance(error, AuthorizationError):
        return HTTPException(status_code=401, detail=str(error))
    if isinstance(error, PatternLimitError):
        return HTTPException(
            status_code=403,
            detail={
                "error": str(error),
                "current_count": error.current_count,
                "limit": error.limit,
            }
        )
    if isinstance(error, (PatternNotFoundError, AlertNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, InvalidAlertTransitionError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, PatternValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, FingerprintError):
        return HTTPException(status_code=422, detail=f"Failed to generate fingerprint: {error}")
    return HTTPException(status_code=500, detail=str(error))
