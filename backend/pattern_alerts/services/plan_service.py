"""
플랜(요금제)별 제한
- 사용자 플랜 조회는 외부 프로필 서비스 담당, 여기서는 기본 플랜 사용
"""

from typing import Optional

from pattern_alerts.config import Settings, get_settings


def get_user_plan(user_id: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return settings.default_plan


def get_pattern_limit(plan: str, settings: Optional[Settings] = None) -> int:
    """플랜별 활성 패턴 최대 개수 (알 수 없는 플랜은 free 기준)"""
    settings = settings or get_settings()
    limits = settings.plan_pattern_limits
    return limits.get(plan, limits.get("free", 1))
