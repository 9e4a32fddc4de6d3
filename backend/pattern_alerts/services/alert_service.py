"""
패턴 알림 서비스
- 알림 생성 (스케줄러 전용) / 중복 체크
- 읽음 / 실행 / 무시 상태 전이
- 사용자 피드백 (👍 / 👎) 및 임계값 추천 통계
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pattern_alerts.exceptions import (
    AlertNotFoundError,
    InvalidAlertTransitionError,
    PatternValidationError,
)
from pattern_alerts.models.pattern_alert import AlertFeedback, AlertStatus, PatternAlert

logger = logging.getLogger(__name__)


# 상태 전이 규칙: 현재 상태 → 허용되는 다음 상태
ALLOWED_TRANSITIONS = {
    AlertStatus.UNREAD.value: {AlertStatus.READ.value, AlertStatus.ACTED.value, AlertStatus.DISMISSED.value},
    AlertStatus.READ.value: {AlertStatus.ACTED.value, AlertStatus.DISMISSED.value},
    AlertStatus.ACTED.value: set(),
    AlertStatus.DISMISSED.value: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class AlertService:
    """패턴 알림 저장소"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_alert(
        self,
        user_id: str,
        pattern_id: int,
        similarity_percent: int,
        chart_snapshot_url: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> PatternAlert:
        """알림 생성 (항상 unread 상태)"""
        if not 0 <= similarity_percent <= 100:
            raise PatternValidationError(f"Similarity percent out of range: {similarity_percent}")

        alert = PatternAlert(
            user_id=user_id,
            pattern_id=pattern_id,
            similarity=int(similarity_percent),
            chart_snapshot_url=chart_snapshot_url,
            status=AlertStatus.UNREAD.value,
            created_at=created_at or datetime.utcnow(),
        )

        self.db.add(alert)
        await self.db.commit()
        await self.db.refresh(alert)

        logger.info(f"🎯 Alert #{alert.id} created: pattern #{pattern_id} {similarity_percent}% (user={user_id})")
        return alert

    async def has_recent_alert(
        self,
        pattern_id: int,
        window: timedelta = timedelta(hours=1),
        now: Optional[datetime] = None
    ) -> bool:
        """window 이내에 해당 패턴의 알림이 있는지 (중복 알림 방지용)"""
        since = (now or datetime.utcnow()) - window
        result = await self.db.execute(
            select(PatternAlert.id).where(
                and_(
                    PatternAlert.pattern_id == pattern_id,
                    PatternAlert.created_at >= since
                )
            ).limit(1)
        )
        return result.first() is not None

    # ===== 조회 =====

    async def get_alert(self, alert_id: int, user_id: str) -> PatternAlert:
        result = await self.db.execute(
            select(PatternAlert).where(
                and_(PatternAlert.id == alert_id, PatternAlert.user_id == user_id)
            )
        )
        alert = result.scalar_one_or_none()
        if alert is None:
            raise AlertNotFoundError(f"Alert {alert_id} not found")
        return alert

    async def list_alerts(self, user_id: str, limit: int = 50) -> List[PatternAlert]:
        """사용자 알림 (최신순)"""
        result = await self.db.execute(
            select(PatternAlert)
            .where(PatternAlert.user_id == user_id)
            .order_by(PatternAlert.created_at.desc(), PatternAlert.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_pattern(self, pattern_id: int) -> List[PatternAlert]:
        result = await self.db.execute(
            select(PatternAlert)
            .where(PatternAlert.pattern_id == pattern_id)
            .order_by(PatternAlert.created_at.desc(), PatternAlert.id.desc())
        )
        return list(result.scalars().all())

    async def get_unread_count(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(PatternAlert.id)).where(
                and_(
                    PatternAlert.user_id == user_id,
                    PatternAlert.status == AlertStatus.UNREAD.value
                )
            )
        )
        return result.scalar_one()

    # ===== 상태 전이 =====

    async def _transition(self, alert_id: int, user_id: str, target: AlertStatus) -> PatternAlert:
        alert = await self.get_alert(alert_id, user_id)

        if not can_transition(alert.status, target.value):
            raise InvalidAlertTransitionError(alert.status, target.value)

        now = datetime.utcnow()
        alert.status = target.value
        if target == AlertStatus.READ:
            alert.read_at = now
        elif target == AlertStatus.ACTED:
            alert.acted_at = now
        elif target == AlertStatus.DISMISSED:
            alert.dismissed_at = now

        await self.db.commit()
        await self.db.refresh(alert)

        logger.info(f"📬 Alert #{alert_id} → {target.value}")
        return alert

    async def mark_as_read(self, alert_id: int, user_id: str) -> PatternAlert:
        """첫 열람 시 unread → read, 이미 읽은 알림은 그대로 반환"""
        alert = await self.get_alert(alert_id, user_id)
        if alert.status != AlertStatus.UNREAD.value:
            return alert
        return await self._transition(alert_id, user_id, AlertStatus.READ)

    async def mark_as_acted(self, alert_id: int, user_id: str) -> PatternAlert:
        return await self._transition(alert_id, user_id, AlertStatus.ACTED)

    async def dismiss(self, alert_id: int, user_id: str) -> PatternAlert:
        return await self._transition(alert_id, user_id, AlertStatus.DISMISSED)

    async def submit_feedback(self, alert_id: int, user_id: str, feedback: str) -> PatternAlert:
        """피드백은 상태와 무관하게 언제든 설정 가능"""
        if feedback not in [f.value for f in AlertFeedback]:
            raise PatternValidationError(f"Invalid feedback: {feedback}")

        alert = await self.get_alert(alert_id, user_id)
        alert.user_feedback = feedback
        await self.db.commit()
        await self.db.refresh(alert)

        emoji = "👍" if feedback == AlertFeedback.THUMBS_UP.value else "👎"
        logger.info(f"{emoji} Feedback recorded for alert #{alert_id}")
        return alert

    # ===== 피드백 통계 =====

    async def get_feedback_stats(self, pattern_id: int, user_id: str) -> Dict[str, Any]:
        """
        패턴별 피드백 통계와 추천 임계값

        - 👍/👎 모두 있고 👍 평균이 더 높으면: 두 평균의 중간값
        - 👍만 있으면: 👍 평균 - 5 (최소 50)
        - 👎만 있으면: 👎 평균 + 10 (최대 95)
        """
        result = await self.db.execute(
            select(PatternAlert.similarity, PatternAlert.user_feedback).where(
                and_(
                    PatternAlert.pattern_id == pattern_id,
                    PatternAlert.user_id == user_id,
                    PatternAlert.user_feedback.isnot(None)
                )
            )
        )
        rows = result.all()

        positive = [r.similarity for r in rows if r.user_feedback == AlertFeedback.THUMBS_UP.value]
        negative = [r.similarity for r in rows if r.user_feedback == AlertFeedback.THUMBS_DOWN.value]

        avg_positive = sum(positive) / len(positive) if positive else None
        avg_negative = sum(negative) / len(negative) if negative else None

        suggested = None
        if avg_positive is not None and avg_negative is not None and avg_positive > avg_negative:
            suggested = round_half_up((avg_positive + avg_negative) / 2)
        elif avg_positive is not None:
            suggested = max(50, round_half_up(avg_positive - 5))
        elif avg_negative is not None:
            suggested = min(95, round_half_up(avg_negative + 10))

        total = len(positive) + len(negative)
        return {
            "pattern_id": pattern_id,
            "total_feedback": len(rows),
            "positive_count": len(positive),
            "negative_count": len(negative),
            "avg_positive_score": round_half_up(avg_positive) if avg_positive is not None else None,
            "avg_negative_score": round_half_up(avg_negative) if avg_negative is not None else None,
            "suggested_threshold": suggested,
            "precision": round_half_up(len(positive) / total * 100) if total > 0 else None,
        }


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)
