"""
차트 패턴 관리 서비스
- 패턴 등록 (핑거프린트 동기 생성)
- 조회 / 수정 / 소프트 삭제
- 스케줄러용 활성 패턴 조회, 마지막 체크 시각 갱신
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pattern_alerts.config import Settings, get_settings
from pattern_alerts.exceptions import (
    FingerprintError,
    PatternLimitError,
    PatternNotFoundError,
    PatternValidationError,
)
from pattern_alerts.models.chart_pattern import ChartPattern, Direction, Timeframe
from pattern_alerts.services.feature_extractor import FeatureExtractor
from pattern_alerts.services.forex_data_service import to_api_symbol
from pattern_alerts.services.plan_service import get_pattern_limit, get_user_plan
from pattern_alerts.services.similarity import compare_to_multiple, meets_threshold

logger = logging.getLogger(__name__)

SUPPORTED_TIMEFRAMES = [tf.value for tf in Timeframe]

# 사용자가 수정 가능한 필드
UPDATABLE_FIELDS = {
    "name",
    "description",
    "image_url",
    "currency_pair",
    "timeframe",
    "direction",
    "tags",
    "similarity_threshold",
    "check_frequency",
    "is_active",
}

# NOT NULL 컬럼 (수정 시 null 불가)
REQUIRED_FIELDS = {"name", "image_url", "currency_pair", "timeframe", "similarity_threshold", "is_active"}


class PatternService:
    """차트 패턴 저장소"""

    def __init__(
        self,
        db: AsyncSession,
        extractor: Optional[FeatureExtractor] = None,
        settings: Optional[Settings] = None
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.extractor = extractor or FeatureExtractor(dim=self.settings.fingerprint_dim)

    # ===== 검증 =====

    def normalize_currency_pair(self, currency_pair: str) -> str:
        """'USDJPY' / 'usd/jpy' → 'USD/JPY', 미지원 통화쌍이면 예외"""
        if not currency_pair:
            raise PatternValidationError("currency_pair is required")

        normalized = to_api_symbol(currency_pair)
        if normalized not in self.settings.supported_currency_pairs:
            raise PatternValidationError(f"Unsupported currency pair: {currency_pair}")
        return normalized

    @staticmethod
    def validate_timeframe(timeframe: str) -> str:
        if timeframe not in SUPPORTED_TIMEFRAMES:
            raise PatternValidationError(
                f"Unsupported timeframe: {timeframe} (supported: {', '.join(SUPPORTED_TIMEFRAMES)})"
            )
        return timeframe

    @staticmethod
    def validate_direction(direction: Optional[str]) -> Optional[str]:
        if direction is None:
            return None
        if direction not in [d.value for d in Direction]:
            raise PatternValidationError(f"Invalid direction: {direction}")
        return direction

    @staticmethod
    def validate_threshold(threshold: int, minimum: int = 0) -> int:
        if threshold is None or not 0 <= minimum <= threshold <= 100:
            raise PatternValidationError(f"Similarity threshold must be between {minimum} and 100")
        return int(threshold)

    async def _fingerprint(self, image_url: str) -> List[float]:
        vector = await self.extractor.generate_from_url(image_url)
        if len(vector) != self.settings.fingerprint_dim:
            raise FingerprintError(
                f"Fingerprint has {len(vector)} dims, expected {self.settings.fingerprint_dim}"
            )
        return vector

    async def _check_limit(self, user_id: str, plan: Optional[str] = None):
        plan = plan or get_user_plan(user_id, self.settings)
        limit = get_pattern_limit(plan, self.settings)
        current_count = await self.count_active(user_id)
        if current_count >= limit:
            raise PatternLimitError(current_count, limit)

    # ===== 등록 =====

    async def create_pattern(
        self,
        user_id: str,
        name: str,
        image_url: str,
        currency_pair: str,
        timeframe: str,
        description: Optional[str] = None,
        direction: Optional[str] = None,
        tags: Optional[List[str]] = None,
        similarity_threshold: Optional[int] = None,
        check_frequency: Optional[str] = None,
        plan: Optional[str] = None
    ) -> ChartPattern:
        """
        패턴 등록

        이미지에서 핑거프린트를 동기적으로 생성하며, 생성 실패 시 등록도 실패한다.

        Raises:
            PatternValidationError: 필수값 누락, 미지원 통화쌍/타임프레임, 임계값 범위 오류
            PatternLimitError: 플랜별 활성 패턴 개수 초과
            FingerprintError: 이미지 조회/특징 추출 실패
        """
        if not name or not image_url:
            raise PatternValidationError("Missing required fields: name, image_url")

        pair = self.normalize_currency_pair(currency_pair)
        self.validate_timeframe(timeframe)
        self.validate_direction(direction)
        threshold = self.validate_threshold(
            similarity_threshold if similarity_threshold is not None
            else self.settings.default_similarity_threshold
        )

        await self._check_limit(user_id, plan)

        feature_vector = await self._fingerprint(image_url)

        pattern = ChartPattern(
            user_id=user_id,
            name=name,
            description=description,
            image_url=image_url,
            currency_pair=pair,
            timeframe=timeframe,
            direction=direction,
            tags=tags or [],
            feature_vector=feature_vector,
            similarity_threshold=threshold,
            check_frequency=check_frequency or "15m",
            is_active=True,
        )

        self.db.add(pattern)
        await self.db.commit()
        await self.db.refresh(pattern)

        logger.info(f"📝 Pattern created: #{pattern.id} '{name}' {pair} {timeframe} (user={user_id})")
        return pattern

    # ===== 조회 =====

    async def get_pattern(self, pattern_id: int) -> Optional[ChartPattern]:
        result = await self.db.execute(
            select(ChartPattern).where(ChartPattern.id == pattern_id)
        )
        return result.scalar_one_or_none()

    async def get_owned_pattern(self, pattern_id: int, user_id: str) -> ChartPattern:
        """사용자 소유 패턴 조회 (없거나 타인 소유면 PatternNotFoundError)"""
        pattern = await self.get_pattern(pattern_id)
        if pattern is None or pattern.user_id != user_id:
            raise PatternNotFoundError(f"Pattern {pattern_id} not found")
        return pattern

    async def list_patterns(self, user_id: str) -> List[ChartPattern]:
        """사용자의 활성 패턴 (최신순)"""
        result = await self.db.execute(
            select(ChartPattern)
            .where(and_(ChartPattern.user_id == user_id, ChartPattern.is_active == True))
            .order_by(ChartPattern.created_at.desc(), ChartPattern.id.desc())
        )
        return list(result.scalars().all())

    async def list_active(self, user_id: Optional[str] = None) -> List[ChartPattern]:
        """활성 패턴 전체 (user_id 지정 시 해당 사용자만)"""
        conditions = [ChartPattern.is_active == True]
        if user_id:
            conditions.append(ChartPattern.user_id == user_id)

        result = await self.db.execute(
            select(ChartPattern).where(and_(*conditions)).order_by(ChartPattern.id)
        )
        return list(result.scalars().all())

    async def list_active_by_timeframe(self, user_id: str, timeframe: str) -> List[ChartPattern]:
        result = await self.db.execute(
            select(ChartPattern).where(
                and_(
                    ChartPattern.user_id == user_id,
                    ChartPattern.is_active == True,
                    ChartPattern.timeframe == timeframe
                )
            ).order_by(ChartPattern.id)
        )
        return list(result.scalars().all())

    async def count_active(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(ChartPattern.id)).where(
                and_(ChartPattern.user_id == user_id, ChartPattern.is_active == True)
            )
        )
        return result.scalar_one()

    # ===== 수정 =====

    async def update_pattern(
        self,
        pattern_id: int,
        user_id: str,
        changes: Dict[str, Any]
    ) -> ChartPattern:
        """
        패턴 메타데이터/임계값 수정

        image_url이 바뀌면 핑거프린트를 통째로 다시 계산한다.
        """
        pattern = await self.get_owned_pattern(pattern_id, user_id)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise PatternValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        missing = sorted(f for f in REQUIRED_FIELDS if f in changes and changes[f] in (None, ""))
        if missing:
            raise PatternValidationError(f"Fields must not be empty: {', '.join(missing)}")
        if "currency_pair" in changes:
            changes["currency_pair"] = self.normalize_currency_pair(changes["currency_pair"])
        if "timeframe" in changes:
            self.validate_timeframe(changes["timeframe"])
        if "direction" in changes:
            self.validate_direction(changes["direction"])
        if "similarity_threshold" in changes:
            changes["similarity_threshold"] = self.validate_threshold(changes["similarity_threshold"])
        if changes.get("is_active") and not pattern.is_active:
            await self._check_limit(user_id)

        new_image = changes.get("image_url")
        if new_image and new_image != pattern.image_url:
            pattern.feature_vector = await self._fingerprint(new_image)
            logger.info(f"🔄 Fingerprint recomputed for pattern #{pattern_id}")

        for field, value in changes.items():
            setattr(pattern, field, value)

        await self.db.commit()
        await self.db.refresh(pattern)
        return pattern

    async def update_threshold(self, pattern_id: int, user_id: str, threshold: int) -> ChartPattern:
        """피드백 통계 기반 임계값 적용 (50 ~ 100)"""
        self.validate_threshold(threshold, minimum=50)
        return await self.update_pattern(pattern_id, user_id, {"similarity_threshold": threshold})

    async def delete_pattern(self, pattern_id: int, user_id: str) -> bool:
        """소프트 삭제 (is_active = False), 기존 알림은 유지"""
        pattern = await self.get_owned_pattern(pattern_id, user_id)
        pattern.is_active = False
        await self.db.commit()

        logger.info(f"🗑️ Pattern #{pattern_id} deactivated (user={user_id})")
        return True

    async def touch_last_checked(self, pattern_id: int, checked_at: Optional[datetime] = None):
        await self.db.execute(
            update(ChartPattern)
            .where(ChartPattern.id == pattern_id)
            .values(last_checked_at=checked_at or datetime.utcnow())
        )
        await self.db.commit()

    # ===== 매칭 =====

    async def find_matches(
        self,
        user_id: str,
        chart_image_url: str,
        timeframe: str
    ) -> List[Dict[str, Any]]:
        """
        임의의 차트 이미지와 같은 타임프레임의 활성 패턴 비교

        Returns:
            [{'pattern', 'similarity', 'percent'}] 각 패턴 임계값 이상만, 유사도 내림차순
        """
        self.validate_timeframe(timeframe)
        patterns = await self.list_active_by_timeframe(user_id, timeframe)
        if not patterns:
            return []

        target_vector = await self._fingerprint(chart_image_url)

        by_id = {p.id: p for p in patterns}
        candidates = [{"id": p.id, "vector": p.feature_vector} for p in patterns]

        matches = []
        for match in compare_to_multiple(target_vector, candidates):
            pattern = by_id[match["id"]]
            threshold = pattern.similarity_threshold
            if threshold is None:
                threshold = self.settings.default_similarity_threshold
            if meets_threshold(match["similarity"], threshold):
                matches.append({
                    "pattern": pattern,
                    "similarity": match["similarity"],
                    "percent": match["percent"],
                })

        logger.info(f"🎯 {len(matches)}/{len(patterns)} patterns matched chart ({timeframe}, user={user_id})")
        return matches
