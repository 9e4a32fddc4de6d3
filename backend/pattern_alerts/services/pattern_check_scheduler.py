"""
패턴 체크 스케줄러
- 크론(시크릿) 또는 로그인 사용자(수동)가 호출
- 활성 패턴마다 시세 조회 → 차트 렌더링 → 특징 추출 → 유사도 → 임계값 → 중복 체크 → 알림 생성
- 패턴 하나의 실패가 나머지 패턴 체크를 막지 않음

내부 타이머 없음: 호출 1회 = 체크 1회. 실패한 패턴은 다음 호출에서 다시 체크된다.
"""

import asyncio
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from pattern_alerts.config import Settings, get_settings
from pattern_alerts.exceptions import AuthorizationError, MarketDataError, VectorLengthMismatchError
from pattern_alerts.models.chart_pattern import ChartPattern
from pattern_alerts.services.alert_service import AlertService
from pattern_alerts.services.chart_renderer import render_candles
from pattern_alerts.services.feature_extractor import FeatureExtractor
from pattern_alerts.services.forex_data_service import TwelveDataService
from pattern_alerts.services.pattern_service import PatternService
from pattern_alerts.services.similarity import cosine_similarity, meets_threshold, similarity_to_percent

logger = logging.getLogger(__name__)


@dataclass
class CheckTrigger:
    """체크 호출 주체 (크론 시크릿 또는 인증된 사용자)"""
    cron_secret: Optional[str] = None
    user_id: Optional[str] = None


class PatternCheckScheduler:
    """등록된 패턴과 현재 시세를 비교해 알림 생성"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        market_data: Optional[TwelveDataService] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.market_data = market_data or TwelveDataService()
        self.clock = clock
        self.extractor = FeatureExtractor(dim=self.settings.fingerprint_dim)

    def authorize(self, trigger: CheckTrigger) -> Optional[str]:
        """
        트리거 인증

        Returns:
            수동 호출이면 해당 사용자 ID (체크 범위), 크론이면 None (전체)

        Raises:
            AuthorizationError: 시크릿 불일치이면서 사용자도 없는 경우
        """
        expected = self.settings.cron_secret
        if expected and trigger.cron_secret and hmac.compare_digest(trigger.cron_secret, expected):
            return None
        if trigger.user_id:
            return trigger.user_id
        raise AuthorizationError("Unauthorized")

    async def run_check(self, trigger: CheckTrigger) -> Dict[str, Any]:
        """
        활성 패턴 전체 체크

        Returns:
            {'checked', 'alerts_created', 'failed', 'results': [...]}
        """
        scope_user = self.authorize(trigger)

        # 목록 조회 실패는 전체 실패로 전파
        async with self.session_factory() as db:
            patterns = await PatternService(db, settings=self.settings).list_active(scope_user)

        if not patterns:
            logger.info("ℹ️ No active patterns to check")
            return {"checked": 0, "alerts_created": 0, "failed": 0, "results": []}

        logger.info(f"🔍 Checking {len(patterns)} patterns (scope: {scope_user or 'all'})")

        semaphore = asyncio.Semaphore(max(1, self.settings.check_concurrency))

        async def worker(pattern: ChartPattern) -> Dict[str, Any]:
            async with semaphore:
                return await self.check_pattern(pattern)

        results: List[Dict[str, Any]] = await asyncio.gather(*(worker(p) for p in patterns))

        failed = sum(1 for r in results if r["error"])
        alerts_created = sum(1 for r in results if r["alert_created"])

        logger.info(
            f"✅ Pattern check completed: {len(results) - failed} checked, "
            f"{failed} failed, {alerts_created} alerts created"
        )
        return {
            "checked": len(results) - failed,
            "alerts_created": alerts_created,
            "failed": failed,
            "results": results,
        }

    async def check_pattern(self, pattern: ChartPattern) -> Dict[str, Any]:
        """패턴 1개 체크. 실패는 로그로 남기고 결과의 error 필드에 기록"""
        result = {
            "pattern_id": pattern.id,
            "pattern_name": pattern.name,
            "similarity": None,
            "alert_triggered": False,
            "alert_created": False,
            "error": None,
        }
        now = self.clock()

        try:
            candles = await self._fetch_candles(pattern)
            if not candles:
                raise MarketDataError(f"No market data for {pattern.currency_pair} ({pattern.timeframe})")

            current_vector = await self._chart_vector(candles)
            fingerprint = pattern.feature_vector or []
            if len(fingerprint) != len(current_vector):
                raise VectorLengthMismatchError(len(fingerprint), len(current_vector))

            raw = cosine_similarity(fingerprint, current_vector)
            percent = similarity_to_percent(raw)
            threshold = pattern.similarity_threshold
            if threshold is None:
                threshold = self.settings.default_similarity_threshold

            result["similarity"] = percent
            result["alert_triggered"] = meets_threshold(raw, threshold)

            async with self.session_factory() as db:
                if result["alert_triggered"]:
                    result["alert_created"] = await self._create_alert_unless_recent(db, pattern, percent, now)

                await PatternService(db, settings=self.settings).touch_last_checked(pattern.id, now)

        except Exception as e:
            logger.error(f"❌ Error processing pattern #{pattern.id} ({pattern.name}): {e}")
            result["error"] = str(e)

        return result

    async def _fetch_candles(self, pattern: ChartPattern) -> List[Dict[str, Any]]:
        try:
            return await asyncio.wait_for(
                self.market_data.fetch_candles(
                    pattern.currency_pair,
                    pattern.timeframe,
                    self.settings.market_data_candles
                ),
                timeout=self.settings.http_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise MarketDataError(f"Market data timeout for {pattern.currency_pair}") from e

    async def _chart_vector(self, candles: List[Dict[str, Any]]) -> List[float]:
        """캔들 → 차트 PNG → 핑거프린트 (등록 이미지와 같은 추출 경로)"""
        loop = asyncio.get_running_loop()
        chart = await loop.run_in_executor(None, partial(render_candles, candles))
        return await loop.run_in_executor(None, partial(self.extractor.extract, chart))

    async def _create_alert_unless_recent(
        self,
        db,
        pattern: ChartPattern,
        percent: int,
        now: datetime
    ) -> bool:
        """중복 체크 후 알림 생성 (체크-후-삽입은 원자적이지 않음, 드문 중복 허용)"""
        alerts = AlertService(db)
        window = timedelta(minutes=self.settings.alert_dedup_minutes)

        if await alerts.has_recent_alert(pattern.id, window, now):
            logger.debug(f"⏭️ Recent alert exists for pattern #{pattern.id}, skipping")
            return False

        await alerts.create_alert(
            user_id=pattern.user_id,
            pattern_id=pattern.id,
            similarity_percent=percent,
            chart_snapshot_url=None,
            created_at=now,
        )
        return True
