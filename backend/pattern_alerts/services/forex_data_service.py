"""
Forex OHLC data service (Twelve Data integration)
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp
import numpy as np

from pattern_alerts.config import get_settings
from pattern_alerts.exceptions import MarketDataError

logger = logging.getLogger(__name__)


# 타임프레임 → Twelve Data interval
TIMEFRAME_MAP = {
    "15m": "15min",
    "1h": "1h",
    "4h": "4h",
    "1d": "1day",
}

TIMEFRAME_MINUTES = {
    "15m": 15,
    "1h": 60,
    "4h": 240,
    "1d": 1440,
}


def to_api_symbol(currency_pair: str) -> str:
    """'USDJPY' → 'USD/JPY' (Twelve Data 형식)"""
    pair = currency_pair.upper().replace("/", "")
    if len(pair) == 6:
        return f"{pair[:3]}/{pair[3:]}"
    return currency_pair.upper()


class TwelveDataService:
    """Twelve Data API client for forex candles"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.twelve_data_api_key
        self.base_url = base_url or settings.twelve_data_base_url
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or settings.http_timeout_seconds
        )

        if not self.api_key:
            logger.warning("⚠️ TWELVE_DATA_API_KEY not set, using mock candles")

    async def fetch_candles(
        self,
        currency_pair: str,
        timeframe: str,
        count: int = 50
    ) -> List[Dict[str, Any]]:
        """
        Get OHLC candles, oldest first

        Args:
            currency_pair: e.g. "USD/JPY" or "USDJPY"
            timeframe: 15m, 1h, 4h, 1d
            count: number of candles

        Returns:
            [{'time', 'open', 'high', 'low', 'close', 'volume'}]

        Raises:
            MarketDataError: provider error, bad payload, network failure or timeout
        """
        if not self.api_key:
            return generate_mock_candles(currency_pair, timeframe, count)

        params = {
            "symbol": to_api_symbol(currency_pair),
            "interval": TIMEFRAME_MAP.get(timeframe, "1h"),
            "outputsize": count,
            "apikey": self.api_key,
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(f"{self.base_url}/time_series", params=params) as response:
                    if response.status != 200:
                        raise MarketDataError(f"Twelve Data API error: {response.status}")
                    data = await response.json()
        except MarketDataError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MarketDataError(f"Twelve Data request failed: {e}") from e

        if data.get("status") == "error":
            raise MarketDataError(data.get("message") or "API returned error")

        values = data.get("values")
        if not isinstance(values, list):
            raise MarketDataError("Invalid API response format")

        try:
            candles = [
                {
                    "time": datetime.fromisoformat(v["datetime"]),
                    "open": float(v["open"]),
                    "high": float(v["high"]),
                    "low": float(v["low"]),
                    "close": float(v["close"]),
                    "volume": float(v["volume"]) if v.get("volume") else None,
                }
                for v in values
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise MarketDataError(f"Malformed candle in response: {e}") from e

        # API는 최신순으로 반환
        candles.reverse()
        logger.info(f"✅ {len(candles)} candles fetched for {params['symbol']} ({timeframe})")
        return candles


def generate_mock_candles(currency_pair: str, timeframe: str, count: int) -> List[Dict[str, Any]]:
    """개발/테스트용 랜덤워크 캔들"""
    pair = currency_pair.upper()
    base_price = 150.0  # USD/JPY
    if "EUR" in pair:
        base_price = 1.08
    elif "GBP" in pair:
        base_price = 1.27

    rng = np.random.default_rng()
    step = timedelta(minutes=TIMEFRAME_MINUTES.get(timeframe, 60))
    start = datetime.utcnow() - step * count
    volatility = 0.001 * base_price

    candles = []
    price = base_price
    for i in range(count):
        open_price = price + (rng.random() - 0.5) * volatility * 2
        close_price = open_price + (rng.random() - 0.5) * volatility
        candles.append({
            "time": start + step * i,
            "open": open_price,
            "high": max(open_price, close_price) + rng.random() * volatility,
            "low": min(open_price, close_price) - rng.random() * volatility,
            "close": close_price,
            "volume": None,
        })
        price = close_price

    return candles
