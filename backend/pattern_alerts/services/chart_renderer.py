"""
캔들 차트 렌더링
- OHLC 캔들 → PNG (다크 배경, 양봉 초록 / 음봉 빨강)
- 사용자가 올린 차트 스크린샷과 같은 방식(이미지)으로 핑거프린트를 만들기 위함
"""

import io
from typing import Any, Dict, Sequence

import numpy as np
from matplotlib.figure import Figure

from pattern_alerts.exceptions import MarketDataError

UP_COLOR = "#22c55e"
DOWN_COLOR = "#ef4444"
BG_COLOR = "#0f172a"

DPI = 100
PADDING_PX = 20


def render_candles(candles: Sequence[Dict[str, Any]], width: int = 500, height: int = 300) -> bytes:
    """
    캔들 시퀀스를 PNG 바이트로 렌더링

    Args:
        candles: 오래된 순서의 OHLC 딕셔너리 리스트
        width, height: 출력 크기 (px)

    Raises:
        MarketDataError: 캔들이 없는 경우
    """
    if not candles:
        raise MarketDataError("No candles to render")

    opens = np.array([float(c["open"]) for c in candles])
    highs = np.array([float(c["high"]) for c in candles])
    lows = np.array([float(c["low"]) for c in candles])
    closes = np.array([float(c["close"]) for c in candles])

    low = lows.min()
    price_range = highs.max() - low
    if price_range == 0:
        price_range = 1.0

    # 상하 여백 20px, 몸통은 최소 1px
    pad = price_range * PADDING_PX / max(height - 2 * PADDING_PX, 1)
    min_body = price_range / height

    colors = [UP_COLOR if c >= o else DOWN_COLOR for o, c in zip(opens, closes)]
    x = np.arange(len(candles))

    fig = Figure(figsize=(width / DPI, height / DPI), dpi=DPI, facecolor=BG_COLOR)
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_facecolor(BG_COLOR)
    ax.set_axis_off()

    ax.vlines(x, lows, highs, colors=colors, linewidth=1)
    ax.bar(
        x,
        np.maximum(np.abs(closes - opens), min_body),
        width=0.8,
        bottom=np.minimum(opens, closes),
        color=colors,
        linewidth=0,
    )
    ax.set_xlim(-0.5, len(candles) - 0.5)
    ax.set_ylim(low - pad, low + price_range + pad)

    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=DPI, facecolor=BG_COLOR, metadata={"Software": None})
    return buffer.getvalue()
