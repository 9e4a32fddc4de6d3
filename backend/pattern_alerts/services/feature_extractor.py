"""
특징 벡터(핑거프린트) 추출 서비스
- OHLC 캔들: 종가 min-max 정규화 후 N개로 리샘플링
- 이미지: 디코딩 후 그레이스케일 격자 래스터로 축소, 그 바이트에서 N개 오프셋을 균등 샘플링
- 시세는 chart_renderer로 이미지화한 뒤 같은 이미지 경로로 추출 (등록 이미지와 같은 특징 공간)

학습된 임베딩이 아닌 결정적(deterministic) 플레이스홀더.
extract() 계약만 유지하면 비전 모델로 교체 가능.
"""

import io
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from PIL import Image

from pattern_alerts.exceptions import FingerprintError, ImageFetchError
from pattern_alerts.services.image_resolver import ImageResolver

logger = logging.getLogger(__name__)

DEFAULT_DIM = 64

Snapshot = Union[bytes, bytearray, Sequence[Dict[str, Any]]]


def zero_vector(dim: int = DEFAULT_DIM) -> List[float]:
    return [0.0] * dim


def extract_from_candles(candles: Sequence[Dict[str, Any]], dim: int = DEFAULT_DIM) -> List[float]:
    """
    캔들 시퀀스 → 고정 길이 벡터

    Args:
        candles: 오래된 순서의 OHLC 딕셔너리 리스트 ('close' 필수)
        dim: 출력 차원

    Returns:
        길이가 항상 dim인 정규화 종가 리스트 (부족분은 0으로 채움)
    """
    if not candles:
        return zero_vector(dim)

    closes = np.array([float(c["close"]) for c in candles], dtype=np.float64)

    low = closes.min()
    price_range = closes.max() - low
    if price_range == 0:
        price_range = 1.0

    normalized = (closes - low) / price_range

    step = max(1, len(closes) // dim)
    sampled = normalized[::step][:dim]

    vector = np.zeros(dim, dtype=np.float64)
    vector[:len(sampled)] = sampled
    return vector.tolist()


def extract_from_bytes(data: Union[bytes, bytearray], dim: int = DEFAULT_DIM) -> List[float]:
    """원본 바이트에서 균등 간격으로 dim개를 뽑아 0~1로 정규화"""
    if not data:
        return zero_vector(dim)

    raw = np.frombuffer(bytes(data), dtype=np.uint8)
    offsets = (np.arange(dim, dtype=np.int64) * len(raw)) // dim
    return (raw[offsets] / 255.0).tolist()


def image_to_raster(data: Union[bytes, bytearray], dim: int = DEFAULT_DIM) -> bytes:
    """
    인코딩된 이미지(PNG/JPEG 등) → 고정 크기 그레이스케일 래스터 바이트

    side x side 격자(side² >= dim)로 영역 평균 축소 후 명암을 0~255로 늘린다.
    결과 길이는 원본 크기와 무관하다.

    Raises:
        FingerprintError: 이미지로 디코딩할 수 없는 경우
    """
    side = int(math.ceil(math.sqrt(dim)))
    try:
        with Image.open(io.BytesIO(bytes(data))) as image:
            grid = image.convert("L").resize((side, side), Image.Resampling.BOX)
    except (OSError, ValueError) as e:
        raise FingerprintError(f"Unreadable image: {e}") from e

    pixels = np.asarray(grid, dtype=np.float64)
    low = pixels.min()
    contrast = pixels.max() - low
    if contrast == 0:
        return bytes(side * side)

    stretched = np.rint((pixels - low) / contrast * 255.0).astype(np.uint8)
    return stretched.tobytes()


def extract_from_image(data: Union[bytes, bytearray], dim: int = DEFAULT_DIM) -> List[float]:
    """이미지 핑거프린트: 래스터 바이트에 extract_from_bytes 적용"""
    if not data:
        return zero_vector(dim)
    return extract_from_bytes(image_to_raster(data, dim), dim)


def extract(snapshot: Snapshot, dim: int = DEFAULT_DIM) -> List[float]:
    """입력 종류(이미지 바이트 / 캔들 시퀀스)에 따라 추출기 선택"""
    if isinstance(snapshot, (bytes, bytearray)):
        return extract_from_image(snapshot, dim)
    return extract_from_candles(snapshot, dim)


class FeatureExtractor:
    """URL 기반 핑거프린트 생성 (이미지 조회 포함)"""

    def __init__(self, image_resolver: Optional[ImageResolver] = None, dim: int = DEFAULT_DIM):
        self.image_resolver = image_resolver or ImageResolver()
        self.dim = dim

    def extract(self, snapshot: Snapshot) -> List[float]:
        return extract(snapshot, self.dim)

    async def generate_from_url(self, image_url: str) -> List[float]:
        """
        이미지 URL → 핑거프린트

        Raises:
            FingerprintError: 이미지를 가져오거나 디코딩할 수 없는 경우
        """
        try:
            data = await self.image_resolver.fetch_bytes(image_url)
        except ImageFetchError as e:
            logger.error(f"❌ Fingerprint generation failed for {image_url}: {e}")
            raise FingerprintError(str(e)) from e

        vector = extract_from_image(data, self.dim)
        logger.debug(f"🔍 Fingerprint generated from {len(data)} bytes ({self.dim} dims)")
        return vector
