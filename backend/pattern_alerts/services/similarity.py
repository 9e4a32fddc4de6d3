"""
패턴 유사도 계산
- 코사인 유사도 (-1 ~ 1)
- 퍼센트 변환 (0 ~ 100)
"""

from typing import Any, Dict, List, Sequence

import numpy as np

from pattern_alerts.exceptions import VectorLengthMismatchError


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    두 벡터의 코사인 유사도

    Returns:
        -1 ~ 1 (1 = 동일 방향, 0 = 직교, -1 = 반대). 크기가 0인 벡터가 있으면 0

    Raises:
        VectorLengthMismatchError: 차원이 다른 경우
    """
    if len(vec_a) != len(vec_b):
        raise VectorLengthMismatchError(len(vec_a), len(vec_b))

    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)

    magnitude_a = np.linalg.norm(a)
    magnitude_b = np.linalg.norm(b)
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (magnitude_a * magnitude_b))
    # 부동소수점 오차로 1을 살짝 넘는 경우 방지
    return float(np.clip(similarity, -1.0, 1.0))


def similarity_to_percent(similarity: float) -> int:
    """-1 ~ 1 → 0 ~ 100 (선형 매핑, 정수 반올림)"""
    # 0.5는 올림 (round()의 은행가 반올림과 다름)
    return int(np.floor((similarity + 1) / 2 * 100 + 0.5))


def meets_threshold(similarity: float, threshold_percent: int) -> bool:
    return similarity_to_percent(similarity) >= threshold_percent


def compare_to_multiple(
    target_vector: Sequence[float],
    candidates: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    대상 벡터와 여러 후보({'id', 'vector'})를 비교

    Returns:
        [{'id', 'similarity', 'percent'}] 퍼센트 내림차순
    """
    results = []
    for candidate in candidates:
        similarity = cosine_similarity(target_vector, candidate["vector"])
        results.append({
            "id": candidate["id"],
            "similarity": similarity,
            "percent": similarity_to_percent(similarity),
        })

    return sorted(results, key=lambda r: r["percent"], reverse=True)
