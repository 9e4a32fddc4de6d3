"""
패턴 매칭 / 알림 엔진 예외 정의
- 서비스 계층에서 발생, API 계층에서 HTTP 상태 코드로 변환
"""


class PatternAlertError(Exception):
    """패턴 알림 엔진 기본 예외"""


class AuthorizationError(PatternAlertError):
    """크론 시크릿 또는 사용자 세션이 없는 트리거"""


class PatternValidationError(PatternAlertError, ValueError):
    """지원하지 않는 통화쌍/타임프레임, 범위를 벗어난 임계값 등"""


class PatternLimitError(PatternAlertError):
    """플랜별 활성 패턴 개수 초과"""

    def __init__(self, current_count: int, limit: int):
        self.current_count = current_count
        self.limit = limit
        super().__init__(
            f"Pattern limit reached ({current_count}/{limit}). Upgrade to Pro for more patterns."
        )


class PatternNotFoundError(PatternAlertError):
    pass


class AlertNotFoundError(PatternAlertError):
    pass


class InvalidAlertTransitionError(PatternAlertError):
    """acted/dismissed 이후 상태 변경 시도 등"""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition alert from '{current}' to '{target}'")


class VectorLengthMismatchError(PatternAlertError, ValueError):
    """저장된 핑거프린트와 추출된 벡터의 차원이 다름"""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vectors must have same dimensions ({left} != {right})")


class MarketDataError(PatternAlertError):
    """시세 데이터 조회 실패"""


class ImageFetchError(PatternAlertError):
    """이미지 URL 조회 실패"""


class FingerprintError(PatternAlertError):
    """핑거프린트(특징 벡터) 생성 실패"""
