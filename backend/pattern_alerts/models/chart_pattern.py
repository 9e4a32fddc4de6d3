"""
차트 패턴 모델
- 사용자가 등록한 기준 차트 이미지와 핑거프린트(특징 벡터)
- 삭제는 is_active 플래그로 소프트 삭제
"""

from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pattern_alerts.database import Base


class Timeframe(str, Enum):
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


class ChartPattern(Base):
    """사용자 등록 차트 패턴"""
    __tablename__ = "patterns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)

    # 패턴 정보
    name = Column(String(100), nullable=False)
    description = Column(Text)
    image_url = Column(String(500), nullable=False)
    currency_pair = Column(String(20), nullable=False)  # USD/JPY
    timeframe = Column(String(10), nullable=False)  # 15m, 1h, 4h, 1d
    direction = Column(String(10))  # long, short, None
    tags = Column(JSON, default=list)

    # 매칭 설정
    feature_vector = Column(JSON, nullable=False)  # [0.12, 0.87, ...] 고정 길이
    similarity_threshold = Column(Integer, default=70)  # 0~100 (%)
    check_frequency = Column(String(10), default='15m')  # 참고용, 실제 주기는 크론이 결정

    # 상태
    is_active = Column(Boolean, default=True, nullable=False)
    last_checked_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    alerts = relationship("PatternAlert", back_populates="pattern", lazy="raise")

    __table_args__ = (
        Index('idx_pattern_user_active', 'user_id', 'is_active'),
        Index('idx_pattern_active_timeframe', 'is_active', 'timeframe'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "currency_pair": self.currency_pair,
            "timeframe": self.timeframe,
            "direction": self.direction,
            "tags": self.tags or [],
            "similarity_threshold": self.similarity_threshold,
            "check_frequency": self.check_frequency,
            "is_active": self.is_active,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
