"""
패턴 알림 모델
- 스케줄러가 유사도 임계값을 넘었을 때 생성
- 삭제하지 않음 (사용자 피드백은 임계값 조정에 활용)
"""

from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pattern_alerts.database import Base


class AlertStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    ACTED = "acted"
    DISMISSED = "dismissed"


class AlertFeedback(str, Enum):
    THUMBS_UP = "thumbs_up"
    THUMBS_DOWN = "thumbs_down"


class PatternAlert(Base):
    """패턴 매칭 알림"""
    __tablename__ = "pattern_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)
    pattern_id = Column(Integer, ForeignKey("patterns.id"), nullable=False)

    # 매칭 결과
    similarity = Column(Integer, nullable=False)  # 0~100 (%)
    chart_snapshot_url = Column(String(500))

    # 상태
    status = Column(String(20), nullable=False, default=AlertStatus.UNREAD.value)
    user_feedback = Column(String(20))  # thumbs_up, thumbs_down, None

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    read_at = Column(DateTime)
    acted_at = Column(DateTime)
    dismissed_at = Column(DateTime)

    pattern = relationship("ChartPattern", back_populates="alerts", lazy="raise")

    __table_args__ = (
        Index('idx_alert_pattern_created', 'pattern_id', 'created_at'),
        Index('idx_alert_user_created', 'user_id', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "pattern_id": self.pattern_id,
            "similarity": self.similarity,
            "chart_snapshot_url": self.chart_snapshot_url,
            "status": self.status,
            "user_feedback": self.user_feedback,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "acted_at": self.acted_at.isoformat() if self.acted_at else None,
            "dismissed_at": self.dismissed_at.isoformat() if self.dismissed_at else None,
        }
