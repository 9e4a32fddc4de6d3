from pattern_alerts.models.chart_pattern import ChartPattern, Timeframe, Direction
from pattern_alerts.models.pattern_alert import PatternAlert, AlertStatus, AlertFeedback

__all__ = [
    'ChartPattern',
    'Timeframe',
    'Direction',
    'PatternAlert',
    'AlertStatus',
    'AlertFeedback',
]
