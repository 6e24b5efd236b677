"""Database module for the cycle wellness service.

This module provides:
- SQLAlchemy async database connection
- Cycle, symptom, calendar, AI and monitoring models
- Encrypted storage for OAuth tokens
"""

from cycle_wellness.database.connection import (
    get_db,
    init_db,
    close_db,
    create_tables,
)
from cycle_wellness.database.models import (
    Base,
    User,
    UserProfile,
    UserCycle,
    SymptomLog,
    OAuthToken,
    Event,
    EventAISuggestion,
    EventMoveSuggestion,
    ChatMessage,
    Notification,
    EnergyReference,
    WellnessPrediction,
    CalendarWatchChannel,
    ApiRateLimit,
    AIRetryLog,
    AIOperationMetric,
    AIErrorNotification,
)

__all__ = [
    # Connection
    "get_db",
    "init_db",
    "close_db",
    "create_tables",
    # Models
    "Base",
    "User",
    "UserProfile",
    "UserCycle",
    "SymptomLog",
    "OAuthToken",
    "Event",
    "EventAISuggestion",
    "EventMoveSuggestion",
    "ChatMessage",
    "Notification",
    "EnergyReference",
    "WellnessPrediction",
    "CalendarWatchChannel",
    "ApiRateLimit",
    "AIRetryLog",
    "AIOperationMetric",
    "AIErrorNotification",
]
