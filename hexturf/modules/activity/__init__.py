from hexturf.modules.activity.service import DEFAULT_SPORT_TYPES, ActivityService

__all__ = ["ActivityService", "DEFAULT_SPORT_TYPES"]
