from hexturf.core.redis.service import RedisService

__all__ = ["RedisService"]
