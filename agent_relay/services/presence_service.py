import redis
import structlog

from agent_relay.config import get_settings

logger = structlog.get_logger()
settings = get_settings()


class PresenceService:
    """Single global "an admin is available" flag held in Redis.

    Writes are last-write-wins across admin consoles; presence is advisory.
    """

    def __init__(self, client: redis.Redis, key: str = None):
        self.client = client
        self.key = key or settings.presence_key

    def is_online(self) -> bool:
        try:
            return self.client.get(self.key) == "1"
        except redis.RedisError as e:
            logger.warning("Presence read failed, reporting offline", error=str(e))
            return False

    def set_online(self, online: bool) -> bool:
        self.client.set(self.key, "1" if online else "0")
        logger.info("Presence updated", online=online)
        return online
