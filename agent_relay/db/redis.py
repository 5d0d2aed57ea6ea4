import redis
import structlog

from agent_relay.config import get_settings

logger = structlog.get_logger()
settings = get_settings()


class RedisClient:
    """Holds the connection to the Redis instance that stores the presence flag.

    The connection is opened on first use; ``redis.from_url`` does not touch
    the network, so an unreachable server shows up on the first command, where
    ``PresenceService`` turns it into "offline" or a 503.
    """

    def __init__(self, url: str = None):
        self.url = url or settings.redis_url
        self.client: redis.Redis = None

    def connect(self) -> redis.Redis:
        self.client = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            health_check_interval=30,
        )
        logger.info("Presence store client created")
        return self.client

    def get_client(self) -> redis.Redis:
        return self.client or self.connect()

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("Presence store client closed")


redis_client = RedisClient()


def get_redis() -> redis.Redis:
    """Dependency to get the presence store client"""
    return redis_client.get_client()
