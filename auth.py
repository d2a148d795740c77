from typing import Iterable, Optional, Protocol

import redis

from logging_config import get_logger

logger = get_logger(__name__)


class TokenAuthenticator(Protocol):
    """Accepts or rejects the opaque token a client presents before joining."""

    async def authenticate(self, token: str) -> bool:
        ...


class StaticTokenAuthenticator:
    def __init__(self, tokens: Iterable[str]):
        self.tokens = frozenset(tokens)
        if not self.tokens:
            logger.warning("Static token authentication enabled with no tokens, every client will be rejected")

    async def authenticate(self, token: str) -> bool:
        return token in self.tokens


class RedisTokenAuthenticator:
    """Tokens are issued by the auth/balance service as keys with a TTL."""

    def __init__(self, backend):
        self.backend = backend

    async def authenticate(self, token: str) -> bool:
        try:
            return await self.backend.token_exists(token)
        except redis.RedisError as e:
            logger.error(f"Token lookup failed, rejecting client: {e}", exc_info=True)
            return False


def create_authenticator(mode: str, tokens: Iterable[str] = (), backend=None) -> Optional[TokenAuthenticator]:
    if mode in ("", "none"):
        return None
    if mode == "static":
        return StaticTokenAuthenticator(tokens)
    if mode == "redis":
        if backend is None:
            raise ValueError("AUTH_MODE=redis requires REDIS_ENABLED=true")
        return RedisTokenAuthenticator(backend)
    raise ValueError(f"Unknown AUTH_MODE '{mode}'. Expected one of: none, static, redis")
