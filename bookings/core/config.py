"""
Configuration management for the Bookings Service.
Secrets come from Zero when a ZERO_TOKEN is available, otherwise from the
process environment. Every setting has a default so the service can boot locally.
"""

import os
import asyncio
import concurrent.futures
from urllib.parse import quote_plus
from typing import Dict, Any, Optional
import logging
from zero_python_sdk import zero

logger = logging.getLogger(__name__)


class ZeroSecretsManager:
    """
    Zero secrets client using the official Zero Python SDK.
    """

    def __init__(self, zero_token: str, caller_name: str = "eventbook"):
        self.zero_token = zero_token
        self.caller_name = caller_name
        self._cache: Dict[str, Any] = {}
        self._secrets = None

    async def _fetch_secrets(self):
        """Fetch secrets from Zero if not already cached."""
        if self._secrets is None:
            try:
                loop = asyncio.get_running_loop()
                with concurrent.futures.ThreadPoolExecutor() as executor:
                    self._secrets = await loop.run_in_executor(
                        executor,
                        lambda: zero(
                            token=self.zero_token,
                            pick=["eventbook"],
                            caller_name=self.caller_name
                        ).fetch()
                    )
                logger.info("Successfully fetched secrets from Zero")
            except Exception as e:
                logger.error(f"Failed to fetch secrets from Zero: {e}")
                self._secrets = {}

    def _normalize_key(self, key: str) -> str:
        """Normalize a key to lowercase and replace underscores with hyphens."""
        return key.lower().replace("_", "-")

    async def get_secret(self, key: str) -> Optional[str]:
        """
        Get a secret value by key.

        Args:
            key: The secret key to retrieve

        Returns:
            Secret value or None if not found
        """
        key = self._normalize_key(key)
        if key in self._cache:
            return self._cache[key]

        await self._fetch_secrets()
        secret_value = self._secrets.get("eventbook", {}).get(key)

        if secret_value:
            self._cache[key] = secret_value

        return secret_value

    async def close(self):
        """Close method for compatibility."""
        pass


class EnvironmentSecretsManager:
    """
    Reads settings straight from environment variables.
    Used when no Zero token is configured (local runs, CI, tests).
    """

    async def get_secret(self, key: str) -> Optional[str]:
        value = os.getenv(key.upper())
        return value if value else None

    async def close(self):
        pass


class BookingsConfig:
    """
    Bookings Service configuration manager.
    Settings are grouped by concern and resolved lazily through the secrets manager.
    """

    def __init__(self):
        self.zero_token = os.getenv("ZERO_TOKEN")
        if self.zero_token:
            self.secrets_manager = ZeroSecretsManager(self.zero_token)
        else:
            logger.info("ZERO_TOKEN not set, reading configuration from environment")
            self.secrets_manager = EnvironmentSecretsManager()

    async def _get(self, key: str, default: str) -> str:
        return await self.secrets_manager.get_secret(key) or default

    async def _get_flag(self, key: str, default: bool) -> bool:
        value = await self.secrets_manager.get_secret(key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    async def get_database_url(self) -> str:
        """Get the database connection URL."""
        url = await self.secrets_manager.get_secret("DATABASE_URL")
        if url:
            return url

        host = await self._get("DB_HOST", "localhost")
        port = await self._get("DB_PORT", "5432")
        name = await self._get("DB_NAME", "eventbook")
        user = await self._get("DB_USER", "eventbook")
        password = await self._get("DB_PASSWORD", "eventbook123")

        return f"postgresql://{user}:{quote_plus(password)}@{host}:{port}/{name}"

    async def get_redis_url(self) -> str:
        """Get the Redis connection URL."""
        host = await self._get("REDIS_HOST", "localhost")
        port = await self._get("REDIS_PORT", "6379")
        password = await self.secrets_manager.get_secret("REDIS_PASSWORD")
        use_tls = await self._get_flag("REDIS_USE_TLS", False)

        protocol = "rediss://" if use_tls else "redis://"

        if password:
            return f"{protocol}:{quote_plus(password)}@{host}:{port}"
        return f"{protocol}{host}:{port}"

    async def get_jwt_secret(self) -> str:
        """Get JWT secret key."""
        return await self._get("JWT_SECRET", "your-secret-key-change-in-production")

    async def get_jwt_algorithm(self) -> str:
        """Get JWT algorithm."""
        return await self._get("JWT_ALGORITHM", "HS256")

    async def get_consistency_config(self) -> Dict[str, Any]:
        """Get admission locking configuration."""
        return {
            "lock_backend": (await self._get("LOCK_BACKEND", "redis")).lower(),
            "lock_timeout_seconds": int(await self._get("LOCK_TIMEOUT_SECONDS", "30")),
            "lock_blocking_timeout_seconds": int(await self._get("LOCK_BLOCKING_TIMEOUT_SECONDS", "10")),
        }

    async def get_booking_config(self) -> Dict[str, Any]:
        """Get booking-specific configuration."""
        return {
            "max_booking_quantity": int(await self._get("MAX_BOOKING_QUANTITY", "10")),
            "default_currency": await self._get("DEFAULT_CURRENCY", "USD"),
        }

    async def get_audit_config(self) -> Dict[str, Any]:
        """
        Get audit logging configuration.

        failure_policy is either "best_effort" (log and continue) or
        "strict" (audit entry is part of the booking transaction).
        """
        policy = (await self._get("AUDIT_FAILURE_POLICY", "best_effort")).lower()
        if policy not in ("best_effort", "strict"):
            logger.warning(f"Unknown AUDIT_FAILURE_POLICY '{policy}', using best_effort")
            policy = "best_effort"
        return {"failure_policy": policy}

    async def get_subscriber_config(self) -> Dict[str, Any]:
        """Get events subscriber configuration."""
        return {
            "enabled": await self._get_flag("ENABLE_EVENT_SUBSCRIBER", True),
            "channel_prefix": await self._get("EVENT_CHANNEL_PREFIX", "eventbook:events"),
        }

    async def get_database_config(self) -> Dict[str, Any]:
        """Get database pool configuration."""
        return {
            "pool_size": int(await self._get("DB_POOL_SIZE", "20")),
            "max_overflow": int(await self._get("DB_MAX_OVERFLOW", "30")),
            "pool_timeout": int(await self._get("DB_POOL_TIMEOUT", "30")),
            "pool_recycle": int(await self._get("DB_POOL_RECYCLE", "3600")),
            "echo": await self._get_flag("DB_ECHO", False),
        }

    async def close(self):
        """Close the secrets manager."""
        await self.secrets_manager.close()


# Global config instance
config = BookingsConfig()
