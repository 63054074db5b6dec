# =============================================================================
# File: bidroom/config/messaging_config.py
# Description: Contractor messaging configuration
# =============================================================================

from functools import lru_cache

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from bidroom.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


class MessagingConfig(BaseConfig):
    """
    Settings for the messaging core (alias registry, store adapter, service).
    """

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='MESSAGING_',
    )

    # Store boundary
    store_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Outer timeout for every store/storage call (seconds)"
    )

    # Display
    owner_label: str = Field(default="Project Owner", description="Sender label for the homeowner")

    # Attachments
    attachment_prefix: str = Field(
        default="message-attachments", description="Storage path prefix for message attachments"
    )
    max_attachment_bytes: int = Field(
        default=25 * 1024 * 1024, gt=0, description="Largest accepted attachment (bytes)"
    )

    # Live updates
    subscription_seen_limit: int = Field(
        default=1000, gt=0, description="Message ids remembered per subscription for dedup"
    )

    # Alias assignment
    alias_assignment_attempts: int = Field(
        default=10, gt=0, description="Insert attempts before alias assignment gives up"
    )


@lru_cache(maxsize=1)
def get_messaging_config() -> MessagingConfig:
    """Get messaging configuration singleton (cached)."""
    return MessagingConfig()


def reset_messaging_config() -> None:
    """Reset config singleton (for testing)."""
    get_messaging_config.cache_clear()
