"""Data models for the fragment cache."""

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """Stored fragment with its absolute expiry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    value: str = Field(description="Fragment body")
    expiration_time_ms: int = Field(description="Epoch millis after which it is stale")


class CacheLookup(BaseModel):
    """Result of a cache hit.

    The value is returned even when ``expired`` is set; the caller decides
    whether to serve it and revalidate.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    value: str
    expired: bool
    expiration_time_ms: int
