"""Data models module for the danmaku-proxy service."""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class CacheLookup(BaseModel):
    """Result of asking the cache store about a key."""
    key: str
    found: bool = False
    valid: bool = False
    location: str
    age_seconds: Optional[float] = None


class FetchResult(BaseModel):
    """Document produced by the conversion service."""
    source_url: str
    content: bytes
    size: int = Field(default=0, validate_default=True)

    @field_validator('size')
    @classmethod
    def validate_size(cls, v, info):
        """Default the size to the payload length when the caller leaves it at zero."""
        content = info.data.get('content') or b""
        return v or len(content)


class EvictionReport(BaseModel):
    """Outcome of one eviction sweep."""
    scanned: int = 0
    removed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
