"""Data models for include resolution."""

from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from esi_processor.fetch.config import FetchConfig


@dataclass(frozen=True)
class IncludeTag:
    """One ``<esi:include>`` found by the scanner.

    Attributes:
        raw_text: Exact markup of the tag, closing tag included.
        start: Offset of ``<`` in the scanned text.
        end: Offset just past the tag.
        src: Entity-decoded ``src`` value, None when absent.
        alt: Entity-decoded ``alt`` value, None when absent.
        self_closing: Whether the tag ended with ``/>``.
    """

    raw_text: str
    start: int
    end: int
    src: str | None
    alt: str | None
    self_closing: bool


class ProcessOptions(BaseModel):
    """Per-call options, threaded unchanged through every pass and fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers forwarded to fragment origins"
    )
    base_url: str | None = Field(
        default=None, description="Overrides the processor base URL for this call"
    )

    @classmethod
    def coerce(
        cls, options: "ProcessOptions | Mapping[str, object] | None"
    ) -> "ProcessOptions":
        """Accept options as a model, a plain mapping or None."""
        if options is None:
            return cls()
        if isinstance(options, ProcessOptions):
            return options
        return cls.model_validate(dict(options))


@dataclass
class ResolutionState:
    """Mutable state of one top-level ``process`` call."""

    current_depth: int = 0


class ESIConfig(BaseModel):
    """Scalar configuration of an ``ESIProcessor``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = ""
    max_depth: int = Field(default=3, ge=0, le=100)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
