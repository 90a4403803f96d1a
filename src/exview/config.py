from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Locale = Literal["en-US", "zh-CN"]


class ViewerConfig(BaseModel):
    """Options for a WorkbookViewer."""

    model_config = ConfigDict(extra="forbid")

    enable_images: bool = Field(default=True, description="Re-insert images.")
    enable_data_validation: bool = Field(
        default=True, description="Re-apply list data validations."
    )
    editable: bool = Field(
        default=True, description="Allow edits; False applies the read-only guard."
    )
    locale: Locale = Field(default="en-US", description="Engine UI locale.")
    insert_delay: float = Field(
        default=500,
        ge=0,
        description="Settle delay in milliseconds before re-application.",
    )
    fetch_timeout: float = Field(
        default=30.0, gt=0, description="Network timeout in seconds for URLs."
    )

    def merged(self, overrides: Mapping[str, Any] | None) -> ViewerConfig:
        """Return a copy with ``overrides`` applied over these values.

        Keys whose value is None are ignored so callers can pass partial
        option objects.

        Raises:
            pydantic.ValidationError: If an override is invalid.
        """
        values = self.model_dump()
        values.update(
            {key: value for key, value in (overrides or {}).items() if value is not None}
        )
        return ViewerConfig.model_validate(values)


__all__ = ["Locale", "ViewerConfig"]
