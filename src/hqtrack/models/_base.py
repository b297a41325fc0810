"""Base model shared by hqtrack records.

Every record inherits from :class:`TrackerBaseModel` which provides:

* immutable instances (``frozen=True``)
* camelCase aliases via ``alias_generator=to_camel`` while still
  accepting snake_case field names
* :func:`ensure_utc`, applied to timestamp fields through :data:`UtcDatetime`
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_utc(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
"""Annotated type that normalizes datetimes to aware UTC."""


class TrackerBaseModel(BaseModel):
    """Base for hqtrack records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self, **kwargs: Any) -> dict[str, Any]:
        """JSON-compatible dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)
