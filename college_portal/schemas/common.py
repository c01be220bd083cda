"""Common schema utilities and base classes."""

import enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema with common configuration.

    Fields are snake_case in Python and camelCase on the wire, matching the
    portal's front end.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
    )

    def to_response(self) -> dict[str, Any]:
        """Serialize for a hand-built JSONResponse."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ImportStatus(str, enum.Enum):
    """Outcome class of a spreadsheet import."""

    SUCCESS = "success"
    PARTIAL = "partial"
    REJECTED = "rejected"

    @property
    def http_status(self) -> int:
        return {
            ImportStatus.SUCCESS: 201,
            ImportStatus.PARTIAL: 207,
            ImportStatus.REJECTED: 400,
        }[self]


class ImportOutcome(NamedTuple):
    """Import status plus the response body to send."""

    status: ImportStatus
    body: BaseSchema
