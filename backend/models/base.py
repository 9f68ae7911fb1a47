"""Shared base models and common type aliases."""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Address = str
FixedPoint = int


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(timezone.utc)


class OracleBaseModel(BaseModel):
    """Base schema for oracle domain records."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
        from_attributes=True,
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize model into a JSON-ready dictionary.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump(mode="json")
        except Exception as exc:
            logger.exception("Failed to serialize %s", self.__class__.__name__)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_row(cls, row: Any) -> "OracleBaseModel":
        """Create model instance from an ORM row.

        Raises:
            ModelValidationError: If the row cannot be parsed.
        """
        try:
            return cls.model_validate(row)
        except Exception as exc:
            logger.exception("Failed to parse stored row for %s", cls.__name__)
            raise ModelValidationError(str(exc))


class FrozenOracleModel(OracleBaseModel):
    """Immutable variant for values produced outside the oracle; strings are kept verbatim."""

    model_config = ConfigDict(
        str_strip_whitespace=False,
        frozen=True,
        from_attributes=True,
    )
