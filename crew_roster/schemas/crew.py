from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import DataParsingError
from ..models.crew import CrewRecord, CrewStatus, Position, Role, ValidationStatus


class CrewRowModel(BaseModel):
    """Shape of one ``users`` row as returned by the roster store."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Crew member identifier")
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(default="", description="Contact email")
    role: Role
    status: CrewStatus
    position: Position
    validation_status: ValidationStatus
    preferred_bases: List[str] = Field(default_factory=list)
    currency: Optional[str] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    last_active: Optional[datetime] = None
    profile_complete: bool = True
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        # Some tables use integer or uuid keys; the engine treats ids as opaque text.
        return str(value) if value is not None else value

    @field_validator("preferred_bases", mode="before")
    @classmethod
    def _bases_default(cls, value: Any) -> Any:
        if value is None:
            return []
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _email_default(cls, value: Any) -> Any:
        return value or ""

    def to_record(self) -> CrewRecord:
        return CrewRecord(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            status=self.status,
            position=self.position,
            validation_status=self.validation_status,
            preferred_bases=tuple(self.preferred_bases),
            currency=self.currency,
            experience_years=self.experience_years,
            last_active=self.last_active,
            profile_complete=self.profile_complete,
            created_at=self.created_at,
        )


def parse_crew_rows(payload: Any) -> List[CrewRecord]:
    """Validate a list of raw rows and convert them to crew records.

    Raises DataParsingError if the payload is not a list or any row is malformed.
    """
    if not isinstance(payload, list):
        raise DataParsingError(f"expected a list of rows, got {type(payload).__name__}")
    try:
        return [CrewRowModel.model_validate(row).to_record() for row in payload]
    except PydanticValidationError as e:
        raise DataParsingError(f"malformed crew row: {e.errors()[0]['msg']}") from e
