"""
Input validation for the public API — Pydantic v2 models.

Used to validate request payloads before anything touches the database.
Keeps validation logic out of handler code and makes it trivially testable.

Payload keys are camelCase (the web form's naming); Python attributes are
snake_case through field aliases.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from backend.exceptions import FieldError, ValidationError
from backend.models.models import OPEN_CLUB_NAME

# Message per field name, used for "missing" / type errors raised by pydantic itself
FIELD_MESSAGES = {
    "lastName":    "Last name is required",
    "firstName":   "First name is required",
    "birthDate":   "Valid birth date is required",
    "nationality": "Nationality is required",
    "gender":      "Gender must be male or female",
    "email":       "Valid email is required",
    "phone":       "Phone number is required",
    "clubId":      'Club must be a club id or "Open"',
    "isPair":      "isPair must be a boolean",
    "name":        "Club name is required",
}

# "YYYY-MM-DD" or "YYYY/MM/DD", nothing before or after
_DATE_RE = re.compile(r"^(\d{4})([-/])(\d{2})\2(\d{2})$")

# Keys that only make sense for a pair; dropped from single-athlete payloads
_PAIR_ONLY_KEYS = ("athlete2", "athlete2Photo", "athlete2PhotoType")


def _require_text(v: Any) -> str:
    if not isinstance(v, str) or not v.strip():
        raise ValueError("required")
    return v.strip()


class AthleteData(BaseModel):
    """
    One athlete of an entry.

    Attributes
    ----------
    last_name / first_name : non-empty after trim
    birth_date             : calendar date, ISO "YYYY-MM-DD" on the wire
    nationality            : free text, compared case-insensitively later
    gender                 : "male" | "female"
    email / phone          : contact details (phone kept as typed)
    club_id                : club id, the literal "Open", or None
    """

    model_config = ConfigDict(populate_by_name=True)

    last_name:   str                         = Field(alias="lastName", max_length=255)
    first_name:  str                         = Field(alias="firstName", max_length=255)
    birth_date:  date                        = Field(alias="birthDate")
    nationality: str                         = Field(max_length=100)
    gender:      Literal["male", "female"]
    email:       EmailStr                    # email-validator caps it at 254 chars
    phone:       str                         = Field(max_length=50)
    club_id:     Optional[Union[int, str]]   = Field(default=None, alias="clubId")

    @field_validator("last_name", "first_name", "nationality", "phone", mode="before")
    @classmethod
    def validate_required_text(cls, v: Any) -> str:
        return _require_text(v)

    @field_validator("birth_date", mode="before")
    @classmethod
    def validate_birth_date(cls, v: Any) -> date:
        if isinstance(v, date):
            return v
        match = _DATE_RE.match(v.strip()) if isinstance(v, str) else None
        if match:
            year, _, month, day = match.groups()
            try:
                return date(int(year), int(month), int(day))
            except ValueError:
                pass
        raise ValueError("invalid date")

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("club_id", mode="before")
    @classmethod
    def validate_club_id(cls, v: Any) -> Optional[Union[int, str]]:
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            raise ValueError("invalid club")
        if isinstance(v, int):
            return v
        if isinstance(v, str):
            v = v.strip()
            if v == OPEN_CLUB_NAME:
                return v
            if v.isdigit():
                return int(v)
        raise ValueError("invalid club")


class RegistrationData(BaseModel):
    """
    Registration payload validated before writing to DB.

    athlete2 and its photo are only read when is_pair is true; for a pair a
    missing athlete2 block fails every athlete2 field individually.
    """

    model_config = ConfigDict(populate_by_name=True)

    is_pair:             StrictBool            = Field(alias="isPair")
    athlete1:            AthleteData
    athlete2:            Optional[AthleteData] = None
    locale:              Optional[str]         = Field(default=None, max_length=10)
    athlete1_photo:      Optional[str]         = Field(default=None, alias="athlete1Photo")
    athlete1_photo_type: Optional[str]         = Field(default=None, alias="athlete1PhotoType", max_length=50)
    athlete2_photo:      Optional[str]         = Field(default=None, alias="athlete2Photo")
    athlete2_photo_type: Optional[str]         = Field(default=None, alias="athlete2PhotoType", max_length=50)
    team_photo:          Optional[str]         = Field(default=None, alias="teamPhoto")
    team_photo_type:     Optional[str]         = Field(default=None, alias="teamPhotoType", max_length=50)

    @field_validator("locale", "athlete1_photo_type", "athlete2_photo_type", "team_photo_type", mode="before")
    @classmethod
    def strip_optional_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="before")
    @classmethod
    def scope_pair_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("isPair") is True:
            if not isinstance(data.get("athlete2"), dict):
                data["athlete2"] = {}
        else:
            for key in _PAIR_ONLY_KEYS:
                data.pop(key, None)
        return data


class ClubData(BaseModel):
    """New club name (1–255 chars after trim)."""

    name: str

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        v = _require_text(v)
        if len(v) > 255:
            raise ValueError("too long")
        return v


# ─────────────────────────── Error mapping ───────────────────────────────────

def _field_errors(exc: PydanticValidationError) -> List[FieldError]:
    errors: List[FieldError] = []
    seen: set[str] = set()
    for err in exc.errors():
        loc = [str(part) for part in err["loc"]]
        field = ".".join(loc) or "body"
        if field in seen:
            continue
        seen.add(field)
        leaf = loc[-1] if loc else ""
        if err["type"] == "string_too_long":
            message = err["msg"]
        else:
            message = FIELD_MESSAGES.get(leaf, err["msg"])
        errors.append(FieldError(field, message))
    return errors


def _validate(model: type[BaseModel], payload: Any) -> Any:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc


def validate_registration(payload: Any) -> RegistrationData:
    """Validate a raw JSON body. Raises ValidationError with field-level detail."""
    return _validate(RegistrationData, payload)


def validate_club(payload: Any) -> ClubData:
    return _validate(ClubData, payload)
