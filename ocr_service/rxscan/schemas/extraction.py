"""
extraction.py (schemas)

Pydantic models for the prescription text extraction API.

These schemas define:
- Request format for the extraction endpoint (base64 image)
- The structured extraction result (full text + medications)
- The structured error body returned on failure

Field names on the wire use camelCase (doctorName, prescriptionDate)
because that is what the inference prompt asks the model to return.
Inside Python the snake_case names are used.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional


def scalar_to_str(value: Any) -> Any:
    """
    Turn a bare number or boolean from the model into a string.

    Models often answer "dosage": 500 instead of "500". Without this
    one such field would fail validation and lose the whole record.
    None, strings and anything else are returned unchanged.
    """
    if isinstance(value, (bool, int, float)):
        return str(value)
    return value


class Medication(BaseModel):
    """
    One medication line read from the prescription.

    Every field is optional: the model may leave any of them
    out, return null, or return an empty string.
    """

    # Extra keys from the model output are dropped
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(
        default=None,
        description="Medication name (may contain OCR errors)",
        examples=["Amoxici11in"]
    )
    dosage: Optional[str] = Field(
        default=None,
        description="Dosage, digits and letters may be confused",
        examples=["5OOmg"]
    )
    frequency: Optional[str] = Field(
        default=None,
        description="How often to take it",
        examples=["twice daiIy"]
    )
    duration: Optional[str] = Field(
        default=None,
        description="How long to take it",
        examples=["7 days"]
    )
    instructions: Optional[str] = Field(
        default=None,
        description="Extra instructions from the doctor",
        examples=["after food"]
    )

    @field_validator("name", "dosage", "frequency", "duration", "instructions", mode="before")
    @classmethod
    def coerce_scalars(cls, value):
        return scalar_to_str(value)


class ExtractedRecord(BaseModel):
    """
    ExtractedRecord

    Structured result of one extraction call: the full raw text,
    the medication list, and optional doctor name / date.

    Built once per inference response, passed through the
    noise injector, then returned to the caller.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = Field(
        default="",
        description="Full OCR-style text of the prescription"
    )
    medications: List[Medication] = Field(
        default_factory=list,
        description="Medications in the order they appear"
    )
    doctor_name: Optional[str] = Field(
        default=None,
        alias="doctorName",
        description="Doctor name if visible"
    )
    prescription_date: Optional[str] = Field(
        default=None,
        alias="prescriptionDate",
        description="Prescription date if visible (never corrupted)"
    )

    @field_validator("text", "doctor_name", "prescription_date", mode="before")
    @classmethod
    def coerce_scalars(cls, value):
        return scalar_to_str(value)


class ExtractTextRequest(BaseModel):
    """
    Request schema for POST /api/extract-text.

    image is optional at the schema level so that a missing
    image produces the API's own 400 body instead of a 422.
    """

    image: Optional[str] = Field(
        default=None,
        description="Base64 encoded image data (a data: URL prefix is allowed)"
    )
    mime_type: str = Field(
        default="image/png",
        description="MIME type of the encoded image"
    )


class ErrorResponse(BaseModel):
    """Structured error body returned by the extraction endpoints."""

    error: str = Field(..., description="Short error message")
    details: Optional[str] = Field(
        default=None,
        description="Underlying cause, when known"
    )


class HTTPErrorResponse(BaseModel):
    """FastAPI wraps HTTPException details under "detail"."""

    detail: ErrorResponse
