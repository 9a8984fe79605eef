"""
Request and response models shared by the pipeline and the per-stage endpoints.

The pipeline input is a tagged union: a text payload skips transcription,
an audio payload goes through it. The tag is derived from the shape of the
incoming object so callers keep sending the plain JSON they always did.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag, ValidationError


Sex = Literal["M", "F", "X"]
Severity = Literal["low", "moderate", "high"]
ProviderName = Literal["gemini", "openai"]


# =============================================================================
# Pipeline envelope
# =============================================================================

class AudioSource(BaseModel):
    """Audio reference: a downloadable URL or an inline base64 payload."""
    type: Literal["url", "base64"]
    value: str = Field(min_length=1)


class TextInput(BaseModel):
    """Free-text clinical input; transcription is skipped."""
    text: str = Field(min_length=1)
    language: Optional[str] = None
    correlationId: Optional[str] = None


class AudioInput(BaseModel):
    """Audio clinical input; also the request body of the transcribe stage."""
    audio: AudioSource
    filename: Optional[str] = None
    language: Optional[str] = None
    hint: Optional[str] = None
    correlationId: Optional[str] = None


def _input_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return "text" if "text" in value else "audio"
    if isinstance(value, TextInput):
        return "text"
    if isinstance(value, AudioInput):
        return "audio"
    return None


PipelineInput = Annotated[
    Union[
        Annotated[TextInput, Tag("text")],
        Annotated[AudioInput, Tag("audio")],
    ],
    Discriminator(_input_kind),
]


class PipelineOptions(BaseModel):
    provider: Optional[ProviderName] = None


class PipelineRequest(BaseModel):
    """Body accepted by the pipeline endpoint."""
    input: PipelineInput
    options: Optional[PipelineOptions] = None


# =============================================================================
# Extraction / diagnosis contracts
# =============================================================================

class Patient(BaseModel):
    age: Optional[int] = Field(default=None, ge=0, le=130)
    sex: Optional[Sex] = None


class Extraction(BaseModel):
    """Structured findings produced by the extract stage."""
    patient: Optional[Patient] = None
    symptoms: List[str] = Field(default_factory=list)
    onsetDays: Optional[int] = Field(default=None, ge=0)
    riskFlags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class DiagnoseRequest(BaseModel):
    extraction: Extraction
    language: Optional[str] = None
    correlationId: Optional[str] = None


class Diagnosis(BaseModel):
    """Terminal artifact of the pipeline."""
    summary: str
    differentials: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    severity: Severity


def validation_issues(exc: ValidationError) -> List[Dict[str, Any]]:
    """JSON-safe issue list (type, loc, msg, input) for a pydantic error."""
    return json.loads(exc.json(include_url=False))
