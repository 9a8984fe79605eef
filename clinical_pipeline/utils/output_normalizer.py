"""
Structural normalization of extraction output.

Models asked for the extraction schema sometimes answer with localized key
names, a scalar where a list is expected, or an age as a numeric string.
This module maps such output onto the canonical shape before validation.
Only structure changes: values are moved or wrapped, never invented.
"""

import copy
import logging
import re
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)

# canonical key -> accepted synonyms, checked in order
TOP_LEVEL_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "symptoms": ("sintomas", "síntomas"),
    "riskFlags": ("riesgos", "factoresRiesgo"),
    "notes": ("observaciones", "notas"),
    "patient": ("paciente",),
    "onsetDays": ("diasEvolucion", "díasEvolución"),
}

PATIENT_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "sex": ("sexo", "genero", "género", "gender"),
    "age": ("edad",),
}

STRING_ARRAY_FIELDS = ("symptoms", "riskFlags")

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


def _is_present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def _apply_synonyms(
    obj: Dict[str, Any],
    synonyms: Dict[str, Tuple[str, ...]],
    prefix: str,
    applied: List[str],
) -> None:
    """Move synonym keys onto their canonical name; the canonical value wins when both exist."""
    for canonical, aliases in synonyms.items():
        for alias in aliases:
            if alias not in obj:
                continue
            value = obj.pop(alias)
            if not _is_present(obj.get(canonical)) and _is_present(value):
                obj[canonical] = value
                applied.append(f"{prefix}{alias}->{canonical}")
            else:
                applied.append(f"dropped {prefix}{alias}")


def _number_from_string(value: str) -> Any:
    text = value.strip()
    if not _NUMBER_RE.match(text):
        return value
    number = float(text)
    return int(number) if number.is_integer() else number


def normalize_extraction(raw: Any) -> Any:
    """
    Map heterogeneous extraction output onto the canonical shape.

    Non-dict input is returned unchanged so schema validation can report it.
    """
    if not isinstance(raw, dict):
        return raw

    out = copy.deepcopy(raw)
    applied: List[str] = []

    _apply_synonyms(out, TOP_LEVEL_SYNONYMS, "", applied)

    patient = out.get("patient")
    if isinstance(patient, dict):
        _apply_synonyms(patient, PATIENT_SYNONYMS, "patient.", applied)
        if isinstance(patient.get("age"), str):
            age = _number_from_string(patient["age"])
            if age is not patient["age"]:
                patient["age"] = age
                applied.append("patient.age:str->number")

    for field in STRING_ARRAY_FIELDS:
        if isinstance(out.get(field), str):
            out[field] = [out[field]]
            applied.append(f"{field}:str->list")

    if applied:
        logger.debug(f"Extraction output normalized: {', '.join(applied)}")

    return out
