"""
JSON Schema validation for stage requests and model output.

Validates payloads against the draft-07 schemas in the package's
schemas/ directory. Model output additionally goes through a repair pass
(null removal, primitive coercion, schema defaults) before validation.
"""

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"

_NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


class SchemaValidator:
    """
    Validates payloads against JSON schemas.

    Provides detailed violation reports (path, constraint, offending value).
    """

    def __init__(self, schemas_dir: Optional[Path] = None):
        """Initialize validator with schema cache."""
        self.schemas_dir = schemas_dir or SCHEMAS_DIR
        self._schema_cache: Dict[str, Dict] = {}

    def load_schema(self, name: str) -> Dict[str, Any]:
        """
        Load a JSON schema by name.

        Args:
            name: Schema name, e.g. "extraction" for extraction.schema.json

        Returns:
            JSON schema dictionary
        """
        if name in self._schema_cache:
            return self._schema_cache[name]

        schema_path = self.schemas_dir / f"{name}.schema.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, encoding="utf-8") as f:
            schema = json.load(f)

        Draft7Validator.check_schema(schema)
        self._schema_cache[name] = schema
        return schema

    def validate(self, data: Any, name: str) -> List[Dict[str, Any]]:
        """
        Validate data against a schema without modifying it.

        Returns:
            List of formatted violations (empty when valid)
        """
        validator = Draft7Validator(self.load_schema(name))
        errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
        return [self._format_error(error) for error in errors]

    def _format_error(self, error: ValidationError) -> Dict[str, Any]:
        """Format validation error for reporting."""
        return {
            "path": ".".join(str(p) for p in error.absolute_path),
            "message": error.message,
            "validator": error.validator,
            "value": str(error.instance)[:100] if error.instance is not None else None,
            "schema_path": ".".join(str(p) for p in error.schema_path),
        }

    def validate_with_coercion(
        self,
        data: Any,
        name: str,
    ) -> Tuple[Any, List[Dict[str, Any]], List[Dict[str, Any]]]:
        """
        Repair compatible type mismatches, fill defaults, then validate.

        Undeclared fields are not removed; they surface as violations.

        Returns:
            Tuple of (fixed_data, remaining_errors, fixes_applied)
        """
        schema = self.load_schema(name)
        fixed_data = copy.deepcopy(data)
        fixes_applied: List[Dict[str, Any]] = []

        fixes_applied.extend(self._fix_null_values(fixed_data))
        fixed_data = self._coerce(fixed_data, schema, "", fixes_applied)
        self._fill_defaults(fixed_data, schema)

        errors = self.validate(fixed_data, name)
        return fixed_data, errors, fixes_applied

    def _fix_null_values(self, data: Any) -> List[Dict[str, Any]]:
        """Drop null-valued keys; a null from the model means 'absent'."""
        fixes = []

        def traverse(obj, path=""):
            if isinstance(obj, dict):
                for key, value in list(obj.items()):
                    field_path = f"{path}.{key}" if path else key
                    if value is None:
                        del obj[key]
                        fixes.append({"path": field_path, "fix": "removed_null"})
                    elif isinstance(value, (dict, list)):
                        traverse(value, field_path)

        traverse(data)
        return fixes

    def _coerce(self, value: Any, schema: Dict[str, Any], path: str, fixes: List[Dict[str, Any]]) -> Any:
        """Coerce primitives towards the schema type where no information is lost."""
        expected = schema.get("type")

        if expected == "object" and isinstance(value, dict):
            properties = schema.get("properties", {})
            for key, sub_value in list(value.items()):
                if key in properties:
                    field_path = f"{path}.{key}" if path else key
                    value[key] = self._coerce(sub_value, properties[key], field_path, fixes)
            return value

        if expected == "array" and isinstance(value, list):
            item_schema = schema.get("items", {})
            return [
                self._coerce(item, item_schema, f"{path}[{i}]", fixes)
                for i, item in enumerate(value)
            ]

        coerced = _coerce_primitive(value, expected)
        if coerced is not value:
            fixes.append({"path": path, "fix": f"coerced_to_{expected}", "original": value})
        return coerced

    def _fill_defaults(self, data: Any, schema: Dict[str, Any]) -> None:
        """Fill omitted properties that declare a default, recursing into present objects."""
        if schema.get("type") != "object" or not isinstance(data, dict):
            return

        for key, sub_schema in schema.get("properties", {}).items():
            if key not in data and "default" in sub_schema:
                data[key] = copy.deepcopy(sub_schema["default"])
            elif key in data:
                self._fill_defaults(data[key], sub_schema)


def _coerce_primitive(value: Any, expected: Optional[str]) -> Any:
    """Return a coerced copy of value, or value itself when no coercion applies."""
    if isinstance(value, bool):
        if expected == "string":
            return "true" if value else "false"
        return value

    if expected == "integer":
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
            number = float(value.strip())
            if number.is_integer():
                return int(number)
        return value

    if expected == "number":
        if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
            number = float(value.strip())
            return int(number) if number.is_integer() else number
        return value

    if expected == "string" and isinstance(value, (int, float)):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    return value


def format_pydantic_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    """Format a pydantic ValidationError in the same shape as SchemaValidator output."""
    violations = []
    for error in exc.errors(include_url=False):
        value = error.get("input")
        violations.append({
            "path": ".".join(str(p) for p in error.get("loc", ())),
            "message": error.get("msg"),
            "validator": error.get("type"),
            "value": str(value)[:100] if value is not None else None,
        })
    return violations
