"""
JSON-Schema validation of fixture documents.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.validators import validator_for

from fixturelibrary.domain.errors import ValidationFailed
from fixturelibrary.domain.models import Diagnostic, ValidationResult

logger = logging.getLogger(__name__)


def _format_checker() -> FormatChecker:
    checker = FormatChecker()

    # The fixture schema uses a custom "color-hex" format; accept any value like the upstream tooling.
    @checker.checks("color-hex")
    def _is_color_hex(value: Any) -> bool:
        return True

    return checker


class SchemaValidator:
    """Validates documents against one schema and reports every violation."""

    def __init__(self, schema: Dict[str, Any]):
        validator_cls = validator_for(schema, default=Draft7Validator)
        validator_cls.check_schema(schema)
        self.schema = schema
        self._validator = validator_cls(schema, format_checker=_format_checker())

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SchemaValidator":
        schema = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(schema)

    def validate(self, document: Any) -> ValidationResult:
        errors = sorted(self._validator.iter_errors(document), key=lambda e: list(map(str, e.absolute_path)))
        diagnostics = [
            Diagnostic(
                path="/" + "/".join(str(part) for part in error.absolute_path),
                message=error.message,
                keyword=str(error.validator) if error.validator is not None else None,
            )
            for error in errors
        ]
        return ValidationResult(valid=not diagnostics, errors=diagnostics)

    def check(self, document: Any) -> None:
        """Raise ValidationFailed if the document does not match the schema."""
        result = self.validate(document)
        if not result.valid:
            raise ValidationFailed(result.errors)


def validate(schema: Dict[str, Any], document: Any) -> ValidationResult:
    """One-shot validation of ``document`` against ``schema``."""
    return SchemaValidator(schema).validate(document)
