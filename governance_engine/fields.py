"""
Workflow Custom Fields Module

Schema for the custom fields a workflow definition declares, and validation
of field values against that schema. Values are checked for type, range,
pattern and allowed options; every problem is collected so callers can report
all of them at once.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class FieldType(Enum):
    """Supported field types"""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTISELECT = "multiselect"
    DOCUMENT = "document"
    USER = "user"


@dataclass
class FieldValidation:
    """Validation rules for a field value"""
    min: Optional[float] = None      # number value, text length or selection count
    max: Optional[float] = None
    pattern: Optional[str] = None    # regex, text fields only
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'min': self.min,
            'max': self.max,
            'pattern': self.pattern,
            'options': list(self.options),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FieldValidation':
        data = data or {}
        return cls(
            min=data.get('min'),
            max=data.get('max'),
            pattern=data.get('pattern'),
            options=list(data.get('options') or []),
        )


@dataclass
class FieldSchema:
    """
    A custom field of a workflow definition

    ``editable_in_states`` and ``visible_in_states`` left as None mean the
    field is editable/visible in every state.
    """
    name: str
    label: str
    field_type: FieldType = FieldType.TEXT
    required: bool = False
    description: str = ""
    validation: FieldValidation = field(default_factory=FieldValidation)
    visible_in_states: Optional[List[str]] = None
    editable_in_states: Optional[List[str]] = None
    required_in_states: List[str] = field(default_factory=list)
    default: Any = None

    def is_editable_in(self, state_id: str) -> bool:
        return self.editable_in_states is None or state_id in self.editable_in_states

    def is_visible_in(self, state_id: str) -> bool:
        return self.visible_in_states is None or state_id in self.visible_in_states

    def is_required_in(self, state_id: str) -> bool:
        return self.required or state_id in self.required_in_states

    def referenced_states(self) -> List[str]:
        """All state ids this field's state lists mention"""
        states = list(self.required_in_states)
        states.extend(self.editable_in_states or [])
        states.extend(self.visible_in_states or [])
        return states

    def validate_value(self, value: Any) -> List[str]:
        """
        Validate a value against this field

        Returns:
            List of error messages, empty when the value is valid
        """
        errors = []
        label = self.label or self.name
        rules = self.validation

        if value is None:
            return errors

        if self.field_type == FieldType.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{label} must be a number")
            else:
                if rules.min is not None and value < rules.min:
                    errors.append(f"{label} must be at least {rules.min}")
                if rules.max is not None and value > rules.max:
                    errors.append(f"{label} must be at most {rules.max}")

        elif self.field_type == FieldType.TEXT:
            if not isinstance(value, str):
                errors.append(f"{label} must be a string")
            else:
                if rules.pattern and not re.search(rules.pattern, value):
                    errors.append(f"{label} format is invalid")
                if rules.min is not None and len(value) < rules.min:
                    errors.append(f"{label} must be at least {int(rules.min)} characters")
                if rules.max is not None and len(value) > rules.max:
                    errors.append(f"{label} must be at most {int(rules.max)} characters")

        elif self.field_type == FieldType.DATE:
            if isinstance(value, str):
                try:
                    datetime.strptime(value, '%Y-%m-%d')
                except ValueError:
                    errors.append(f"{label} must be a date in YYYY-MM-DD format")
            elif not isinstance(value, date):
                errors.append(f"{label} must be a date")

        elif self.field_type == FieldType.BOOLEAN:
            if not isinstance(value, bool):
                errors.append(f"{label} must be a boolean")

        elif self.field_type == FieldType.SELECT:
            if rules.options and value not in rules.options:
                errors.append(f"{label} must be one of: {', '.join(rules.options)}")

        elif self.field_type == FieldType.MULTISELECT:
            if not isinstance(value, list):
                errors.append(f"{label} must be a list")
            else:
                invalid = [str(v) for v in value if rules.options and v not in rules.options]
                if invalid:
                    errors.append(
                        f"{label} has invalid values: {', '.join(invalid)}. "
                        f"Must be from: {', '.join(rules.options)}"
                    )
                if rules.min is not None and len(value) < rules.min:
                    errors.append(f"{label} needs at least {int(rules.min)} selections")
                if rules.max is not None and len(value) > rules.max:
                    errors.append(f"{label} allows at most {int(rules.max)} selections")

        elif self.field_type in (FieldType.DOCUMENT, FieldType.USER):
            # References to external documents or users are opaque ids
            if not isinstance(value, str) or not value.strip():
                errors.append(f"{label} must be a non-empty reference")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'label': self.label,
            'type': self.field_type.value,
            'required': self.required,
            'description': self.description,
            'validation': self.validation.to_dict(),
            'visible_in_states': self.visible_in_states,
            'editable_in_states': self.editable_in_states,
            'required_in_states': list(self.required_in_states),
            'default': self.default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldSchema':
        return cls(
            name=data['name'],
            label=data.get('label') or data['name'],
            field_type=FieldType(data.get('type', 'text')),
            required=bool(data.get('required', False)),
            description=data.get('description', ''),
            validation=FieldValidation.from_dict(data.get('validation')),
            visible_in_states=data.get('visible_in_states'),
            editable_in_states=data.get('editable_in_states'),
            required_in_states=list(data.get('required_in_states') or []),
            default=data.get('default'),
        )


def validate_field_values(fields: List[FieldSchema], values: Dict[str, Any],
                          state_id: Optional[str] = None,
                          check_required: bool = True) -> List[str]:
    """
    Validate a set of values against a field schema

    Args:
        fields: Declared fields of the definition
        values: Field values to check
        state_id: State whose required fields must be present
        check_required: Whether missing required fields are errors

    Returns:
        Every error found; unknown field names are reported too
    """
    errors = []
    by_name = {f.name: f for f in fields}

    for name in values:
        if name not in by_name:
            errors.append(f"Unknown field: {name}")

    for schema in fields:
        value = values.get(schema.name)
        if value is None:
            if check_required and state_id is not None and schema.is_required_in(state_id):
                errors.append(f"Required field missing: {schema.label or schema.name}")
            continue
        errors.extend(schema.validate_value(value))

    return errors
