"""
Ariya Backend — Input Validator
=================================

What:  Two validation styles that both produce field-level errors:
       1. Rule tables: a mapping of field → ValidationRule, evaluated by
          `validate()` into a ValidationResult (never raises).
       2. Schemas: Pydantic models evaluated in one pass by
          `validate_body()` / `validate_query()`, raising ValidationError
          with a {field path: message} mapping.
Why:   Small ad-hoc endpoints declare a rule table inline; the auth surface
       uses schemas so OpenAPI and the validators stay in one place.
How:   The route dependencies `validated_body(Model)` and
       `validated_rules(rules)` parse the request body and run the
       validator, so they slot into the pipeline between rate limiting and
       authentication.

Malformed JSON is reported separately as "Invalid JSON in request body",
never as a rule failure.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Type, TypeVar, Union

from email_validator import EmailNotValidError, validate_email
from pydantic import AnyHttpUrl, BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request

from app.exceptions import ValidationError
from app.responses import pydantic_errors

ModelT = TypeVar("ModelT", bound=BaseModel)

# custom(value) returns None/True when valid, False or an error message otherwise
CustomCheck = Callable[[Any], Union[bool, str, None]]

FIELD_TYPES = {"string", "number", "email", "url", "boolean", "password"}

_url_adapter = TypeAdapter(AnyHttpUrl)

PASSWORD_MIN_LENGTH = 8
PASSWORD_CHECKS = (
    (re.compile(r"[a-z]"), "must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "must contain at least one uppercase letter"),
    (re.compile(r"\d"), "must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "must contain at least one special character"),
)


@dataclass(frozen=True)
class ValidationRule:
    required: bool = False
    type: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[Union[str, Pattern[str]]] = None
    custom: Optional[CustomCheck] = None

    def __post_init__(self):
        if self.type is not None and self.type not in FIELD_TYPES:
            raise ValueError(f"Unknown rule type '{self.type}'. Must be one of: {FIELD_TYPES}")


RuleSet = Mapping[str, ValidationRule]


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.is_valid:
            raise ValidationError("Validation failed", errors=list(self.errors))


def password_problems(name: str, value: str) -> List[str]:
    """Strength failures for a password value, empty when it is acceptable."""
    problems = []
    if len(value) < PASSWORD_MIN_LENGTH:
        problems.append(f"{name} must be at least {PASSWORD_MIN_LENGTH} characters long")
    for regex, text in PASSWORD_CHECKS:
        if not regex.search(value):
            problems.append(f"{name} {text}")
    return problems


def is_valid_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _check_type(name: str, value: Any, kind: str) -> List[str]:
    if kind == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return [f"{name} must be a number"]
        return []
    if kind == "boolean":
        return [] if isinstance(value, bool) else [f"{name} must be a boolean"]

    # Remaining kinds are all strings
    if not isinstance(value, str):
        return [f"{name} must be a string"]
    if kind == "email" and not is_valid_email(value):
        return [f"Invalid email format for {name}"]
    if kind == "url":
        try:
            _url_adapter.validate_python(value)
        except PydanticValidationError:
            return [f"Invalid URL format for {name}"]
    if kind == "password":
        return password_problems(name, value)
    return []


def _check_field(name: str, value: Any, rule: ValidationRule) -> List[str]:
    if value is None or value == "":
        return [f"{name} is required"] if rule.required else []

    if rule.type:
        type_problems = _check_type(name, value, rule.type)
        if type_problems:
            return type_problems

    problems: List[str] = []
    if isinstance(value, str):
        if rule.min_length is not None and len(value) < rule.min_length:
            problems.append(f"{name} requires minimum length of {rule.min_length}")
        if rule.max_length is not None and len(value) > rule.max_length:
            problems.append(f"{name} exceeds maximum length of {rule.max_length}")
        if rule.pattern is not None and not re.search(rule.pattern, value):
            problems.append(f"{name} has an invalid format")

    if rule.custom is not None and not problems:
        outcome = rule.custom(value)
        if isinstance(outcome, str):
            problems.append(outcome)
        elif outcome is False:
            problems.append(f"{name} is invalid")
    return problems


def validate(payload: Any, rules: RuleSet) -> ValidationResult:
    """
    Evaluate `rules` against `payload`.

    Only declared fields are inspected. A missing required field reports
    "<field> is required" and skips its other checks; a missing optional
    field is skipped entirely.
    """
    if not isinstance(payload, Mapping):
        return ValidationResult(is_valid=False, errors=["Request body must be a JSON object"])

    errors: List[str] = []
    for name, rule in rules.items():
        errors.extend(_check_field(name, payload.get(name), rule))
    return ValidationResult(is_valid=not errors, errors=errors)


# ── Request parsing ──────────────────────────────────────────────────────

async def parse_json_body(request: Request) -> Dict[str, Any]:
    """Decode the request body as a JSON object or raise a 400."""
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON in request body")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON in request body")
    return payload


def validate_model(model: Type[ModelT], payload: Any) -> ModelT:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=pydantic_errors(exc))


async def validate_body(request: Request, model: Type[ModelT], optional: bool = False) -> ModelT:
    """Validate the JSON body against `model`; an empty body is `{}` when `optional`."""
    if optional and not (await request.body()).strip():
        return validate_model(model, {})
    return validate_model(model, await parse_json_body(request))


async def validate_query(request: Request, model: Type[ModelT]) -> ModelT:
    return validate_model(model, dict(request.query_params))


# ── FastAPI dependencies ─────────────────────────────────────────────────

def validated_body(model: Type[ModelT], optional: bool = False) -> Callable:
    """
    Dependency factory returning the parsed `model` instance.

    Example:
        @router.post("/login")
        async def login(
            _rl=Depends(rate_limit("auth")),
            body: LoginRequest = Depends(validated_body(LoginRequest)),
        ): ...
    """

    async def dependency(request: Request) -> ModelT:
        return await validate_body(request, model, optional)

    return dependency


def validated_rules(rules: RuleSet) -> Callable:
    """Dependency factory returning the JSON body once `rules` pass."""

    async def dependency(request: Request) -> Dict[str, Any]:
        payload = await parse_json_body(request)
        validate(payload, rules).raise_for_errors()
        return payload

    return dependency
