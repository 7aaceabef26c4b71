"""
The LoroHttpTrigger function.

Reads ``name``, ``email`` and ``age`` from a JSON body (POST) or the query
string, normalizes them and always answers 200 with all three keys:

    {"name": "John Doe", "email": "john@example.com", "age": 29}

Missing or unusable values come back as the placeholder ``"not provided"``.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

NOT_PROVIDED = "not provided"

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

# Leading/trailing white space accepted around an integer, ASCII only.
_INT_WHITESPACE = " \t\n\v\f\r"
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_WORD_START = re.compile(r"(^|\s)(\S)")


class AgeKind(Enum):
    ABSENT = "absent"
    INTEGER = "integer"
    TEXT = "text"


@dataclass(frozen=True)
class AgeInput:
    """Raw age as found in the request, resolved once by format_age."""

    kind: AgeKind = AgeKind.ABSENT
    value: Union[int, str, None] = None

    @classmethod
    def absent(cls) -> "AgeInput":
        return cls()

    @classmethod
    def integer(cls, value: int) -> "AgeInput":
        return cls(AgeKind.INTEGER, value)

    @classmethod
    def text(cls, value: str) -> "AgeInput":
        return cls(AgeKind.TEXT, value)


@dataclass
class ExtractedFields:
    name: Optional[str] = None
    email: Optional[str] = None
    age: AgeInput = field(default_factory=AgeInput.absent)


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def parse_int32(text: str) -> Optional[int]:
    """Parse a base-10 signed 32-bit integer, or return None."""
    candidate = text.strip(_INT_WHITESPACE)
    if not _INT_PATTERN.fullmatch(candidate):
        return None
    number = int(candidate)
    if number < INT32_MIN or number > INT32_MAX:
        return None
    return number


def title_case(text: str) -> str:
    # Fixed English rule: title-case the first character of each
    # whitespace-delimited word, leave spacing untouched.
    return _WORD_START.sub(lambda m: m.group(1) + m.group(2).title(), text)


def format_name(name: Optional[str]) -> str:
    if is_blank(name):
        return NOT_PROVIDED
    return title_case(name.lower())


def format_email(email: Optional[str]) -> str:
    if is_blank(email):
        return NOT_PROVIDED
    return email.lower()


def format_age(age: AgeInput) -> Union[int, str]:
    if age.kind is AgeKind.INTEGER:
        return age.value
    if age.kind is AgeKind.TEXT:
        parsed = parse_int32(age.value)
        return NOT_PROVIDED if parsed is None else parsed
    return NOT_PROVIDED


def format_fields(fields: ExtractedFields) -> Dict[str, Any]:
    return {
        "name": format_name(fields.name),
        "email": format_email(fields.email),
        "age": format_age(fields.age),
    }


class _LongInteger:
    """Integer literal too long to be any 32-bit value."""

    __slots__ = ("literal",)

    def __init__(self, literal: str):
        self.literal = literal

    def __repr__(self) -> str:
        return f"<integer of {len(self.literal.lstrip('-'))} digits>"


def _parse_json_int(literal: str):
    # int() refuses very long literals, which would discard the whole body
    if len(literal.lstrip("-")) > 10:
        return _LongInteger(literal)
    return int(literal)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _read_json_body(event: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    if str(event.get("method", "")).upper() != "POST":
        return None
    body = event.get("body") or ""
    try:
        if isinstance(body, (bytes, bytearray)):
            body = bytes(body).decode("utf-8")
        if not body.strip():
            return None
        doc = json.loads(body, parse_int=_parse_json_int, parse_constant=_reject_constant)
        if not isinstance(doc, dict):
            raise ValueError(f"expected a JSON object, got {type(doc).__name__}")
    except (ValueError, RecursionError) as e:
        logger.warning("Failed to parse JSON body: %s", e)
        return None
    return doc


def _age_from_json(value: Any) -> AgeInput:
    # bool is an int subclass but true/false are not numbers in JSON
    if value is None or isinstance(value, bool):
        return AgeInput.absent()
    if isinstance(value, str):
        return AgeInput.text(value)
    if isinstance(value, (int, float, _LongInteger)):
        if isinstance(value, int) and INT32_MIN <= value <= INT32_MAX:
            return AgeInput.integer(value)
        logger.warning("Failed to read age from JSON body: %r is not a 32-bit integer", value)
    return AgeInput.absent()


def extract_body_fields(doc: Mapping[str, Any]) -> ExtractedFields:
    name = doc.get("name")
    email = doc.get("email")
    return ExtractedFields(
        name=name if isinstance(name, str) else None,
        email=email if isinstance(email, str) else None,
        age=_age_from_json(doc.get("age")),
    )


def fold_query(query: Mapping[str, Any]) -> Dict[str, List[str]]:
    """Merge query parameters whose names differ only in case."""
    folded: Dict[str, List[str]] = {}
    for key, value in query.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        folded.setdefault(str(key).lower(), []).extend(str(v) for v in values)
    return folded


def query_value(query: Mapping[str, Any], key: str) -> Optional[str]:
    value = query.get(key)
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def extract_fields(event: Mapping[str, Any]) -> ExtractedFields:
    """Body first, then per-field fallback to the query string."""
    doc = _read_json_body(event)
    fields = extract_body_fields(doc) if doc is not None else ExtractedFields()

    query = fold_query(event.get("query") or {})
    if is_blank(fields.name):
        fields.name = query_value(query, "name")
    if is_blank(fields.email):
        fields.email = query_value(query, "email")
    # age only falls back when the body gave nothing at all
    if fields.age.kind is AgeKind.ABSENT and "age" in query:
        fields.age = AgeInput.text(query_value(query, "age") or "")
    return fields


def handler(event, context):
    """
    Entry point invoked by the runtime.

    - event: dict with keys {method, path, query, headers, body}
    - context: dict with metadata like {function, invocationId}
    """
    logger.info("HTTP trigger function %s processed a request.", context.get("function", "LoroHttpTrigger"))
    fields = extract_fields(event)
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json; charset=utf-8"},
        "body": format_fields(fields),
    }
