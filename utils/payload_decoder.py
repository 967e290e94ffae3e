"""
Strict decoder for JSON payloads embedded in free-form oracle text.

The reply is scanned for the first well-formed JSON object; that object, and
only that one, is validated against a pydantic schema. The result is tagged
so callers decide how each failure kind is surfaced.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)

_decoder = json.JSONDecoder()


class DecodeErrorKind(str, Enum):
    FORMAT = "format"   # no JSON object in the text
    SCHEMA = "schema"   # object found, fields missing/invalid


@dataclass(frozen=True)
class Decoded(Generic[M]):
    payload: Optional[M] = None
    raw: Optional[dict] = None
    error: Optional[DecodeErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_json_object(text: str) -> Optional[dict]:
    """First ``{...}`` in ``text`` that parses as a JSON object, else None."""
    if not text:
        return None
    idx = text.find("{")
    while idx != -1:
        try:
            obj, _ = _decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(obj, dict):
            return obj
        idx = text.find("{", idx + 1)
    return None


def decode_payload(text: str, schema: Type[M]) -> Decoded[M]:
    raw = extract_json_object(text)
    if raw is None:
        return Decoded(error=DecodeErrorKind.FORMAT, detail="no JSON object found in reply")
    try:
        return Decoded(payload=schema.model_validate(raw), raw=raw)
    except ValidationError as e:
        return Decoded(raw=raw, error=DecodeErrorKind.SCHEMA, detail=str(e))
