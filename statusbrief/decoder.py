from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, unquote, urlsplit


logger = logging.getLogger(__name__)

FAILURE_EMPTY = "empty"
FAILURE_BASE64 = "base64"
FAILURE_JSON = "json"
_FAILURE_RANK = {FAILURE_BASE64: 1, FAILURE_JSON: 2}

_WHITESPACE = re.compile(r"\s+")
_PERCENT_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")


@dataclass(frozen=True)
class DecodeFailure:
    reason: str
    detail: str = ""


class DecodeError(ValueError):
    def __init__(self, failure: DecodeFailure) -> None:
        super().__init__(f"{failure.reason}: {failure.detail}" if failure.detail else failure.reason)
        self.failure = failure


def extract_raw_parameter(url_or_query: str | None, name: str = "data") -> str | None:
    """Return the first value of ``name`` from a full URL or a bare query string."""
    if not isinstance(url_or_query, str) or not url_or_query.strip():
        return None
    text = url_or_query.strip()
    query = urlsplit(text).query if "?" in text else text
    values = parse_qs(query, keep_blank_values=True).get(name)
    if not values:
        return None
    return values[0]


def _looks_like_json_object(text: str) -> bool:
    return text.startswith("{") and text.endswith("}")


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = stripped.split("\n")
    lines = lines[1:] if len(lines) > 1 else []
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _parse_json_text(text: str) -> Any:
    try:
        return json.loads(_strip_code_fences(text))
    except (ValueError, RecursionError) as exc:
        raise DecodeError(DecodeFailure(FAILURE_JSON, str(exc))) from exc


def normalize_base64(raw: str) -> str:
    # Some URL decoders hand back "+" as a space.
    text = raw.strip().replace(" ", "+")
    text = text.replace("-", "+").replace("_", "/")
    text = _WHITESPACE.sub("", text)
    text = text.rstrip("=")
    remainder = len(text) % 4
    if remainder:
        text += "=" * (4 - remainder)
    return text


def _base64_bytes(raw: str) -> bytes:
    normalized = normalize_base64(raw)
    if not normalized:
        raise DecodeError(DecodeFailure(FAILURE_BASE64, "no base64 content"))
    try:
        return base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(DecodeFailure(FAILURE_BASE64, str(exc))) from exc


def _bytes_to_text(payload: bytes) -> str:
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Payload is not valid UTF-8; trying Latin-1.")
    return payload.decode("latin-1")


def _decode_base64_json(raw: str) -> Any:
    return _parse_json_text(_bytes_to_text(_base64_bytes(raw)))


def _decode_percent_json(raw: str) -> Any:
    text = unquote(raw).strip()
    if not _looks_like_json_object(text):
        # Base64 with escaped padding or alphabet characters.
        return _decode_base64_json(text)
    return _parse_json_text(text)


def decode_or_raise(raw: str | None) -> Any:
    if not isinstance(raw, str) or not raw.strip():
        raise DecodeError(DecodeFailure(FAILURE_EMPTY, "no data parameter"))

    trimmed = raw.strip()
    errors: list[DecodeError] = []

    if _looks_like_json_object(trimmed):
        try:
            return _parse_json_text(trimmed)
        except DecodeError as exc:
            errors.append(exc)

    if _PERCENT_ESCAPE.search(trimmed):
        try:
            return _decode_percent_json(trimmed)
        except DecodeError as exc:
            errors.append(exc)

    try:
        return _decode_base64_json(trimmed)
    except DecodeError as exc:
        errors.append(exc)

    # Report the failure from the strategy that got furthest.
    ranked = sorted(errors, key=lambda error: _FAILURE_RANK.get(error.failure.reason, 0))
    raise ranked[-1]


def decode(raw: str | None) -> Any | DecodeFailure:
    try:
        return decode_or_raise(raw)
    except DecodeError as exc:
        logger.info("Could not decode brief payload (%s).", exc)
        return exc.failure
