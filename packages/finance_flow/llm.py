"""Small helpers around the OpenAI Responses API shared by capture and insights.

No client is created and no environment is read at import time.
"""

from __future__ import annotations

import json
import os
import time
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from openai import OpenAI
from openai.types.responses import ResponseTextConfigParam
from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .logging_setup import get_logger

_MODEL_DEFAULT: str = "gpt-5"

_logger = get_logger("finance_flow.llm")


def model_name() -> str:
    """Return the Responses API model, honoring ``FINANCE_FLOW_MODEL``."""

    override = os.getenv("FINANCE_FLOW_MODEL")
    if override and override.strip():
        return override.strip()
    return _MODEL_DEFAULT


def create_client() -> OpenAI:
    return OpenAI()


def extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON object from an OpenAI Responses SDK result.

    - Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``.
    - Raise ``ValueError`` if text cannot be located, is not valid JSON, or is
      not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    # Some SDK versions wrap text in an object with a ``value`` string.
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        # Fractional numbers decode as Decimal so amounts never pass through float.
        decoded = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object")
    return decoded


def request_json(
    client: Any,
    *,
    event: str,
    instructions: str,
    user_input: str | list[dict[str, Any]],
    response_format: ResponseFormatTextJSONSchemaConfigParam,
) -> Mapping[str, Any]:
    """Run one non-streaming Responses call and return the decoded JSON object.

    ``event`` prefixes the log lines (e.g. ``capture``). API errors propagate
    unchanged; shape and decoding problems raise ``ValueError``.
    """

    text_cfg = ResponseTextConfigParam(format=response_format)
    t0 = time.perf_counter()
    resp = client.responses.create(
        model=model_name(),
        instructions=instructions,
        input=user_input,
        text=text_cfg,
    )
    decoded = extract_response_json_mapping(resp)
    _logger.info(
        "%s:response latency_ms=%.2f",
        event,
        (time.perf_counter() - t0) * 1000.0,
    )
    return decoded
