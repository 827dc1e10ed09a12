"""Transaction capture: free-form text and/or a receipt image → one Transaction.

Public API:
    - :func:`parse_transaction`: model call + validation, no identifier yet.
    - :func:`capture_transaction`: parse and assign a fresh identifier.
    - :func:`capture_many`: bulk capture of several messages, concurrently.
    - :func:`load_image`: read an image file and guess its MIME type.

Every failure (API error, missing text output, malformed JSON, schema
violation) surfaces as :class:`~finance_flow.errors.CaptureError`; no partial
transaction is ever returned. No client is created at import time.
"""

from __future__ import annotations

import datetime as dt
import mimetypes
import os
import time
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from . import llm, prompting
from .errors import CaptureError
from .logging_setup import get_logger
from .models import ParsedTransaction, Transaction
from .pmap import p_map

_CONCURRENCY_DEFAULT: int = 4
_CONCURRENCY_MAX: int = 32

_logger = get_logger("finance_flow.capture")


def _new_id() -> str:
    return str(uuid.uuid4())


def parse_transaction(
    text: str | None = None,
    *,
    image: bytes | None = None,
    image_mime_type: str = "image/jpeg",
    client: Any | None = None,
    today: dt.date | None = None,
) -> ParsedTransaction:
    """Ask the model to extract one transaction from ``text`` and/or ``image``.

    Parameters
    ----------
    text:
        Free-form input such as a bank SMS or push notification.
    image:
        Raw bytes of a receipt or transfer slip.
    image_mime_type:
        MIME type used for the image data URL.
    client:
        An ``openai.OpenAI``-shaped client; created on demand when ``None``.
    today:
        Fallback date handed to the model when the input has none.
    """

    cleaned = text.strip() if isinstance(text, str) else None
    if not cleaned and not image:
        raise CaptureError("Please provide text or an image.")

    instructions = prompting.build_capture_instructions(today or dt.date.today())
    user_input = prompting.build_capture_input(
        cleaned, image=image, image_mime_type=image_mime_type
    )

    t0 = time.perf_counter()
    try:
        raw = llm.request_json(
            client if client is not None else llm.create_client(),
            event="capture",
            instructions=instructions,
            user_input=user_input,
            response_format=prompting.build_capture_response_format(),
        )
        parsed = ParsedTransaction.model_validate(raw)
    except ValidationError as e:
        _logger.error("capture:invalid_output errors=%d", e.error_count())
        raise CaptureError(f"AI analysis returned an invalid transaction: {e}") from e
    except Exception as e:  # noqa: BLE001 - any SDK/network failure is a capture failure
        dt_ms = (time.perf_counter() - t0) * 1000.0
        _logger.error(
            "capture:failed latency_ms=%.2f error=%s", dt_ms, e.__class__.__name__
        )
        raise CaptureError(f"AI analysis failed: {e}") from e

    _logger.info(
        "capture:done type=%s category=%s has_image=%s",
        parsed.type.value,
        parsed.category,
        bool(image),
    )
    return parsed


def capture_transaction(
    text: str | None = None,
    *,
    image: bytes | None = None,
    image_mime_type: str = "image/jpeg",
    client: Any | None = None,
    today: dt.date | None = None,
    id_factory: Callable[[], str] = _new_id,
) -> Transaction:
    """Parse the input and return a complete :class:`Transaction` with a new id."""

    parsed = parse_transaction(
        text, image=image, image_mime_type=image_mime_type, client=client, today=today
    )
    try:
        return parsed.to_transaction(id_factory())
    except ValueError as e:
        raise CaptureError(f"AI analysis returned an invalid transaction: {e}") from e


# ---------------------------------------------------------------------------
# Bulk capture
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CaptureOutcome:
    """Result of capturing one input of a batch.

    Exactly one of ``transaction`` and ``error`` is set.
    """

    position: int
    source: str
    transaction: Transaction | None = None
    error: CaptureError | None = None

    @property
    def ok(self) -> bool:
        return self.transaction is not None


def resolve_concurrency(n_items: int) -> int:
    """Resolve the worker cap for bulk capture.

    Honors ``FINANCE_FLOW_CAPTURE_CONCURRENCY`` when it is a positive integer,
    caps to ``n_items`` and to 32, and never returns less than 1.
    """

    env_val = os.getenv("FINANCE_FLOW_CAPTURE_CONCURRENCY")
    try:
        requested = int(env_val) if env_val else _CONCURRENCY_DEFAULT
    except ValueError:
        _logger.warning("capture:bad_concurrency value=%r", env_val)
        requested = _CONCURRENCY_DEFAULT
    if requested < 1:
        requested = _CONCURRENCY_DEFAULT
    return max(1, min(requested, n_items, _CONCURRENCY_MAX))


def capture_many(
    texts: Iterable[str],
    *,
    client: Any | None = None,
    concurrency: int | None = None,
    today: dt.date | None = None,
    id_factory: Callable[[], str] = _new_id,
) -> list[CaptureOutcome]:
    """Capture each text concurrently; one outcome per input, in input order.

    A failing input does not stop the others: its outcome carries the
    :class:`CaptureError` instead of a transaction.
    """

    sources: Sequence[str] = list(texts)
    if not sources:
        return []

    shared_client = client if client is not None else llm.create_client()
    workers = concurrency if concurrency is not None else resolve_concurrency(len(sources))

    def _one(item: tuple[int, str]) -> CaptureOutcome:
        pos, src = item
        try:
            tx = capture_transaction(src, client=shared_client, today=today, id_factory=id_factory)
        except CaptureError as e:
            return CaptureOutcome(position=pos, source=src, error=e)
        return CaptureOutcome(position=pos, source=src, transaction=tx)

    outcomes = p_map(list(enumerate(sources)), _one, concurrency=workers)
    failed = sum(1 for o in outcomes if not o.ok)
    _logger.info(
        "capture:batch_done total=%d captured=%d failed=%d workers=%d",
        len(outcomes),
        len(outcomes) - failed,
        failed,
        workers,
    )
    return outcomes


# ---------------------------------------------------------------------------
# Image input
# ---------------------------------------------------------------------------


def load_image(path: str | PathLike[str]) -> tuple[bytes, str]:
    """Read an image file and return ``(bytes, mime_type)``.

    Unknown or non-image extensions fall back to ``image/jpeg``.
    """

    p = Path(path)
    data = p.read_bytes()
    guessed, _ = mimetypes.guess_type(p.name)
    mime = guessed if guessed and guessed.startswith("image/") else "image/jpeg"
    return data, mime
