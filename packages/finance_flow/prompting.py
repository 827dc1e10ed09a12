"""Prompt construction and transaction serialization for the model calls.

This module builds:
- The system instructions for transaction capture (Thai bank notifications and
  receipt slips) and for the gamified insight summary.
- The Responses API ``input`` payloads for both requests.
- The strict ``text.format`` JSON Schemas each response must satisfy.
- A deterministic JSON serialization of transactions with a fixed field order.
"""

from __future__ import annotations

import base64
import datetime as dt
import json
from collections.abc import Sequence
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import Transaction, TransactionType

TX_FIELD_ORDER: tuple[str, ...] = (
    "id",
    "date",
    "type",
    "amount",
    "category",
    "merchant",
    "description",
)

# Upper bound on transactions embedded in one insight request.
INSIGHT_MAX_TRANSACTIONS: int = 30

IMAGE_PROMPT = "Analyze this receipt/slip image."


def serialize_transactions_to_json(transactions: Sequence[Transaction]) -> str:
    """Serialize transactions to a JSON array with a fixed field order.

    Amounts are emitted as JSON numbers; dates as ``YYYY-MM-DD``.
    """

    arr: list[dict[str, Any]] = []
    for tx in transactions:
        record = tx.to_record()
        out: dict[str, Any] = {}
        for key in TX_FIELD_ORDER:
            out[key] = record[key]
        # Integral amounts stay integers so the payload reads naturally.
        amount = tx.amount
        out["amount"] = int(amount) if amount == amount.to_integral_value() else float(amount)
        arr.append(out)
    return json.dumps(arr, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Capture (text / image → one transaction)
# ---------------------------------------------------------------------------


def build_capture_instructions(today: dt.date) -> str:
    """Return the system instructions for extracting one transaction.

    ``today`` is the fallback date when the input carries none.
    """

    return (
        "You are an expert financial data assistant for 'Finance Flow'.\n"
        "Your task: extract transaction details from Thai bank app notifications "
        "(SMS/push) or receipt images.\n"
        "\n"
        "Rules for the Thai banking context:\n"
        "1. Transaction type detection:\n"
        '   - INCOME keywords: "เงินเข้า", "รับโอนจาก", "Deposit", "Received from", '
        '"Xfer from", "โอนเงินเข้า"\n'
        '   - EXPENSE keywords: "โอนเงินไป", "ถอนเงิน", "ชำระเงิน", "จ่ายบิล", '
        '"Paid to", "Transfer to", "Purchase", "Withdrawal", "Payment"\n'
        "2. Merchant/payee normalization:\n"
        '   - "7-11", "Seven Eleven", "7-Eleven Thailand" -> "7-Eleven"\n'
        '   - "Mcd", "McDonald" -> "McDonald\'s"\n'
        '   - "Starbucks Coffee" -> "Starbucks"\n'
        '   - "Grab", "GrabFood", "GrabTaxi" -> "Grab"\n'
        '   - "Lineman" -> "LINE MAN"\n'
        '   - A personal transfer (e.g., "Mr. Somchai") keeps the name as merchant.\n'
        "3. Category hints:\n"
        '   - "7-Eleven", "FamilyMart" -> "Convenience Store"\n'
        '   - "KFC", "Bonchon", "MK" -> "Food & Beverage"\n'
        '   - "BTS", "MRT", "Expressway" -> "Transport"\n'
        '   - "Netflix", "Spotify", "Youtube" -> "Subscription"\n'
        "4. Date and description:\n"
        f"   - If the date is missing, use today: {today.isoformat()}.\n"
        "   - Summarize the action as the description, in Thai when the input is "
        'Thai (e.g. "ค่าอาหารกลางวัน", "โอนคืนเพื่อน").\n'
        "5. Amounts are plain non-negative numbers with no currency symbols; the "
        "direction is expressed only by type.\n"
        "Output JSON only that conforms to the specified schema."
    )


def _image_data_url(image: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def build_capture_input(
    text: str | None,
    *,
    image: bytes | None = None,
    image_mime_type: str = "image/jpeg",
) -> list[dict[str, Any]]:
    """Return the Responses API ``input`` list for a capture request.

    The image (when present) precedes its instruction line, followed by the
    quoted text (when present). Callers guarantee at least one is given.
    """

    content: list[dict[str, Any]] = []
    if image:
        content.append(
            {
                "type": "input_image",
                "image_url": _image_data_url(image, image_mime_type),
                "detail": "auto",
            }
        )
        content.append({"type": "input_text", "text": IMAGE_PROMPT})
    if text:
        content.append({"type": "input_text", "text": f'Analyze this text: "{text}"'})
    return [{"role": "user", "content": content}]


def build_capture_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema for a single extracted transaction."""

    return {
        "type": "json_schema",
        "name": "transaction",
        "schema": {
            "type": "object",
            "properties": {
                "amount": {"type": "number"},
                "merchant": {"type": "string"},
                "date": {"type": "string", "description": "ISO 8601 format YYYY-MM-DD"},
                "description": {"type": "string"},
                "category": {"type": "string"},
                "type": {"type": "string", "enum": [t.value for t in TransactionType]},
            },
            "required": ["amount", "merchant", "date", "description", "category", "type"],
            "additionalProperties": False,
        },
        "strict": True,
    }


# ---------------------------------------------------------------------------
# Insight (transactions → summary / score)
# ---------------------------------------------------------------------------


def build_insight_instructions() -> str:
    return (
        "You are a gamified financial coach.\n"
        "Analyze the transaction history, calculate a health score (0-100) and "
        "assign a financial rank.\n"
        "\n"
        "Ranking system:\n"
        '- 0-49: "Novice Spender" (ผู้เริ่มต้นเก็บเงิน) - needs improvement.\n'
        '- 50-79: "Smart Saver" (นักออมมือโปร) - doing well.\n'
        '- 80-100: "Wealth Wizard" (พ่อมดการเงิน) - excellent financial habits.\n'
        "\n"
        "Output language: Thai (fun, encouraging and game-like).\n"
        "Output JSON only that conforms to the specified schema."
    )


def select_insight_window(transactions: Sequence[Transaction]) -> list[Transaction]:
    """Return the most recent transactions (chronological) for the insight request."""

    ordered = sorted(transactions, key=lambda tx: tx.date)
    return ordered[-INSIGHT_MAX_TRANSACTIONS:]


def build_insight_input(transactions: Sequence[Transaction]) -> str:
    """Build the user content with the transactions delimited by BEGIN_/END_ markers."""

    tx_json = serialize_transactions_to_json(select_insight_window(transactions))
    return (
        "Analyze my spending and give me my rank.\n"
        "BEGIN_TRANSACTIONS_JSON\n"
        f"{tx_json}\n"
        "END_TRANSACTIONS_JSON"
    )


def build_insight_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    return {
        "type": "json_schema",
        "name": "financial_insight",
        "schema": {
            "type": "object",
            "properties": {
                "summary": {"type": "string", "description": "Brief analysis"},
                "savingsTip": {"type": "string", "description": "Specific advice"},
                "spendingTrend": {"type": "string", "enum": ["UP", "DOWN", "STABLE"]},
                "healthScore": {"type": "number", "minimum": 0, "maximum": 100},
                "financialRank": {
                    "type": ["string", "null"],
                    "description": "The gamified title based on score",
                },
            },
            "required": [
                "summary",
                "savingsTip",
                "spendingTrend",
                "healthScore",
                "financialRank",
            ],
            "additionalProperties": False,
        },
        "strict": True,
    }
