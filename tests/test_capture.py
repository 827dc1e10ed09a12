from __future__ import annotations

import datetime as dt
import itertools
import threading
import time
from decimal import Decimal

import pytest

from finance_flow import capture as capture_mod
from finance_flow.capture import (
    capture_many,
    capture_transaction,
    load_image,
    parse_transaction,
    resolve_concurrency,
)
from finance_flow.errors import CaptureError
from finance_flow.models import TransactionType
from finance_flow.prompting import IMAGE_PROMPT
from tests.helpers.openai_stub import OpenAIStub, input_texts, tx_reply

TODAY = dt.date(2024, 5, 17)


def _counter_ids():
    counter = itertools.count(1)
    lock = threading.Lock()

    def _next() -> str:
        with lock:
            return f"id-{next(counter)}"

    return _next


def test_text_capture_builds_request_and_transaction():
    stub = OpenAIStub([tx_reply(250, merchant="KFC", category="Food")])
    tx = capture_transaction(
        "ชำระเงิน 250 บาท KFC", client=stub, today=TODAY, id_factory=lambda: "fixed"
    )

    assert tx.id == "fixed"
    assert tx.amount == Decimal(250)
    assert tx.type is TransactionType.EXPENSE
    assert tx.merchant == "KFC"

    (call,) = stub.calls
    assert call["model"] == "gpt-5"
    assert "2024-05-17" in call["instructions"]
    assert input_texts(call) == ['Analyze this text: "ชำระเงิน 250 บาท KFC"']
    fmt = call["text"]["format"]
    assert fmt["type"] == "json_schema"
    assert fmt["strict"] is True
    assert fmt["schema"]["properties"]["type"]["enum"] == ["INCOME", "EXPENSE"]


def test_model_override_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FINANCE_FLOW_MODEL", "gpt-4.1-mini")
    stub = OpenAIStub([tx_reply()])
    parse_transaction("Paid to KFC 250", client=stub, today=TODAY)
    assert stub.calls[0]["model"] == "gpt-4.1-mini"


def test_image_capture_sends_data_url_before_prompt():
    stub = OpenAIStub([tx_reply(120, merchant="Starbucks", category="Food & Beverage")])
    parse_transaction(
        None, image=b"\x89PNG fake", image_mime_type="image/png", client=stub, today=TODAY
    )

    content = stub.calls[0]["input"][0]["content"]
    assert content[0]["type"] == "input_image"
    assert content[0]["image_url"].startswith("data:image/png;base64,")
    assert content[1] == {"type": "input_text", "text": IMAGE_PROMPT}
    assert len(content) == 2


def test_image_and_text_are_both_sent():
    stub = OpenAIStub([tx_reply()])
    parse_transaction("note", image=b"jpg", client=stub, today=TODAY)
    assert input_texts(stub.calls[0]) == [IMAGE_PROMPT, 'Analyze this text: "note"']


@pytest.mark.parametrize("text", [None, "", "   "])
def test_missing_input_raises_without_calling_model(text):
    stub = OpenAIStub([tx_reply()])
    with pytest.raises(CaptureError, match="Please provide text or an image."):
        parse_transaction(text, client=stub)
    assert stub.calls == []


def test_negative_amount_is_normalized():
    stub = OpenAIStub([tx_reply(-500, type="EXPENSE")])
    tx = capture_transaction("Transfer to Mr. Somchai 500", client=stub, today=TODAY)
    assert tx.amount == Decimal(500)


def test_fractional_amount_is_read_exactly():
    reply = (
        '{"amount": 1234567890123.4567, "merchant": "Bank", "date": "2024-05-17",'
        ' "description": "Transfer", "category": "Transfer", "type": "EXPENSE"}'
    )
    tx = capture_transaction("Transfer", client=OpenAIStub([reply]), today=TODAY)
    assert tx.amount == Decimal("1234567890123.4567")


@pytest.mark.parametrize(
    "reply",
    [
        "not json",
        "[1, 2]",
        {"amount": 1, "merchant": "x"},
        tx_reply(type="TRANSFER"),
        tx_reply(date="yesterday"),
        RuntimeError("rate limited"),
    ],
)
def test_failures_surface_as_capture_error(reply):
    stub = OpenAIStub([reply])
    with pytest.raises(CaptureError):
        capture_transaction("Paid 100", client=stub, today=TODAY)


def test_missing_output_text_is_a_capture_error():
    class _Empty:
        output_text = ""
        output = []

    class _Client:
        class responses:  # noqa: N801 - mimics the SDK attribute
            @staticmethod
            def create(**kwargs):
                return _Empty()

    with pytest.raises(CaptureError):
        parse_transaction("Paid 100", client=_Client(), today=TODAY)


def test_client_is_created_lazily(monkeypatch: pytest.MonkeyPatch):
    stub = OpenAIStub([tx_reply()])
    created: list[int] = []

    def _factory():
        created.append(1)
        return stub

    monkeypatch.setattr(capture_mod.llm, "create_client", _factory)
    capture_transaction("Paid 250", today=TODAY)
    assert created == [1]


# ---- Bulk capture ----------------------------------------------------------------


def test_capture_many_keeps_order_and_reports_failures():
    def _reply(kwargs):
        (text,) = input_texts(kwargs)
        if "boom" in text:
            return "{broken"
        amount = int(text.split()[-1].rstrip('"'))
        # Finish out of order: bigger amounts answer sooner.
        time.sleep(0.05 / amount)
        return tx_reply(amount, merchant=f"m{amount}")

    stub = OpenAIStub([_reply])
    outcomes = capture_many(
        ["pay 1", "boom", "pay 2", "pay 3"],
        client=stub,
        concurrency=3,
        today=TODAY,
        id_factory=_counter_ids(),
    )

    assert [o.position for o in outcomes] == [0, 1, 2, 3]
    assert [o.ok for o in outcomes] == [True, False, True, True]
    assert [o.transaction.merchant for o in outcomes if o.ok] == ["m1", "m2", "m3"]
    assert isinstance(outcomes[1].error, CaptureError)
    assert outcomes[1].source == "boom"
    assert len(stub.calls) == 4


def test_capture_many_empty_input_makes_no_calls():
    stub = OpenAIStub([tx_reply()])
    assert capture_many([], client=stub) == []
    assert stub.calls == []


@pytest.mark.parametrize(
    ("env", "n_items", "expected"),
    [
        (None, 10, 4),
        (None, 2, 2),
        ("8", 20, 8),
        ("100", 100, 32),
        ("0", 10, 4),
        ("nope", 10, 4),
    ],
)
def test_resolve_concurrency(monkeypatch: pytest.MonkeyPatch, env, n_items, expected):
    if env is None:
        monkeypatch.delenv("FINANCE_FLOW_CAPTURE_CONCURRENCY", raising=False)
    else:
        monkeypatch.setenv("FINANCE_FLOW_CAPTURE_CONCURRENCY", env)
    assert resolve_concurrency(n_items) == expected


def test_load_image_guesses_mime(tmp_path):
    png = tmp_path / "slip.png"
    png.write_bytes(b"\x89PNG")
    assert load_image(png) == (b"\x89PNG", "image/png")

    unknown = tmp_path / "slip.bin"
    unknown.write_bytes(b"x")
    assert load_image(unknown)[1] == "image/jpeg"
