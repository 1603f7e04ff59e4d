"""Tests for message content normalization and the emptiness filter."""

from __future__ import annotations

import base64

import pytest
from pydantic import ValidationError

from conversai.models.chat import FilePart, TextPart
from conversai.services.content import (
    FILE_ONLY_PROMPT,
    coerce_content,
    derive_title,
    digest,
    display_text,
    has_content,
    is_non_empty,
    normalize,
    preview_text,
    prune_empty,
    same_content,
)

PDF = {"type": "file", "data": [37, 80, 68, 70], "mimeType": "application/pdf", "name": "report.pdf"}


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("", False),
        ("  ", False),
        ("hi", True),
        (None, False),
        ([], False),
        ([PDF], True),
        ([{"type": "text", "text": "  "}], False),
        ([{"type": "text", "text": " "}, PDF], True),
        ([{"type": "text", "text": "caption"}], True),
        (42, False),
        ([{"type": "image", "url": "x"}], False),
        ([{"type": "text", "text": "look at this"}, {"type": "image", "url": "x"}], True),
        ([{"type": "text", "text": None}, PDF], True),
        ([{"type": "text", "text": None}], False),
        ([{"type": "image", "url": "x"}, PDF], True),
    ],
)
def test_has_content(content: object, expected: bool) -> None:
    assert has_content(content) is expected


def test_is_non_empty_accepts_dicts_and_models() -> None:
    from conversai.models.chat import Message

    assert is_non_empty({"role": "user", "content": "hello"})
    assert not is_non_empty({"role": "user"})
    assert is_non_empty(Message(role="user", content=[PDF]))
    assert not is_non_empty(Message(role="assistant", content=""))


def test_prune_empty_keeps_order() -> None:
    messages = [
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": " "},
        {"role": "user", "content": [PDF]},
        {"role": "assistant", "content": "b"},
    ]
    assert [m["content"] for m in prune_empty(messages)] == ["a", [PDF], "b"]


def test_coerce_content_file_data_encodings() -> None:
    raw = b"\x89PNG"
    as_list = coerce_content([{"type": "file", "data": list(raw)}])
    as_base64 = coerce_content([{"type": "file", "data": base64.b64encode(raw).decode()}])
    as_object = coerce_content([{"type": "file", "data": {"1": 80, "0": 137, "2": 78, "3": 71}}])
    assert as_list[0].data == as_base64[0].data == as_object[0].data == raw


def test_coerce_content_accepts_both_base64_alphabets() -> None:
    raw = bytes([0xFB, 0xFF, 0xFE, 0x3E, 0x3F])
    standard = base64.b64encode(raw).decode()
    urlsafe = base64.urlsafe_b64encode(raw).decode()
    assert standard != urlsafe
    assert coerce_content([{"type": "file", "data": standard}])[0].data == raw
    assert coerce_content([{"type": "file", "data": urlsafe}])[0].data == raw
    assert coerce_content([{"type": "file", "data": urlsafe.rstrip("=")}])[0].data == raw


def test_file_part_json_round_trip_keeps_bytes() -> None:
    part = FilePart(data=bytes([0xFB, 0xFF, 0xFE, 0x3E, 0x3F]), mime_type="image/png", name="a.png")
    assert FilePart.model_validate_json(part.model_dump_json()) == part


def test_coerce_content_skips_unknown_parts() -> None:
    parts = coerce_content([
        {"type": "image", "url": "x"},
        {"type": "text", "text": None},
        {"type": "text", "text": "caption"},
        "stray",
    ])
    assert parts == [TextPart(text=""), TextPart(text="caption")]
    assert display_text([{"type": "video"}, {"type": "text", "text": "hi"}]) == "hi"


def test_coerce_content_rejects_unknown_shapes() -> None:
    with pytest.raises(TypeError):
        coerce_content({"text": "hi"})
    with pytest.raises(ValidationError):
        coerce_content([{"type": "file", "data": 42}])


def test_normalize_string_passes_through() -> None:
    normalized = normalize("plain text")
    assert normalized.display_text == "plain text"
    assert normalized.provider_content == "plain text"


def test_normalize_text_parts_joined_by_newline() -> None:
    normalized = normalize([{"type": "text", "text": "one"}, {"type": "text", "text": "two"}])
    assert normalized.display_text == "one\ntwo"
    assert normalized.provider_content == "one\ntwo"


def test_normalize_files_build_multipart_payload() -> None:
    normalized = normalize([{"type": "text", "text": "What is this?"}, PDF])
    assert normalized.provider_content == [
        {"type": "text", "text": "What is this?"},
        {"type": "file", "data": b"%PDF", "mime_type": "application/pdf", "name": "report.pdf"},
    ]


def test_normalize_file_only_uses_fallback_prompt() -> None:
    normalized = normalize([PDF])
    assert normalized.display_text == FILE_ONLY_PROMPT
    assert normalized.provider_content[0] == {"type": "text", "text": FILE_ONLY_PROMPT}
    assert len(normalized.provider_content) == 2


def test_normalize_none_is_empty_string() -> None:
    assert normalize(None).provider_content == ""


def test_digest_renders_file_placeholders() -> None:
    unnamed = {"type": "file", "data": [1], "mimeType": "image/png"}
    content = [{"type": "text", "text": "see"}, PDF, unnamed]
    assert digest(content) == "see\n[file attached: report.pdf]\n[file attached: unnamed file]"
    assert digest("just text") == "just text"


def test_display_text_ignores_files() -> None:
    assert display_text([PDF, {"type": "text", "text": "caption"}]) == "caption"


@pytest.mark.parametrize("length", [0, 1, 49, 50])
def test_derive_title_short_text_unchanged(length: int) -> None:
    text = "x" * length
    assert derive_title(text) == text


@pytest.mark.parametrize("length", [51, 200])
def test_derive_title_long_text_truncated(length: int) -> None:
    text = "y" * length
    assert derive_title(text) == "y" * 50 + "..."


def test_preview_text() -> None:
    assert preview_text("  short  ") == "short"
    assert preview_text("a" * 25) == "a" * 20 + "..."
    assert preview_text([PDF]) == "[File] report.pdf"
    long_name = {**PDF, "name": "quarterly-financial-report.pdf"}
    assert preview_text([long_name]) == "[File] quarterly-financi..."
    assert preview_text([]) == ""


def test_same_content_compares_parts() -> None:
    assert same_content("hi", "hi")
    assert not same_content("hi", "hi ")
    assert same_content([PDF], [FilePart(data=b"%PDF", mime_type="application/pdf", name="report.pdf")])
    assert same_content([{"type": "text", "text": "a"}], [TextPart(text="a")])
    assert not same_content("a", [TextPart(text="a")])
