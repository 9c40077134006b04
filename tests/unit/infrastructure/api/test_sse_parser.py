import json

from agimage.infrastructure.api.sse_parser import NO_IMAGE_ERROR, estimate_decoded_size, parse_sse_response


def sse(*events):
    lines = [f"data: {json.dumps(e)}" for e in events]
    return "\n\n".join(lines) + "\n\ndata: [DONE]\n"


def image_event(data="aGVsbG8=", mime_type="image/png", text=None):
    parts = [{"inlineData": {"mimeType": mime_type, "data": data}}]
    if text:
        parts.insert(0, {"text": text})
    return {"response": {"candidates": [{"content": {"role": "model", "parts": parts}}]}}


def test_single_image():
    result = parse_sse_response(sse(image_event()))
    assert result.ok
    assert len(result.payload.images) == 1
    image = result.payload.first
    assert image.mime_type == "image/png"
    assert image.data == "aGVsbG8="
    assert image.size_bytes == 6


def test_collects_images_from_several_events():
    text = sse(
        {"response": {"candidates": [{"content": {"parts": [{"text": "thinking", "thought": True}]}}]}},
        image_event(data="AAAA"),
        image_event(data="BBBB", mime_type="image/jpeg"),
    )
    result = parse_sse_response(text)
    assert [i.data for i in result.payload.images] == ["AAAA", "BBBB"]
    # The last event with candidates is kept for session history
    assert result.payload.candidates[0]["content"]["parts"][0]["inlineData"]["data"] == "BBBB"


def test_error_event_is_reported():
    result = parse_sse_response(sse({"error": {"code": 400, "message": "Invalid prompt"}}))
    assert not result.ok
    assert result.error == "400: Invalid prompt"


def test_non_object_error_event_is_reported_as_text():
    result = parse_sse_response(sse({"error": "quota exhausted"}))
    assert not result.ok
    assert result.error == "quota exhausted"


def test_malformed_candidates_and_parts_are_skipped():
    text = sse(
        {"response": "unavailable"},
        {"response": {"candidates": "none"}},
        {"response": {"candidates": ["x", {"content": "text"}, {"content": {"parts": [None, "p"]}}]}},
        {"response": {"candidates": [{"content": {"parts": [{"inlineData": "raw"}, {"inlineData": {"data": 5}}]}}]}},
        image_event(data="DDDD"),
    )
    result = parse_sse_response(text)
    assert result.ok
    assert [i.data for i in result.payload.images] == ["DDDD"]


def test_text_only_response_has_no_image():
    event = {"response": {"candidates": [{"content": {"parts": [{"text": "I cannot draw that"}]}}]}}
    result = parse_sse_response(sse(event))
    assert not result.ok
    assert result.error == NO_IMAGE_ERROR


def test_skips_garbage_and_non_image_inline_data():
    text = "\n".join([
        ": keep-alive",
        "data: {not json",
        "data: [1, 2]",
        "data: " + json.dumps(image_event(mime_type="application/pdf")),
        "data: " + json.dumps(image_event(data="CCCC")) + "\r",
    ])
    result = parse_sse_response(text)
    assert result.ok
    assert [i.data for i in result.payload.images] == ["CCCC"]


def test_empty_body():
    assert parse_sse_response("").error == NO_IMAGE_ERROR


def test_estimate_decoded_size():
    assert estimate_decoded_size("A" * 400) == 300
