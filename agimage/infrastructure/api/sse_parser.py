"""Decodes the server-sent-events body of a streamGenerateContent response."""

import json
import logging
from typing import Any, Dict, List, Optional

from agimage.domain.models.generation import GeneratedImage, GenerationPayload

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"
NO_IMAGE_ERROR = "No image in response"


class SSEParseResult:
    """Either a payload with at least one image, or an error message."""

    def __init__(self, payload: Optional[GenerationPayload] = None, error: str = ""):
        self.payload = payload
        self.error = error

    @property
    def ok(self) -> bool:
        return self.payload is not None


def estimate_decoded_size(b64_data: str) -> int:
    return round(len(b64_data) * 3 / 4)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _images_from_candidates(candidates: List[Dict[str, Any]]) -> List[GeneratedImage]:
    images = []
    for candidate in candidates:
        parts = _as_list(_as_dict(_as_dict(candidate).get("content")).get("parts"))
        for part in parts:
            inline = _as_dict(_as_dict(part).get("inlineData"))
            data = inline.get("data")
            mime_type = inline.get("mimeType")
            if isinstance(data, str) and data and isinstance(mime_type, str) and mime_type.startswith("image/"):
                images.append(GeneratedImage(data=data, mime_type=mime_type, size_bytes=estimate_decoded_size(data)))
    return images


def parse_sse_response(text: str) -> SSEParseResult:
    """Collects images from every event, across all candidates.

    An ``error`` object in any event ends parsing with "<code>: <message>".
    Lines that are not JSON are skipped. The candidates of the last event that
    carried any are kept for the session history.
    """
    images: List[GeneratedImage] = []
    last_candidates: List[Dict[str, Any]] = []

    for line in text.split("\n"):
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            continue
        json_str = line[len(DATA_PREFIX):]
        if json_str == DONE_MARKER:
            continue

        try:
            event = json.loads(json_str)
        except json.JSONDecodeError:
            logger.debug(f"Skipping undecodable SSE line: {json_str[:80]}")
            continue
        if not isinstance(event, dict):
            continue

        error = event.get("error")
        if error:
            if isinstance(error, dict):
                return SSEParseResult(error=f"{error.get('code')}: {error.get('message')}")
            return SSEParseResult(error=str(error))

        candidates = [c for c in _as_list(_as_dict(event.get("response")).get("candidates")) if isinstance(c, dict)]
        if candidates:
            last_candidates = candidates
        images.extend(_images_from_candidates(candidates))

    if not images:
        return SSEParseResult(error=NO_IMAGE_ERROR)

    logger.debug(f"Parsed {len(images)} image(s) from SSE response")
    return SSEParseResult(payload=GenerationPayload(images=images, candidates=last_candidates))
