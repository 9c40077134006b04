"""Shapes CloudCode request bodies and interprets model listings.

Pure functions only; nothing here performs I/O.
"""

import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from agimage.domain.models.common import ContentPart, ModelId, ProjectId, RequestPayload
from agimage.domain.models.generation import (
    MAX_VARIATIONS, ImageGenerationOptions, ModelListing, QuotaInfo
)
from agimage.domain.models.session import SessionTurn

DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_IMAGE_SIZE = "1K"
USER_AGENT = "antigravity"

# Newest first; the first one the account can use wins
MODEL_CANDIDATES = (
    "gemini-3.1-flash-image",
    "gemini-3-pro-image",
    "gemini-3-flash-image",
    "gemini-2.5-flash-preview-image",
)

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_ONLY_HIGH"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
        "HARM_CATEGORY_CIVIC_INTEGRITY",
    )
]


def _random_suffix(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def make_request_id(prefix: str = "req") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{_random_suffix()}"


def build_contents(
    prompt: str,
    image_parts: Optional[List[ContentPart]] = None,
    history: Optional[List[SessionTurn]] = None,
) -> List[Dict[str, Any]]:
    """Prior turns first, then the current user turn (reference images before the text)."""
    current = {"role": "user", "parts": list(image_parts or []) + [{"text": prompt}]}
    contents = [{"role": turn.role, "parts": list(turn.parts)} for turn in (history or [])]
    contents.append(current)
    return contents


def build_image_config(options: Optional[ImageGenerationOptions]) -> Dict[str, Any]:
    """imageConfig with defaults; ``extra`` keys are forwarded as-is."""
    options = options or ImageGenerationOptions()
    config: Dict[str, Any] = {
        "aspectRatio": options.aspect_ratio or DEFAULT_ASPECT_RATIO,
        "imageSize": options.image_size or DEFAULT_IMAGE_SIZE,
    }
    for key, value in options.extra.items():
        if key not in ("aspectRatio", "imageSize") and value is not None:
            config[key] = value
    return config


def build_request_body(
    project_id: ProjectId,
    model: ModelId,
    contents: List[Dict[str, Any]],
    options: Optional[ImageGenerationOptions] = None,
) -> RequestPayload:
    generation_config: Dict[str, Any] = {
        "responseModalities": ["TEXT", "IMAGE"],
        "imageConfig": build_image_config(options),
    }
    count = options.count if options else None
    if count and count > 1:
        generation_config["candidateCount"] = min(count, MAX_VARIATIONS)

    return {
        "project": project_id,
        "requestId": make_request_id("req"),
        "model": model,
        "userAgent": USER_AGENT,
        "requestType": "agent",
        "request": {
            "contents": contents,
            "session_id": make_request_id("sess"),
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        },
    }


def build_model_response_content(candidates: List[Dict[str, Any]]) -> Optional[List[ContentPart]]:
    """Model turn for the session history: images and text, reasoning parts dropped.

    Returns None when nothing usable came back.
    """
    parts: List[ContentPart] = []
    for candidate in candidates or []:
        for part in (candidate.get("content") or {}).get("parts") or []:
            if part.get("thought"):
                continue
            inline = part.get("inlineData") or {}
            if inline.get("data") and inline.get("mimeType"):
                parts.append({"inlineData": {"mimeType": inline["mimeType"], "data": inline["data"]}})
            elif part.get("text"):
                parts.append({"text": part["text"]})
    return parts or None


def detect_image_model(listing: ModelListing) -> Optional[ModelId]:
    """Known candidates in priority order, then any id containing 'image'."""
    keys = list(listing.models.keys())
    for candidate in MODEL_CANDIDATES:
        if candidate in keys:
            return ModelId(candidate)
    for key in keys:
        if "image" in key.lower():
            return ModelId(key)
    return None


def extract_project_id(project: Any) -> Optional[str]:
    """cloudaicompanionProject is either a plain id or an object with ``id``."""
    if not project:
        return None
    if isinstance(project, str):
        return project
    if isinstance(project, dict):
        return project.get("id") or None
    return None


def format_reset_in(reset_time: str, now: Optional[datetime] = None) -> str:
    if not reset_time:
        return "N/A"
    try:
        reset_at = datetime.fromisoformat(reset_time.replace("Z", "+00:00"))
    except ValueError:
        return "N/A"
    if reset_at.tzinfo is None:
        reset_at = reset_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    remaining = (reset_at - now).total_seconds()
    if remaining <= 0:
        return "now"
    hours = int(remaining // 3600)
    minutes = int((remaining % 3600) // 60)
    return f"{hours}h {minutes}m"


def quota_from_listing(listing: ModelListing, model: ModelId, now: Optional[datetime] = None) -> Optional[QuotaInfo]:
    quota = listing.quota_for(model)
    if not quota:
        return None
    reset_time = quota.get("resetTime") or ""
    display_name = (listing.models.get(model) or {}).get("displayName") or model
    return QuotaInfo(
        model_name=display_name,
        remaining_fraction=float(quota.get("remainingFraction") or 0.0),
        reset_time=reset_time,
        reset_in=format_reset_in(reset_time, now),
    )
