"""Defines common Value Objects used across different domain contexts.

These objects represent simple values such as account identities, endpoint
URLs, tokens and prompts, keeping signatures readable and consistent.
"""

from typing import Any, Dict, NewType, Union

# === Account Context ===

# Using NewType for semantic clarity, although they are strings at runtime.
AccountKey = NewType("AccountKey", str)        # Stable identity of an account (email)
AccessToken = NewType("AccessToken", str)      # Short-lived OAuth access token
ProjectId = NewType("ProjectId", str)          # CloudCode project the account works in

# === Backend Context ===
EndpointUrl = NewType("EndpointUrl", str)      # Base URL of one CloudCode mirror
ModelId = NewType("ModelId", str)              # e.g. "gemini-3-pro-image"

# === Generation Context ===
PromptText = NewType("PromptText", str)        # User's text prompt
FilePath = NewType("FilePath", str)            # Path to a file on disk
SessionId = NewType("SessionId", str)          # Conversation session identifier

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Unique key for a cache entry

# --- Wire Structures ---
# Content parts travel to and from the API as plain dicts:
#   {"text": "..."} or {"inlineData": {"mimeType": "image/png", "data": "<base64>"}}
ContentPart = Dict[str, Any]
RequestPayload = Dict[str, Any]                # Fully built streamGenerateContent body
JsonValue = Union[Dict[str, Any], list, str, int, float, bool, None]
