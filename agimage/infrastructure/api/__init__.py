"""CloudCode API adapter: HTTP client, request building and SSE decoding."""
