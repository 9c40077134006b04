"""agimage: image generation over multiple rotating CloudCode accounts."""

__version__ = "0.3.0"
