"""Domain Events related to generation attempts and account scheduling.

Examples include events for when attempts start, are retried, skip an
endpoint, or when an account is cooled down after a rate limit.
"""

from dataclasses import dataclass, field
import time
from typing import Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Attempt Events ---

@dataclass
class AttemptInitiated(DomainEvent):
    """Event triggered when a generation attempt is about to be sent."""
    endpoint: str
    attempt_number: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class AttemptSucceeded(DomainEvent):
    """Event triggered when an attempt returned at least one image."""
    endpoint: str
    latency_ms: float
    image_count: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class AttemptFailed(DomainEvent):
    """Event triggered when an attempt ended the run for this account."""
    endpoint: str
    outcome: str # OutcomeKind value
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CapacityRetryScheduled(DomainEvent):
    """Event triggered when a 503 is retried on the same endpoint."""
    endpoint: str
    retry_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class EndpointSkipped(DomainEvent):
    """Event triggered when the executor moves on to the next endpoint."""
    endpoint: str
    reason: str # 'rate_limited' or 'capacity_exhausted'
    timestamp: float = field(default_factory=time.time)


# --- Scheduling Events ---

@dataclass
class AccountSelected(DomainEvent):
    email: str
    excluded: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class AccountCooledDown(DomainEvent):
    """Event triggered when an account enters rate-limit cooldown."""
    email: str
    until: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class AccountFailedOver(DomainEvent):
    """Event triggered when the caller loop gives up on an account."""
    email: str
    reason: str
    next_attempt: Optional[int] = None
    timestamp: float = field(default_factory=time.time)
