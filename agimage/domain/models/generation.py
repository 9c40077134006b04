"""Domain models related to image generation requests, attempts and results."""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .common import FilePath, PromptText, SessionId

SUPPORTED_ASPECT_RATIOS = ("1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9")
SUPPORTED_IMAGE_SIZES = ("1K", "2K", "4K")
MAX_VARIATIONS = 4


# --- Request Side ---

@dataclass
class ImageGenerationOptions:
    """Options forwarded into generationConfig.imageConfig.

    Keys in ``extra`` are passed through unchanged so new API parameters can be
    used without code changes.
    """
    aspect_ratio: Optional[str] = None
    image_size: Optional[str] = None
    count: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationRequest:
    """Everything the caller asks for in one logical call."""
    prompt: PromptText
    worktree: FilePath
    filename: Optional[str] = None
    output_dir: Optional[FilePath] = None
    options: ImageGenerationOptions = field(default_factory=ImageGenerationOptions)
    reference_paths: List[FilePath] = field(default_factory=list)
    edit_mode: bool = False
    session_id: Optional[SessionId] = None


# --- Attempt Side ---

class OutcomeKind(enum.Enum):
    """Classification of one HTTP attempt against one endpoint."""
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    CAPACITY_UNAVAILABLE = "capacity_unavailable"
    TIMEOUT = "timeout"
    OTHER_ERROR = "other_error"


@dataclass
class GeneratedImage:
    data: str       # base64
    mime_type: str
    size_bytes: int


@dataclass
class GenerationPayload:
    """Decoded success payload of a streamed response."""
    images: List[GeneratedImage]
    candidates: List[Dict[str, Any]] = field(default_factory=list) # Raw candidates, used for session history

    @property
    def first(self) -> GeneratedImage:
        return self.images[0]


@dataclass
class AttemptOutcome:
    """Terminal state of a single attempt. Exactly one kind per attempt."""
    kind: OutcomeKind
    status_code: Optional[int] = None
    payload: Optional[GenerationPayload] = None
    error: str = ""

    @classmethod
    def success(cls, payload: GenerationPayload, status_code: int = 200) -> "AttemptOutcome":
        if not payload.images:
            raise ValueError("A successful attempt needs at least one image")
        return cls(OutcomeKind.SUCCESS, status_code=status_code, payload=payload)

    @classmethod
    def failure(cls, kind: OutcomeKind, error: str, status_code: Optional[int] = None) -> "AttemptOutcome":
        return cls(kind, status_code=status_code, error=error)


@dataclass
class ExecutionResult:
    """Aggregate of all attempts made for one account.

    Both flags start True and are cleared as soon as an attempt disproves
    them. ``terminal_kind`` is the kind of the attempt that ended the run.
    """
    payload: Optional[GenerationPayload] = None
    all_endpoints_rate_limited: bool = True
    all_endpoints_capacity_exhausted: bool = True
    last_error: str = ""
    terminal_kind: Optional[OutcomeKind] = None
    attempts: int = 0

    @property
    def success(self) -> bool:
        return self.payload is not None and bool(self.payload.images)


# --- Logical Call Side ---

class FailureKind(enum.Enum):
    """Why a whole logical call failed."""
    NO_ACCOUNTS_CONFIGURED = "no_accounts_configured"
    NO_ACCOUNTS_AVAILABLE = "no_accounts_available"
    ALL_RATE_LIMITED = "all_rate_limited"
    ALL_CAPACITY_EXHAUSTED = "all_capacity_exhausted"
    ALL_ACCOUNTS_FAILED = "all_accounts_failed"


class AccountFailureReason(enum.Enum):
    RATE_LIMITED = "rate-limited"
    NO_CAPACITY = "no capacity (503, retries exhausted)"
    AUTH = "auth"
    ERROR = "error"


@dataclass
class AccountFailure:
    email: str
    reason: AccountFailureReason
    message: str = ""

    def describe(self) -> str:
        if self.reason in (AccountFailureReason.RATE_LIMITED, AccountFailureReason.NO_CAPACITY):
            return f"{self.email}: {self.reason.value}"
        return f"{self.email}: {self.message or 'unknown error'}"


@dataclass
class QuotaInfo:
    """Quota of the image model for one account."""
    model_name: str
    remaining_fraction: float
    reset_time: str = ""
    reset_in: str = "N/A"

    @property
    def remaining_percent(self) -> float:
        return self.remaining_fraction * 100


@dataclass
class AccountGeneration:
    """Result of running the full pipeline with one account."""
    email: str
    execution: Optional[ExecutionResult] = None
    quota: Optional[QuotaInfo] = None
    failure: Optional[AccountFailure] = None

    @property
    def success(self) -> bool:
        return self.execution is not None and self.execution.success


@dataclass
class GenerationReport:
    """What the caller gets back from a logical call."""
    success: bool
    account_email: Optional[str] = None
    saved_paths: List[FilePath] = field(default_factory=list)
    mime_type: Optional[str] = None
    size_bytes: int = 0
    reference_count: int = 0
    reference_errors: List[str] = field(default_factory=list)
    quota: Optional[QuotaInfo] = None
    failures: List[AccountFailure] = field(default_factory=list)
    failure_kind: Optional[FailureKind] = None
    edit_mode: bool = False
    session_id: Optional[SessionId] = None
    total_accounts: int = 0


@dataclass
class AccountQuotaStatus:
    """One row of the quota report."""
    email: str
    quota: Optional[QuotaInfo]
    rate_limited: bool = False


@dataclass
class ModelListing:
    """Models the backend advertises for an account, keyed by model id."""
    models: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def quota_for(self, model_id: str) -> Optional[Dict[str, Any]]:
        info = self.models.get(model_id) or {}
        return info.get("quotaInfo")
