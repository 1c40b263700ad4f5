"""Data model shared by the CEAC automation engine, stores and API."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Mapping

DEFAULT_ADVANCE_LOCATOR = "#ctl00_SiteContentPlaceHolder_UpdateButton3"


class JobStatus(StrEnum):
    """Lifecycle of one submission attempt."""

    PENDING = "pending"
    RUNNING = "running"
    WAITING_FOR_CAPTCHA = "waiting_for_captcha"
    FAILED = "failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.FAILED, JobStatus.COMPLETED, JobStatus.CANCELLED}
)

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset(
        {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.RUNNING: frozenset(
        {
            JobStatus.WAITING_FOR_CAPTCHA,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.WAITING_FOR_CAPTCHA: frozenset(
        {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return whether ``current -> target`` respects the monotonic lifecycle."""
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


class ProgressStatus(StrEnum):
    """Status recorded on individual progress updates."""

    PENDING = "pending"
    RUNNING = "running"
    WAITING_FOR_CAPTCHA = "waiting_for_captcha"
    CAPTCHA_SOLVED = "captcha_solved"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FieldType(StrEnum):
    """Kind of form control a mapping targets."""

    TEXT = "text"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    DATE_SPLIT = "date_split"
    TEXTAREA = "textarea"


class DateComponent(StrEnum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


class DateRepresentation(StrEnum):
    """How a date component is rendered for its control."""

    NUMERIC = "numeric"
    ZERO_PADDED = "zero_padded"
    MONTH_ABBREV = "month_abbrev"


@dataclass(frozen=True)
class DatePart:
    """One control of a split date (day dropdown, month dropdown, year box)."""

    locator: str
    component: DateComponent
    representation: DateRepresentation = DateRepresentation.NUMERIC
    control: FieldType = FieldType.SELECT


@dataclass(frozen=True)
class ConditionalRule:
    """Reveal ``revealed_fields`` when the trigger resolves to ``trigger_value``.

    With ``source_key`` set, the value compared is the form value stored under
    that key (a separately selected "specify" value) instead of the value just
    applied to the trigger field.
    """

    trigger_value: str
    revealed_fields: tuple["FieldMapping", ...]
    source_key: str | None = None


@dataclass(frozen=True)
class FieldMapping:
    """Binding of one logical form-data key to one control on the page."""

    key: str
    locator: str
    field_type: FieldType
    value_map: Mapping[str, str] = field(default_factory=dict)
    use_country_table: bool = False
    conditionals: tuple[ConditionalRule, ...] = ()
    date_parts: tuple[DatePart, ...] = ()
    triggers_postback: bool = False
    required: bool = False


@dataclass(frozen=True)
class KnownError:
    """Step-specific error element and the message it stands for."""

    locator: str
    message: str


@dataclass(frozen=True)
class StepDefinition:
    """Static description of one page of the application flow."""

    number: int
    key: str
    label: str
    fields: tuple[FieldMapping, ...] = ()
    marker: str = ""
    page_hint: str = ""
    advance_locator: str = DEFAULT_ADVANCE_LOCATOR
    known_errors: tuple[KnownError, ...] = ()
    captcha_checkpoint: bool = False


@dataclass(frozen=True)
class FillAction:
    """A single driver interaction produced by the resolver or the expander."""

    key: str
    locator: str
    field_type: FieldType
    value: str | bool
    logical_value: Any
    mapping: FieldMapping
    parent_key: str | None = None
    revealed: bool = False


@dataclass
class FillPlan:
    actions: list[FillAction] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def __iter__(self):
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)


@dataclass
class FillReport:
    """Outcome of applying a fill plan to the page."""

    applied: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped_descendants: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.applied) + len(self.failed)


class ValidationVerdict(StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SAME_STEP = "same_step"


@dataclass(frozen=True)
class ValidationOutcome:
    """Classification of the page reached after an advance interaction."""

    verdict: ValidationVerdict
    errors: tuple[str, ...] = ()
    source: str = ""

    @property
    def accepted(self) -> bool:
        return self.verdict == ValidationVerdict.ACCEPTED


@dataclass(frozen=True)
class Job:
    """One submission attempt for one applicant."""

    job_id: str
    user_id: str
    embassy: str
    form_data: Mapping[str, Any]
    status: JobStatus = JobStatus.PENDING
    created_at: int = 0


@dataclass(frozen=True)
class CaptchaChallenge:
    challenge_id: str
    job_id: str
    image_url: str
    created_at: int
    expires_at: int
    solved: bool = False
    solution: str | None = None
    superseded: bool = False


@dataclass(frozen=True)
class CaptchaResult:
    """Accepted CAPTCHA resolution returned to the orchestrator."""

    challenge_id: str
    solution: str
    rejections: int = 0
    timer_resets: int = 0


@dataclass(frozen=True)
class ArtifactRef:
    artifact_id: str
    public_url: str


@dataclass
class ProgressUpdate:
    """Append-only progress record."""

    job_id: str
    step_name: str
    status: ProgressStatus | str
    message: str
    percentage: int
    step_number: int | None = None
    captcha_image: str | None = None
    needs_captcha: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: int = 0
    update_id: int | None = None


@dataclass
class TerminalResult:
    """Final outcome of ``StepOrchestrator.run``."""

    job_id: str
    status: JobStatus
    completed_steps: int
    error_code: str = ""
    message: str = ""
    application_id: str = ""
    screenshot_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = str(self.status)
        return payload
