"""Pydantic schemas for the certificate template and API request/response bodies.

Wire format is camelCase (``titleFontSize``); snake_case field names are
accepted on input as well.
"""

import re
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

FontFamily = Literal["serif", "sans-serif", "cursive", "monospace"]
BorderStyle = Literal["elegant", "simple", "double"]
LogoPosition = Literal["top-left", "top-center", "top-right", "hidden"]
LayoutStyle = Literal["classic", "modern"]
CertificateType = Literal["achievement", "participation", "completion"]

COLOR_PATTERN = re.compile(
    r"^(#(?:[0-9a-f]{3}|[0-9a-f]{6}|[0-9a-f]{8})"
    r"|rgba?\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*(?:,\s*(?:0|1|0?\.\d+)\s*)?\))$"
)

# C0 controls other than tab and newline; XML 1.0 (and so SVG) rejects them
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f]")


def strip_control_chars(value: str) -> str:
    return CONTROL_CHARS.sub("", value)


class CamelModel(BaseModel):
    """Base for every wire model: camelCase aliases, snake_case accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ============ Template ============


class CertificateTemplate(CamelModel):
    """A fully populated certificate template.

    Instances are only ever built by ``services.templates_service.normalize_template``
    (or from its output), so every field always holds a valid value. Text
    fields may contain ``[TOKEN]`` placeholders.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    # Text
    title: str = "CERTIFICATE"
    # Empty means "use the certificateType default" at render time
    subtitle: str = ""
    presented_text: str = "This certificate is proudly presented to"
    body_content: str = (
        "atas partisipasinya dalam [NAMA_EVENT] yang diselenggarakan pada "
        "[TANGGAL_EVENT]."
    )
    footer_text: str = "Diterbitkan pada [TANGGAL_TERBIT]"
    signature_text: str = "Event Organizer"

    # Typography
    title_font_size: int = Field(default=64, ge=32, le=96)
    subtitle_font_size: int = Field(default=24, ge=12, le=36)
    name_font_size: int = Field(default=48, ge=32, le=72)
    body_font_size: int = Field(default=16, ge=10, le=24)
    title_font_family: FontFamily = "serif"
    body_font_family: FontFamily = "serif"

    # Colors
    background_color: str = "#fefefe"
    primary_color: str = "#1a1a1a"
    accent_color: str = "#d4af37"
    text_color: str = "#4a4a4a"

    # Decoration
    border_style: BorderStyle = "elegant"
    border_width: int = Field(default=3, ge=1, le=8)
    show_corner_ornaments: bool = True
    show_top_flourish: bool = True
    show_bottom_flourish: bool = True
    name_underline: bool = True
    show_seal: bool = False

    # Layout
    title_spacing: int = Field(default=8, ge=0, le=30)
    name_spacing: int = Field(default=12, ge=0, le=30)
    content_spacing: int = Field(default=8, ge=0, le=30)
    logo_position: LogoPosition = "top-center"
    layout_style: LayoutStyle = "classic"
    certificate_type: CertificateType = "achievement"

    @field_validator(
        "background_color", "primary_color", "accent_color", "text_color"
    )
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not COLOR_PATTERN.match(v):
            raise ValueError(f"Invalid color value: {v!r}")
        return v

    def to_wire(self) -> dict[str, Any]:
        """camelCase JSON form, as stored and returned by the API."""
        return self.model_dump(by_alias=True)


# ============ Participant binding ============


def _coerce_date(value: Any) -> Any:
    """Accept dates, datetimes and ISO strings with or without a time part."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
        return value[:10]
    return value


class ParticipantBinding(CamelModel):
    """The per-participant values placeholders resolve against.

    ``certificate_number`` and ``issue_date`` are filled in by the generator;
    everything else comes from the registrations service.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    event_id: int
    participant_id: int
    full_name: str = ""
    email: str = ""
    event_title: str = ""
    event_date: date | None = None
    event_city: str = ""
    organizer_name: str = ""
    certificate_number: str = ""
    issue_date: date | None = None

    @field_validator("event_date", "issue_date", mode="before")
    @classmethod
    def validate_dates(cls, v: Any) -> Any:
        return _coerce_date(v)

    @field_validator(
        "full_name",
        "email",
        "event_title",
        "event_city",
        "organizer_name",
        "certificate_number",
        mode="before",
    )
    @classmethod
    def validate_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return " ".join(strip_control_chars(str(v)).split())

    def missing_fields(self) -> list[str]:
        """Wire names of the required fields that have no value."""
        missing = []
        if not self.full_name:
            missing.append("fullName")
        if not self.event_title:
            missing.append("eventTitle")
        if self.event_date is None:
            missing.append("eventDate")
        return missing


class ResolvedText(CamelModel):
    """Every text region of a certificate with placeholders substituted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    title: str
    subtitle: str
    presented_text: str
    recipient_name: str
    body: str
    footer: str
    signature: str


# ============ API ============


class TemplateResponse(CamelModel):
    """The effective template for an event (or the organisation default)."""

    template: dict[str, Any]
    event_id: int | None = None
    unknown_placeholders: list[str] = Field(default_factory=list)


class PlaceholderResponse(CamelModel):
    token: str
    description: str


class PreviewRequest(CamelModel):
    """Live preview input: an unsaved template and an optional sample participant."""

    template: dict[str, Any] = Field(default_factory=dict)
    sample: ParticipantBinding | None = None
    width: int | None = Field(default=None, ge=100, le=4000)


class PreviewResponse(CamelModel):
    render_spec: dict[str, Any]
    resolved: ResolvedText
    unknown_placeholders: list[str] = Field(default_factory=list)


class GenerateRequest(CamelModel):
    """Request to generate (or regenerate) one participant's certificate."""

    event_id: int = Field(ge=1)
    participant_id: int = Field(ge=1)


class BulkGenerateRequest(CamelModel):
    """Request to generate certificates for every eligible participant."""

    event_id: int = Field(ge=1)
    # Stop dispatching after this many seconds; None uses the configured default
    deadline_seconds: float | None = Field(default=None, gt=0, le=3600)


class CertificateResponse(CamelModel):
    """A generated certificate's record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    event_id: int
    participant_id: int
    certificate_number: str
    certificate_type: str
    state: str
    recipient_name: str
    recipient_email: str
    content_type: str
    byte_size: int
    sha256: str
    generated_at: datetime
    issued_at: datetime | None = None


class BulkFailureResponse(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    participant_id: int
    reason: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class BulkResultResponse(CamelModel):
    """Summary of a bulk run; ``failed`` lists what an operator can re-run."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    event_id: int
    eligible: int
    generated: int
    failed: list[BulkFailureResponse]
    skipped: list[int]
    cancelled: bool
