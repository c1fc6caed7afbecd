"""Placeholder resolution for certificate text.

Template text embeds tokens like ``[NAMA_PESERTA]``. Resolution is a single
left-to-right regex pass; each token is looked up once, so a substituted
value that itself contains brackets is never re-expanded.

Tokens that are not recognised, or whose value is missing from the binding,
are left in place verbatim so the template author sees them.
"""

import re
from collections.abc import Callable
from datetime import date

from schemas import CertificateTemplate, ParticipantBinding, ResolvedText

_TOKEN_PATTERN = re.compile(r"\[([A-Z_]+)\]")

INDONESIAN_MONTHS = (
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)

# Display values used when optional binding fields are empty
DEFAULT_CITY = "-"
DEFAULT_ORGANIZER = "Event Organizer"


def format_indonesian_date(value: date) -> str:
    """10 Januari 2025"""
    return f"{value.day} {INDONESIAN_MONTHS[value.month - 1]} {value.year}"


def _date_or_none(value: date | None) -> str | None:
    return format_indonesian_date(value) if value is not None else None


def _text_or_none(value: str) -> str | None:
    return value or None


PLACEHOLDERS: dict[str, tuple[str, Callable[[ParticipantBinding], str | None]]] = {
    "NAMA_PESERTA": (
        "Nama lengkap peserta",
        lambda b: _text_or_none(b.full_name),
    ),
    "EMAIL_PESERTA": (
        "Email peserta",
        lambda b: b.email,
    ),
    "NAMA_EVENT": (
        "Judul event",
        lambda b: _text_or_none(b.event_title),
    ),
    "TANGGAL_EVENT": (
        "Tanggal event (format Indonesia)",
        lambda b: _date_or_none(b.event_date),
    ),
    "TANGGAL_TERBIT": (
        "Tanggal sertifikat diterbitkan",
        lambda b: _date_or_none(b.issue_date),
    ),
    "KOTA_EVENT": (
        "Kota / lokasi event",
        lambda b: b.event_city or DEFAULT_CITY,
    ),
    "NOMOR_SERTIFIKAT": (
        "Nomor unik sertifikat",
        lambda b: _text_or_none(b.certificate_number),
    ),
    "PENYELENGGARA": (
        "Nama penyelenggara / organizer",
        lambda b: b.organizer_name or DEFAULT_ORGANIZER,
    ),
}

# Fixed sample used by the live preview when no participant is supplied
SAMPLE_BINDING = ParticipantBinding(
    event_id=0,
    participant_id=0,
    full_name="Nama Peserta",
    email="peserta@example.com",
    event_title="Contoh Event",
    event_date=date(2025, 1, 10),
    event_city="Jakarta",
    organizer_name="Event Organizer",
    certificate_number="EVT-0000-0000-0000",
    issue_date=date(2025, 1, 10),
)


def placeholder_values(binding: ParticipantBinding) -> dict[str, str]:
    """Every token that has a value for this binding."""
    values = {}
    for token, (_, getter) in PLACEHOLDERS.items():
        value = getter(binding)
        if value is not None:
            values[token] = value
    return values


def resolve(text: str, binding: ParticipantBinding) -> str:
    """Substitute known tokens in ``text``; never raises."""
    if not text or "[" not in text:
        return text

    values = placeholder_values(binding)

    def _replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return _TOKEN_PATTERN.sub(_replace, text)


def resolve_template_text(
    template: CertificateTemplate, binding: ParticipantBinding
) -> ResolvedText:
    """Resolve every text region of the template for one participant.

    An empty subtitle stays empty; the renderer substitutes the
    certificate-type default.
    """
    return ResolvedText(
        title=resolve(template.title, binding),
        subtitle=resolve(template.subtitle, binding),
        presented_text=resolve(template.presented_text, binding),
        recipient_name=binding.full_name or "[NAMA_PESERTA]",
        body=resolve(template.body_content, binding),
        footer=resolve(template.footer_text, binding),
        signature=resolve(template.signature_text, binding),
    )


def placeholder_catalog() -> list[dict[str, str]]:
    """Tokens with their descriptions, for the template editor."""
    return [
        {"token": f"[{token}]", "description": description}
        for token, (description, _) in PLACEHOLDERS.items()
    ]
