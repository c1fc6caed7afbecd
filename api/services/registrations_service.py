"""Participant lookups against the events/registrations service.

The registrations service decides who is eligible; this module only asks it
and turns its payloads into ``ParticipantBinding`` objects.

Endpoints used:
- GET /events/{event_id}/participants?status=approved&status=attended
- GET /events/{event_id}/participants/{participant_id}

Both return ``{"event": {...}, ...}`` with the participant(s) alongside.

RETRY: 3 attempts with exponential backoff for transient failures.
CIRCUIT BREAKER: opens after 5 consecutive failures, recovers after 60 seconds.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

import httpx
from circuitbreaker import CircuitBreakerError, circuit
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.http_client import get_registrations_client
from schemas import ParticipantBinding
from services.contracts import RegistrationSourceUnavailableError

logger = logging.getLogger(__name__)


class RegistrationsServerError(Exception):
    """5xx or 429 from the registrations service (retriable)."""


RETRIABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.RequestError,
    httpx.TimeoutException,
    RegistrationsServerError,
)


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_date(value: Any) -> date | None:
    """ISO date or datetime string -> date; anything unparseable -> None.

    A bad date surfaces later as a missing eventDate for that participant
    instead of failing the whole roster.
    """
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def binding_from_payload(
    event_id: int, event: Mapping[str, Any], participant: Mapping[str, Any]
) -> ParticipantBinding | None:
    """Build a binding from registrations-service JSON; None if it has no id."""
    participant_id = _first(participant, "participantId", "userId", "user_id", "id")
    try:
        participant_id = int(participant_id)
    except (TypeError, ValueError):
        logger.warning(
            "registrations.participant.invalid_id",
            extra={"event_id": event_id, "participant_id": participant_id},
        )
        return None

    return ParticipantBinding(
        event_id=event_id,
        participant_id=participant_id,
        full_name=_first(participant, "fullName", "full_name", "name") or "",
        email=_first(participant, "email") or "",
        event_title=_first(event, "title", "eventTitle", "name") or "",
        event_date=_parse_date(_first(event, "date", "eventDate", "event_date")),
        event_city=_first(event, "city", "location", "eventCity") or "",
        organizer_name=_first(
            event, "organizer", "organizerName", "organizer_name"
        )
        or "",
    )


async def _get(path: str, params: Sequence[tuple[str, str]] = ()) -> httpx.Response:
    client = await get_registrations_client()
    response = await client.get(path, params=list(params))

    if response.status_code >= 500 or response.status_code == 429:
        raise RegistrationsServerError(
            f"Registrations service returned {response.status_code}"
        )
    return response


@circuit(
    failure_threshold=5,
    recovery_timeout=60,
    expected_exception=RETRIABLE_EXCEPTIONS,
    name="registrations_circuit",
)
@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=0.5, max=10),
    retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
    reraise=True,
)
async def _get_with_retry(
    path: str, params: Sequence[tuple[str, str]] = ()
) -> httpx.Response:
    return await _get(path, params)


class HttpRegistrationSource:
    """RegistrationSource backed by the registrations service HTTP API."""

    def __init__(self, eligible_statuses: Sequence[str]) -> None:
        self._statuses = tuple(eligible_statuses)

    async def _fetch(
        self, path: str, params: Sequence[tuple[str, str]] = ()
    ) -> httpx.Response:
        try:
            return await _get_with_retry(path, params)
        except CircuitBreakerError as e:
            logger.warning("registrations.circuit.open", extra={"path": path})
            raise RegistrationSourceUnavailableError(
                "Registrations service temporarily unavailable"
            ) from e
        except RETRIABLE_EXCEPTIONS as e:
            logger.warning(
                "registrations.request.failed",
                extra={"path": path, "error": str(e)},
            )
            raise RegistrationSourceUnavailableError(
                f"Registrations service unavailable: {e}"
            ) from e

    async def list_eligible_participants(
        self, event_id: int
    ) -> list[ParticipantBinding]:
        response = await self._fetch(
            f"/events/{event_id}/participants",
            [("status", status) for status in self._statuses],
        )
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise RegistrationSourceUnavailableError(
                f"Registrations service returned {response.status_code}"
            )

        payload = response.json()
        event = payload.get("event") or {}
        bindings = []
        for participant in payload.get("participants") or []:
            # The service filters by status; double-check when it reports one
            status = participant.get("status")
            if status is not None and status not in self._statuses:
                continue
            binding = binding_from_payload(event_id, event, participant)
            if binding is not None:
                bindings.append(binding)

        logger.info(
            "registrations.participants.listed",
            extra={"event_id": event_id, "count": len(bindings)},
        )
        return bindings

    async def get_participant(
        self, event_id: int, participant_id: int
    ) -> ParticipantBinding | None:
        response = await self._fetch(
            f"/events/{event_id}/participants/{participant_id}"
        )
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise RegistrationSourceUnavailableError(
                f"Registrations service returned {response.status_code}"
            )

        payload = response.json()
        participant = payload.get("participant") or {}
        status = participant.get("status")
        if status is not None and status not in self._statuses:
            logger.info(
                "registrations.participant.not_eligible",
                extra={
                    "event_id": event_id,
                    "participant_id": participant_id,
                    "status": status,
                },
            )
            return None
        return binding_from_payload(event_id, payload.get("event") or {}, participant)
