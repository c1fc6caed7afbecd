"""Unit tests for services.registrations_service.

Tests cover:
- binding_from_payload field mapping and fallbacks
- listing eligible participants (status filtering, 404, bad ids)
- single participant lookup
- transport failures surface as RegistrationSourceUnavailableError
"""

import json
from datetime import date
from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from services import registrations_service
from services.contracts import RegistrationSourceUnavailableError
from services.registrations_service import HttpRegistrationSource, binding_from_payload

EVENT = {
    "id": 7,
    "title": "Tech Summit",
    "date": "2025-01-10T09:00:00Z",
    "city": "Bandung",
    "organizer": "Komunitas Cloud Indonesia",
}


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url="http://registrations.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def requests_seen() -> list[httpx.Request]:
    return []


@pytest.fixture
def serve(requests_seen):
    """Route registrations-service calls to ``handler`` for the test's duration."""
    patchers = []

    def _serve(handler):
        def _recording(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return handler(request)

        client = _mock_client(_recording)

        async def _get_client():
            return client

        patcher = patch(
            "services.registrations_service.get_registrations_client", _get_client
        )
        patcher.start()
        patchers.append(patcher)

    yield _serve
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def source() -> HttpRegistrationSource:
    return HttpRegistrationSource(["approved", "attended"])


@pytest.mark.unit
class TestBindingFromPayload:
    def test_maps_event_and_participant_fields(self):
        binding = binding_from_payload(
            7, EVENT, {"userId": "42", "fullName": "Ana", "email": "ana@example.com"}
        )

        assert binding.participant_id == 42
        assert binding.full_name == "Ana"
        assert binding.event_title == "Tech Summit"
        assert binding.event_date == date(2025, 1, 10)
        assert binding.event_city == "Bandung"
        assert binding.organizer_name == "Komunitas Cloud Indonesia"
        assert binding.missing_fields() == []

    def test_falls_back_to_alternate_keys(self):
        binding = binding_from_payload(
            7, {"name": "Meetup", "eventDate": "2024-08-17"}, {"id": 3, "name": "Budi"}
        )

        assert binding.full_name == "Budi"
        assert binding.event_title == "Meetup"
        assert binding.event_date == date(2024, 8, 17)

    def test_unparseable_date_becomes_missing(self):
        binding = binding_from_payload(
            7, {**EVENT, "date": "next tuesday"}, {"id": 1, "fullName": "Ana"}
        )

        assert binding.event_date is None
        assert binding.missing_fields() == ["eventDate"]

    @pytest.mark.parametrize("participant", [{}, {"id": None}, {"id": "abc"}])
    def test_participant_without_usable_id_is_dropped(self, participant):
        assert binding_from_payload(7, EVENT, participant) is None


@pytest.mark.unit
class TestListEligibleParticipants:
    async def test_returns_bindings_and_sends_status_filter(
        self, serve, source, requests_seen
    ):
        serve(
            lambda request: httpx.Response(
                200,
                json={
                    "event": EVENT,
                    "participants": [
                        {"id": 1, "fullName": "Ana", "status": "approved"},
                        {"id": 2, "fullName": "Budi", "status": "attended"},
                    ],
                },
            )
        )

        bindings = await source.list_eligible_participants(7)

        assert [b.participant_id for b in bindings] == [1, 2]
        assert all(b.event_title == "Tech Summit" for b in bindings)
        request = requests_seen[0]
        assert request.url.path == "/events/7/participants"
        assert request.url.params.get_list("status") == ["approved", "attended"]

    async def test_filters_ineligible_statuses(self, serve, source):
        serve(
            lambda request: httpx.Response(
                200,
                json={
                    "event": EVENT,
                    "participants": [
                        {"id": 1, "fullName": "Ana", "status": "approved"},
                        {"id": 2, "fullName": "Budi", "status": "pending"},
                        {"id": 3, "fullName": "Citra", "status": "rejected"},
                        {"id": 4, "fullName": "Dewi"},
                    ],
                },
            )
        )

        bindings = await source.list_eligible_participants(7)

        assert [b.participant_id for b in bindings] == [1, 4]

    async def test_skips_participants_without_id(self, serve, source):
        serve(
            lambda request: httpx.Response(
                200,
                json={"event": EVENT, "participants": [{"fullName": "?"}, {"id": 5}]},
            )
        )

        bindings = await source.list_eligible_participants(7)

        assert [b.participant_id for b in bindings] == [5]

    async def test_unknown_event_is_empty_roster(self, serve, source):
        serve(lambda request: httpx.Response(404, json={"detail": "Not found"}))

        assert await source.list_eligible_participants(99) == []

    async def test_unexpected_status_is_unavailable(self, serve, source):
        serve(lambda request: httpx.Response(403, json={"detail": "Forbidden"}))

        with pytest.raises(RegistrationSourceUnavailableError):
            await source.list_eligible_participants(7)


@pytest.mark.unit
class TestGetParticipant:
    async def test_returns_binding(self, serve, source, requests_seen):
        serve(
            lambda request: httpx.Response(
                200,
                content=json.dumps(
                    {
                        "event": EVENT,
                        "participant": {"id": 42, "fullName": "Ana", "status": "attended"},
                    }
                ),
                headers={"content-type": "application/json"},
            )
        )

        binding = await source.get_participant(7, 42)

        assert binding.participant_id == 42
        assert binding.full_name == "Ana"
        assert requests_seen[0].url.path == "/events/7/participants/42"

    async def test_unknown_participant_is_none(self, serve, source):
        serve(lambda request: httpx.Response(404))

        assert await source.get_participant(7, 42) is None

    async def test_ineligible_participant_is_none(self, serve, source):
        serve(
            lambda request: httpx.Response(
                200,
                json={"event": EVENT, "participant": {"id": 42, "status": "cancelled"}},
            )
        )

        assert await source.get_participant(7, 42) is None


@pytest.mark.unit
class TestUnavailable:
    async def test_server_errors_are_retried_then_surface(
        self, serve, source, requests_seen
    ):
        serve(lambda request: httpx.Response(503))

        with patch.object(
            registrations_service._get_with_retry.retry, "wait", wait_none()
        ):
            with pytest.raises(RegistrationSourceUnavailableError):
                await source.list_eligible_participants(7)

        assert len(requests_seen) == 3

    async def test_transport_error_surfaces(self, source):
        with patch(
            "services.registrations_service._get_with_retry",
            side_effect=httpx.ConnectError("connection refused"),
        ):
            with pytest.raises(RegistrationSourceUnavailableError) as exc_info:
                await source.get_participant(7, 1)

        assert "connection refused" in str(exc_info.value)
