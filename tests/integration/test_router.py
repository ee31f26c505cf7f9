"""Integration tests for command dispatch through the Router."""

from __future__ import annotations

from typing import TYPE_CHECKING

from requestflow.models.entities import FlowState, RequestStatus
from requestflow.protocols import CAPABILITY_LIST
from requestflow.router import GENERIC_FAILURE_REPLY

if TYPE_CHECKING:
    import pytest

    from requestflow.models.entities import Contribution, LibraryItem
    from requestflow.router import Router
    from requestflow.state import AppState
    from tests.conftest import RecordingChannel


class TestDispatch:
    async def test_unknown_command_is_not_handled(
        self, router: Router, make_command, channel: RecordingChannel
    ) -> None:
        assert await router.dispatch(make_command("bogus 1"), channel) is False
        assert channel.replies == []

    async def test_prefix_and_aliases_resolve(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        assert await router.dispatch(make_command("/request Naruto"), channel) is True
        assert await router.dispatch(make_command("pedido Bleach"), channel) is True
        assert await router.dispatch(make_command("PEDIDOS"), channel) is True
        titles = [request.title for request in await app_state.repos.requests.list()]
        assert titles == ["Naruto", "Bleach"]
        assert "Requests:" in channel.replies[-1]

    async def test_command_names(self, router: Router) -> None:
        assert "request" in router.command_names
        assert "pedido" not in router.command_names

    async def test_validation_error_becomes_one_reply(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request cap 10"), channel)
        assert len(channel.replies) == 1
        assert "no title" in channel.replies[0]
        assert await app_state.repos.requests.list() == []

    async def test_missing_arguments(
        self, router: Router, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("viewrequest"), channel)
        assert channel.replies[0].startswith("Missing arguments.")
        assert "/viewrequest <id>" in channel.replies[0]

    async def test_bad_request_id(
        self, router: Router, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("cancelrequest abc"), channel)
        assert "'abc' is not a request id." in channel.replies[0]

    async def test_unexpected_error_is_contained(
        self,
        router: Router,
        app_state: AppState,
        make_command,
        channel: RecordingChannel,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def explode() -> list:
            raise RuntimeError("boom")

        monkeypatch.setattr(app_state.machine, "list_open", explode)
        assert await router.dispatch(make_command("requests"), channel) is True
        assert channel.replies == [GENERIC_FAILURE_REPLY]


class TestDuplicateSuppression:
    async def test_redelivered_create_yields_one_audit_entry(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        command = make_command("request One Piece", message_id="wamid-1")
        await router.dispatch(command, channel)
        await router.dispatch(command, channel)

        requests = await app_state.repos.requests.list()
        assert len(requests) == 1
        assert len(requests[0].audit_log) == 1

    async def test_redelivered_vote_counts_once(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request One Piece", message_id="m1"), channel)
        await router.dispatch(make_command("voterequest 1", message_id="m2"), channel)
        await router.dispatch(make_command("voterequest 1", message_id="m2"), channel)
        await router.dispatch(make_command("voterequest 1", message_id="m3"), channel)

        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.votes == 1
        assert "already voted" in channel.replies[-1]


class TestAuthorization:
    async def test_stranger_cannot_cancel(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request One Piece"), channel)
        await router.dispatch(
            make_command("cancelrequest 1", requester_id="bob", scope="dm-bob"), channel
        )
        assert channel.replies[-1].startswith("You cannot change request #1.")
        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.status == RequestStatus.PENDING

    async def test_requester_from_another_scope_cannot_cancel(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request One Piece"), channel)
        await router.dispatch(
            make_command("cancelrequest 1", scope="grp-1", group=True), channel
        )
        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.status == RequestStatus.PENDING

    async def test_group_moderator_can_cancel(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request One Piece", scope="grp-1", group=True), channel)
        await router.dispatch(
            make_command(
                "cancelrequest 1", requester_id="carol", scope="grp-1", group=True, elevated=True
            ),
            channel,
        )
        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.status == RequestStatus.CANCELLED

    async def test_owner_can_change_status_anywhere(
        self, router: Router, app_state: AppState, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request One Piece"), channel)
        await router.dispatch(
            make_command("requeststatus 1 en_proceso", requester_id="owner", scope="dm-owner"),
            channel,
        )
        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.status == RequestStatus.IN_PROGRESS

    async def test_unknown_request_is_reported_before_authorization(
        self, router: Router, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("cancelrequest 9"), channel)
        assert channel.replies[0].startswith("Request #9 does not exist.")


class TestConversation:
    async def test_rows_carry_commands_that_drive_the_flow(
        self,
        router: Router,
        app_state: AppState,
        seed,
        one_piece_library: list[LibraryItem],
        make_command,
        channel: RecordingChannel,
    ) -> None:
        await seed(*one_piece_library)
        await router.dispatch(make_command("request One Piece"), channel)
        # No widgets: the chooser arrives as text listing each row's command
        assert "/seasons 1 1" in channel.text

        await router.dispatch(make_command("seasons 1 1"), channel)
        await router.dispatch(make_command("chapters 1 1 1"), channel)
        assert "/select 1 library 2" in channel.text

        await router.dispatch(make_command("select 1 library 2"), channel)
        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.status == RequestStatus.COMPLETED
        assert channel.replies[-1] == "Request #1 resolved with your selection: One Piece"

    async def test_list_widget_is_used_when_advertised(
        self,
        router: Router,
        seed,
        one_piece_library: list[LibraryItem],
        make_command,
        channel: RecordingChannel,
    ) -> None:
        channel.capabilities = frozenset({CAPABILITY_LIST})
        await seed(*one_piece_library)
        await router.dispatch(make_command("request One Piece"), channel)
        assert len(channel.lists) == 1
        assert len(channel.lists[0].rows) == 3

    async def test_confirmation_round_trip(
        self,
        router: Router,
        app_state: AppState,
        seed,
        one_piece_library: list[LibraryItem],
        make_command,
        channel: RecordingChannel,
    ) -> None:
        await seed(*one_piece_library)
        await router.dispatch(make_command("request One Piece"), channel)
        await router.dispatch(make_command("select 1 library 4"), channel)
        assert "/confirm 1 yes" in channel.replies[-1]

        await router.dispatch(make_command("confirmarpedido 1 si"), channel)
        request = await app_state.repos.requests.get(1)
        assert request is not None
        assert request.flow_state == FlowState.COMPLETED

    async def test_other_content_types_are_browsed_separately(
        self,
        router: Router,
        seed,
        one_piece_library: list[LibraryItem],
        make_command,
        channel: RecordingChannel,
    ) -> None:
        await seed(*one_piece_library)
        await router.dispatch(make_command("request One Piece"), channel)
        await router.dispatch(make_command("seasons 1 4"), channel)
        assert "/types 1 4 illustration" in channel.replies[-1]

        await router.dispatch(make_command("pedidoextrastipo 1 4 ilustraciones"), channel)
        assert "One Piece Color Walk: Illustrations" in channel.replies[-1]
        assert "/select 1 library 4" in channel.replies[-1]

        await router.dispatch(make_command("types 1 4"), channel)
        assert channel.replies[-1].startswith("Missing arguments.")

    async def test_terminal_request_gets_idempotent_reply(
        self,
        router: Router,
        app_state: AppState,
        seed,
        naruto_contribution: Contribution,
        make_command,
        channel: RecordingChannel,
    ) -> None:
        await seed(naruto_contribution)
        await router.dispatch(make_command("request Naruto | cap 5"), channel)
        before = await app_state.repos.requests.get(1)
        assert before is not None

        await router.dispatch(make_command("cancelrequest 1"), channel)
        assert channel.replies[-1] == "Request #1 is already completed."

        after = await app_state.repos.requests.get(1)
        assert after is not None
        assert after.audit_log == before.audit_log

    async def test_view_and_my_requests(
        self, router: Router, make_command, channel: RecordingChannel
    ) -> None:
        await router.dispatch(make_command("request One Piece | high"), channel)
        await router.dispatch(make_command("viewrequest #1"), channel)
        assert "Priority: high" in channel.replies[-1]

        await router.dispatch(make_command("myrequests"), channel)
        assert channel.replies[-1].startswith("Your requests:")

        await router.dispatch(make_command("myrequests", requester_id="bob"), channel)
        assert channel.replies[-1] == "You have no requests yet."
