import asyncio
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from common.core.config import BroadcastGroup
from common.core.exceptions import (
    ChannelDeliveryError,
    EndpointInvalidError,
    StorageError,
)
from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.document import Document, LineItem, Rejection
from packages.approvals.models.domain.enums import (
    ApprovalStage,
    DocumentType,
    Role,
    TransitionKind,
)
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.notifications.models.domain.dispatch_report import DeliveryOutcome
from packages.notifications.services.dispatch_service import NotificationDispatcher
from packages.notifications.services.recipient_directory import BroadcastDirectory

NOW = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def make_event(
    transition=TransitionKind.SUBMITTED,
    target_roles=(Role.CEO,),
    stage=ApprovalStage.PENDING_CEO,
    notify_owner_ids=(),
    previous_stage=None,
):
    document = Document(
        id="doc-1",
        document_type=DocumentType.EXIT_PERMIT,
        company="acme",
        sequence_number=12,
        stage=stage,
        requester="Sara Ahmadi",
        recipient="Pars Trading",
        line_items=[LineItem(name="Steel rods", requested_quantity=10, requested_weight=100)],
        rejection=(
            Rejection(reason="no", rejected_by="CEO", stage=ApprovalStage.PENDING_CEO, timestamp=NOW)
            if stage == ApprovalStage.REJECTED
            else None
        ),
        created_at=NOW,
        updated_at=NOW,
        version=1,
    )
    return WorkflowEvent(
        document=document,
        transition=transition,
        actor_name="Sara Ahmadi",
        target_roles=list(target_roles),
        notify_owner_ids=list(notify_owner_ids),
        previous_stage=previous_stage,
        occurred_at=NOW,
    )


def make_channel(channel_type: ChannelType, send=None):
    channel = MagicMock()
    channel.channel_type = channel_type
    channel.send = send or AsyncMock(return_value=None)
    return channel


class TestNotificationDispatcher:
    @pytest.fixture
    def telegram(self):
        return make_channel(ChannelType.TELEGRAM)

    @pytest.fixture
    def native_push(self):
        return make_channel(ChannelType.NATIVE_PUSH)

    @pytest.fixture
    def dispatcher(self, subscription_registry, telegram, native_push, mock_renderer):
        return NotificationDispatcher(
            registry=subscription_registry,
            channels={ChannelType.TELEGRAM: telegram, ChannelType.NATIVE_PUSH: native_push},
            renderer=mock_renderer,
            delivery_timeout_seconds=0.2,
            render_timeout_seconds=0.2,
            broadcasts=BroadcastDirectory(groups=[]),
        )

    async def test_no_subscriptions_is_empty_report(self, dispatcher, mock_renderer):
        report = await dispatcher.dispatch(make_event())

        assert report.attempts == []
        assert report.recipients == []
        assert report.has_transient_failures is False
        mock_renderer.render.assert_not_called()

    async def test_terminal_event_without_groups_notifies_nobody(
        self, dispatcher, subscription_registry, telegram
    ):
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)

        report = await dispatcher.dispatch(
            make_event(TransitionKind.REJECTED, target_roles=(), stage=ApprovalStage.REJECTED)
        )

        assert report.attempts == []
        telegram.send.assert_not_called()

    async def test_delivers_to_every_endpoint_of_every_holder(
        self, dispatcher, subscription_registry, telegram, native_push, mock_renderer
    ):
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)
        await subscription_registry.register("ceo-1", ChannelType.NATIVE_PUSH, "t1", Role.CEO)
        await subscription_registry.register("ceo-2", ChannelType.TELEGRAM, "2", Role.CEO)
        await subscription_registry.register(
            "manager-1", ChannelType.TELEGRAM, "3", Role.MANAGER
        )

        report = await dispatcher.dispatch(make_event())

        assert report.recipients == ["ceo-1", "ceo-2"]
        assert len(report.attempts) == 3
        assert report.delivered_count == 3
        assert telegram.send.await_count == 2
        assert native_push.send.await_count == 1
        assert {call.args[0] for call in telegram.send.await_args_list} == {"1", "2"}
        # One render shared by every channel
        mock_renderer.render.assert_awaited_once()
        message = telegram.send.await_args.args[1]
        assert message.attachment is not None
        assert "Number: 12" in message.caption
        assert report.artifact_rendered is True

    async def test_render_failure_falls_back_to_caption(
        self, dispatcher, subscription_registry, telegram, mock_renderer
    ):
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)
        mock_renderer.render.side_effect = RuntimeError("renderer crashed")

        report = await dispatcher.dispatch(make_event())

        assert report.delivered_count == 1
        assert report.artifact_rendered is False
        assert report.artifact_error == "renderer crashed"
        message = telegram.send.await_args.args[1]
        assert message.attachment is None
        assert message.caption

    async def test_render_timeout_falls_back_to_caption(
        self, dispatcher, subscription_registry, telegram, mock_renderer
    ):
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)

        async def slow_render(snapshot):
            await asyncio.sleep(5)

        mock_renderer.render.side_effect = slow_render

        report = await dispatcher.dispatch(make_event())

        assert report.delivered_count == 1
        assert "timed out" in report.artifact_error

    async def test_no_renderer(self, subscription_registry, telegram):
        dispatcher = NotificationDispatcher(
            registry=subscription_registry,
            channels={ChannelType.TELEGRAM: telegram},
            renderer=None,
        )
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)

        report = await dispatcher.dispatch(make_event())

        assert report.delivered_count == 1
        assert telegram.send.await_args.args[1].attachment is None

    async def test_invalid_endpoint_is_removed(
        self, dispatcher, subscription_registry, native_push
    ):
        await subscription_registry.register("ceo-1", ChannelType.NATIVE_PUSH, "dead", Role.CEO)
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)
        native_push.send.side_effect = EndpointInvalidError("unregistered")

        report = await dispatcher.dispatch(make_event())

        outcomes = {a.channel: a.outcome for a in report.attempts}
        assert outcomes == {
            ChannelType.NATIVE_PUSH: DeliveryOutcome.ENDPOINT_INVALID,
            ChannelType.TELEGRAM: DeliveryOutcome.DELIVERED,
        }
        remaining = await subscription_registry.list_by_owner("ceo-1")
        assert [s.channel for s in remaining] == [ChannelType.TELEGRAM]
        # Dead endpoints are not worth redelivering
        assert report.has_transient_failures is False

    async def test_slow_channel_times_out_without_blocking_others(
        self, dispatcher, subscription_registry, native_push, telegram
    ):
        await subscription_registry.register("ceo-1", ChannelType.NATIVE_PUSH, "t1", Role.CEO)
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)

        async def hang(endpoint, message):
            await asyncio.sleep(5)

        native_push.send.side_effect = hang

        report = await asyncio.wait_for(dispatcher.dispatch(make_event()), timeout=2)

        outcomes = {a.channel: a.outcome for a in report.attempts}
        assert outcomes[ChannelType.NATIVE_PUSH] == DeliveryOutcome.TIMED_OUT
        assert outcomes[ChannelType.TELEGRAM] == DeliveryOutcome.DELIVERED
        assert report.has_transient_failures is True
        # Timeouts keep the subscription
        assert len(await subscription_registry.list_by_owner("ceo-1")) == 2

    async def test_transient_failure(self, dispatcher, subscription_registry, telegram):
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)
        telegram.send.side_effect = ChannelDeliveryError("429 Too Many Requests")

        report = await dispatcher.dispatch(make_event())

        assert report.attempts[0].outcome == DeliveryOutcome.FAILED
        assert report.attempts[0].error == "429 Too Many Requests"
        assert report.has_transient_failures is True
        assert len(await subscription_registry.list_by_owner("ceo-1")) == 1

    async def test_unexpected_error_is_contained(
        self, dispatcher, subscription_registry, telegram
    ):
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)
        telegram.send.side_effect = KeyError("boom")

        report = await dispatcher.dispatch(make_event())

        assert report.attempts[0].outcome == DeliveryOutcome.FAILED

    async def test_unconfigured_channel_fails_attempt(
        self, dispatcher, subscription_registry
    ):
        await subscription_registry.register("ceo-1", ChannelType.WHATSAPP, "98912", Role.CEO)

        report = await dispatcher.dispatch(make_event())

        assert report.attempts[0].outcome == DeliveryOutcome.FAILED
        assert "not configured" in report.attempts[0].error

    async def test_store_failure_never_raises(self, telegram):
        registry = MagicMock()
        registry.list_by_role = AsyncMock(side_effect=StorageError("store down"))
        dispatcher = NotificationDispatcher(
            registry=registry, channels={ChannelType.TELEGRAM: telegram}
        )

        report = await dispatcher.dispatch(make_event())

        assert report.error == "store down"
        assert report.has_transient_failures is True
        telegram.send.assert_not_called()


EXIT_PERMIT_GROUP = BroadcastGroup(
    name="exit-permits",
    channel="telegram",
    endpoint="-1001",
    stages=["pending_security", "exited", "rejected", "deleted"],
    document_types=["exit_permit"],
)


class TestStageFollowers:
    @pytest.fixture
    def telegram(self):
        return make_channel(ChannelType.TELEGRAM)

    @pytest.fixture
    def dispatcher(self, subscription_registry, telegram):
        return NotificationDispatcher(
            registry=subscription_registry,
            channels={ChannelType.TELEGRAM: telegram},
            renderer=None,
            delivery_timeout_seconds=0.2,
            broadcasts=BroadcastDirectory(groups=[EXIT_PERMIT_GROUP]),
        )

    async def test_exit_reaches_group(self, dispatcher, subscription_registry, telegram):
        # Approvers of earlier stages are not told about the exit
        await subscription_registry.register("ceo-1", ChannelType.TELEGRAM, "1", Role.CEO)

        report = await dispatcher.dispatch(
            make_event(
                TransitionKind.ADVANCED,
                target_roles=(),
                stage=ApprovalStage.EXITED,
                previous_stage=ApprovalStage.PENDING_SECURITY,
            )
        )

        assert len(report.attempts) == 1
        attempt = report.attempts[0]
        assert (attempt.owner_id, attempt.broadcast) == ("exit-permits", True)
        assert attempt.outcome == DeliveryOutcome.DELIVERED
        endpoint, message = telegram.send.await_args.args
        assert endpoint == "-1001"
        assert message.caption.startswith("Goods have exited")

    async def test_rejection_reaches_requester_and_group(
        self, dispatcher, subscription_registry, telegram
    ):
        await subscription_registry.register(
            "requester-1", ChannelType.TELEGRAM, "55", Role.MANAGER
        )

        report = await dispatcher.dispatch(
            make_event(
                TransitionKind.REJECTED,
                target_roles=(),
                stage=ApprovalStage.REJECTED,
                notify_owner_ids=("requester-1",),
            )
        )

        assert report.recipients == ["requester-1"]
        assert report.delivered_count == 2
        assert {call.args[0] for call in telegram.send.await_args_list} == {"55", "-1001"}
        message = telegram.send.await_args.args[1]
        assert message.title == "Exit permit rejected"
        assert "Reason: no" in message.caption

    async def test_deletion_is_broadcast(self, dispatcher, telegram):
        report = await dispatcher.dispatch(
            make_event(
                TransitionKind.DELETED,
                target_roles=(),
                stage=ApprovalStage.PENDING_FACTORY,
            )
        )

        assert [a.owner_id for a in report.attempts] == ["exit-permits"]
        assert telegram.send.await_args.args[1].title == "Exit permit cancelled and deleted"

    async def test_group_only_follows_configured_stages(self, dispatcher, telegram):
        report = await dispatcher.dispatch(
            make_event(
                TransitionKind.ADVANCED,
                target_roles=(),
                stage=ApprovalStage.PENDING_FACTORY,
                previous_stage=ApprovalStage.PENDING_CEO,
            )
        )

        assert report.attempts == []
        telegram.send.assert_not_called()

    async def test_group_and_role_holders_both_notified(
        self, dispatcher, subscription_registry, telegram
    ):
        await subscription_registry.register(
            "head-1", ChannelType.TELEGRAM, "7", Role.SECURITY_HEAD
        )
        await subscription_registry.register(
            "guard-1", ChannelType.TELEGRAM, "8", Role.SECURITY_GUARD
        )

        report = await dispatcher.dispatch(
            make_event(
                TransitionKind.FINALIZED,
                target_roles=(Role.SECURITY_GUARD, Role.SECURITY_HEAD),
                stage=ApprovalStage.PENDING_SECURITY,
            )
        )

        assert report.recipients == ["guard-1", "head-1"]
        assert sorted(a.owner_id for a in report.attempts) == [
            "exit-permits",
            "guard-1",
            "head-1",
        ]

    async def test_dead_group_endpoint_is_kept(self, dispatcher, telegram):
        telegram.send.side_effect = EndpointInvalidError("chat not found")

        report = await dispatcher.dispatch(
            make_event(TransitionKind.ADVANCED, target_roles=(), stage=ApprovalStage.EXITED)
        )

        assert report.attempts[0].outcome == DeliveryOutcome.ENDPOINT_INVALID
        assert dispatcher.broadcasts.groups == [EXIT_PERMIT_GROUP]


class TestBroadcastDirectory:
    def test_filters_by_document_type(self):
        directory = BroadcastDirectory(groups=[EXIT_PERMIT_GROUP])
        event = make_event(TransitionKind.ADVANCED, stage=ApprovalStage.EXITED)
        payment = event.model_copy(
            update={
                "document": event.document.model_copy(
                    update={"document_type": DocumentType.PAYMENT_ORDER}
                )
            }
        )

        assert directory.groups_for(event) == [EXIT_PERMIT_GROUP]
        assert directory.groups_for(payment) == []

    def test_unknown_channel_is_ignored(self):
        directory = BroadcastDirectory(
            groups=[BroadcastGroup(name="fax", channel="fax", endpoint="1", stages=["exited"])]
        )

        assert directory.groups == []

    def test_defaults_to_settings(self):
        with patch(
            "packages.notifications.services.recipient_directory.settings"
        ) as mock_settings:
            mock_settings.notification_broadcast_groups = [EXIT_PERMIT_GROUP]

            assert BroadcastDirectory().groups == [EXIT_PERMIT_GROUP]
