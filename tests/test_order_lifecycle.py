"""
Tests for the order lifecycle: assignment, refusals, completion and corrections.
"""
import pytest
from sqlalchemy import select

from domain.entity.notificationentity import NotificationType
from domain.entity.orderentity import ASSIGNED_STATUSES, OrderStatus
from domain.exceptions import AccessDeniedError, InvalidStateError, NotFoundError
from infrastructure.repositiry.db_models import ChatORM, NotificationORM, OrderORM, ReplyORM
from infrastructure.services.order_service import OrderService
from infrastructure.services.reply_service import ReplyService


async def notification_types(session, account_id):
    result = await session.execute(
        select(NotificationORM.type).where(NotificationORM.account_id == account_id).order_by(NotificationORM.id)
    )
    return list(result.scalars().all())


async def assert_assignment_invariant(session):
    result = await session.execute(select(OrderORM).execution_options(populate_existing=True))
    for order in result.scalars().all():
        if order.performer_id is not None:
            assert order.status in ASSIGNED_STATUSES


@pytest.fixture
async def parties(make_customer, make_performer):
    customer_caller, customer = await make_customer()
    performer_caller, performer = await make_performer()
    return customer_caller, customer, performer_caller, performer


@pytest.fixture
def orders(session, dispatcher):
    return OrderService(session, dispatcher)


@pytest.fixture
def replies(session, dispatcher):
    return ReplyService(session, dispatcher)


class TestFullScenario:
    """Create, reply, assign, finish, confirm and clean up."""

    async def test_happy_path(self, session, parties, orders, replies, order_data):
        customer_caller, customer, performer_caller, performer = parties

        order = await orders.create_order(customer_caller, order_data)
        assert order.status == OrderStatus.ACTIVE
        assert order.performer_id is None

        reply = await replies.create_reply(performer_caller, order.id)
        assert reply.is_on_customer is False

        order = await orders.assign_performer(customer_caller, order.id, performer.id)
        assert order.performer_id == performer.id
        assert order.status == OrderStatus.IN_PROCESS
        assert order.start_time is not None
        reply_row = await session.get(ReplyORM, reply.id)
        assert reply_row.is_on_customer is True
        chat = (await session.execute(select(ChatORM))).scalar_one()
        assert chat.room_name == f"Order #{order.id}: Landing page"
        assert chat.customer_id == customer.id
        assert chat.performer_id == performer.id

        order = await orders.mark_task_done_by_performer(performer_caller, reply.id)
        assert order.status == OrderStatus.ON_CHECK
        assert reply_row.is_done_this_task is True

        order = await orders.confirm_order_done(customer_caller, order.id, done=True)
        assert order.status == OrderStatus.DONE
        assert order.end_time is not None
        assert reply_row.donned is True
        assert reply_row.is_done_this_task is False

        await replies.delete_completed_reply(performer_caller, reply.id)
        assert await session.get(ReplyORM, reply.id) is None

        assert await notification_types(session, customer_caller.account_id) == [
            NotificationType.REPLY, NotificationType.COMPLETED]
        assert await notification_types(session, performer_caller.account_id) == [NotificationType.ASSIGNED]
        await assert_assignment_invariant(session)

    async def test_completion_email_sent_to_customer(self, parties, orders, replies, order_data, email_sender):
        customer_caller, customer, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        await orders.mark_task_done_by_performer(performer_caller, reply.id)

        assert [mail["to"] for mail in email_sender.sent] == [customer.email]

    async def test_confirm_without_mark_done_notifies_once(self, session, parties, orders, replies, order_data):
        customer_caller, customer, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        await orders.confirm_order_done(customer_caller, order.id, done=True)
        await orders.confirm_order_done(customer_caller, order.id, done=True)

        types = await notification_types(session, customer_caller.account_id)
        assert types.count(NotificationType.COMPLETED) == 1


class TestAssignment:

    async def test_assign_requires_reply(self, parties, orders, order_data):
        customer_caller, _, _, performer = parties
        order = await orders.create_order(customer_caller, order_data)

        with pytest.raises(NotFoundError):
            await orders.assign_performer(customer_caller, order.id, performer.id)

    async def test_assign_second_performer_rejected(self, make_performer, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        other_caller, other = await make_performer("Oleg")
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await replies.create_reply(other_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        with pytest.raises(InvalidStateError):
            await orders.assign_performer(customer_caller, order.id, other.id)

    async def test_assignment_drops_competing_replies(self, session, make_performer, parties, orders, replies,
                                                      order_data):
        """Every performer who was not chosen loses the reply and hears about it once."""
        customer_caller, _, performer_caller, performer = parties
        second_caller, _ = await make_performer("Oleg")
        third_caller, _ = await make_performer("Ilya")
        order = await orders.create_order(customer_caller, order_data)
        chosen = await replies.create_reply(performer_caller, order.id)
        second = await replies.create_reply(second_caller, order.id)
        third = await replies.create_reply(third_caller, order.id)

        order = await orders.assign_performer(customer_caller, order.id, performer.id)

        assert order.reply_bind == 1
        assert await session.get(ReplyORM, chosen.id) is not None
        assert await session.get(ReplyORM, second.id) is None
        assert await session.get(ReplyORM, third.id) is None
        for loser in (second_caller, third_caller):
            assert await notification_types(session, loser.account_id) == [NotificationType.REFUSED]
        titles = await session.execute(
            select(NotificationORM.title).where(NotificationORM.account_id == second_caller.account_id))
        assert titles.scalar_one() == "Вас не выбрали"
        assert await notification_types(session, performer_caller.account_id) == [NotificationType.ASSIGNED]

    async def test_assign_same_performer_twice_is_noop(self, session, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        order = await orders.assign_performer(customer_caller, order.id, performer.id)

        assert order.status == OrderStatus.IN_PROCESS
        assert await notification_types(session, performer_caller.account_id) == [NotificationType.ASSIGNED]

    async def test_only_owner_assigns(self, make_customer, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        stranger, _ = await make_customer("Stranger")
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)

        with pytest.raises(AccessDeniedError):
            await orders.assign_performer(stranger, order.id, performer.id)

    async def test_admin_bypasses_ownership(self, admin, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)

        order = await orders.assign_performer(admin, order.id, performer.id)

        assert order.performer_id == performer.id


class TestRefusals:

    async def test_customer_refuses_performer(self, session, parties, orders, replies, order_data, email_sender):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        order = await orders.refuse_performer_by_customer(customer_caller, order.id)

        assert order.performer_id is None
        assert order.status == OrderStatus.ACTIVE
        assert order.reply_bind == 0
        assert await session.get(ReplyORM, reply.id) is None
        types = await notification_types(session, performer_caller.account_id)
        assert types.count(NotificationType.REFUSED) == 1
        assert email_sender.sent[-1]["to"] == performer.email
        await assert_assignment_invariant(session)

    async def test_refusal_reopens_order_for_new_replies(self, session, make_performer, parties, orders, replies,
                                                         order_data):
        customer_caller, _, performer_caller, performer = parties
        other_caller, _ = await make_performer("Oleg")
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await replies.create_reply(other_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        order = await orders.refuse_performer_by_customer(customer_caller, order.id)
        assert order.reply_bind == 0

        again = await replies.create_reply(other_caller, order.id)
        assert (await session.get(OrderORM, order.id)).reply_bind == 1
        assert again.order_id == order.id

    async def test_refuse_without_performer(self, parties, orders, order_data):
        customer_caller, *_ = parties
        order = await orders.create_order(customer_caller, order_data)

        with pytest.raises(InvalidStateError):
            await orders.refuse_performer_by_customer(customer_caller, order.id)

    async def test_performer_refuses_order(self, session, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        order = await orders.refuse_order_by_performer(performer_caller, order.id)

        assert order.performer_id is None
        assert order.status == OrderStatus.ACTIVE
        assert await session.get(ReplyORM, reply.id) is None
        types = await notification_types(session, customer_caller.account_id)
        assert NotificationType.REFUSED in types

    async def test_unassigned_performer_cannot_refuse(self, make_performer, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        other_caller, _ = await make_performer("Oleg")
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        with pytest.raises(AccessDeniedError):
            await orders.refuse_order_by_performer(other_caller, order.id)


class TestCompletion:

    async def test_mark_done_requires_assignment(self, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)

        with pytest.raises(InvalidStateError):
            await orders.mark_task_done_by_performer(performer_caller, reply.id)

    async def test_mark_done_by_stranger_denied(self, make_performer, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        other_caller, _ = await make_performer("Oleg")
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        with pytest.raises(AccessDeniedError):
            await orders.mark_task_done_by_performer(other_caller, reply.id)

    async def test_confirm_without_performer(self, parties, orders, order_data):
        customer_caller, *_ = parties
        order = await orders.create_order(customer_caller, order_data)

        with pytest.raises(InvalidStateError):
            await orders.confirm_order_done(customer_caller, order.id, done=True)

    async def test_on_check_flag(self, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        order = await orders.confirm_order_done(customer_caller, order.id, on_check=True)
        assert order.status == OrderStatus.ON_CHECK
        order = await orders.confirm_order_done(customer_caller, order.id, on_check=False)
        assert order.status == OrderStatus.IN_PROCESS

    async def test_done_order_cannot_be_reopened(self, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)
        await orders.confirm_order_done(customer_caller, order.id, done=True)

        with pytest.raises(InvalidStateError):
            await orders.confirm_order_done(customer_caller, order.id, done=False)
        with pytest.raises(InvalidStateError):
            await orders.refuse_performer_by_customer(customer_caller, order.id)


class TestCorrections:

    async def test_correction_returns_order_to_work(self, session, parties, orders, replies, order_data,
                                                    email_sender, tmp_path):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)
        await orders.mark_task_done_by_performer(performer_caller, reply.id)
        attachment = tmp_path / "notes.txt"
        attachment.write_text("fix the header")

        order = await orders.request_correction(customer_caller, order.id, performer.id, text="Поправьте шапку",
                                                attachment_path=str(attachment))

        assert order.status == OrderStatus.IN_PROCESS
        assert (await session.get(ReplyORM, reply.id)).is_done_this_task is False
        types = await notification_types(session, performer_caller.account_id)
        assert NotificationType.CORRECTION in types
        mail = email_sender.sent[-1]
        assert mail["to"] == performer.email
        assert mail["attachment"] == str(attachment)
        assert "Поправьте шапку" in mail["body"]

    async def test_correction_for_wrong_performer(self, make_performer, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        _, other = await make_performer("Oleg")
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)

        with pytest.raises(InvalidStateError):
            await orders.request_correction(customer_caller, order.id, other.id)


class TestVisibility:

    async def test_deactivated_order_hidden_from_listing(self, parties, orders, order_data):
        customer_caller, _, performer_caller, _ = parties
        order = await orders.create_order(customer_caller, order_data)

        await orders.deactivate_order(customer_caller, order.id)
        assert await orders.list_available_orders(performer_caller) == []
        with pytest.raises(NotFoundError):
            await orders.get_order_for_performer(performer_caller, order.id)

        await orders.reactivate_order(customer_caller, order.id)
        listed = await orders.list_available_orders(performer_caller)
        assert [o.id for o in listed] == [order.id]
        assert listed[0].has_replied is False

    async def test_has_replied_flag(self, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, _ = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)

        listed = await orders.list_available_orders(performer_caller)

        assert listed[0].has_replied is True
        assert listed[0].reply_bind == 1

    async def test_soft_deleted_order(self, session, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, _ = parties
        order = await orders.create_order(customer_caller, order_data)
        reply = await replies.create_reply(performer_caller, order.id)

        await orders.soft_delete_order(customer_caller, order.id)

        assert await orders.list_customer_orders(customer_caller) == []
        assert await orders.list_available_orders(performer_caller) == []
        assert await session.get(ReplyORM, reply.id) is None

    async def test_done_order_visible_to_performer_after_delete(self, parties, orders, replies, order_data):
        customer_caller, _, performer_caller, performer = parties
        order = await orders.create_order(customer_caller, order_data)
        await replies.create_reply(performer_caller, order.id)
        await orders.assign_performer(customer_caller, order.id, performer.id)
        await orders.confirm_order_done(customer_caller, order.id, done=True)

        await orders.soft_delete_order(customer_caller, order.id)

        seen = await orders.get_order_for_performer(performer_caller, order.id)
        assert seen.status == OrderStatus.DONE
        history = await replies.list_performer_replies(performer_caller, "history")
        assert [r.order_id for r in history] == [order.id]

    async def test_customer_search(self, parties, orders, order_data):
        customer_caller, *_ = parties
        await orders.create_order(customer_caller, order_data)
        await orders.create_order(customer_caller, order_data.model_copy(update={"title": "Telegram bot"}))

        found = await orders.list_customer_orders(customer_caller, search="telegram")

        assert [o.title for o in found] == ["Telegram bot"]
