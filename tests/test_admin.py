"""
Tests for administrator moderation: order review, accounts, removals and counters.
"""
import pytest
from sqlalchemy import select

from domain.entity.notificationentity import NotificationType
from domain.entity.orderentity import OrderStatus
from domain.entity.userentity import UserRole
from domain.exceptions import AccessDeniedError, InvalidStateError, NotFoundError
from infrastructure.repositiry.db_models import AccountORM, NotificationORM, ReplyORM, WorkExperienceORM
from infrastructure.services.admin_service import AdminService
from infrastructure.services.auth_service import AuthService, hash_password
from infrastructure.services.order_service import OrderService
from infrastructure.services.reply_service import ReplyService
from infrastructure.services.review_service import ReviewService


async def notifications_of(session, account_id):
    result = await session.execute(
        select(NotificationORM).where(NotificationORM.account_id == account_id).order_by(NotificationORM.id)
    )
    return result.scalars().all()


@pytest.fixture
def moderated(session, dispatcher):
    return OrderService(session, dispatcher, moderation=True)


@pytest.fixture
def orders_without_review(session, dispatcher):
    return OrderService(session, dispatcher, moderation=False)


@pytest.fixture
def admin_service(session, dispatcher):
    return AdminService(session, dispatcher)


class TestOrderModeration:

    async def test_new_order_waits_for_review(self, session, dispatcher, admin, make_customer, make_performer,
                                              moderated, order_data):
        customer_caller, _ = await make_customer()
        performer_caller, _ = await make_performer()

        order = await moderated.create_order(customer_caller, order_data)

        assert order.status == OrderStatus.ON_REVIEW
        assert await moderated.list_available_orders(performer_caller) == []
        with pytest.raises(InvalidStateError):
            await ReplyService(session, dispatcher).create_reply(performer_caller, order.id)
        [note] = await notifications_of(session, admin.account_id)
        assert note.type == NotificationType.ORDER_REVIEW

    async def test_approve_lists_order(self, session, admin, make_customer, make_performer, moderated,
                                       admin_service, order_data):
        customer_caller, _ = await make_customer()
        performer_caller, _ = await make_performer()
        order = await moderated.create_order(customer_caller, order_data)
        assert [o.id for o in await admin_service.list_orders_on_review(admin)] == [order.id]

        approved = await admin_service.approve_order(admin, order.id)

        assert approved.status == OrderStatus.ACTIVE
        assert await admin_service.list_orders_on_review(admin) == []
        assert [o.id for o in await moderated.list_available_orders(performer_caller)] == [order.id]
        [note] = await notifications_of(session, customer_caller.account_id)
        assert note.type == NotificationType.ORDER_APPROVED

    async def test_reject_with_reason_then_resubmit(self, session, admin, make_customer, moderated, admin_service,
                                                    order_data):
        customer_caller, _ = await make_customer()
        order = await moderated.create_order(customer_caller, order_data)

        rejected = await admin_service.reject_order(admin, order.id, "Нет описания")

        assert rejected.status == OrderStatus.REJECTED
        [note] = await notifications_of(session, customer_caller.account_id)
        assert note.type == NotificationType.ORDER_REJECTED
        assert note.message.endswith("Причина: Нет описания")

        fixed = await moderated.resubmit_order(
            customer_caller, order.id, order_data.model_copy(update={"description": "Одностраничный сайт"}))
        assert fixed.status == OrderStatus.ON_REVIEW
        assert fixed.description == "Одностраничный сайт"
        assert len(await notifications_of(session, admin.account_id)) == 2

    async def test_only_reviewed_orders_can_be_moderated(self, admin, make_customer, orders_without_review,
                                                         admin_service, order_data):
        customer_caller, _ = await make_customer()
        order = await orders_without_review.create_order(customer_caller, order_data)

        with pytest.raises(InvalidStateError):
            await admin_service.approve_order(admin, order.id)
        with pytest.raises(InvalidStateError):
            await admin_service.reject_order(admin, order.id)
        with pytest.raises(InvalidStateError):
            await orders_without_review.resubmit_order(customer_caller, order.id, order_data)
        with pytest.raises(NotFoundError):
            await admin_service.approve_order(admin, 999)

    async def test_customer_cannot_moderate(self, make_customer, moderated, admin_service, order_data):
        customer_caller, _ = await make_customer()
        order = await moderated.create_order(customer_caller, order_data)

        with pytest.raises(AccessDeniedError):
            await admin_service.approve_order(customer_caller, order.id)
        with pytest.raises(AccessDeniedError):
            await admin_service.statistics(customer_caller)


class TestAccounts:

    async def test_deactivated_account_cannot_log_in(self, session, admin, admin_service, emails):
        auth = AuthService(session, emails=emails)
        account = await auth.register("oleg@tasktrove.test", "secret123", "Oleg", UserRole.PERFORMER)

        await admin_service.set_account_active(admin, account.id, False)
        with pytest.raises(AccessDeniedError):
            await auth.login("oleg@tasktrove.test", "secret123")

        restored = await admin_service.set_account_active(admin, account.id, True)
        assert restored.is_active is True
        assert await auth.login("oleg@tasktrove.test", "secret123")

    async def test_admin_keeps_own_account(self, admin, admin_service):
        with pytest.raises(InvalidStateError):
            await admin_service.set_account_active(admin, admin.account_id, False)

    async def test_inactive_admin_gets_no_review_notifications(self, session, admin, make_customer, moderated,
                                                               order_data):
        other = AccountORM(email="second@tasktrove.test", password_hash=hash_password("secret123"),
                           role=UserRole.ADMINISTRATOR, email_verified=True, is_active=False)
        session.add(other)
        await session.commit()
        customer_caller, _ = await make_customer()

        await moderated.create_order(customer_caller, order_data)

        assert len(await notifications_of(session, admin.account_id)) == 1
        assert await notifications_of(session, other.id) == []


class TestRemovalsAndStatistics:

    async def test_delete_reply_and_review(self, session, admin, make_customer, make_performer,
                                           orders_without_review, admin_service, dispatcher, order_data):
        customer_caller, _ = await make_customer()
        performer_caller, performer = await make_performer()
        order = await orders_without_review.create_order(customer_caller, order_data)
        reply = await ReplyService(session, dispatcher).create_reply(performer_caller, order.id)

        await admin_service.delete_reply(admin, reply.id)
        assert await session.get(ReplyORM, reply.id) is None

        await ReplyService(session, dispatcher).create_reply(performer_caller, order.id)
        await orders_without_review.assign_performer(customer_caller, order.id, performer.id)
        await orders_without_review.confirm_order_done(customer_caller, order.id, done=True)
        review = await ReviewService(session, dispatcher).add_review_by_customer(
            customer_caller, order.id, "Ivan", 5, "Спасибо")

        await admin_service.delete_review(admin, review.id)
        assert await session.get(WorkExperienceORM, review.id) is None
        with pytest.raises(NotFoundError):
            await admin_service.delete_review(admin, review.id)

    async def test_statistics(self, admin, make_customer, make_performer, orders_without_review, admin_service,
                              order_data):
        customer_caller, _ = await make_customer()
        await make_performer()
        await orders_without_review.create_order(customer_caller, order_data)

        stats = await admin_service.statistics(admin)

        assert stats["total_users"] == 3
        assert stats["total_customers"] == 1
        assert stats["total_performers"] == 1
        assert stats["total_administrators"] == 1
        assert stats["total_orders"] == 1
        assert stats["active_orders"] == 1
        assert stats["done_orders"] == 0
