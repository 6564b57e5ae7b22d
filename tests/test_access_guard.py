import pytest

from domain.exceptions import AccessDeniedError, NotFoundError
from domain.entity.userentity import Caller, UserRole
from infrastructure.repositiry.db_models import OrderORM, ReplyORM
from infrastructure.services.access_guard import AccessGuard
from infrastructure.services.order_service import OrderService
from infrastructure.services.reply_service import ReplyService


@pytest.fixture
async def owned(session, dispatcher, make_customer, make_performer, order_data):
    customer_caller, _ = await make_customer()
    performer_caller, _ = await make_performer()
    order = await OrderService(session, dispatcher).create_order(customer_caller, order_data)
    reply = await ReplyService(session, dispatcher).create_reply(performer_caller, order.id)
    return customer_caller, performer_caller, await session.get(OrderORM, order.id), await session.get(ReplyORM, reply.id)


class TestAccessGuard:

    async def test_owners_pass(self, session, owned):
        customer_caller, performer_caller, order, reply = owned
        guard = AccessGuard(session)

        await guard.assert_ownership(order, customer_caller)
        await guard.assert_ownership(reply, performer_caller)

    async def test_wrong_party_denied(self, session, owned):
        customer_caller, performer_caller, order, reply = owned
        guard = AccessGuard(session)

        with pytest.raises(AccessDeniedError):
            await guard.assert_ownership(order, performer_caller)
        with pytest.raises(AccessDeniedError):
            await guard.assert_ownership(reply, customer_caller)

    async def test_admin_bypass(self, session, admin, owned):
        _, _, order, reply = owned
        guard = AccessGuard(session)

        await guard.assert_ownership(order, admin)
        await guard.assert_ownership(reply, admin)

    async def test_missing_entity(self, session, owned):
        customer_caller, *_ = owned

        with pytest.raises(NotFoundError):
            await AccessGuard(session).assert_ownership(None, customer_caller)

    async def test_role_without_profile(self, session):
        ghost = Caller(account_id=404, role=UserRole.PERFORMER)

        with pytest.raises(NotFoundError):
            await AccessGuard(session).require_performer(ghost)
        with pytest.raises(AccessDeniedError):
            await AccessGuard(session).require_customer(ghost)
