from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from domain.entity.userentity import Caller
from infrastructure.services.admin_service import AdminService
from infrastructure.services.notification_service import NotificationDispatcher
from presentation.dependencies import get_caller, get_dispatcher, get_session

router = APIRouter(prefix="/api/admin")


class RejectBody(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


@router.get("/orders/review")
async def orders_on_review(caller: Caller = Depends(get_caller), session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await AdminService(session, dispatcher).list_orders_on_review(caller)


@router.post("/orders/{order_id}/approve")
async def approve_order(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                        dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await AdminService(session, dispatcher).approve_order(caller, order_id)


@router.post("/orders/{order_id}/reject")
async def reject_order(order_id: int, body: Optional[RejectBody] = None, caller: Caller = Depends(get_caller),
                       session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    reason = body.reason if body else None
    return await AdminService(session, dispatcher).reject_order(caller, order_id, reason)


@router.get("/users")
async def users(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return await AdminService(session).list_accounts(caller)


@router.post("/activate")
async def activate(user_id: int = Query(..., alias="userId"), caller: Caller = Depends(get_caller),
                   session=Depends(get_session)):
    return await AdminService(session).set_account_active(caller, user_id, True)


@router.post("/disactivate")
async def deactivate(user_id: int = Query(..., alias="userId"), caller: Caller = Depends(get_caller),
                     session=Depends(get_session)):
    return await AdminService(session).set_account_active(caller, user_id, False)


@router.delete("/deletecomment")
async def delete_comment(reply_id: int = Query(..., alias="id"), caller: Caller = Depends(get_caller),
                         session=Depends(get_session),
                         dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    await AdminService(session, dispatcher).delete_reply(caller, reply_id)
    return {"success": True}


@router.delete("/reviews/{review_id}")
async def delete_review(review_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session)):
    await AdminService(session).delete_review(caller, review_id)
    return {"success": True}


@router.get("/statistics")
async def statistics(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return await AdminService(session).statistics(caller)
