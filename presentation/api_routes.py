import logging
import os
import shutil
import tempfile
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from domain.entity.orderentity import OrderData, OrderStatus
from domain.entity.userentity import Caller, CustomerPortfolioUpdate, PerformerPortfolioUpdate, UserRole
from infrastructure import config
from infrastructure.services.auth_service import AuthService
from infrastructure.services.email_service import EmailNotificationService
from infrastructure.services.notification_service import NotificationDispatcher
from infrastructure.services.order_service import OrderService
from infrastructure.services.portfolio_service import PortfolioService
from infrastructure.services.reply_service import ReplyService
from infrastructure.services.review_service import ReviewService
from infrastructure.services.verification_service import VerificationService
from presentation.dependencies import (get_caller, get_dispatcher, get_email_service, get_optional_caller,
                                       get_session)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

TOKEN_MAX_AGE = 60 * 60 * 24 * config.ACCESS_TOKEN_DAYS


class RegisterBody(BaseModel):
    email: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=72)
    name: str = Field(..., min_length=1, max_length=100)
    role: UserRole


class LoginBody(BaseModel):
    email: str
    password: str


class CodeBody(BaseModel):
    code: str


class PasswordResetRequestBody(BaseModel):
    email: str


class PasswordResetBody(BaseModel):
    email: str
    code: str
    new_password: str = Field(..., min_length=6, max_length=72)


class AssignBody(BaseModel):
    performer_id: int


class ConfirmBody(BaseModel):
    done: Optional[bool] = None
    on_check: Optional[bool] = None


class ReviewBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    rate: int
    text: Optional[str] = None


def _token_response(token: str, payload: dict) -> JSONResponse:
    resp = JSONResponse({**payload, "access_token": token, "token_type": "bearer"})
    resp.set_cookie("access_token", token, httponly=True, max_age=TOKEN_MAX_AGE)
    return resp


# --- auth ---

@router.post("/register")
async def register(body: RegisterBody, session=Depends(get_session),
                   emails: EmailNotificationService = Depends(get_email_service)):
    auth_service = AuthService(session, emails=emails)
    account = await auth_service.register(body.email, body.password, body.name, body.role)
    token = await auth_service.login(body.email, body.password)
    return _token_response(token, {"success": True, "account_id": account.id})


@router.post("/login")
async def login(body: LoginBody, session=Depends(get_session),
                emails: EmailNotificationService = Depends(get_email_service)):
    token = await AuthService(session, emails=emails).login(body.email, body.password)
    return _token_response(token, {"success": True})


@router.post("/logout")
async def logout():
    response = JSONResponse({"success": True})
    response.delete_cookie("access_token")
    return response


@router.post("/password/reset-request")
async def password_reset_request(body: PasswordResetRequestBody, session=Depends(get_session),
                                 emails: EmailNotificationService = Depends(get_email_service)):
    await AuthService(session, emails=emails).request_password_reset(body.email)
    return {"success": True}


@router.post("/password/reset")
async def password_reset(body: PasswordResetBody, session=Depends(get_session),
                         emails: EmailNotificationService = Depends(get_email_service)):
    await AuthService(session, emails=emails).reset_password(body.email, body.code, body.new_password)
    return {"success": True}


@router.post("/verification/email/send")
async def send_email_code(caller: Caller = Depends(get_caller), session=Depends(get_session),
                          emails: EmailNotificationService = Depends(get_email_service)):
    await VerificationService(session, emails=emails).send_email_code(caller.account_id)
    return {"success": True}


@router.post("/verification/email/check")
async def check_email_code(body: CodeBody, caller: Caller = Depends(get_caller), session=Depends(get_session),
                           emails: EmailNotificationService = Depends(get_email_service)):
    verified = await VerificationService(session, emails=emails).verify_email_code(caller.account_id, body.code)
    if not verified:
        return JSONResponse({"message": "Неверный или просроченный код"}, status_code=400)
    return {"success": True}


# --- orders: customer side ---

@router.post("/orders", status_code=201)
async def create_order(body: OrderData, caller: Caller = Depends(get_caller), session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).create_order(caller, body)


@router.get("/orders/my")
async def my_orders(search: Optional[str] = None, status: Optional[OrderStatus] = None,
                    caller: Caller = Depends(get_caller), session=Depends(get_session),
                    dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).list_customer_orders(caller, search=search, status=status)


@router.get("/orders/my/{order_id}")
async def my_order(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                   dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).get_order_with_replies(caller, order_id)


@router.put("/orders/{order_id}")
async def resubmit_order(order_id: int, body: OrderData, caller: Caller = Depends(get_caller),
                         session=Depends(get_session),
                         dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    """Fix a rejected order and send it back for review."""
    return await OrderService(session, dispatcher).resubmit_order(caller, order_id, body)


@router.post("/orders/{order_id}/deactivate")
async def deactivate_order(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).deactivate_order(caller, order_id)


@router.post("/orders/{order_id}/reactivate")
async def reactivate_order(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).reactivate_order(caller, order_id)


@router.delete("/orders/{order_id}")
async def delete_order(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).soft_delete_order(caller, order_id)


@router.post("/orders/{order_id}/assign")
async def assign_performer(order_id: int, body: AssignBody, caller: Caller = Depends(get_caller),
                           session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).assign_performer(caller, order_id, body.performer_id)


@router.post("/orders/{order_id}/refuse-performer")
async def refuse_performer(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).refuse_performer_by_customer(caller, order_id)


@router.post("/orders/{order_id}/confirm")
async def confirm_order(order_id: int, body: ConfirmBody, caller: Caller = Depends(get_caller),
                        session=Depends(get_session),
                        dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).confirm_order_done(caller, order_id, done=body.done,
                                                                      on_check=body.on_check)


def _save_upload(upload: UploadFile) -> str:
    suffix = os.path.splitext(upload.filename or "")[1]
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        shutil.copyfileobj(upload.file, tmp)
        return tmp.name


@router.post("/orders/{order_id}/correction")
async def request_correction(order_id: int, performer_id: int = Form(...), text: Optional[str] = Form(None),
                             file: Optional[UploadFile] = File(None),
                             caller: Caller = Depends(get_caller), session=Depends(get_session),
                             dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    attachment_path = None
    if file is not None and file.filename:
        attachment_path = await run_in_threadpool(_save_upload, file)
    try:
        return await OrderService(session, dispatcher).request_correction(
            caller, order_id, performer_id, text=text, attachment_path=attachment_path)
    finally:
        if attachment_path and os.path.exists(attachment_path):
            os.remove(attachment_path)


# --- orders: performer side ---

@router.get("/orders")
async def available_orders(search: Optional[str] = None, page: int = Query(1, ge=1),
                           page_size: int = Query(20, ge=1, le=100),
                           caller: Optional[Caller] = Depends(get_optional_caller), session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).list_available_orders(caller, search=search, page=page,
                                                                         page_size=page_size)


@router.get("/orders/taken")
async def taken_orders(search: Optional[str] = None, include_done: bool = False,
                       caller: Caller = Depends(get_caller), session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).list_performer_orders(caller, search=search,
                                                                         include_done=include_done)


@router.get("/orders/{order_id}")
async def order_for_performer(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                              dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).get_order_for_performer(caller, order_id)


@router.post("/orders/{order_id}/refuse")
async def refuse_order(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).refuse_order_by_performer(caller, order_id)


# --- replies ---

@router.post("/orders/{order_id}/replies", status_code=201)
async def create_reply(order_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await ReplyService(session, dispatcher).create_reply(caller, order_id)


@router.get("/replies")
async def my_replies(tab: Optional[str] = None, caller: Caller = Depends(get_caller), session=Depends(get_session),
                     dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await ReplyService(session, dispatcher).list_performer_replies(caller, tab)


@router.delete("/replies/{reply_id}")
async def delete_reply(reply_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                       dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    await ReplyService(session, dispatcher).delete_reply(caller, reply_id)
    return {"success": True}


@router.delete("/replies/{reply_id}/completed")
async def delete_completed_reply(reply_id: int, caller: Caller = Depends(get_caller),
                                 session=Depends(get_session),
                                 dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    await ReplyService(session, dispatcher).delete_completed_reply(caller, reply_id)
    return {"success": True}


@router.post("/replies/{reply_id}/done")
async def mark_task_done(reply_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                         dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    return await OrderService(session, dispatcher).mark_task_done_by_performer(caller, reply_id)


# --- reviews ---

@router.post("/orders/{order_id}/reviews/customer", status_code=201)
async def review_customer(order_id: int, body: ReviewBody, caller: Caller = Depends(get_caller),
                          session=Depends(get_session),
                          dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    """Performer's review of the customer."""
    return await ReviewService(session, dispatcher).add_review_by_performer(caller, order_id, body.name,
                                                                            body.rate, body.text)


@router.post("/orders/{order_id}/reviews/performer", status_code=201)
async def review_performer(order_id: int, body: ReviewBody, caller: Caller = Depends(get_caller),
                           session=Depends(get_session),
                           dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    """Customer's review of the performer."""
    return await ReviewService(session, dispatcher).add_review_by_customer(caller, order_id, body.name,
                                                                           body.rate, body.text)


@router.get("/performers/{performer_id}/reviews")
async def performer_reviews(performer_id: int, session=Depends(get_session)):
    return await ReviewService(session).list_reviews_about_performer(performer_id)


@router.get("/customers/{customer_id}/reviews")
async def customer_reviews(customer_id: int, session=Depends(get_session)):
    return await ReviewService(session).list_reviews_about_customer(customer_id)


# --- portfolios ---

@router.get("/portfolio")
async def my_portfolio(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return await PortfolioService(session).get_own_portfolio(caller)


@router.put("/portfolio/performer")
async def update_performer_portfolio(body: PerformerPortfolioUpdate, caller: Caller = Depends(get_caller),
                                     session=Depends(get_session)):
    return await PortfolioService(session).update_performer_portfolio(caller, body)


@router.put("/portfolio/customer")
async def update_customer_portfolio(body: CustomerPortfolioUpdate, caller: Caller = Depends(get_caller),
                                    session=Depends(get_session)):
    return await PortfolioService(session).update_customer_portfolio(caller, body)


@router.get("/performers/{performer_id}/portfolio")
async def performer_portfolio(performer_id: int, session=Depends(get_session)):
    return await PortfolioService(session).get_performer_portfolio(performer_id)


@router.get("/customers/{customer_id}/portfolio")
async def customer_portfolio(customer_id: int, session=Depends(get_session)):
    return await PortfolioService(session).get_customer_portfolio(customer_id)
