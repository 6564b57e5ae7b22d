from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, status

from domain.entity.userentity import Caller
from infrastructure.repositiry.base_repository import AsyncSessionLocal
from infrastructure.services.auth_service import InvalidTokenError, decode_token
from infrastructure.services.email_service import EmailNotificationService, get_email_sender
from infrastructure.services.notification_service import NotificationDispatcher
from infrastructure.services.realtime import RealtimePublisher, realtime_hub


async def get_session():
    async with AsyncSessionLocal() as session:
        yield session


def get_email_service() -> EmailNotificationService:
    return EmailNotificationService(get_email_sender())


def get_publisher() -> RealtimePublisher:
    return realtime_hub


def get_dispatcher(session=Depends(get_session),
                   emails: EmailNotificationService = Depends(get_email_service)) -> NotificationDispatcher:
    return NotificationDispatcher(session, emails)


def extract_token(authorization: Optional[str], access_token: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token.strip()
    return access_token


def caller_from_token(token: Optional[str]) -> Caller:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return decode_token(token)
    except InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_caller(authorization: Optional[str] = Header(None),
                     access_token: Optional[str] = Cookie(None)) -> Caller:
    return caller_from_token(extract_token(authorization, access_token))


async def get_optional_caller(authorization: Optional[str] = Header(None),
                              access_token: Optional[str] = Cookie(None)) -> Optional[Caller]:
    token = extract_token(authorization, access_token)
    if not token:
        return None
    try:
        return decode_token(token)
    except InvalidTokenError:
        return None
