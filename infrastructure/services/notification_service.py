import logging
from typing import Optional

from domain.entity.notificationentity import Notification, NotificationType
from domain.entity.orderentity import Order
from domain.entity.userentity import Caller, Customer, Performer, UserRole
from domain.exceptions import AccessDeniedError, NotFoundError
from infrastructure.repositiry.db_models import NotificationORM
from infrastructure.repositiry.notification_repository import NotificationRepository
from infrastructure.services.email_service import EmailNotificationService

logger = logging.getLogger(__name__)


def order_title(order: Order) -> str:
    return order.title or f"Заказ #{order.id}"


class NotificationService:
    """Recipient-side view of notifications."""

    def __init__(self, session):
        self.session = session
        self.notification_repo = NotificationRepository(session)

    async def list_notifications(self, caller: Caller, unread_only=False) -> list[Notification]:
        rows = await self.notification_repo.get_by_account(caller.account_id, unread_only=unread_only)
        return [n.to_entity() for n in rows]

    async def count_unread(self, caller: Caller) -> int:
        return await self.notification_repo.count_unread(caller.account_id)

    async def mark_as_read(self, caller: Caller, notification_id: int) -> Notification:
        notification = await self.notification_repo.get_by_id(notification_id)
        if not notification:
            raise NotFoundError("Notification", notification_id)
        if notification.account_id != caller.account_id:
            raise AccessDeniedError(f"notification {notification_id} belongs to another account")
        notification.is_read = True
        await self.session.commit()
        return notification.to_entity()

    async def mark_all_as_read(self, caller: Caller) -> int:
        count = await self.notification_repo.mark_all_read(caller.account_id)
        await self.session.commit()
        return count

    async def delete_all(self, caller: Caller) -> int:
        count = await self.notification_repo.delete_by_account(caller.account_id)
        await self.session.commit()
        logger.info("Deleted all notifications for account_id=%s, count=%s", caller.account_id, count)
        return count


class NotificationDispatcher:
    """
    Side effects of lifecycle transitions.

    Called after the transition has been committed. Every failure here is
    logged and swallowed, so a broken notification or mail server never turns
    a completed transition into an error for the caller.
    """

    def __init__(self, session, emails: Optional[EmailNotificationService] = None):
        self.session = session
        self.notification_repo = NotificationRepository(session)
        self.emails = emails or EmailNotificationService()

    async def _notify(self, account_id, role: UserRole, type_: NotificationType, title, message,
                      order_id=None, performer_id=None, customer_id=None) -> Optional[Notification]:
        try:
            notification = NotificationORM(
                account_id=account_id,
                user_role=role.value,
                type=type_,
                title=title,
                message=message,
                is_read=False,
                related_order_id=order_id,
                related_performer_id=performer_id,
                related_customer_id=customer_id,
            )
            await self.notification_repo.add(notification)
            await self.session.commit()
        except Exception:
            logger.exception("Failed to create %s notification for account_id=%s, order_id=%s",
                             type_.value, account_id, order_id)
            await self.session.rollback()
            return None
        logger.info("Created %s notification for account_id=%s, order_id=%s", type_.value, account_id, order_id)
        return notification.to_entity()

    async def _email(self, send, *args, **kwargs):
        try:
            await send(*args, **kwargs)
        except Exception:
            logger.exception("Failed to send email via %s", getattr(send, "__name__", send))

    async def reply_created(self, customer: Customer, performer: Performer, order: Order):
        await self._notify(
            customer.account_id, UserRole.CUSTOMER, NotificationType.REPLY,
            "Новый отклик на заказ",
            f"Исполнитель {performer.name} откликнулся на ваш заказ \"{order_title(order)}\"",
            order_id=order.id, performer_id=performer.id,
        )

    async def performer_assigned(self, customer: Customer, performer: Performer, order: Order):
        await self._notify(
            performer.account_id, UserRole.PERFORMER, NotificationType.ASSIGNED,
            "Вас приняли в работу",
            f"Заказчик {customer.name} принял вас в работу по заказу \"{order_title(order)}\"",
            order_id=order.id, customer_id=customer.id,
        )

    async def work_completed(self, customer: Customer, performer: Performer, order: Order):
        await self._notify(
            customer.account_id, UserRole.CUSTOMER, NotificationType.COMPLETED,
            "Работа сдана на проверку",
            f"Исполнитель {performer.name} завершил работу по заказу \"{order_title(order)}\"",
            order_id=order.id, performer_id=performer.id,
        )
        if customer.email:
            await self._email(self.emails.send_work_completion, customer.email, performer.name, order_title(order))
        else:
            logger.warning("Cannot send work completion email: customer %s has no email", customer.id)

    async def order_confirmed(self, customer: Customer, performer: Performer, order: Order):
        # the performer's completion claim already produced this event for most orders
        try:
            exists = await self.notification_repo.exists_for_order(
                customer.account_id, NotificationType.COMPLETED, order.id)
        except Exception:
            logger.exception("Failed to look up COMPLETED notifications for order_id=%s", order.id)
            await self.session.rollback()
            return
        if exists:
            return
        await self._notify(
            customer.account_id, UserRole.CUSTOMER, NotificationType.COMPLETED,
            "Заказ завершен",
            f"Заказ \"{order_title(order)}\" выполнен исполнителем {performer.name}",
            order_id=order.id, performer_id=performer.id,
        )

    async def correction_requested(self, customer: Customer, performer: Performer, order: Order,
                                   text=None, attachment_path=None):
        await self._notify(
            performer.account_id, UserRole.PERFORMER, NotificationType.CORRECTION,
            "Требуются правки",
            f"Заказчик {customer.name} запросил правки по заказу \"{order_title(order)}\"",
            order_id=order.id, customer_id=customer.id,
        )
        if performer.email:
            await self._email(self.emails.send_correction_request, performer.email, customer.name,
                              order_title(order), text=text, attachment_path=attachment_path)
        else:
            logger.warning("Cannot send correction email: performer %s has no email", performer.id)

    async def performer_refused(self, customer: Customer, performer: Performer, order: Order):
        """The customer dropped the assigned performer."""
        await self._notify(
            performer.account_id, UserRole.PERFORMER, NotificationType.REFUSED,
            "Заказчик отказался от работы",
            f"Заказчик {customer.name} отказался от ваших услуг по заказу \"{order_title(order)}\"",
            order_id=order.id, customer_id=customer.id,
        )
        if performer.email:
            await self._email(self.emails.send_performer_refusal, performer.email, performer.name,
                              customer.name, order_title(order))
        else:
            logger.warning("Cannot send refusal email: performer %s has no email", performer.id)

    async def performer_not_selected(self, customer: Customer, performer: Performer, order: Order):
        """The customer picked someone else; the losing reply is already gone."""
        await self._notify(
            performer.account_id, UserRole.PERFORMER, NotificationType.REFUSED,
            "Вас не выбрали",
            f"Заказчик {customer.name} выбрал другого исполнителя для заказа \"{order_title(order)}\"",
            order_id=order.id, customer_id=customer.id,
        )

    async def order_refused(self, customer: Customer, performer: Performer, order: Order):
        """The assigned performer walked away from the order."""
        await self._notify(
            customer.account_id, UserRole.CUSTOMER, NotificationType.REFUSED,
            "Исполнитель отказался",
            f"Исполнитель {performer.name} отказался от работы по заказу \"{order_title(order)}\"",
            order_id=order.id, performer_id=performer.id,
        )
        if customer.email:
            await self._email(self.emails.send_customer_refusal, customer.email, performer.name, order_title(order))
        else:
            logger.warning("Cannot send refusal email: customer %s has no email", customer.id)

    async def review_added(self, recipient_account_id, recipient_role: UserRole, author_name, order: Order,
                           rate, customer_id=None, performer_id=None):
        await self._notify(
            recipient_account_id, recipient_role, NotificationType.REVIEW,
            "Вас оценили",
            f"{author_name} оставил вам отзыв с оценкой {rate}/5 по заказу \"{order_title(order)}\"",
            order_id=order.id, customer_id=customer_id, performer_id=performer_id,
        )

    async def order_submitted_for_review(self, admin_account_ids, customer: Customer, order: Order):
        for account_id in admin_account_ids:
            await self._notify(
                account_id, UserRole.ADMINISTRATOR, NotificationType.ORDER_REVIEW,
                "Новый заказ на рассмотрении",
                f"Заказчик {customer.name} создал заказ \"{order_title(order)}\", "
                f"который требует проверки и одобрения",
                order_id=order.id, customer_id=customer.id,
            )

    async def order_approved(self, customer: Customer, order: Order):
        await self._notify(
            customer.account_id, UserRole.CUSTOMER, NotificationType.ORDER_APPROVED,
            "Заказ одобрен",
            f"Ваш заказ \"{order_title(order)}\" был одобрен администратором и теперь доступен для исполнителей",
            order_id=order.id,
        )

    async def order_rejected(self, customer: Customer, order: Order, reason=None):
        message = f"Ваш заказ \"{order_title(order)}\" не прошел проверку администратором"
        if reason and reason.strip():
            message += f". Причина: {reason.strip()}"
        await self._notify(
            customer.account_id, UserRole.CUSTOMER, NotificationType.ORDER_REJECTED,
            "Заказ не прошел проверку", message,
            order_id=order.id,
        )
