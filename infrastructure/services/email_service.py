import logging
import mimetypes
import os
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

from starlette.concurrency import run_in_threadpool

from infrastructure import config

logger = logging.getLogger(__name__)

SIGNATURE = "\n\nС уважением,\nTaskTrove"


class EmailSender(ABC):
    """Blocking mail transport. Implementations raise on delivery failure."""

    @abstractmethod
    def send_plain(self, to: str, subject: str, body: str) -> None:
        ...

    @abstractmethod
    def send_with_attachment(self, to: str, subject: str, body: str, file_path: str) -> None:
        ...


class SmtpEmailSender(EmailSender):
    def __init__(self, host: str, port: int, user: str = "", password: str = "", sender: str = config.SMTP_FROM):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def _build(self, to, subject, body):
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message):
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            if self.user:
                smtp.starttls()
                smtp.login(self.user, self.password)
            smtp.send_message(message)

    def send_plain(self, to, subject, body):
        self._deliver(self._build(to, subject, body))

    def send_with_attachment(self, to, subject, body, file_path):
        message = self._build(to, subject, body)
        ctype, _ = mimetypes.guess_type(file_path)
        maintype, subtype = (ctype or "application/octet-stream").split("/", 1)
        with open(file_path, "rb") as fh:
            message.add_attachment(fh.read(), maintype=maintype, subtype=subtype,
                                   filename=os.path.basename(file_path))
        self._deliver(message)


class LoggingEmailSender(EmailSender):
    """Used when SMTP is switched off: writes the mail to the log instead."""

    def send_plain(self, to, subject, body):
        logger.info("Email to %s: %s\n%s", to, subject, body)

    def send_with_attachment(self, to, subject, body, file_path):
        logger.info("Email to %s: %s (attachment %s)\n%s", to, subject, file_path, body)


_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        if config.SMTP_ENABLED:
            _sender = SmtpEmailSender(config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USER, config.SMTP_PASSWORD)
        else:
            _sender = LoggingEmailSender()
    return _sender


class EmailNotificationService:
    """Lifecycle email templates. Sending is awaited but runs in the thread pool."""

    def __init__(self, sender: Optional[EmailSender] = None):
        self.sender = sender or get_email_sender()

    async def _send(self, to, subject, body, attachment_path=None):
        if attachment_path:
            await run_in_threadpool(self.sender.send_with_attachment, to, subject, body, attachment_path)
        else:
            await run_in_threadpool(self.sender.send_plain, to, subject, body)
        logger.info("Sent '%s' email to %s", subject, to)

    async def send_performer_refusal(self, performer_email, performer_name, customer_name, order_title):
        body = (f"Здравствуйте, {performer_name}!\n\n"
                f"Заказчик {customer_name} отказался от ваших услуг по заказу \"{order_title}\"." + SIGNATURE)
        await self._send(performer_email, "Отказ от работы", body)

    async def send_customer_refusal(self, customer_email, performer_name, order_title):
        body = (f"Здравствуйте!\n\nИсполнитель {performer_name} отказался от работы по заказу \"{order_title}\".\n"
                "Заказ снова доступен для других исполнителей." + SIGNATURE)
        await self._send(customer_email, "Исполнитель отказался от работы", body)

    async def send_work_completion(self, customer_email, performer_name, order_title):
        body = (f"Здравствуйте!\n\nИсполнитель {performer_name} завершил работу по заказу \"{order_title}\".\n"
                "Пожалуйста, проверьте выполненную работу." + SIGNATURE)
        await self._send(customer_email, "Работа завершена", body)

    async def send_correction_request(self, performer_email, customer_name, order_title, text=None,
                                      attachment_path=None):
        body = f"Заказчик {customer_name} запросил правки по заказу \"{order_title}\".\n"
        if text:
            body += f"Комментарий:\n{text}\n"
        body += f"Почта для связи: {config.CONTACT_EMAIL}" + SIGNATURE
        await self._send(performer_email, "Требуются правки по заказу", body, attachment_path)

    async def send_code(self, email, subject, code):
        body = f"Ваш код: {code}\nКод действует {config.CODE_TTL_MINUTES} мин." + SIGNATURE
        await self._send(email, subject, body)
