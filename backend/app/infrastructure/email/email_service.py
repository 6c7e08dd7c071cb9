"""
Email Service

Transactional email over SMTP. The blocking smtplib call runs in a worker
thread with a bounded timeout; a timeout or transport error surfaces as
``EmailDeliveryError``.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache
from typing import Awaitable

from app.config.settings import Settings, get_settings
from app.domain.clock import utcnow
from app.infrastructure.exceptions import EmailDeliveryError


logger = logging.getLogger(__name__)


class EmailService:
    """
    Sends the account emails: password reset link, account locked and
    password changed notifications.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._background: set[asyncio.Task] = set()

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.smtp_host)

    # =========================================================================
    # Transport
    # =========================================================================

    def _build_message(self, to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self._settings.smtp_from_name, self._settings.smtp_from_email))
        msg["To"] = to_email
        msg.set_content(body)
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        s = self._settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as smtp:
            if s.smtp_use_tls:
                smtp.starttls()
            if s.smtp_username:
                smtp.login(s.smtp_username, s.smtp_password or "")
            smtp.send_message(msg)

    async def send(self, to_email: str, subject: str, body: str) -> None:
        """
        Send one email.

        Raises:
            EmailDeliveryError: transport not configured, rejected or timed out
        """
        if not self.is_configured:
            raise EmailDeliveryError("Email transport is not configured")

        msg = self._build_message(to_email, subject, body)
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, msg),
                timeout=self._settings.smtp_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise EmailDeliveryError("Email delivery timed out", original_error=e)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError("Email delivery failed", original_error=e)

        logger.info(f"Email '{subject}' sent to {to_email}")

    def send_in_background(self, coro: Awaitable[None], description: str) -> None:
        """
        Fire-and-forget a send; failures are logged and never propagate.
        """
        async def runner() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(f"Background email '{description}' failed: {e}")

        task = asyncio.create_task(runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # =========================================================================
    # Account emails
    # =========================================================================

    async def send_password_reset(self, name: str, to_email: str, token: str) -> None:
        link = f"{self._settings.frontend_url}/reset-password?token={token}"
        ttl = self._settings.password_reset_token_ttl_minutes
        body = (
            f"Olá {name},\n\n"
            "Recebemos uma solicitação para redefinir a senha da sua conta Solvex.\n"
            f"Use o link abaixo para escolher uma nova senha (válido por {ttl} minutos):\n\n"
            f"{link}\n\n"
            "Se você não fez esta solicitação, ignore este email. Sua senha atual "
            "continua válida.\n"
        )
        await self.send(to_email, "Redefinição de Senha - Solvex", body)

    async def send_account_locked(self, name: str, to_email: str, attempts: int) -> None:
        body = (
            f"Olá {name},\n\n"
            f"Sua conta Solvex foi bloqueada após {attempts} tentativas de login "
            "sem sucesso.\n\n"
            "Para desbloquear sua conta, entre em contato com o suporte em "
            f"{self._settings.support_email}.\n"
        )
        await self.send(to_email, "Conta Bloqueada - Solvex", body)

    async def send_password_changed(self, name: str, to_email: str) -> None:
        changed_at = utcnow().strftime("%d/%m/%Y %H:%M UTC")
        body = (
            f"Olá {name},\n\n"
            f"A senha da sua conta Solvex foi alterada em {changed_at}.\n\n"
            "Se não foi você, redefina sua senha imediatamente e contate o suporte "
            f"em {self._settings.support_email}.\n"
        )
        await self.send(to_email, "Senha Alterada - Solvex", body)


@lru_cache
def get_email_service() -> EmailService:
    """Cached email service provider."""
    return EmailService(get_settings())
