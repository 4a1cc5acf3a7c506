import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from urllib.parse import urlencode

from .config import settings

logger = logging.getLogger(__name__)


class EmailSender:
    """Sends token-bearing links. Without SMTP settings it only logs (dev mode)."""

    def __init__(self, *, base_url=None, smtp_host=None, smtp_port=None, smtp_user=None,
                 smtp_password=None, from_email=None):
        self.base_url = (base_url or settings.api_base_url).rstrip('/')
        self.smtp_host = smtp_host if smtp_host is not None else settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port
        self.smtp_user = smtp_user if smtp_user is not None else settings.smtp_user
        self.smtp_password = smtp_password if smtp_password is not None else settings.smtp_password
        self.from_email = from_email or settings.mail_from or self.smtp_user

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def link(self, path: str, token: str) -> str:
        return f"{self.base_url}{path}?{urlencode({'token': token})}"

    def _send(self, to_email: str, subject: str, html: str):
        msg = MIMEText(html, 'html', 'utf-8')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = to_email
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
            server.starttls()
            if self.smtp_user:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

    async def send(self, to_email: str, subject: str, html: str) -> bool:
        if not self.is_configured:
            logger.info({'msg': 'email_dev_mode', 'subject': subject})
            return True
        try:
            await asyncio.to_thread(self._send, to_email, subject, html)
            logger.info({'msg': 'email_sent', 'subject': subject})
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error({'msg': 'email_failed', 'subject': subject, 'error': str(e)})
            return False

    async def send_verification_email(self, to_email: str, token: str) -> bool:
        url = self.link('/api/users/verify-email', token)
        html = f'<p>Please verify your email by clicking <a href="{url}">here</a>.</p>'
        return await self.send(to_email, 'Email Verification', html)

    async def send_password_reset_email(self, to_email: str, token: str) -> bool:
        url = self.link('/users/reset-password', token)
        html = f'<p>Reset your password by clicking <a href="{url}">here</a>.</p>'
        return await self.send(to_email, 'Password Reset', html)
