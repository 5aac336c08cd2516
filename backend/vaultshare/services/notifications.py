import html
import logging

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from vaultshare.core.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)

SHARE_NOTICE_TEMPLATE = """
<!doctype html>
<html>
<body style="margin:0;padding:0;background:#f6f7fb;color:#1f2937;font-family:Arial,Helvetica,sans-serif;">
  <div style="max-width:640px;margin:24px auto;background:#fff;border:1px solid #e6eaf2;border-radius:12px;padding:24px;">
    <h2 style="margin:0 0 8px 0;font-size:20px;color:#364d79;">You've received a file via {app_name}</h2>
    <p style="font-size:14px;color:#374151;">Someone has shared a file with you:</p>
    <div style="background:#f3f4f6;border:1px solid #e5e7eb;border-radius:10px;padding:12px 14px;font-weight:700;word-break:break-word;">
      {filename}
    </div>
    <p style="margin:18px 0;text-align:center;">
      <a href="{share_url}" style="background:#364d79;color:#fff;text-decoration:none;padding:12px 20px;border-radius:10px;font-weight:700;">
        Download File
      </a>
    </p>
    <p style="font-size:12px;color:#6b7280;">
      This link may expire or be limited in download count. Please do not forward this link to others.
    </p>
    <p style="font-size:12px;color:#6b7280;">If the button doesn't work, copy this URL into your browser:<br>
      <a href="{share_url}" style="color:#364d79;word-break:break-all;">{share_url}</a>
    </p>
  </div>
</body>
</html>
"""


class Notifier:
    async def send_file_share_notice(self, to: str, share_url: str, filename: str) -> None:
        raise NotImplementedError


class MailNotifier(Notifier):
    """Share notices delivered over SMTP with fastapi-mail."""

    def __init__(self, conf: ConnectionConfig, app_name: str = "VaultShare"):
        self.mailer = FastMail(conf)
        self.app_name = app_name

    @classmethod
    def from_settings(cls, settings) -> "MailNotifier":
        conf = ConnectionConfig(
            MAIL_USERNAME=settings.MAIL_USERNAME,
            MAIL_PASSWORD=settings.MAIL_PASSWORD,
            MAIL_FROM=settings.MAIL_FROM,
            MAIL_PORT=settings.MAIL_PORT,
            MAIL_SERVER=settings.MAIL_SERVER,
            MAIL_FROM_NAME=settings.MAIL_FROM_NAME,
            MAIL_STARTTLS=settings.MAIL_STARTTLS,
            MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
            USE_CREDENTIALS=settings.USE_CREDENTIALS,
            VALIDATE_CERTS=settings.VALIDATE_CERTS,
            SUPPRESS_SEND=settings.MAIL_SUPPRESS_SEND,
        )
        return cls(conf, app_name=settings.PROJECT_NAME)

    def render(self, share_url: str, filename: str) -> str:
        return SHARE_NOTICE_TEMPLATE.format(
            app_name=html.escape(self.app_name),
            filename=html.escape(filename),
            share_url=html.escape(share_url, quote=True),
        )

    async def send_file_share_notice(self, to: str, share_url: str, filename: str) -> None:
        message = MessageSchema(
            subject=f"You've received a file: {filename}",
            recipients=[to],
            body=self.render(share_url, filename),
            subtype=MessageType.html,
        )
        try:
            await self.mailer.send_message(message)
        except Exception as e:
            logger.error("Failed to send share notice to %s: %s", to, e)
            raise UpstreamFailure(f"Failed to send email: {e}") from e
        logger.info("Share notice sent to %s", to)
