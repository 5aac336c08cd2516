import asyncio
from unittest.mock import AsyncMock

import pytest

from vaultshare.core.config import Settings
from vaultshare.core.exceptions import UpstreamFailure
from vaultshare.services.notifications import MailNotifier


@pytest.fixture()
def mail_notifier():
    return MailNotifier.from_settings(Settings(MAIL_SUPPRESS_SEND=True, PROJECT_NAME="VaultShare"))


def test_notice_escapes_file_name(mail_notifier):
    body = mail_notifier.render("http://frontend.test/preview/token/abc", "<script>x</script>.pdf")
    assert "&lt;script&gt;" in body
    assert "<script>" not in body
    url = "http://frontend.test/preview/token/abc"
    # button, fallback link and the link text
    assert body.count(f'href="{url}"') == 2
    assert body.count(url) == 3


def test_suppressed_send_succeeds(mail_notifier):
    asyncio.run(mail_notifier.send_file_share_notice("r@example.com", "http://frontend.test/x", "a.pdf"))


def test_send_failure_is_upstream_failure(mail_notifier):
    mail_notifier.mailer.send_message = AsyncMock(side_effect=ConnectionRefusedError("smtp down"))
    with pytest.raises(UpstreamFailure) as exc:
        asyncio.run(mail_notifier.send_file_share_notice("r@example.com", "http://frontend.test/x", "a.pdf"))
    assert "smtp down" in exc.value.message
    assert exc.value.status_code == 502
