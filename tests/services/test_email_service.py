from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from statichost.services import email as email_service
from statichost.utils.tracking import embed_snippet


@pytest.fixture(name="mail")
def mail_fixture():
    """FastMail replaced by a mock; yields the mocked send_message."""
    with (
        patch("statichost.services.email.get_email_config", return_value=MagicMock()),
        patch("statichost.services.email.FastMail") as fast_mail,
    ):
        fast_mail.return_value.send_message = AsyncMock()
        yield fast_mail.return_value.send_message


class TestTemplates:
    @pytest.mark.asyncio
    async def test_unknown_template(self):
        with pytest.raises(ValueError, match="Unknown email template: nope"):
            await email_service.send_notification_email("nope", "a@example.com", {})

    @pytest.mark.asyncio
    async def test_context_is_html_escaped_in_body(self, mail):
        await email_service.send_notification_email(
            "site_activated",
            "owner@example.com",
            {
                "name": "<b>Mallory</b>",
                "site_name": 'x"><script>alert(1)</script>',
                "site_url": "https://host.test/s/x",
                "tracking_snippet": "",
                "dashboard_url": "https://host.test/dashboard",
            },
        )

        message = mail.call_args.args[0]
        assert "<script>alert(1)</script>" not in message.body
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in message.body
        assert "&lt;b&gt;Mallory&lt;/b&gt;" in message.body
        assert message.subject == 'Your site x"><script>alert(1)</script> is live - StaticHost'

    @pytest.mark.asyncio
    async def test_activation_email_carries_tracking_snippet(self, mail):
        with patch("statichost.services.email.email_configured", return_value=True):
            sent = await email_service.send_site_activated_email(
                "owner@example.com", "Owner", 42, "Blog", "http://localhost:3000/s/blog"
            )

        assert sent is True
        body = mail.call_args.args[0].body
        assert (
            '&lt;script src="http://localhost:3000/api/analytics/script.js" '
            'data-site-id="42" defer&gt;&lt;/script&gt;'
        ) in body.replace("&quot;", '"')


class TestSendSafely:
    @pytest.mark.asyncio
    async def test_skipped_without_smtp(self, mail):
        assert await email_service.send_test_email("admin@example.com") is False
        mail.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self, mail):
        mail.side_effect = ConnectionError("refused")
        with patch("statichost.services.email.email_configured", return_value=True):
            assert await email_service.send_test_email("admin@example.com") is False


class TestEmbedSnippet:
    def test_snippet_points_at_script_route(self):
        assert embed_snippet(7) == (
            '<script src="http://localhost:3000/api/analytics/script.js" data-site-id="7" defer></script>'
        )
