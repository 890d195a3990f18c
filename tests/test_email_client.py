import pytest
from aiohttp import ClientConnectionError

from email_client import EmailClient
from errors import ConfigurationError, DeliveryError

API_URL = "https://api.resend.com/emails"


@pytest.fixture
def config(make_config):
    return make_config(RESEND_API_KEY="re_test")


@pytest.mark.asyncio
async def test_send_posts_json_with_bearer_auth(config, fake_session, fake_response):
    session = fake_session({API_URL: fake_response(json_data={"id": "email-1"})})

    result = await EmailClient(config, session=session).send_email("ann@example.org", "Hello", "<p>Hi</p>")

    assert result == {"id": "email-1"}
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["headers"]["Authorization"] == "Bearer re_test"
    assert kwargs["json"] == {
        "from": "Test Ministry <news@example.org>",
        "to": ["ann@example.org"],
        "subject": "Hello",
        "html": "<p>Hi</p>",
        "reply_to": "office@example.org",
    }


@pytest.mark.asyncio
async def test_explicit_empty_reply_to_is_omitted(config, fake_session, fake_response):
    session = fake_session({API_URL: fake_response(json_data={"id": "email-2"})})

    await EmailClient(config, session=session).send_email("ann@example.org", "Hello", "<p>Hi</p>", reply_to="")

    assert "reply_to" not in session.calls[0][2]["json"]


@pytest.mark.asyncio
async def test_non_2xx_raises_delivery_error(config, fake_session, fake_response):
    session = fake_session({API_URL: fake_response(status=422, text='{"message": "invalid to"}')})

    with pytest.raises(DeliveryError) as excinfo:
        await EmailClient(config, session=session).send_email("bad", "Hello", "<p>Hi</p>")

    assert excinfo.value.status == 422
    assert "invalid to" in excinfo.value.body


@pytest.mark.asyncio
async def test_transport_error_raises_delivery_error(config, fake_session):
    session = fake_session({API_URL: ClientConnectionError("reset")})

    with pytest.raises(DeliveryError):
        await EmailClient(config, session=session).send_email("ann@example.org", "Hello", "<p>Hi</p>")


def test_requires_api_key_and_sender(make_config):
    with pytest.raises(ConfigurationError) as excinfo:
        EmailClient(make_config(EMAIL_FROM=""))
    assert excinfo.value.missing == ["RESEND_API_KEY", "EMAIL_FROM"]


@pytest.mark.asyncio
async def test_2xx_with_html_body_counts_as_sent(config, fake_session, fake_response):
    session = fake_session({API_URL: fake_response(status=200, text="<html>OK</html>")})

    result = await EmailClient(config, session=session).send_email("ann@example.org", "Hello", "<p>Hi</p>")

    assert result == {}
    assert len(session.calls) == 1
