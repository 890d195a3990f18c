import pytest

from config import Config, load_config, _mask_secret
from errors import ConfigurationError

SETTINGS = """
ministry:
  name: "Test Ministry"
  abbreviation: "TM"
  pastor: "Pastor Test"
  email: "office@example.org"
  website: "https://example.org"
  social:
    facebook: "https://facebook.example/tm"
mission: "Making disciples."
theology:
  - "Jesus is Lord."
newsletter:
  title: "The Test Report"
  from_email: "news@example.org"
feeds:
  - name: "Feed One"
    url: "https://one.example/feed"
  - name: "Broken"
  - url: "https://two.example/feed"
live_alerts:
  ntfy_topic: "test-topic"
  email_recipients:
    - "alerts@example.org"
"""


@pytest.fixture
def settings_path(tmp_path):
    path = tmp_path / "newsletter.yaml"
    path.write_text(SETTINGS, encoding="utf-8")
    return str(path)


def test_load_settings_file(settings_path):
    config = load_config(env={}, settings_path=settings_path)

    assert config.MINISTRY.name == "Test Ministry"
    assert config.MINISTRY.pastors == "Pastor Test"
    assert config.NEWSLETTER_TITLE == "The Test Report"
    assert config.EMAIL_FROM == "Test Ministry <news@example.org>"
    assert config.REPLY_TO == "office@example.org"
    assert config.THEOLOGY == ("Jesus is Lord.",)
    assert [f.url for f in config.FEED_SOURCES] == ["https://one.example/feed", "https://two.example/feed"]
    # Nameless feeds are named by their URL
    assert config.FEED_SOURCES[1].name == "https://two.example/feed"
    assert config.NTFY_TOPIC == "test-topic"
    assert config.ALERT_RECIPIENTS == ("alerts@example.org",)
    assert config.SIGNUP_ALLOWED_ORIGIN == "https://example.org"
    assert config.GROQ_API_KEY is None


def test_bundled_settings_load():
    config = load_config(env={})

    assert config.MINISTRY.abbreviation == "IFM"
    assert len(config.FEED_SOURCES) == 5
    assert config.NTFY_TOPIC == "ifm-live-alerts-2026"
    assert config.EMAIL_FROM == "Increasing Faith Ministries <newsletter@increasingfaith.net>"


def test_environment_overrides_and_validation(settings_path):
    env = {
        "GROQ_API_KEY": "  gsk_test  ",
        "RESEND_API_KEY": "   ",
        "FEED_TIMEOUT": "abc",
        "SEND_BATCH_SIZE": "0",
        "SEND_BATCH_DELAY": "0.5",
        "NTFY_TOPIC": "override-topic",
        "NTFY_SERVER": "https://ntfy.example/",
    }
    config = load_config(env=env, settings_path=settings_path)

    assert config.GROQ_API_KEY == "gsk_test"
    assert config.RESEND_API_KEY is None
    assert config.FEED_TIMEOUT == 10
    assert config.SEND_BATCH_SIZE == 10
    assert config.SEND_BATCH_DELAY == 0.5
    assert config.NTFY_TOPIC == "override-topic"
    assert config.NTFY_SERVER == "https://ntfy.example"


def test_secrets_file_overlays_environment(tmp_path, settings_path):
    secrets = tmp_path / "secrets.yaml"
    secrets.write_text('environment:\n  GROQ_API_KEY: "from-secrets"\n  NETLIFY_SITE_ID: "site-1"\n', encoding="utf-8")

    config = load_config(env={"GROQ_API_KEY": "from-env", "SECRETS_FILE": str(secrets)}, settings_path=settings_path)

    assert config.GROQ_API_KEY == "from-secrets"
    assert config.NETLIFY_SITE_ID == "site-1"


def test_missing_settings_file_gives_defaults(tmp_path):
    config = load_config(env={}, settings_path=str(tmp_path / "absent.yaml"))

    assert config.NEWSLETTER_TITLE == "The Kingdom Report"
    assert config.FEED_SOURCES == ()
    assert config.EMAIL_FROM == ""


def test_require_lists_every_missing_name():
    config = Config(GROQ_API_KEY="key", RESEND_API_KEY=None, NETLIFY_SITE_ID="  ")

    config.require("GROQ_API_KEY")
    with pytest.raises(ConfigurationError) as excinfo:
        config.require("GROQ_API_KEY", "RESEND_API_KEY", "NETLIFY_SITE_ID")

    assert excinfo.value.missing == ["RESEND_API_KEY", "NETLIFY_SITE_ID"]
    assert "RESEND_API_KEY" in str(excinfo.value)


def test_summary_masks_secrets():
    summary = Config(GROQ_API_KEY="gsk_1234567890abcd").summary()

    assert summary["ai_key"] == "gsk_***abcd"
    assert _mask_secret(None) == "<missing>"
