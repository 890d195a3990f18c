#!/usr/bin/env python3
"""
Configuration management for the Kingdom Report agent.

This module centralizes configuration loading and validation. It reads the
process environment, an optional .env file, an optional YAML secrets file and
the newsletter.yaml settings file, and produces a single frozen ``Config``
value. The value is built once at process start and handed to each component
explicitly; nothing here is read as ambient global state.
"""

from dataclasses import dataclass, field
from os import environ, path, access, R_OK
from typing import Any, Dict, Mapping, Optional, Tuple
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import dotenv_values

from errors import ConfigurationError

BASE_DIR = path.dirname(path.abspath(__file__))


def setup_logging(env: Optional[Mapping[str, str]] = None):
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    The logger outputs to stdout with line buffering for real-time logging.
    All modules should use get_logger() to create module-specific loggers that
    inherit this configuration.
    """
    env = environ if env is None else env

    level_str = env.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = env.get("LOG_TIMESTAMPS", "true").lower() != "false"
    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True  # Force reconfiguration if already configured
    )

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure:
            reconfigure(line_buffering=True)

    # Keep the Azure exporter quiet unless explicitly overridden
    azure_level = level_map.get(env.get("AZURE_LOG_LEVEL", "WARNING").upper(), WARNING)
    for name in ("azure", "azure.core", "azure.monitor"):
        getLogger(name).setLevel(azure_level)

    return getLogger("KingdomReport")


def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Loggers are named "KingdomReport.{name}" and inherit the configuration set
    by setup_logging().

    Example:
        logger = get_logger("gatherer")
        logger.info("This will appear as 'KingdomReport.gatherer - INFO - ...'")
    """
    return getLogger(f"KingdomReport.{name}")


logger = get_logger("config")


@dataclass(frozen=True)
class FeedSource:
    """A configured RSS/Atom endpoint polled for articles."""
    name: str
    url: str


@dataclass(frozen=True)
class MinistryInfo:
    """Static identity of the ministry, fed to prompts and templates."""
    name: str = ""
    abbreviation: str = ""
    tagline: str = ""
    pastor: str = ""
    pastors: str = ""
    email: str = ""
    website: str = ""
    location: str = ""
    social: Dict[str, str] = field(default_factory=dict)
    service_times: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Config:
    """Immutable configuration value for one process run."""

    MINISTRY: MinistryInfo = field(default_factory=MinistryInfo)
    MISSION: str = ""
    THEOLOGY: Tuple[str, ...] = ()
    NEWSLETTER_TITLE: str = "The Kingdom Report"
    NEWSLETTER_SUBTITLE: str = ""
    FEED_SOURCES: Tuple[FeedSource, ...] = ()

    # Completion API
    GROQ_API_KEY: Optional[str] = None
    AI_BASE_URL: str = "https://api.groq.com/openai/v1"
    AI_MODEL: str = "llama-3.1-8b-instant"
    AI_MAX_TOKENS: int = 4096
    AI_TEMPERATURE: float = 0.7
    AI_MAX_RETRIES: int = 3
    AI_RETRY_DELAY: float = 2.0
    AI_REQUESTS_PER_MINUTE: int = 30

    # Feed fetching
    USER_AGENT: str = "KingdomReport-Agent/1.0"
    FEED_TIMEOUT: int = 10
    FEED_ITEM_LIMIT: int = 5

    # Email delivery
    RESEND_API_KEY: Optional[str] = None
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = ""
    REPLY_TO: str = ""
    SEND_BATCH_SIZE: int = 10
    SEND_BATCH_DELAY: float = 2.0

    # Subscriber source
    NETLIFY_ACCESS_TOKEN: Optional[str] = None
    NETLIFY_SITE_ID: Optional[str] = None
    NETLIFY_API_BASE: str = "https://api.netlify.com/api/v1"
    FORM_NAME: str = "newsletter-subscribers"

    # Live alerts
    NTFY_SERVER: str = "https://ntfy.sh"
    NTFY_TOPIC: str = ""
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHANNEL_ID: Optional[str] = None
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    ALERT_RECIPIENTS: Tuple[str, ...] = ()
    ALERT_EMAIL_DELAY: float = 0.6

    # Signup endpoint
    SIGNUP_ALLOWED_ORIGIN: str = "*"

    # File paths
    NEWSLETTER_DIR: str = path.join(BASE_DIR, "content", "newsletters")
    TEMPLATES_DIR: str = path.join(BASE_DIR, "templates")
    PROMPT_CONFIG_PATH: str = path.join(BASE_DIR, "prompt.yaml")
    PREVIEW_PATH: str = path.join(BASE_DIR, "preview.html")

    def require(self, *names: str) -> None:
        """Fail fast if any of the named settings is missing or blank."""
        missing = [name for name in names if not str(getattr(self, name, "") or "").strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set them in the environment, the .env file or the secrets file.",
                missing=missing,
            )

    def summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "ministry": self.MINISTRY.name,
            "feed_count": len(self.FEED_SOURCES),
            "ai_model": self.AI_MODEL,
            "ai_key": _mask_secret(self.GROQ_API_KEY),
            "has_resend_key": bool(self.RESEND_API_KEY),
            "has_netlify": bool(self.NETLIFY_ACCESS_TOKEN and self.NETLIFY_SITE_ID),
            "has_telegram": bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_CHANNEL_ID),
            "ntfy_topic": self.NTFY_TOPIC or "<none>",
            "newsletter_dir": self.NEWSLETTER_DIR,
        }


def _mask_secret(value: Optional[str], show: int = 4) -> str:
    """Mask a secret value for safe logging (keep only first/last few chars)."""
    if not value:
        return "<missing>"
    v = str(value)
    if len(v) <= show * 2:
        return "*" * len(v)
    return f"{v[:show]}***{v[-show:]}"


class _ConfigLoader:
    """Collects configuration from multiple sources into a ``Config``.

    Loading order:
    1. .env file (if present) provides defaults
    2. Process environment overrides .env
    3. YAML secrets file (if SECRETS_FILE is set) overrides both
    4. newsletter.yaml supplies ministry identity, feeds and alert settings

    Example secrets.yaml format:
    ```yaml
    GROQ_API_KEY: "gsk_..."
    RESEND_API_KEY: "re_..."
    NETLIFY_ACCESS_TOKEN: "..."
    NETLIFY_SITE_ID: "..."
    ```
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None, settings_path: Optional[str] = None):
        if env is None:
            env = self._load_environment()
        self.env: Dict[str, str] = dict(env)
        self._load_secrets_file()
        self.settings_path = settings_path or self.env.get("SETTINGS_FILE") or path.join(BASE_DIR, "newsletter.yaml")

    def _load_environment(self) -> Dict[str, str]:
        """Merge the .env file beside this module under the process environment."""
        merged: Dict[str, str] = {}
        dotenv_path = path.join(BASE_DIR, '.env')
        if path.exists(dotenv_path):
            merged.update({k: v for k, v in dotenv_values(dotenv_path).items() if v is not None})
            logger.info(f"Loaded environment variables from {dotenv_path}")
        merged.update(environ)
        return merged

    def _load_secrets_file(self) -> None:
        """Overlay variables from a YAML secrets file named by SECRETS_FILE.

        Both a top-level mapping and the older nested ``environment:`` mapping
        are accepted.
        """
        secrets_file_path = self.env.get("SECRETS_FILE")
        if not secrets_file_path:
            logger.debug("SECRETS_FILE not set; relying on environment/.env for secrets")
            return

        secrets_config = self._safe_read_yaml(secrets_file_path, 2 * 1024 * 1024, 'secrets')
        if secrets_config is None:
            return
        if not isinstance(secrets_config, dict):
            logger.warning(f"Secrets file {secrets_file_path} must be a YAML mapping at the top level")
            return

        env_vars = secrets_config.get('environment') if isinstance(secrets_config.get('environment'), dict) else secrets_config
        secrets_loaded = 0
        for key, value in env_vars.items():
            if isinstance(key, str) and value is not None:
                self.env[key] = str(value)
                secrets_loaded += 1
            else:
                logger.warning(f"Skipping invalid environment variable in secrets file: {key}")
        logger.info(f"Loaded {secrets_loaded} environment variables from secrets file {secrets_file_path}")

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Returns the parsed YAML or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.warning(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(self.env.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_positive_float(self, env_var: str, default: float, min_val: float = 0.0) -> float:
        """Validate and parse a non-negative float environment variable."""
        try:
            value = float(self.env.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _secret(self, name: str) -> Optional[str]:
        value = self.env.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def _load_feed_sources(self, settings: Dict[str, Any]) -> Tuple[FeedSource, ...]:
        """Parse the ``feeds`` list; invalid entries are skipped with a warning."""
        feeds_section = settings.get('feeds')
        if not isinstance(feeds_section, list):
            logger.warning(f"No valid feeds found in {self.settings_path}")
            return ()
        sources = []
        for feed_cfg in feeds_section:
            if isinstance(feed_cfg, dict) and feed_cfg.get('url'):
                sources.append(FeedSource(name=str(feed_cfg.get('name') or feed_cfg['url']), url=str(feed_cfg['url'])))
            else:
                logger.warning(f"Skipping invalid feed configuration: {feed_cfg}")
        logger.info(f"Loaded {len(sources)} feeds from {self.settings_path}")
        return tuple(sources)

    def _load_ministry(self, settings: Dict[str, Any]) -> MinistryInfo:
        ministry = settings.get('ministry') if isinstance(settings.get('ministry'), dict) else {}
        return MinistryInfo(
            name=str(ministry.get('name', '')),
            abbreviation=str(ministry.get('abbreviation', '')),
            tagline=str(ministry.get('tagline', '')),
            pastor=str(ministry.get('pastor', '')),
            pastors=str(ministry.get('pastors', '') or ministry.get('pastor', '')),
            email=str(ministry.get('email', '')),
            website=str(ministry.get('website', '')),
            location=str(ministry.get('location', '')),
            social=dict(ministry.get('social') or {}),
            service_times=dict(ministry.get('service_times') or {}),
        )

    def load(self) -> Config:
        settings = self._safe_read_yaml(self.settings_path, 5 * 1024 * 1024, 'settings')
        if not isinstance(settings, dict):
            settings = {}

        ministry = self._load_ministry(settings)
        newsletter = settings.get('newsletter') if isinstance(settings.get('newsletter'), dict) else {}
        alerts = settings.get('live_alerts') if isinstance(settings.get('live_alerts'), dict) else {}
        theology = settings.get('theology') if isinstance(settings.get('theology'), list) else []

        defaults = Config()
        from_email = self.env.get("FROM_EMAIL") or newsletter.get('from_email') or ministry.email
        sender_name = ministry.name or defaults.NEWSLETTER_TITLE

        return Config(
            MINISTRY=ministry,
            MISSION=str(settings.get('mission', '')),
            THEOLOGY=tuple(str(point) for point in theology),
            NEWSLETTER_TITLE=str(newsletter.get('title') or defaults.NEWSLETTER_TITLE),
            NEWSLETTER_SUBTITLE=str(newsletter.get('subtitle', '')),
            FEED_SOURCES=self._load_feed_sources(settings),
            GROQ_API_KEY=self._secret("GROQ_API_KEY"),
            AI_BASE_URL=self.env.get("AI_BASE_URL", defaults.AI_BASE_URL),
            AI_MODEL=self.env.get("AI_MODEL", defaults.AI_MODEL),
            AI_MAX_TOKENS=self._validate_positive_int("AI_MAX_TOKENS", defaults.AI_MAX_TOKENS, 64),
            AI_TEMPERATURE=self._validate_positive_float("AI_TEMPERATURE", defaults.AI_TEMPERATURE),
            AI_MAX_RETRIES=self._validate_positive_int("AI_MAX_RETRIES", defaults.AI_MAX_RETRIES, 1),
            AI_RETRY_DELAY=self._validate_positive_float("AI_RETRY_DELAY", defaults.AI_RETRY_DELAY),
            AI_REQUESTS_PER_MINUTE=self._validate_positive_int("AI_REQUESTS_PER_MINUTE", defaults.AI_REQUESTS_PER_MINUTE, 0),
            USER_AGENT=self.env.get("USER_AGENT", defaults.USER_AGENT),
            FEED_TIMEOUT=self._validate_positive_int("FEED_TIMEOUT", defaults.FEED_TIMEOUT, 1),
            FEED_ITEM_LIMIT=self._validate_positive_int("FEED_ITEM_LIMIT", defaults.FEED_ITEM_LIMIT, 1),
            RESEND_API_KEY=self._secret("RESEND_API_KEY"),
            EMAIL_FROM=f"{sender_name} <{from_email}>" if from_email else "",
            REPLY_TO=str(newsletter.get('reply_to') or ministry.email),
            SEND_BATCH_SIZE=self._validate_positive_int("SEND_BATCH_SIZE", defaults.SEND_BATCH_SIZE, 1),
            SEND_BATCH_DELAY=self._validate_positive_float("SEND_BATCH_DELAY", defaults.SEND_BATCH_DELAY),
            NETLIFY_ACCESS_TOKEN=self._secret("NETLIFY_ACCESS_TOKEN"),
            NETLIFY_SITE_ID=self._secret("NETLIFY_SITE_ID"),
            FORM_NAME=str(newsletter.get('form_name') or defaults.FORM_NAME),
            NTFY_SERVER=(self.env.get("NTFY_SERVER") or alerts.get('ntfy_server') or defaults.NTFY_SERVER).rstrip('/'),
            NTFY_TOPIC=str(self.env.get("NTFY_TOPIC") or alerts.get('ntfy_topic') or ""),
            TELEGRAM_BOT_TOKEN=self._secret("TELEGRAM_BOT_TOKEN"),
            TELEGRAM_CHANNEL_ID=self._secret("TELEGRAM_CHANNEL_ID"),
            ALERT_RECIPIENTS=tuple(str(r) for r in (alerts.get('email_recipients') or [])),
            ALERT_EMAIL_DELAY=self._validate_positive_float("ALERT_EMAIL_DELAY", defaults.ALERT_EMAIL_DELAY),
            SIGNUP_ALLOWED_ORIGIN=str(self.env.get("SIGNUP_ALLOWED_ORIGIN") or ministry.website or "*"),
            NEWSLETTER_DIR=self.env.get("NEWSLETTER_DIR", defaults.NEWSLETTER_DIR),
            PREVIEW_PATH=self.env.get("PREVIEW_PATH", defaults.PREVIEW_PATH),
        )


def load_config(env: Optional[Mapping[str, str]] = None, settings_path: Optional[str] = None) -> Config:
    """Build the process configuration.

    Args:
        env: Mapping used instead of the process environment and .env file
        settings_path: Path to the settings YAML (defaults to newsletter.yaml)
    """
    config = _ConfigLoader(env, settings_path).load()
    logger.debug(f"Configuration loaded: {config.summary()}")
    return config
