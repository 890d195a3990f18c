#!/usr/bin/env python3
"""
Newsletter signup endpoint.

A small aiohttp web application exposing ``POST /newsletter-signup``. The
form submission itself is stored by the hosting site's form capture; this
handler validates the address and sends a welcome email in the background.
The welcome email runs as a detached task and never delays the response.
"""

from json import JSONDecodeError
from typing import Any, Dict

from aiohttp import web

from config import Config, get_logger
from email_client import EmailClient
from publisher import template_environment
from utils import is_valid_email, spawn_detached

logger = get_logger("signup")

CONFIG_KEY = web.AppKey("config", Config)
SIGNUP_PATH = "/newsletter-signup"


def _cors_headers(config: Config) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": config.SIGNUP_ALLOWED_ORIGIN,
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
    }


def welcome_subject(config: Config) -> str:
    return f"Welcome to the {config.NEWSLETTER_TITLE.removeprefix('The ')} - {config.MINISTRY.name}"


async def send_welcome_email(config: Config, email: str, name: str) -> None:
    """Send the welcome message to a new subscriber."""
    html = template_environment(config).get_template("welcome.html").render(
        ministry=config.MINISTRY,
        newsletter_title=config.NEWSLETTER_TITLE,
        greeting=f"Dear {name}" if name else "Dear Friend",
    )
    await EmailClient(config).send_email(email, welcome_subject(config), html)
    logger.info(f"Welcome email sent to {email}")


async def _read_payload(request: web.Request) -> Dict[str, Any]:
    if "application/json" in request.headers.get("Content-Type", ""):
        data = await request.json()
        return data if isinstance(data, dict) else {}
    return dict(await request.post())


async def handle_signup(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    headers = _cors_headers(config)

    if request.method == "OPTIONS":
        return web.Response(status=204, headers=headers)
    if request.method != "POST":
        return web.json_response(
            {"success": False, "message": "Method not allowed. Please use POST."},
            status=405,
            headers=headers,
        )

    try:
        try:
            data = await _read_payload(request)
        except (JSONDecodeError, UnicodeDecodeError):
            data = {}
        email = str(data.get("email") or "").strip()
        name = str(data.get("name") or "").strip()

        if not is_valid_email(email):
            return web.json_response(
                {"success": False, "message": "Please provide a valid email address."},
                status=400,
                headers=headers,
            )

        queued = bool(config.RESEND_API_KEY and config.EMAIL_FROM)
        if queued:
            spawn_detached(send_welcome_email(config, email, name), name=f"welcome-email:{email}")
        logger.info(f"New subscriber: {email} | Welcome email: {'queued' if queued else 'skipped (no API key)'}")

        return web.json_response(
            {
                "success": True,
                "message": f"Welcome to {config.NEWSLETTER_TITLE}! Check your inbox for a welcome message.",
                "emailQueued": queued,
            },
            headers=headers,
        )
    except Exception as e:
        logger.error(f"Newsletter signup error: {e}", exc_info=True)
        return web.json_response(
            {
                "success": False,
                "message": (
                    "Something went wrong. Please try again or email us directly at "
                    f"{config.MINISTRY.email}."
                ),
            },
            status=500,
            headers=headers,
        )


def create_app(config: Config) -> web.Application:
    app = web.Application()
    app[CONFIG_KEY] = config
    app.router.add_route("*", SIGNUP_PATH, handle_signup)
    return app
