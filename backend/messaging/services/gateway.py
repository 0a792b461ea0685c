"""Thin wrapper around the Twilio SDK for WhatsApp sends and webhook signatures."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

import requests
from django.conf import settings
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client

logger = logging.getLogger(__name__)

_STRIP_PATTERN = re.compile(r"[^\d+]")


@dataclass
class SendResult:
    success: bool
    provider_sid: str = ""
    error: str = ""


def normalize_phone(phone: str) -> str:
    """Drop any ``whatsapp:`` prefix and every character except digits and ``+``."""
    cleaned = (phone or "").strip()
    if cleaned.startswith("whatsapp:"):
        cleaned = cleaned[len("whatsapp:"):]
    return _STRIP_PATTERN.sub("", cleaned)


def phone_variants(phone: str) -> list[str]:
    normalized = normalize_phone(phone)
    bare = normalized.lstrip("+")
    return list(dict.fromkeys([normalized, bare, f"+{bare}"]))


def canonical_phone(phone: str) -> str:
    return "+" + normalize_phone(phone).lstrip("+")


def format_whatsapp_number(phone: str) -> str:
    return f"whatsapp:{canonical_phone(phone)}"


def build_client(config) -> Client:
    return Client(config.account_sid, config.auth_token)


def send_whatsapp(
    config,
    *,
    to: str,
    body: str,
    template_sid: str = "",
    template_variables: dict | None = None,
) -> SendResult:
    """
    Submit one WhatsApp message. Provider failures are returned, never raised.

    With ``template_sid`` the approved content template is sent instead of the
    free-form body.
    """
    params = {
        "to": format_whatsapp_number(to),
        "from_": format_whatsapp_number(config.whatsapp_number),
    }
    if template_sid:
        params["content_sid"] = template_sid
        if template_variables:
            params["content_variables"] = json.dumps(template_variables)
    else:
        params["body"] = body
    callback_url = getattr(settings, "TWILIO_STATUS_CALLBACK_URL", "")
    if callback_url:
        params["status_callback"] = callback_url

    try:
        message = build_client(config).messages.create(**params)
    except TwilioRestException as exc:
        logger.warning("Twilio rejected WhatsApp message to %s: %s", params["to"], exc.msg)
        return SendResult(success=False, error=str(exc.msg or exc))
    except (TwilioException, requests.RequestException) as exc:
        logger.warning("Twilio request failed for %s: %s", params["to"], exc)
        return SendResult(success=False, error=str(exc))

    return SendResult(success=True, provider_sid=message.sid)


def validate_signature(auth_token: str, url: str, params: dict, signature: str) -> bool:
    if not signature:
        return False
    return RequestValidator(auth_token).validate(url, params, signature)
