"""Turn heterogeneous WhatsApp provider payloads into a canonical inbound event.

Providers post several undocumented shapes (flat ``{phone, message}``,
Baileys-style ``{data: {key: {remoteJid}, message: {conversation}}}``...).
Each field is resolved by an ordered tuple of extractors; the first one that
yields a usable value wins.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional
from uuid import UUID

from wa_agent.schemas.webhook import InboundEvent

Extractor = Callable[[dict], Optional[str]]

JID_USER_DOMAIN = "@s.whatsapp.net"
JID_GROUP_DOMAIN = "@g.us"


@dataclass
class NormalizationResult:
    event: Optional[InboundEvent] = None
    skipped: Optional[str] = None


def _dig(payload: Any, *path: str) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _text_at(*path: str) -> Extractor:
    def extract(payload: dict) -> Optional[str]:
        value = _dig(payload, *path)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    return extract


def _scalar_at(*path: str) -> Extractor:
    def extract(payload: dict) -> Optional[str]:
        value = _dig(payload, *path)
        if isinstance(value, bool) or value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    return extract


PHONE_EXTRACTORS: tuple[Extractor, ...] = (
    _scalar_at("phone"),
    _scalar_at("from"),
    _scalar_at("data", "from"),
    _scalar_at("data", "key", "remoteJid"),
)

TEXT_EXTRACTORS: tuple[Extractor, ...] = (
    _text_at("message"),
    _text_at("text"),
    _text_at("data", "message", "conversation"),
    _text_at("data", "message", "extendedTextMessage", "text"),
)

SENDER_NAME_EXTRACTORS: tuple[Extractor, ...] = (
    _text_at("pushName"),
    _text_at("data", "pushName"),
    _text_at("senderName"),
)

COMPANY_EXTRACTORS: tuple[Extractor, ...] = (
    _scalar_at("company_id"),
    _scalar_at("companyId"),
)


def first_match(payload: dict, extractors: tuple[Extractor, ...]) -> Optional[str]:
    for extractor in extractors:
        value = extractor(payload)
        if value:
            return value
    return None


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Reduce a phone or JID (``5511999999999:12@s.whatsapp.net``) to digits."""
    if not value:
        return None
    local_part = value.split("@", 1)[0]
    local_part = local_part.split(":", 1)[0]
    digits = re.sub(r"\D", "", local_part)
    return digits or None


def is_from_me(payload: dict) -> bool:
    return any(
        _dig(payload, *path) is True
        for path in (("fromMe",), ("data", "fromMe"), ("data", "key", "fromMe"))
    )


def parse_json_body(raw: bytes | str | None) -> Optional[Any]:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", "ignore")
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return None


def _coerce_company_id(value: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(str(value).strip())
    except (ValueError, TypeError, AttributeError):
        return None


def normalize_webhook(
    raw_body: bytes | str | None,
    *,
    path_company_id: Optional[str] = None,
    query_company_id: Optional[str] = None,
) -> NormalizationResult:
    """Parse a raw webhook body into an ``InboundEvent`` or a skip reason."""
    payload = parse_json_body(raw_body)
    if payload is None:
        return NormalizationResult(skipped="bad_json")
    if not isinstance(payload, dict):
        return NormalizationResult(skipped="no_message")

    company_ref = path_company_id or query_company_id or first_match(payload, COMPANY_EXTRACTORS)
    if not company_ref:
        return NormalizationResult(skipped="no_company_id")
    company_id = _coerce_company_id(company_ref)
    if company_id is None:
        return NormalizationResult(skipped="invalid_company_id")

    if is_from_me(payload):
        return NormalizationResult(skipped="from_me")

    raw_phone = first_match(payload, PHONE_EXTRACTORS)
    if raw_phone and raw_phone.endswith(JID_GROUP_DOMAIN):
        return NormalizationResult(skipped="group_message")

    phone = normalize_phone(raw_phone)
    text = first_match(payload, TEXT_EXTRACTORS)
    if not phone or not text:
        return NormalizationResult(skipped="no_message")

    return NormalizationResult(
        event=InboundEvent(
            company_id=company_id,
            phone=phone,
            text=text,
            sender_name=first_match(payload, SENDER_NAME_EXTRACTORS),
        )
    )
