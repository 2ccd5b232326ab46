"""Split a reply into chat-sized chunks and deliver them at a human pace."""

import asyncio
import random
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from wa_agent.errors import TransportError
from wa_agent.logging_config import LoggerAdapter, bind_logger
from wa_agent.services.alert_service import alert_critical

MAX_CHUNK_CHARS = 200

FIRST_CHUNK_DELAY_RANGE = (0.8, 1.3)
TYPING_MS_PER_CHAR = 50
TYPING_MIN_MS = 1500
TYPING_MAX_MS = 4000
TYPING_JITTER_MS = 300

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


class Transport(Protocol):
    async def send_text(self, phone: str, text: str) -> dict: ...

    async def send_presence(self, phone: str, presence: str) -> bool: ...


def _group(units: List[str], max_chars: int, joiner: str) -> List[str]:
    groups: List[str] = []
    current = ""
    for unit in units:
        unit = unit.strip()
        if not unit:
            continue
        candidate = f"{current}{joiner}{unit}" if current else unit
        if current and len(candidate) > max_chars:
            groups.append(current)
            current = unit
        else:
            current = candidate
    if current:
        groups.append(current)
    return groups


def _split_sentences(text: str, max_chars: int) -> List[str]:
    return _group(_SENTENCE_BOUNDARY.split(text), max_chars, " ")


def split_reply(text: str, max_chars: int = MAX_CHUNK_CHARS) -> List[str]:
    """Break ``text`` into chunks of at most ``max_chars`` where possible.

    A single sentence longer than the cap stays whole. Non-empty input always
    yields at least one chunk.
    """
    if not text:
        return []

    chunks: List[str] = []
    for paragraph in _PARAGRAPH_BREAK.split(text.strip()):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= max_chars:
            chunks.append(paragraph)
        elif "\n" in paragraph:
            lines: List[str] = []
            for line in paragraph.split("\n"):
                if len(line.strip()) > max_chars:
                    lines.extend(_split_sentences(line, max_chars))
                else:
                    lines.append(line)
            chunks.extend(_group(lines, max_chars, "\n"))
        else:
            chunks.extend(_split_sentences(paragraph, max_chars))

    return chunks or [text]


def first_chunk_delay(rng: random.Random) -> float:
    return rng.uniform(*FIRST_CHUNK_DELAY_RANGE)


def typing_delay(chunk: str, rng: random.Random) -> float:
    """Seconds to "type" ``chunk``: clamp(len * 50ms, 1.5s, 4s) plus up to 300ms jitter."""
    base_ms = min(max(len(chunk) * TYPING_MS_PER_CHAR, TYPING_MIN_MS), TYPING_MAX_MS)
    jitter_ms = rng.uniform(-TYPING_JITTER_MS, TYPING_JITTER_MS)
    return (base_ms + jitter_ms) / 1000


@dataclass
class DispatchResult:
    total: int
    sent: int

    @property
    def complete(self) -> bool:
        return self.sent == self.total


async def _presence(transport: Transport, phone: str, presence: str, log: LoggerAdapter) -> None:
    try:
        await transport.send_presence(phone, presence)
    except Exception as exc:
        log.warning(f"Presence signal failed: {exc}", context={"presence": presence})


async def dispatch_reply(
    transport: Transport,
    phone: str,
    text: str,
    *,
    sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    humanize: bool = True,
    log: Optional[LoggerAdapter] = None,
) -> DispatchResult:
    """Send ``text`` as paced chunks. Stops at the first failed send."""
    log = log or bind_logger("dispatch", {"phone": phone})
    rng = rng or random.Random()
    chunks = split_reply(text)
    sent = 0

    for index, chunk in enumerate(chunks):
        if humanize:
            await _presence(transport, phone, "composing", log)
            delay = first_chunk_delay(rng) if index == 0 else typing_delay(chunk, rng)
            await sleep_func(delay)
        try:
            await transport.send_text(phone, chunk)
        except TransportError as exc:
            log.error(
                f"Chunk delivery failed: {exc}",
                context={"chunk": index + 1, "total": len(chunks), "status_code": exc.status_code},
            )
            await alert_critical(
                "WhatsApp delivery failed",
                {**log.extra, "phone": phone, "chunk": f"{index + 1}/{len(chunks)}", "error": str(exc)[:200]},
            )
            break
        sent += 1

    if humanize and chunks:
        await _presence(transport, phone, "available", log)

    log.info("Reply dispatched", context={"chunks": len(chunks), "sent": sent})
    return DispatchResult(total=len(chunks), sent=sent)
