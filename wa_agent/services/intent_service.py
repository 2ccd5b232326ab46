import re

COMPLAINT_PATTERNS = (
    re.compile(r"\b(reclama\w*|queixa\w*|insatisfeit\w*|absurdo|descaso|vergonha)\b"),
    re.compile(r"\b(defeito\w*|quebrad\w*|estragad\w*|danificad\w*|vazament\w*|vazando)\b"),
    re.compile(r"\b(n[aã]o funciona\w*|parou de funcionar|n[aã]o chegou|veio errad\w*|atrasad\w*)\b"),
    re.compile(r"\b(reembolso|estorno|devolu[cç][aã]o|dinheiro de volta)\b"),
    re.compile(r"\b(p[eé]ssim\w*|horr[ií]vel|mal atendid\w*|falta de respeito)\b"),
)


def normalize_for_matching(text: str) -> str:
    """Normalize text for matching short phrases (casefold + trim punctuation)."""
    if not text:
        return ""

    normalized = text.strip().casefold()
    normalized = re.sub(r"\s+", " ", normalized)
    normalized = re.sub(r"^[^\w]+|[^\w]+$", "", normalized)
    return normalized


def is_complaint_message(message: str) -> bool:
    normalized = normalize_for_matching(message)
    if not normalized:
        return False
    return any(pattern.search(normalized) for pattern in COMPLAINT_PATTERNS)
