import re

from calextract.services.event_models import MEETING_LINK_SENTINEL

_URL_CHARS = r"[^\s<>\"'()\[\]{}]"
_URL_TAIL = _URL_CHARS + "+"
_TRAILING_PUNCTUATION = ".,;:!?*"

_PROVIDER_LINK_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"https?://(?:[\w-]+\.)*zoom\.us/(?:j|my|w|s|wc/join)/{_URL_TAIL}", re.IGNORECASE),
    re.compile(r"https?://meet\.google\.com/[a-z]{3}-[a-z]{4}-[a-z]{3}(?:\?[^\s<>\"']*)?", re.IGNORECASE),
    re.compile(rf"https?://teams\.microsoft\.com/l/meetup-join/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://teams\.live\.com/meet/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://(?:[\w-]+\.)*webex\.com/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://(?:www\.|global\.)?gotomeeting\.com/join/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://meet\.goto\.com/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://(?:[\w-]+\.)*bluejeans\.com/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://(?:[\w-]+\.)*whereby\.com/{_URL_TAIL}", re.IGNORECASE),
    re.compile(rf"https?://meet\.jit\.si/{_URL_TAIL}", re.IGNORECASE),
)
_GENERIC_MEETING_URL_PATTERN = re.compile(
    rf"https?://{_URL_CHARS}*?(?:meeting|join|conference){_URL_CHARS}*",
    re.IGNORECASE,
)
_ANCHOR_HREF_PATTERN = re.compile(
    r"href\s*=\s*[\"']([^\"']*(?:meeting|join|conference)[^\"']*)[\"']",
    re.IGNORECASE,
)
_JOIN_INTENT_PATTERN = re.compile(
    r"\b(?:click\s+here\s+to\s+join"
    r"|join\s+(?:the\s+)?meeting"
    r"|join\s+(?:the\s+)?(?:zoom|teams|webex|google\s+meet)\s+meeting"
    r"|join\s+(?:on\s+)?(?:your\s+)?(?:computer|mobile\s+app)"
    r"|join\s+microsoft\s+teams\s+meeting"
    r"|join\s+with\s+google\s+meet)\b",
    re.IGNORECASE,
)


def scan(text: str | None) -> str | None:
    """Find a video-conferencing link in free text.

    Provider URL shapes are tried first, then generic URLs mentioning a
    meeting, then anchor targets. When nothing can be isolated but the text
    still invites the reader to join, the sentinel value is returned.
    """
    if not text:
        return None

    for pattern in _PROVIDER_LINK_PATTERNS:
        match = pattern.search(text)
        if match:
            return _trim_url(match.group(0))

    generic_match = _GENERIC_MEETING_URL_PATTERN.search(text)
    if generic_match:
        return _trim_url(generic_match.group(0))

    anchor_match = _ANCHOR_HREF_PATTERN.search(text)
    if anchor_match:
        href = anchor_match.group(1).strip()
        if href:
            return href

    if _JOIN_INTENT_PATTERN.search(text):
        return MEETING_LINK_SENTINEL
    return None


def _trim_url(url: str) -> str:
    return url.rstrip(_TRAILING_PUNCTUATION)
