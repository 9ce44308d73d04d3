from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hotelbot.services.menu_catalog import MenuCatalog, MenuItem, normalize

if TYPE_CHECKING:
    from hotelbot.services.conversation_store import GuestConversation

# Intents
ORDER = "order"
MENU = "menu"
GREETING = "greeting"
THANKS = "thanks"
PROVIDE_ROOM_ONLY = "provide_room_only"
UNKNOWN = "unknown"

# Commands
RESET = "reset"
HELP = "help"
STATUS = "status"
CHECKOUT = "checkout"
AFFIRM = "affirm"
NEGATE = "negate"

_ORDER_KEYWORDS = (
    "order",
    "get",
    "want",
    "need",
    "bring me",
    "i d like",
    "i would like",
    "can i have",
    "could i have",
    "send up",
    "send me",
)
_MENU_KEYWORDS = ("menu", "food", "what do you have", "offer", "offers")
_GREETING_KEYWORDS = (
    "hi",
    "hello",
    "hey",
    "good morning",
    "good afternoon",
    "good evening",
    "namaste",
)
_THANKS_KEYWORDS = ("thanks", "thank you", "thx", "ty")
_RESET_PHRASES = {"reset", "start over", "restart"}
_HELP_KEYWORDS = ("help",)
_STATUS_KEYWORDS = ("status", "where is my order", "track my order")
_CHECKOUT_KEYWORDS = (
    "done",
    "checkout",
    "check out",
    "that s all",
    "thats all",
    "that is all",
    "finish",
    "finished",
    "nothing else",
)
_AFFIRM_KEYWORDS = ("yes", "y", "yeah", "yep", "yup", "confirm", "confirmed", "place order", "ok", "okay", "sure")
_NEGATE_KEYWORDS = ("no", "nope", "cancel", "don t")

_ROOM_ONLY_RE = re.compile(r"^\d{3,4}$")
_LABELLED_ROOM_RE = re.compile(r"(?:\broom|\brm|#)\s*(?:no\.?\s*|number\s*)?(\d{3,4})\b")
_BARE_ROOM_RE = re.compile(r"\b(\d{3,4})\b")
_INTEGER_RE = re.compile(r"^\d+$")
_RATE_BUTTON_RE = re.compile(r"^rate_(\d+)$")
_MENU_BUTTON_RE = re.compile(r"^menu_([A-Za-z0-9]+)$")
_HELP_BUTTON_RE = re.compile(r"^help_([A-Za-z0-9]+)$")


def _phrase_regex(phrases: tuple[str, ...]) -> re.Pattern[str]:
    ordered = sorted(phrases, key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(re.escape(phrase) for phrase in ordered) + r")\b")


_ORDER_RE = _phrase_regex(_ORDER_KEYWORDS)
_MENU_RE = _phrase_regex(_MENU_KEYWORDS)
_GREETING_RE = _phrase_regex(_GREETING_KEYWORDS)
_THANKS_RE = _phrase_regex(_THANKS_KEYWORDS)
_HELP_RE = _phrase_regex(_HELP_KEYWORDS)
_STATUS_RE = _phrase_regex(_STATUS_KEYWORDS)
_CHECKOUT_RE = _phrase_regex(_CHECKOUT_KEYWORDS)
_AFFIRM_RE = _phrase_regex(_AFFIRM_KEYWORDS)
_NEGATE_RE = _phrase_regex(_NEGATE_KEYWORDS)


@dataclass(frozen=True)
class ParsedItem:
    item: MenuItem
    quantity: int


@dataclass(frozen=True)
class ParseResult:
    intent: str
    room_number: str | None = None
    items: tuple[ParsedItem, ...] = ()
    commands: frozenset[str] = field(default_factory=frozenset)
    number: int | None = None
    category: str | None = None
    topic: str | None = None

    def has(self, command: str) -> bool:
        return command in self.commands


def extract_room_number(text: str) -> str | None:
    lowered = (text or "").lower()
    match = _LABELLED_ROOM_RE.search(lowered) or _BARE_ROOM_RE.search(lowered)
    if match:
        return match.group(1)
    return None


def extract_items(text: str, catalog: MenuCatalog) -> tuple[ParsedItem, ...]:
    quantities: dict[str, int] = {}
    first_seen: dict[str, MenuItem] = {}
    for match in catalog.find_items(text):
        key = match.item.key
        if key not in first_seen:
            first_seen[key] = match.item
        quantities[key] = quantities.get(key, 0) + match.quantity
    return tuple(ParsedItem(item=item, quantity=quantities[key]) for key, item in first_seen.items())


def _classify_commands(normalized: str) -> frozenset[str]:
    commands: set[str] = set()
    if normalized in _RESET_PHRASES:
        commands.add(RESET)
    if _HELP_RE.search(normalized):
        commands.add(HELP)
    if _STATUS_RE.search(normalized):
        commands.add(STATUS)
    if _CHECKOUT_RE.search(normalized):
        commands.add(CHECKOUT)
    affirm = bool(_AFFIRM_RE.search(normalized))
    negate = bool(_NEGATE_RE.search(normalized))
    # "yes ... no" is not a usable answer either way
    if affirm and not negate:
        commands.add(AFFIRM)
    elif negate and not affirm:
        commands.add(NEGATE)
    return frozenset(commands)


def _classify_intent(normalized: str, items: tuple[ParsedItem, ...], room_number: str | None) -> str:
    if items or _ORDER_RE.search(normalized):
        return ORDER
    if _MENU_RE.search(normalized):
        return MENU
    if _GREETING_RE.search(normalized):
        return GREETING
    if _THANKS_RE.search(normalized):
        return THANKS
    if room_number:
        return PROVIDE_ROOM_ONLY
    return UNKNOWN


def parse(text: str, conversation: "GuestConversation | None", catalog: MenuCatalog) -> ParseResult:
    """Turn a guest message into intent, room number and item quantities.

    Pure function of its inputs. Text it cannot make sense of comes back
    as the ``unknown`` intent rather than an error.
    """
    raw = (text or "").strip()
    if not raw:
        return ParseResult(intent=UNKNOWN)

    button = _RATE_BUTTON_RE.match(raw)
    if button:
        return ParseResult(intent=UNKNOWN, number=int(button.group(1)))
    button = _MENU_BUTTON_RE.match(raw)
    if button:
        return ParseResult(intent=MENU, category=button.group(1))
    button = _HELP_BUTTON_RE.match(raw)
    if button:
        return ParseResult(intent=UNKNOWN, commands=frozenset({HELP}), topic=button.group(1).lower())

    has_cart = bool(conversation is not None and conversation.cart)
    if has_cart and _ROOM_ONLY_RE.match(raw):
        return ParseResult(intent=PROVIDE_ROOM_ONLY, room_number=raw, number=int(raw))

    normalized = normalize(raw)
    room_number = extract_room_number(raw)
    items = extract_items(raw, catalog)
    number = int(raw) if _INTEGER_RE.match(raw) else None

    return ParseResult(
        intent=_classify_intent(normalized, items, room_number),
        room_number=room_number,
        items=items,
        commands=_classify_commands(normalized),
        number=number,
    )
