from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Mapping

QUANTITY_WORDS = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
}

# Two digits at most: three and four digit numbers are room numbers.
_QTY_PATTERN = r"(?:\b(\d{1,2}|one|two|three|four|five|an?)(?:\s*x)?\s+)?"

_ENTRY_RE = re.compile(r"^\s*(?P<name>.+?)\s+-\s+(?:[^\d\s]+\s*)?(?P<price>\d[\d,]*(?:\.\d+)?)\s*$")

DEFAULT_MENU: dict[str, dict] = {
    "breakfast": {
        "hours": "7:00 AM - 10:30 AM",
        "items": [
            "Continental Breakfast - ₹500",
            "Full English Breakfast - ₹750",
            "Pancakes with Maple Syrup - ₹450",
        ],
    },
    "lunch": {
        "hours": "12:00 PM - 3:00 PM",
        "items": [
            "Grilled Chicken Sandwich - ₹650",
            "Margherita Pizza - ₹800",
            "Vegetable Pasta - ₹550",
        ],
    },
    "dinner": {
        "hours": "6:30 PM - 11:00 PM",
        "items": [
            "Grilled Salmon - ₹1200",
            "Beef Steak - ₹1500",
            "Vegetable Curry - ₹600",
        ],
    },
    "roomService": {
        "hours": "24/7",
        "items": [
            "Club Sandwich - ₹450",
            "Chicken Burger - ₹550",
            "Chocolate Lava Cake - ₹350",
        ],
    },
}


def normalize(text: str) -> str:
    text = text.lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[-_]", " ", text)
    text = re.sub(r"[^\w\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def category_label(key: str) -> str:
    """``roomService`` -> ``Room Service``."""
    spaced = re.sub(r"(?<=[a-z])(?=[A-Z])", " ", key).replace("_", " ")
    return " ".join(word.capitalize() for word in spaced.split())


def parse_quantity(token: str | None) -> int:
    if not token:
        return 1
    token = token.lower()
    if token in QUANTITY_WORDS:
        return QUANTITY_WORDS[token]
    return int(token)


@dataclass(frozen=True)
class MenuItem:
    key: str
    name: str
    category: str
    price: int


@dataclass(frozen=True)
class MenuCategory:
    key: str
    label: str
    hours: str
    items: tuple[MenuItem, ...]


@dataclass(frozen=True)
class ItemMatch:
    item: MenuItem
    quantity: int
    start: int
    end: int


def parse_menu_entry(entry: str, *, category: str) -> MenuItem:
    """Parse ``"Margherita Pizza - ₹800"`` into a MenuItem."""
    match = _ENTRY_RE.match(entry or "")
    if not match:
        raise ValueError(f"invalid menu entry: {entry!r}")
    name = re.sub(r"\s+", " ", match.group("name")).strip()
    price = int(round(float(match.group("price").replace(",", ""))))
    key = normalize(name)
    if not key:
        raise ValueError(f"menu entry without a name: {entry!r}")
    return MenuItem(key=key, name=name, category=category, price=price)


def _term_regex(term: str) -> re.Pattern[str]:
    words = [re.escape(word) for word in term.split()]
    body = r"\s+".join(words)
    return re.compile(rf"{_QTY_PATTERN}\b(?P<term>{body})(?:es|s)?\b")


class MenuCatalog:
    """Immutable snapshot of a tenant's menu.

    Items are matched by full name and, when it is unambiguous, by their
    head noun ("pizza" for "Margherita Pizza"). Terms are tried longest
    first so a specific item always wins over a shorter one it contains.
    """

    def __init__(self, categories: Iterable[MenuCategory]) -> None:
        self._categories: tuple[MenuCategory, ...] = tuple(categories)
        items: dict[str, MenuItem] = {}
        for category in self._categories:
            for item in category.items:
                if item.key in items:
                    raise ValueError(f"duplicate menu item: {item.name}")
                items[item.key] = item
        self._items = items
        self._terms = self._build_terms()

    @classmethod
    def from_config(cls, config: Mapping[str, Mapping]) -> "MenuCatalog":
        categories = []
        for key, body in config.items():
            entries = body.get("items") or []
            parsed = tuple(parse_menu_entry(entry, category=key) for entry in entries)
            categories.append(
                MenuCategory(key=key, label=category_label(key), hours=str(body.get("hours") or ""), items=parsed)
            )
        return cls(categories)

    @classmethod
    def default(cls) -> "MenuCatalog":
        return cls.from_config(DEFAULT_MENU)

    def _build_terms(self) -> list[tuple[str, MenuItem, re.Pattern[str]]]:
        head_counts: dict[str, int] = {}
        for item in self._items.values():
            words = item.key.split()
            if len(words) > 1:
                head_counts[words[-1]] = head_counts.get(words[-1], 0) + 1

        reserved = set(self._items) | {normalize(category.key) for category in self._categories}
        reserved |= {normalize(category.label) for category in self._categories}

        entries: list[tuple[int, int, str, MenuItem]] = []
        for item in self._items.values():
            entries.append((len(item.key), 0, item.key, item))
            words = item.key.split()
            if len(words) > 1:
                head = words[-1]
                if head_counts.get(head) == 1 and head not in reserved:
                    entries.append((len(head), 1, head, item))

        entries.sort(key=lambda entry: (-entry[0], entry[1], entry[2]))
        return [(term, item, _term_regex(term)) for _, _, term, item in entries]

    @property
    def categories(self) -> tuple[MenuCategory, ...]:
        return self._categories

    @property
    def items(self) -> tuple[MenuItem, ...]:
        return tuple(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def get(self, key: str) -> MenuItem | None:
        return self._items.get(normalize(key))

    def category(self, key: str) -> MenuCategory | None:
        wanted = normalize(key).replace(" ", "")
        for category in self._categories:
            if normalize(category.key).replace(" ", "") == wanted:
                return category
        return None

    def find_items(self, text: str) -> list[ItemMatch]:
        """Extract item mentions from free text.

        Returns one match per mention, in text order. A mention whose span
        overlaps a longer, already-accepted mention is dropped.
        """
        normalized = normalize(text)
        if not normalized:
            return []
        consumed: list[tuple[int, int]] = []
        matches: list[ItemMatch] = []
        for _term, item, pattern in self._terms:
            for found in pattern.finditer(normalized):
                start, end = found.span("term")
                if any(start < taken_end and taken_start < end for taken_start, taken_end in consumed):
                    continue
                quantity = parse_quantity(found.group(1))
                consumed.append((start, end))
                if quantity <= 0:
                    continue
                matches.append(ItemMatch(item=item, quantity=quantity, start=start, end=end))
        matches.sort(key=lambda match: match.start)
        return matches
