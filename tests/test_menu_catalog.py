from __future__ import annotations

import pytest

from hotelbot.services.menu_catalog import MenuCatalog, category_label, parse_menu_entry
from tests.fixtures_data import BURGER_MENU, SCENARIO_MENU


def test_parse_menu_entry_reads_name_and_price() -> None:
    item = parse_menu_entry("Margherita Pizza - ₹800", category="lunch")

    assert item.name == "Margherita Pizza"
    assert item.key == "margherita pizza"
    assert item.price == 800
    assert item.category == "lunch"


def test_parse_menu_entry_accepts_thousands_separator() -> None:
    item = parse_menu_entry("Beef Steak - ₹1,500", category="dinner")

    assert item.price == 1500


@pytest.mark.parametrize("entry", ["Margherita Pizza", "Margherita Pizza - free", "- ₹800", ""])
def test_parse_menu_entry_rejects_malformed_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        parse_menu_entry(entry, category="lunch")


def test_duplicate_item_names_are_rejected() -> None:
    config = {
        "lunch": {"hours": "", "items": ["Club Sandwich - ₹450"]},
        "roomService": {"hours": "", "items": ["Club Sandwich - ₹500"]},
    }

    with pytest.raises(ValueError):
        MenuCatalog.from_config(config)


def test_longer_item_name_wins_over_contained_name() -> None:
    catalog = MenuCatalog.from_config(BURGER_MENU)

    matches = catalog.find_items("one chicken burger please")

    assert [(match.item.name, match.quantity) for match in matches] == [("Chicken Burger", 1)]


def test_short_name_still_matches_on_its_own() -> None:
    catalog = MenuCatalog.from_config(BURGER_MENU)

    matches = catalog.find_items("2 burgers and a chicken burger")

    assert [(match.item.name, match.quantity) for match in matches] == [("Burger", 2), ("Chicken Burger", 1)]


def test_head_noun_alias_matches_unique_items() -> None:
    catalog = MenuCatalog.from_config(SCENARIO_MENU)

    matches = catalog.find_items("3 pizzas")

    assert len(matches) == 1
    assert matches[0].item.name == "Margherita Pizza"
    assert matches[0].quantity == 3


def test_default_menu_categories_and_lookup() -> None:
    catalog = MenuCatalog.default()

    assert [category.key for category in catalog.categories] == ["breakfast", "lunch", "dinner", "roomService"]
    assert catalog.category("room service").label == "Room Service"
    assert catalog.category("roomService").hours == "24/7"
    assert catalog.category("brunch") is None
    assert catalog.get("Chicken Burger").price == 550


def test_category_label_splits_camel_case() -> None:
    assert category_label("roomService") == "Room Service"
    assert category_label("late_night") == "Late Night"
