from __future__ import annotations

from hotelbot.schemas.orders import Order
from hotelbot.services.conversation_store import GuestConversation
from hotelbot.services.menu_catalog import MenuCatalog, MenuCategory
from hotelbot.services.orders import format_price
from hotelbot.whatsapp.base import InteractivePrompt, PromptButton

ROOM_EXAMPLE = "(Example: 'Room 105' or just '105')"
ORDER_EXAMPLE = "To order, just message: \"Room [your number], [your order]\"\nExample: \"Room 105, 2 pizzas and 1 coffee\""

RESET = "🔄 Chat reset. How may I assist you today?"
ASK_ROOM = f"Could you please tell me your room number? {ROOM_EXAMPLE}"
ASK_ROOM_FOR_ORDER = f"I'd be happy to help with your order! 🍽️\n\nCould you please tell me your room number first? {ROOM_EXAMPLE}"
ASK_ITEMS = (
    "What would you like to order from our menu? You can say something like "
    "'2 pizzas and 1 coffee' or type 'menu' to see options."
)
EMPTY_CART = "Your cart is empty. " + ASK_ITEMS
CONFIRMATION_REPROMPT = "I didn't understand your response. Please reply 'yes' to confirm your order or 'no' to cancel."
ORDER_CANCELLED = "Order cancelled. Please place a new order when ready."
INCOMPLETE_ORDER = "❌ Sorry, I need your room number and at least one item to place the order."
PLACEMENT_FAILED = (
    "😔 Sorry, we couldn't place your order right now. Your cart is saved, "
    "reply 'done' in a moment to try again or contact reception."
)
RATING_REPROMPT = "Please rate your experience with a number from 1 to 5 ⭐, or type 'reset' to start a new order."
ORDER_NOT_FOUND = "I couldn't find your recent order. Please place an order first or contact reception for assistance."
STATUS_UNAVAILABLE = "😔 Sorry, I can't look up your order right now. Please try again in a moment."
UNKNOWN_CATEGORY = "Sorry, I couldn't find that menu category."
SOMETHING_WENT_WRONG = "😔 Sorry, something went wrong on our side. Please try again in a moment."
YOU_ARE_WELCOME = "You're welcome! 😊 Let me know if you need anything else."

AMENITIES = (
    "🏊‍♂️ Hotel Amenities:\n• Swimming Pool (6AM-10PM)\n• Fitness Center (24/7)\n"
    "• Spa (9AM-9PM)\n• Business Center (8AM-8PM)\n• Free WiFi throughout hotel"
)


def welcome(hotel_name: str) -> str:
    return (
        f"Hello! Welcome to {hotel_name}! 🏨\n\nI'm your virtual assistant here to help with:\n"
        "• Food orders 🍕\n• Menu information 📋\n• Hotel assistance 📞\n\nHow can I help you today?"
    )


def fallback(hotel_name: str) -> str:
    return (
        f"I'm here to help you at {hotel_name}! 😊\n\nYou can:\n• Type \"menu\" to see food options\n"
        "• Provide your room number and order\n• Type \"help\" for assistance\n"
        "• Type \"status\" to check your order\n• Type \"reset\" to start over"
    )


def room_noted(room_number: str, *, has_cart: bool) -> str:
    if has_cart:
        return f"✅ Room {room_number} noted. Reply 'done' when you're ready to review your order."
    return f"✅ Room {room_number} noted. What would you like to order?"


def cart_lines(conversation: GuestConversation) -> str:
    return "\n".join(
        f"{line.quantity} x {line.name} - {format_price(line.subtotal)}" for line in conversation.cart
    )


def cart_update(added: list[str], conversation: GuestConversation) -> str:
    return (
        f"🛒 Added {', '.join(added)}.\n\nYour cart:\n{cart_lines(conversation)}\n"
        f"💵 Total: {format_price(conversation.cart_total)}\n\n"
        "Add more items or reply 'done' to review your order."
    )


def cart_waiting_for_room(added: list[str]) -> str:
    return f"🛒 Added {', '.join(added)}. {ASK_ROOM}"


def order_summary(conversation: GuestConversation) -> str:
    return (
        f"📋 Order Summary:\n\n🏨 Room: {conversation.room_number}\n🍽 Items:\n{cart_lines(conversation)}\n"
        f"💵 Total: {format_price(conversation.cart_total)}\n\n"
        "Should I place this order? Please reply 'yes' to confirm or 'no' to cancel."
    )


def guest_not_notified(order: Order) -> str:
    return (
        f"Your order #{order.id} has been placed, but we had trouble sending the details. "
        "Type 'status' anytime to check on it. Sorry about that!"
    )


def rating_thanks(rating: int) -> str:
    return f"⭐ Thanks for rating us {rating} stars! We appreciate your feedback."


def rating_forward(guest_id: str, order_id: int, rating: int) -> str:
    return f"📩 Guest {guest_id} rated Order #{order_id}: {rating} ⭐"


def rating_prompt(order_id: int) -> InteractivePrompt:
    return InteractivePrompt(
        body=f"⭐ How was your experience with order #{order_id}? Please rate us:",
        buttons=tuple(PromptButton(id=f"rate_{score}", title="⭐" * score) for score in range(1, 6)),
        header="Rate your order",
    )


def order_status(order: Order) -> str:
    placed_at = order.created_at.strftime("%H:%M")
    return f"📦 Order #{order.id} Status: {order.status}\n\nRoom: {order.room_number}\nPlaced at: {placed_at}"


def help_prompt() -> InteractivePrompt:
    return InteractivePrompt(
        body="🆘 How can we help you?",
        buttons=(
            PromptButton(id="help_reception", title="📞 Reception"),
            PromptButton(id="help_amenities", title="🏊‍♂️ Amenities"),
            PromptButton(id="help_room", title="🛌 Room Help"),
        ),
        header="Hotel Help",
        footer="Select a service",
    )


def help_topic(topic: str, reception_extension: str) -> str | None:
    if topic == "reception":
        return (
            f"📞 Please dial extension {reception_extension} for reception, or call directly at the front desk. "
            "Our staff will be happy to assist you!"
        )
    if topic == "amenities":
        return AMENITIES
    if topic == "room":
        return (
            "🛌 Need room assistance?\nFor housekeeping, maintenance, or other room-related issues, "
            f"please dial extension {reception_extension} and our staff will assist you promptly."
        )
    return None


def _category_block(category: MenuCategory) -> str:
    lines = [f"📋 {category.label} ({category.hours}):"] if category.hours else [f"📋 {category.label}:"]
    lines.extend(f"• {item.name} - {format_price(item.price)}" for item in category.items)
    return "\n".join(lines)


def full_menu(hotel_name: str, catalog: MenuCatalog) -> str:
    if not len(catalog):
        return "Sorry, the menu is unavailable at the moment. Please contact reception."
    blocks = [_category_block(category) for category in catalog.categories if category.items]
    return (
        f"🍽 {hotel_name} Menu\n\n" + "\n\n".join(blocks) + f"\n\n{ORDER_EXAMPLE}\n\n"
        "You can also browse specific categories using the buttons below:"
    )


def category_menu(category: MenuCategory) -> str:
    header = f"🍽 {category.label.upper()} Menu"
    if category.hours:
        header += f" (Available: {category.hours})"
    items = "\n".join(f"• {item.name} - {format_price(item.price)}" for item in category.items)
    return f"{header}:\n\n{items}\n\nTo order, just message: \"Room [your number], [item name]\"\nExample: \"Room 105, 2 pizzas\""


def category_picker(catalog: MenuCatalog) -> InteractivePrompt:
    return InteractivePrompt(
        body="📋 Please select what you'd like to order from the menu:",
        buttons=tuple(
            PromptButton(id=f"menu_{category.key}", title=f"🍽 {category.label}") for category in catalog.categories
        ),
        header="Menu",
        footer="Select Category",
    )
