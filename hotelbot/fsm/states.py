INITIAL = "initial"
AWAITING_ROOM = "awaiting_room"
MAIN_MENU = "main_menu"
ORDERING = "ordering"
AWAITING_CONFIRMATION = "awaiting_confirmation"
AWAITING_RATING = "awaiting_rating"

ALL_STATES = (
    INITIAL,
    AWAITING_ROOM,
    MAIN_MENU,
    ORDERING,
    AWAITING_CONFIRMATION,
    AWAITING_RATING,
)
