from hotelbot.models.tenant import Tenant
from hotelbot.models.order import OrderRecord
from hotelbot.models.menu_category import MenuCategory
from hotelbot.models.menu_item import MenuItemRecord
from hotelbot.models.session_credential import SessionCredential
