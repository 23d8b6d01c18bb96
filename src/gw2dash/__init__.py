from .api import item_batching as item_batching
from .cache import ItemCache as ItemCache
from .client import GW2Client as GW2Client
from .config import Settings as Settings
from .core import ItemBatcher as ItemBatcher
from .dashboard import AccountDashboard as AccountDashboard
from .models import FetchFailure as FetchFailure
from .models import ItemDetail as ItemDetail
from .models import Rarity as Rarity

__all__ = [
    "item_batching",
    "ItemBatcher",
    "ItemCache",
    "GW2Client",
    "Settings",
    "AccountDashboard",
    "ItemDetail",
    "FetchFailure",
    "Rarity",
]
