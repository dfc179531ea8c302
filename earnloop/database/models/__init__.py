from .user import User
from .balance import AccountBalance
from .fraud import Device, FraudFlag, FlagSeverity
from .earn_event import EarnEvent, EarnEventType
from .streak import Streak
from .store import InventoryItem, Redemption, RedemptionStatus, StoreItem, StoreItemType
from .giveaway import (
    EntryType,
    Giveaway,
    GiveawayDraw,
    GiveawayEntry,
    GiveawayEntryArchive,
    PrizeType,
)
from .jackpot import JackpotPool, JackpotSpin
from .mystery_bag import MysteryBagOpen
from .logs import AuditLog

__all__ = [
    "User",
    "AccountBalance",
    "Device",
    "FraudFlag",
    "FlagSeverity",
    "EarnEvent",
    "EarnEventType",
    "Streak",
    "StoreItem",
    "StoreItemType",
    "Redemption",
    "RedemptionStatus",
    "InventoryItem",
    "Giveaway",
    "GiveawayEntry",
    "GiveawayEntryArchive",
    "GiveawayDraw",
    "EntryType",
    "PrizeType",
    "JackpotPool",
    "JackpotSpin",
    "MysteryBagOpen",
    "AuditLog",
]
