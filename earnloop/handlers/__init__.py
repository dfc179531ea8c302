from .accounts import get_profile, open_account, register_device
from .common import AppContext
from .earn import (
    ad_reward_callback,
    check_earn_eligibility,
    checkin,
    complete_learn_module,
    earn_status,
    record_earn_event,
)
from .games import jackpot_info, purchase_mystery_bag, spin_jackpot
from .giveaway import (
    buy_entry,
    claim_free_entry,
    draw_history,
    earn_bonus_entry,
    giveaway_entries,
    giveaway_stats,
    run_giveaway_draw,
)
from .store import (
    get_adjusted_price,
    list_store_items,
    redeem_store_item,
    redemption_history,
    store_inventory,
)

__all__ = [
    "AppContext",
    "open_account",
    "get_profile",
    "register_device",
    "record_earn_event",
    "ad_reward_callback",
    "complete_learn_module",
    "checkin",
    "earn_status",
    "check_earn_eligibility",
    "spin_jackpot",
    "jackpot_info",
    "purchase_mystery_bag",
    "claim_free_entry",
    "buy_entry",
    "earn_bonus_entry",
    "giveaway_entries",
    "giveaway_stats",
    "run_giveaway_draw",
    "draw_history",
    "get_adjusted_price",
    "redeem_store_item",
    "list_store_items",
    "store_inventory",
    "redemption_history",
]
