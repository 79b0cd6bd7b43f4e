"""Helpers shared by the ledger, the API and the clients."""

from utils.timezone import local_date, now_utc, today_in
from utils.user_context import (
    clear_current_user_id,
    get_current_user_id,
    set_current_user_id,
    user_context,
)
