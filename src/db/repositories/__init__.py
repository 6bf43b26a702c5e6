from .base import BaseRepository
from .vote_repo import vote_repo
from .message_repo import message_repo
from .proposal_repo import proposal_repo
from .block_repo import block_repo
from .profile_repo import profile_repo
from .report_repo import report_repo
from .match_repo import *

__all__ = [
    "BaseRepository",
    "vote_repo",
    "message_repo",
    "proposal_repo",
    "block_repo",
    "profile_repo",
    "report_repo",
    "insert_match_if_absent",
    "get_by_id",
    "get_matches_for_user",
    "get_partner_ids",
    "touch_last_message",
    "advance_read_cursor",
    "delete_match_cascade",
]
