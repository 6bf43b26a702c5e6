from src.db.models.user_profile import UserProfile
from src.db.models.swipe_vote import SwipeVote, VoteDirection
from src.db.models.match import Match
from src.db.models.conversation_message import ConversationMessage, SYSTEM_SENDER_ID
from src.db.models.meetup_proposal import MeetupProposal, ProposalStatus
from src.db.models.block_record import BlockRecord
from src.db.models.user_report import UserReport, ReportReason

__all__ = [
    "UserProfile",
    "SwipeVote",
    "VoteDirection",
    "Match",
    "ConversationMessage",
    "SYSTEM_SENDER_ID",
    "MeetupProposal",
    "ProposalStatus",
    "BlockRecord",
    "UserReport",
    "ReportReason",
]
