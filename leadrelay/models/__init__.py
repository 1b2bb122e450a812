from leadrelay.models.bot import Bot
from leadrelay.models.staged_lead import StagedLead

__all__ = [
    "Bot",
    "StagedLead",
]
