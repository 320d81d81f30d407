"""
Compyy Backend — ORM Models
=============================

Importing this package registers every table with `Base.metadata`
(used by Alembic autogenerate and the test suite's create_all).
"""

from compyy.models.feedback import Feedback, SupportTicket
from compyy.models.game import GAME_TYPES, Game, GameFavorite, GameRating
from compyy.models.newsletter import NewsletterSubscriber
from compyy.models.referral import Referral, ReferralLink
from compyy.models.tag import Tag
from compyy.models.template import Template, TemplateDownload
from compyy.models.user import User

__all__ = [
    "Feedback",
    "GAME_TYPES",
    "Game",
    "GameFavorite",
    "GameRating",
    "NewsletterSubscriber",
    "Referral",
    "ReferralLink",
    "SupportTicket",
    "Tag",
    "Template",
    "TemplateDownload",
    "User",
]
