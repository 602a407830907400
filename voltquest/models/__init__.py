from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .user import User
from .event import GameEvent
from .catalog import Badge, Quest, VirtualItem
from .gamification import GameProfile, ProfileBadge, ProfileItem, ProfileQuest

__all__ = [
    'db',
    'User',
    'GameEvent',
    'Badge',
    'Quest',
    'VirtualItem',
    'GameProfile',
    'ProfileBadge',
    'ProfileItem',
    'ProfileQuest',
]
