from unilink.screens.base import Screen
from unilink.screens.career import CareerScreen
from unilink.screens.feed import FeedScreen
from unilink.screens.jobs import JobBoardScreen
from unilink.screens.messages import MessagesScreen
from unilink.screens.network import NetworkScreen
from unilink.screens.notifications import NotificationsScreen
from unilink.screens.profile import ProfileScreen

__all__ = [
    "Screen",
    "CareerScreen",
    "FeedScreen",
    "JobBoardScreen",
    "MessagesScreen",
    "NetworkScreen",
    "NotificationsScreen",
    "ProfileScreen",
]
