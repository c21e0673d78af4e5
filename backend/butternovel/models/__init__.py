from butternovel.models.notification import Notification, NotificationPriority, NotificationType
from butternovel.models.notification_preference import NotificationPreference
from butternovel.models.novel import Novel
from butternovel.models.recent_viewer import RecentViewer
from butternovel.models.user import User

__all__ = [
    "Notification",
    "NotificationPreference",
    "NotificationPriority",
    "NotificationType",
    "Novel",
    "RecentViewer",
    "User",
]
