from martaz.models.user import User
from martaz.models.category import Category
from martaz.models.listing import Listing
from martaz.models.conversation import Conversation, Message
from martaz.models.listing_report import ListingReport, ACTIVE_REPORT_STATUSES
from martaz.models.favorite import Favorite
from martaz.models.platform_event import PlatformEvent
from martaz.models.job_run import JobRun
from martaz.models.seo_setting import SeoSetting

__all__ = [
    "User",
    "Category",
    "Listing",
    "Conversation",
    "Message",
    "ListingReport",
    "ACTIVE_REPORT_STATUSES",
    "Favorite",
    "PlatformEvent",
    "JobRun",
    "SeoSetting",
]
