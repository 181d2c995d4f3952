from publishdesk.domain.models.publish_task import PlatformContent, PublishRecord, PublishTask, TaskAccount
from publishdesk.domain.models.revoked_token import RevokedToken
from publishdesk.domain.models.social_account import SocialAccount
from publishdesk.domain.models.user import User

__all__ = [
    "User",
    "RevokedToken",
    "SocialAccount",
    "PublishTask",
    "PlatformContent",
    "PublishRecord",
    "TaskAccount",
]
