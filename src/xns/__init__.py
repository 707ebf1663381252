"""
X Notification Server (xns)

以固定间隔轮询已注册 X 账号的通知时间线，把新出现的通知
（按 sort_index 增量判断）通过 UnifiedPush 推送到每个账号自己的推送端点。
"""

from .models import Account, Notification

__all__ = [
    "Account",
    "Notification",
]
