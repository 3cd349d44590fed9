"""Client-side admin notification management.

Typical wiring:

    from admin_notifications import create_enhanced_notification_service

    service = create_enhanced_notification_service()
    service.start()
    notifications = await service.fetch_notifications()
"""

from admin_notifications.core.exceptions import (  # noqa: F401
    BulkOperationError,
    NotificationError,
)
from admin_notifications.services.enhanced_notification import (  # noqa: F401
    EnhancedNotificationService,
    create_enhanced_notification_service,
)
from admin_notifications.services.notification import (  # noqa: F401
    NotificationService,
    create_notification_service,
    get_notification_service,
    set_notification_service,
)
