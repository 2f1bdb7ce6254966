"""Infrastructure modules for the notification engine.

Components:
- configuration: Settings management (Settings, NotificationSettings)
- logging: Structured logging (get_module_logger, bind_request_context)
- idempotency: Idempotency cache for the queue consumer
- notifications: Notification delivery engine
- operations: Operation results returned by channel senders
- services: Application-scoped providers (get_settings)
"""
