"""
Shared building blocks for the credits and billing apps.

- core.models: BaseModel timestamps and UUIDPrimaryKeyMixin
- core.managers: BaseQuerySet and the append-only manager
- core.services: BaseService and ServiceResult
- core.exceptions: BaseApplicationError and its generic subclasses
- core.views: health_check
"""
