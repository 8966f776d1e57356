"""Cache-fronted services for combinations and triggers."""

from callflow.services.combinations import CombinationCacheService
from callflow.services.triggers import TriggerCacheService

__all__ = ["CombinationCacheService", "TriggerCacheService"]
