from core.services.capacity_reconciler import CapacityReconciler
from core.services.waitlist_promoter import WaitlistPromoter
from core.services.scheduler_service import SchedulerService
from core.services.settlement_calculator import SettlementCalculator
from core.services.registration_service import RegistrationService
from core.services.event_registry_service import EventRegistryService
from core.services.settlement_service import SettlementService

__all__ = [
    "CapacityReconciler",
    "WaitlistPromoter",
    "SchedulerService",
    "SettlementCalculator",
    "RegistrationService",
    "EventRegistryService",
    "SettlementService",
]
