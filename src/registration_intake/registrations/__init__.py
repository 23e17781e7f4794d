from .models import Registration, Status
from .repository import RegistrationFilter, RegistrationRepository
from .review import ReviewPayload, ReviewState, transition
from .service import RegistrationService

__all__ = [
    "Registration",
    "RegistrationFilter",
    "RegistrationRepository",
    "RegistrationService",
    "ReviewPayload",
    "ReviewState",
    "Status",
    "transition",
]
