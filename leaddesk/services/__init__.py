"""Service layer: settings, availability, appointments, booking negotiations and scheduling requests."""
from leaddesk.services.appointment_service import AppointmentService
from leaddesk.services.availability_service import AvailabilityService
from leaddesk.services.booking_service import BookingService
from leaddesk.services.scheduling_request_service import SchedulingRequestService
from leaddesk.services.settings_service import SchedulingSettingsService

__all__ = [
    "SchedulingSettingsService",
    "AvailabilityService",
    "AppointmentService",
    "BookingService",
    "SchedulingRequestService",
]
