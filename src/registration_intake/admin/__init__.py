from .analytics import dashboard, growth, registration_analytics
from .export import export_registrations

__all__ = ["dashboard", "export_registrations", "growth", "registration_analytics"]
