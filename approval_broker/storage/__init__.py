"""Repositories backed by the SQLAlchemy store."""

from .api_keys import ApiKeyRepository
from .escalations import FUNCTION_CALL_KIND, HUMAN_CONTACT_KIND, EscalationRepository
from .function_calls import FunctionCallRepository
from .human_contacts import HumanContactRepository

__all__ = [
    "ApiKeyRepository",
    "EscalationRepository",
    "FunctionCallRepository",
    "HumanContactRepository",
    "FUNCTION_CALL_KIND",
    "HUMAN_CONTACT_KIND",
]
