"""
Domain models — Pydantic types for nodeprep.

All models are re-exported here for convenient access:

    from nodeprep.core.models import ActionInputs, CacheKey, InstallOutcome, Action, Receipt
"""

from nodeprep.core.models.action import Action, Receipt, ReceiptStatus
from nodeprep.core.models.cache import CacheKey, InstallMode, InstallOutcome
from nodeprep.core.models.inputs import ActionInputs

__all__ = [
    "Action",
    "ActionInputs",
    "CacheKey",
    "InstallMode",
    "InstallOutcome",
    "Receipt",
    "ReceiptStatus",
]
