"""
Base Service Class.

Services receive their collaborators (repository, evaluator, config) via
``__init__``; this base only fixes where the injected logger lives.
"""

from __future__ import annotations

from identity_link.logger import StructuredLogger


class BaseService:
    """Base class for identity-link services. Provides ``self._logger``."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
