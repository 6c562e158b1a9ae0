# File: eventsel/steps/__init__.py
"""
Initialization file for the steps package.

This file imports and registers all step classes in the STEP_REGISTRY so
that the pipeline can reference them by name without extra imports.
"""

import logging

from eventsel.registry import STEP_REGISTRY

from .base import BaseStep, EventData
from .load import LoadEventsStep
from .detect import DetectFormatStep
from .discover import DiscoverFieldsStep
from .select import SelectConditionsStep
from .export import ExportConditionsStep

# Register them in the global STEP_REGISTRY
STEP_REGISTRY.update({
    "LoadEventsStep": LoadEventsStep,
    "DetectFormatStep": DetectFormatStep,
    "DiscoverFieldsStep": DiscoverFieldsStep,
    "SelectConditionsStep": SelectConditionsStep,
    "ExportConditionsStep": ExportConditionsStep,
})

logging.getLogger(__name__).debug("[steps] All step classes have been registered in STEP_REGISTRY.")

__all__ = [
    "STEP_REGISTRY",
    "BaseStep",
    "EventData",
    "LoadEventsStep",
    "DetectFormatStep",
    "DiscoverFieldsStep",
    "SelectConditionsStep",
    "ExportConditionsStep",
]
