import dataclasses
import logging

from ..selection import select_conditions
from .base import BaseStep

logger = logging.getLogger(__name__)


class SelectConditionsStep(BaseStep):
    """
    Label events and build the condition set.

    Params:
    - group_by (list[str], optional): grouping fields replacing the discovered ones
    - exclude_practice (bool, default True)
    - conditions (list[str], optional): keep only labels containing one of these
    """

    def run(self, data):
        self._require(data, "discovery")
        group_by = self.params.get("group_by")
        if isinstance(group_by, str):
            group_by = [group_by]
        conditions = self.params.get("conditions")
        if isinstance(conditions, str):
            conditions = [conditions]

        result = select_conditions(
            data.events,
            group_by=group_by,
            exclude_practice=self.params.get("exclude_practice", True),
            conditions=conditions,
            structure=data.structure,
            discovery=data.discovery,
        )
        return dataclasses.replace(
            data,
            structure=result.structure,
            discovery=result.discovery,
            conditions=result.conditions,
        )
