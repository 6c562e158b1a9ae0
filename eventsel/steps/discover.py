import dataclasses
import logging

from ..errors import ClassifierUnavailableError
from ..selection import discover
from ..utils.classifier import DEFAULT_TIMEOUT_SEC, ClassifierMode, make_classifier
from .base import BaseStep

logger = logging.getLogger(__name__)


class DiscoverFieldsStep(BaseStep):
    """
    Discover grouping fields, optionally consulting an external classifier.

    Params (the Pipeline fills unset keys from the top-level `classifier`
    block):
    - mode: never | always | auto (default auto)
    - provider: anthropic | openai (default anthropic)
    - model, timeout_sec, max_tokens: passed to the classifier client
    """

    def run(self, data):
        self._require(data, "structure")
        mode = ClassifierMode.parse(self.params.get("mode", "auto"))
        classifier = self._make_classifier(mode)
        discovery = discover(data.events, data.structure, mode, classifier)
        if discovery.ambiguous_fields:
            logger.info(f"[DiscoverFieldsStep] Ambiguous fields: {', '.join(discovery.ambiguous_fields)}")
        return dataclasses.replace(data, discovery=discovery, conditions=None)

    def _make_classifier(self, mode):
        if mode is ClassifierMode.NEVER:
            return None
        kwargs = {"timeout_sec": self.params.get("timeout_sec", DEFAULT_TIMEOUT_SEC)}
        if self.params.get("model"):
            kwargs["model"] = self.params["model"]
        if self.params.get("max_tokens"):
            kwargs["max_tokens"] = self.params["max_tokens"]
        try:
            return make_classifier(self.params.get("provider", "anthropic"), **kwargs)
        except ClassifierUnavailableError as e:
            logger.warning(f"[DiscoverFieldsStep] {e} Continuing with heuristic analysis only.")
            return None
