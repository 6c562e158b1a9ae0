# A global STEP_REGISTRY that maps "step name" -> "step class".
# Filled in by eventsel.steps at import time.
STEP_REGISTRY = {}
