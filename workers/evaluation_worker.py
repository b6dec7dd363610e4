"""Pool-side entry point for evaluation tasks.

Lives at module level so ``ProcessPoolExecutor`` can pickle it by reference.
"""

from __future__ import annotations

import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


def evaluate_task(evaluator: Any, task: Any) -> Any:
    """Evaluate one by-value task and return its record."""
    LOGGER.debug("Evaluating task %s", task.key)
    return evaluator.evaluate(task)
