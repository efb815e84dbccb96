"""Activity implementations: order saga steps and schema node executors."""

from pyflownodes.activities.nodes import (
    DEFAULT_NODE_ACTIVITIES,
    NodeExecutorRegistry,
    NodeExecutors,
)
from pyflownodes.activities.order import OrderActivities

__all__ = [
    "DEFAULT_NODE_ACTIVITIES",
    "NodeExecutorRegistry",
    "NodeExecutors",
    "OrderActivities",
]
