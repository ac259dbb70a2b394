"""Cost functions for sampling-based trajectory optimization.

Available cost functions:
- TrajectoryAvoidance: Penalizes rollouts that pass close to accepted trajectories
"""

from .Errors import ErrorCode, ConfigError, ContextError, UsageError, ComputeError
from .CostFunctionBase import (
    CostFunction,
    CostEvaluation,
    register_cost_function,
    create_cost_function,
    get_registered_cost_functions,
)
from .TrajectoryAvoidance import (
    TrajectoryAvoidance,
    CostFunctionConfig,
    LifecycleState,
    PlanningContext,
    compute_cost,
    compute_costs_from_distances,
)
from .CostFunctionLoader import load_cost_function_config, create_cost_functions

__all__ = [
    'ErrorCode', 'ConfigError', 'ContextError', 'UsageError', 'ComputeError',
    'CostFunction', 'CostEvaluation', 'register_cost_function', 'create_cost_function',
    'get_registered_cost_functions',
    'TrajectoryAvoidance', 'CostFunctionConfig', 'LifecycleState', 'PlanningContext',
    'compute_cost', 'compute_costs_from_distances',
    'load_cost_function_config', 'create_cost_functions',
]
