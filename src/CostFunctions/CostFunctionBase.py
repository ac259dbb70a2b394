import numpy as np
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Tuple, Type

from CostFunctions.Errors import ConfigError, ErrorCode


class CostEvaluation(NamedTuple):
    """
    Result of scoring one rollout.

    Attributes:
        success: False if the call was rejected (usage or compute error)
        costs: Per-time-step costs for the scored range (empty on failure)
        validity: Whether the rollout is acceptable as a whole
    """
    success: bool
    costs: np.ndarray
    validity: bool

    @classmethod
    def failed(cls) -> "CostEvaluation":
        return cls(success=False, costs=np.empty(0), validity=False)


class CostFunction:
    """Base class for cost functions plugged into a sampling trajectory optimizer.

    The optimizer treats every cost function as a black box: it sets up the
    episode, asks for per-time-step costs of each noisy rollout, sums them with
    the other cost functions and finally reports the outcome through
    :meth:`done`. Concrete variants are registered by name with
    :func:`register_cost_function` and created with :func:`create_cost_function`.
    """

    def initialize(self, robot_model, group_name: str, config: Mapping[str, Any]) -> bool:
        """Bind the cost function to a kinematic model and planning group.

        Parameters
        ----------
        robot_model : ContextProvider
            Kinematic model shared with the host; never mutated.
        group_name : str
            Planning group this instance scores.
        config : Mapping
            Cost function parameters.

        Returns
        -------
        bool
            True if the configuration was accepted.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def configure(self, config: Mapping[str, Any]) -> bool:
        """Re-read the parameters; the last successful call wins."""
        raise NotImplementedError("This method should be overridden by subclasses.")

    def set_motion_plan_request(self, planning_scene, request, optimizer_config) -> Tuple[bool, ErrorCode]:
        """Capture the planning context of the upcoming episode.

        Parameters
        ----------
        planning_scene : PlanningScene
            Scene snapshot for the episode.
        request : MotionPlanRequest
            The request being planned.
        optimizer_config : object
            Optimizer settings for the episode, treated opaquely.

        Returns
        -------
        tuple of (bool, ErrorCode)
            Success flag and the matching error code.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def compute_costs(self, parameters: np.ndarray, start_timestep: int, num_timesteps: int,
                      iteration_number: int, rollout_number: int) -> CostEvaluation:
        """Compute the state costs of one rollout for each time step.

        Parameters
        ----------
        parameters : np.ndarray
            Matrix of shape (num_dimensions, num_parameters), one column per
            time step of the full trajectory.
        start_timestep : int
            Start index into the columns of ``parameters``, usually 0.
        num_timesteps : int
            Number of columns to score starting from ``start_timestep``.
        iteration_number : int
            Current iteration count in the optimization loop.
        rollout_number : int
            Index of the noisy trajectory whose cost is being evaluated.

        Returns
        -------
        CostEvaluation
            Costs for the selected range and the rollout validity.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_group_name(self) -> str:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_name(self) -> str:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def done(self, success: bool, total_iterations: int, final_cost: float, final_trajectory=None):
        """Notify the cost function that the optimizer finished the episode.

        Parameters
        ----------
        success : bool
            Whether the optimizer found an acceptable solution.
        total_iterations : int
            Iterations the optimizer ran.
        final_cost : float
            Cost of the final trajectory.
        final_trajectory : optional
            The trajectory the host accepted, if it wants it remembered.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")


COST_FUNCTION_REGISTRY: Dict[str, Type[CostFunction]] = {}


def register_cost_function(cls: Type[CostFunction]) -> Type[CostFunction]:
    """Class decorator recording a CostFunction variant under its class name."""
    if not (isinstance(cls, type) and issubclass(cls, CostFunction)):
        raise TypeError(f"{cls!r} is not a CostFunction subclass")
    COST_FUNCTION_REGISTRY[cls.__name__] = cls
    return cls


def get_registered_cost_functions() -> List[str]:
    return sorted(COST_FUNCTION_REGISTRY.keys())


def create_cost_function(name: str, **kwargs) -> CostFunction:
    """
    Instantiate a registered cost function.

    Args:
        name: Class name, optionally namespaced (e.g. "stomp_moveit/TrajectoryAvoidance")
        **kwargs: Constructor arguments

    Returns:
        New, uninitialized CostFunction

    Raises:
        ConfigError: If no cost function is registered under that name
    """
    key = str(name).split("/")[-1]
    factory: Callable[..., CostFunction] = COST_FUNCTION_REGISTRY.get(key)
    if factory is None:
        raise ConfigError(f"Cost function '{name}' is not recognized. "
                          f"Known cost functions are: {get_registered_cost_functions()}")
    return factory(**kwargs)
