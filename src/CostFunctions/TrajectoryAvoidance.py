"""Trajectory avoidance cost function.

Keeps new trajectories away from trajectories the planner accepted earlier.
Every rollout time step is scored by the distance between the group's tip
link and the nearest pose of any accepted trajectory:

    cost = 0                              if distance >= collision_clearance
    cost = min(1 / distance, penalty)     otherwise (penalty when distance == 0)

The cost drops from a positive value straight to zero at the clearance
boundary; this step is intentional.
"""

import math
import numbers
import threading
import warnings
import numpy as np
import fcl
from enum import Enum
from typing import Any, Mapping, NamedTuple, Optional, Tuple

from CostFunctions.CostFunctionBase import CostFunction, CostEvaluation, register_cost_function
from CostFunctions.Errors import ErrorCode, ConfigError, ContextError, UsageError, ComputeError
from Kinematics.KinematicsProviders import KinematicsProvider
from Trajectories.TrajectoryRepository import Trajectory, TrajectoryRepository, get_shared_repository


def compute_cost(distance: float, collision_clearance: float, collision_penalty: float) -> float:
    """
    Convert a distance to an accepted trajectory into a time-step cost.

    Args:
        distance: Distance to the nearest accepted pose (inf if none)
        collision_clearance: Distance below which the penalty activates
        collision_penalty: Upper bound on the cost

    Returns:
        float: 0 beyond the clearance, min(1/distance, penalty) inside it
    """
    if distance >= collision_clearance:
        return 0.0
    if distance <= 0.0:
        return float(collision_penalty)
    return min(1.0 / distance, float(collision_penalty))


def compute_costs_from_distances(distances: np.ndarray, collision_clearance: float,
                                 collision_penalty: float) -> np.ndarray:
    """Vectorized :func:`compute_cost`."""
    distances = np.asarray(distances, dtype=np.float64)
    costs = np.zeros(distances.shape)
    inside = distances < collision_clearance

    # 1/0 is left at inf so the minimum below clamps it to the penalty
    inverse = np.divide(1.0, distances, out=np.full(distances.shape, np.inf), where=distances > 0.0)
    costs[inside] = np.minimum(inverse[inside], collision_penalty)
    return costs


def _parse_number(config: Mapping[str, Any], key: str) -> float:
    if key not in config:
        raise ConfigError(f"Missing required parameter '{key}'")
    value = config[key]
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ConfigError(f"Parameter '{key}' must be numeric, got {type(value).__name__}")
    value = float(value)
    if not math.isfinite(value):
        raise ConfigError(f"Parameter '{key}' must be finite, got {value}")
    return value


def _parse_positive(config: Mapping[str, Any], key: str) -> float:
    value = _parse_number(config, key)
    if value <= 0.0:
        raise ConfigError(f"Parameter '{key}' must be positive, got {value}")
    return value


class CostFunctionConfig(NamedTuple):
    """
    Parameters of the trajectory avoidance cost.

    Attributes:
        collision_clearance: Distance threshold below which the penalty activates (> 0)
        collision_penalty: Upper bound on the per-step cost (> 0)
        hard_violation_distance: If set, a rollout with any scored step at or below
            this distance is reported invalid; None disables the check
    """
    collision_clearance: float
    collision_penalty: float
    hard_violation_distance: Optional[float] = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "CostFunctionConfig":
        """
        Parse a configuration mapping.

        Raises:
            ConfigError: If a required field is missing, non-numeric or not positive
        """
        if not isinstance(config, Mapping):
            raise ConfigError(f"Configuration must be a mapping, got {type(config).__name__}")

        clearance = _parse_positive(config, 'collision_clearance')
        penalty = _parse_positive(config, 'collision_penalty')

        hard_violation = None
        if config.get('hard_violation_distance') is not None:
            hard_violation = _parse_number(config, 'hard_violation_distance')
            if hard_violation < 0.0:
                raise ConfigError(f"Parameter 'hard_violation_distance' must be non-negative, got {hard_violation}")

        return cls(clearance, penalty, hard_violation)


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CONFIGURED = "configured"
    EVALUATING = "evaluating"
    DONE = "done"


_ACTIVE_STATES = (LifecycleState.CONFIGURED, LifecycleState.EVALUATING)


class PlanningContext(NamedTuple):
    """
    Everything captured for one planning episode.

    Attributes:
        planning_scene: Scene snapshot supplied by the host
        plan_request: The motion plan request
        optimizer_config: Optimizer settings, kept opaque
        group_name: Planning group being scored
        tip_link: Body frame used for distance measurement
        kinematics: Forward kinematics of the group
        num_dimensions: Rows expected in the parameter matrix
        config: Cost parameters frozen for the episode
    """
    planning_scene: Any
    plan_request: Any
    optimizer_config: Any
    group_name: str
    tip_link: str
    kinematics: KinematicsProvider
    num_dimensions: int
    config: CostFunctionConfig


@register_cost_function
class TrajectoryAvoidance(CostFunction):
    """Cost function that keeps new trajectories away from accepted ones.

    One instance is created per planning group. All instances share a single
    TrajectoryRepository (the process-wide one unless another is injected);
    :meth:`done` appends the host's final trajectory to it after a
    successful episode.

    ``compute_costs`` may be called concurrently for different rollouts: it
    only reads the frozen episode context and a repository snapshot.

    Parameters
    ----------
    repository : TrajectoryRepository, optional
        Store of accepted trajectories. Defaults to the shared repository.
    name : str
        Plugin name reported by :meth:`get_name` (default: 'TrajectoryAvoidance').
    verbose : bool
        Print lifecycle progress (default: False).
    """

    def __init__(self, repository: Optional[TrajectoryRepository] = None,
                 name: str = "TrajectoryAvoidance", verbose: bool = False):
        self.name = name
        self.verbose = verbose
        self._repository = repository if repository is not None else get_shared_repository()

        # robot details
        self.group_name = ""
        self.robot_model = None

        self._config: Optional[CostFunctionConfig] = None
        self._context: Optional[PlanningContext] = None
        self._state = LifecycleState.UNINITIALIZED
        self._state_lock = threading.Lock()

    @classmethod
    def add_trajectory(cls, trajectory) -> Trajectory:
        """Append a trajectory to the shared repository."""
        return get_shared_repository().add(trajectory)

    @property
    def repository(self) -> TrajectoryRepository:
        return self._repository

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def config(self) -> Optional[CostFunctionConfig]:
        return self._config

    @property
    def context(self) -> Optional[PlanningContext]:
        return self._context

    def get_group_name(self) -> str:
        return self.group_name

    def get_name(self) -> str:
        return self.name + "/" + self.group_name

    def initialize(self, robot_model, group_name: str, config: Mapping[str, Any]) -> bool:
        if self._state in _ACTIVE_STATES:
            self._warn("initialize() rejected while an episode is active")
            return False

        try:
            parsed = CostFunctionConfig.from_mapping(config)
        except ConfigError as err:
            self._warn(f"initialize() failed for group '{group_name}': {err}")
            return False

        with self._state_lock:
            self.robot_model = robot_model
            self.group_name = group_name
            self._config = parsed
            self._state = LifecycleState.INITIALIZED

        self._log(f"Initialized for group '{group_name}' "
                  f"(clearance={parsed.collision_clearance}, penalty={parsed.collision_penalty})")
        return True

    def configure(self, config: Mapping[str, Any]) -> bool:
        if self._state in _ACTIVE_STATES:
            self._warn("configure() rejected while an episode is active")
            return False

        try:
            parsed = CostFunctionConfig.from_mapping(config)
        except ConfigError as err:
            self._warn(f"configure() failed: {err}")
            return False

        self._config = parsed
        self._log(f"Configured (clearance={parsed.collision_clearance}, penalty={parsed.collision_penalty})")
        return True

    def set_motion_plan_request(self, planning_scene, request, optimizer_config) -> Tuple[bool, ErrorCode]:
        try:
            context = self._resolve_context(planning_scene, request, optimizer_config)
        except ContextError as err:
            self._warn(f"set_motion_plan_request() failed ({err.error_code.name}): {err}")
            return False, err.error_code

        with self._state_lock:
            abandoned = self._state in _ACTIVE_STATES
            self._context = context
            self._state = LifecycleState.CONFIGURED

        if abandoned:
            self._warn("New episode started before done() was called for the previous one")
        self._log(f"Episode started for group '{context.group_name}', tip link '{context.tip_link}', "
                  f"{len(self._repository)} accepted trajectories")
        return True, ErrorCode.SUCCESS

    def _resolve_context(self, planning_scene, request, optimizer_config) -> PlanningContext:
        if self._state is LifecycleState.UNINITIALIZED or self._config is None:
            raise ContextError("Cost function has not been initialized", ErrorCode.FAILURE)

        if planning_scene is None:
            raise ContextError("No planning scene supplied", ErrorCode.INVALID_MOTION_PLAN)
        if request is None:
            raise ContextError("No motion plan request supplied", ErrorCode.INVALID_MOTION_PLAN)

        request_group = getattr(request, 'group_name', None)
        start_state = getattr(request, 'start_state', None)
        if not request_group:
            raise ContextError("Motion plan request has no group name", ErrorCode.INVALID_MOTION_PLAN)
        if start_state is None or np.size(start_state) == 0:
            raise ContextError("Motion plan request has an empty start state", ErrorCode.INVALID_MOTION_PLAN)
        if request_group != self.group_name:
            raise ContextError(f"Request is for group '{request_group}' but this cost function "
                               f"scores group '{self.group_name}'", ErrorCode.INVALID_GROUP_NAME)

        robot_model = planning_scene.get_robot_model()
        if robot_model is None:
            robot_model = self.robot_model
        group = robot_model.get_joint_group(self.group_name) if robot_model is not None else None
        if group is None:
            raise ContextError(f"Group '{self.group_name}' is not defined in the robot model",
                               ErrorCode.INVALID_GROUP_NAME)

        tip_link = group.tip_link
        if not tip_link:
            raise ContextError(f"Group '{self.group_name}' has no tip link", ErrorCode.INVALID_LINK_NAME)
        if not group.kinematics.has_link(tip_link):
            raise ContextError(f"Tip link '{tip_link}' is unknown to the kinematics of group '{self.group_name}'",
                               ErrorCode.INVALID_LINK_NAME)

        try:
            start = np.asarray(start_state, dtype=np.float64).flatten()
        except (TypeError, ValueError):
            raise ContextError("Start state is not numeric", ErrorCode.INVALID_ROBOT_STATE)
        if start.size != group.num_dimensions:
            raise ContextError(f"Start state has {start.size} values, group '{self.group_name}' "
                               f"has {group.num_dimensions} joints", ErrorCode.INVALID_ROBOT_STATE)

        return PlanningContext(
            planning_scene=planning_scene,
            plan_request=request,
            optimizer_config=optimizer_config,
            group_name=self.group_name,
            tip_link=tip_link,
            kinematics=group.kinematics,
            num_dimensions=group.num_dimensions,
            config=self._config,
        )

    def compute_costs(self, parameters: np.ndarray, start_timestep: int, num_timesteps: int,
                      iteration_number: int, rollout_number: int) -> CostEvaluation:
        # state and context must come from the same episode
        with self._state_lock:
            state, context = self._state, self._context
        try:
            if state not in _ACTIVE_STATES or context is None:
                raise UsageError("compute_costs() called before a successful set_motion_plan_request()")
            block = self._select_timesteps(parameters, start_timestep, num_timesteps, context)
            self._mark_evaluating(context)

            if block.shape[1] == 0:
                return CostEvaluation(success=True, costs=np.empty(0), validity=True)

            distances = self._tip_link_distances(block, context)
        except UsageError as err:
            self._warn(f"compute_costs() rejected (iteration {iteration_number}, rollout {rollout_number}): {err}",
                       RuntimeWarning)
            return CostEvaluation.failed()
        except ComputeError as err:
            self._warn(f"compute_costs() failed (iteration {iteration_number}, rollout {rollout_number}): {err}",
                       RuntimeWarning)
            return CostEvaluation.failed()

        config = context.config
        costs = compute_costs_from_distances(distances, config.collision_clearance, config.collision_penalty)
        return CostEvaluation(success=True, costs=costs, validity=self._is_valid(distances, config))

    @staticmethod
    def _select_timesteps(parameters, start_timestep, num_timesteps, context: PlanningContext) -> np.ndarray:
        try:
            params = np.asarray(parameters, dtype=np.float64)
        except (TypeError, ValueError) as err:
            raise ComputeError(f"Parameters are not a numeric matrix: {err}")
        if params.ndim != 2:
            raise ComputeError(f"Parameters must be a 2D matrix, got {params.ndim} dimension(s)")
        if params.shape[0] != context.num_dimensions:
            raise ComputeError(f"Parameters have {params.shape[0]} rows, expected {context.num_dimensions}")

        for label, value in (("start_timestep", start_timestep), ("num_timesteps", num_timesteps)):
            if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 0:
                raise UsageError(f"{label} must be a non-negative integer, got {value!r}")
        if start_timestep + num_timesteps > params.shape[1]:
            raise UsageError(f"Time steps [{start_timestep}, {start_timestep + num_timesteps}) exceed the "
                             f"{params.shape[1]} available columns")

        block = params[:, start_timestep:start_timestep + num_timesteps]
        if not np.all(np.isfinite(block)):
            raise ComputeError("Parameters contain non-finite values")
        return block

    def _tip_link_distances(self, block: np.ndarray, context: PlanningContext) -> np.ndarray:
        try:
            positions = context.kinematics.get_link_positions(block, context.tip_link)
        except (KeyError, ValueError) as err:
            raise ComputeError(f"Kinematics failed for link '{context.tip_link}': {err}")
        positions = np.asarray(positions, dtype=np.float64)
        if positions.shape != (block.shape[1], 3) or not np.all(np.isfinite(positions)):
            raise ComputeError(f"Kinematics returned invalid positions of shape {positions.shape}")

        snapshot = self._repository.snapshot_for_read()
        return snapshot.nearest_distances(positions)

    @staticmethod
    def _is_valid(distances: np.ndarray, config: CostFunctionConfig) -> bool:
        if config.hard_violation_distance is None:
            return True
        return not bool(np.any(distances <= config.hard_violation_distance))

    def _mark_evaluating(self, context: PlanningContext):
        if self._state is LifecycleState.CONFIGURED:
            with self._state_lock:
                if self._state is LifecycleState.CONFIGURED and self._context is context:
                    self._state = LifecycleState.EVALUATING

    def done(self, success: bool, total_iterations: int, final_cost: float, final_trajectory=None):
        with self._state_lock:
            context = self._context
            active = self._state in _ACTIVE_STATES and context is not None
            if active:
                self._state = LifecycleState.DONE
                self._context = None

        if not active:
            self._warn("done() called without an active episode")
            return

        self._log(f"Episode finished: success={success}, iterations={total_iterations}, final cost={final_cost}")
        if not success:
            return
        if final_trajectory is None:
            self._warn("done() reported success without a final trajectory, repository unchanged")
            return

        try:
            trajectory = self._to_trajectory(final_trajectory, context)
        except (ComputeError, KeyError, TypeError, ValueError) as err:
            self._warn(f"done() could not store the final trajectory: {err}")
            return

        self._repository.add(trajectory)
        self._log(f"Added trajectory with {len(trajectory)} poses, "
                  f"repository now holds {len(self._repository)} trajectories")

    @staticmethod
    def _to_trajectory(final_trajectory, context: PlanningContext) -> Trajectory:
        if isinstance(final_trajectory, Trajectory):
            return final_trajectory
        if isinstance(final_trajectory, (list, tuple)) and final_trajectory \
                and isinstance(final_trajectory[0], fcl.Transform):
            return Trajectory(final_trajectory)

        params = np.asarray(final_trajectory, dtype=np.float64)
        if params.ndim != 2 or params.shape[0] != context.num_dimensions or params.shape[1] == 0:
            raise ComputeError(f"Final trajectory must have shape ({context.num_dimensions}, T), got {params.shape}")

        poses = [context.kinematics.get_link_pose(params[:, t], context.tip_link) for t in range(params.shape[1])]
        return Trajectory(poses)

    def _warn(self, message: str, category=UserWarning):
        warnings.warn(f"[{self.get_name()}] {message}", category, stacklevel=3)

    def _log(self, message: str):
        if self.verbose:
            print(f"[{self.name}] {message}", flush=True)

    def __repr__(self) -> str:
        return f"TrajectoryAvoidance(group={self.group_name!r}, state={self._state.value})"
