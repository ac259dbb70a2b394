"""Cost shaping and scoring tests for the TrajectoryAvoidance cost function.

The group used here is a Cartesian "robot" whose parameter rows are the tip
link coordinates, so every parameter column is directly the measured point.
"""

import sys
import warnings
from pathlib import Path

import numpy as np
import pytest

# Add project source to path
root_dir = Path(__file__).parent.parent
sys.path.append(str(root_dir / "src"))

from CostFunctions.TrajectoryAvoidance import (  # type: ignore
    TrajectoryAvoidance,
    compute_cost,
    compute_costs_from_distances,
)
from Kinematics.KinematicsProviders import StateIndexKinematics, SerialChainKinematics  # type: ignore
from Kinematics.KinematicModel import JointGroup, KinematicModel, PlanningScene, MotionPlanRequest  # type: ignore
from Trajectories.TrajectoryRepository import TrajectoryRepository  # type: ignore

CLEARANCE = 0.5
PENALTY = 1000.0
CONFIG = {'collision_clearance': CLEARANCE, 'collision_penalty': PENALTY}


def make_cartesian_model():
    kinematics = StateIndexKinematics(3, link_name="tool0")
    group = JointGroup("manipulator", ("x", "y", "z"), "tool0", kinematics)
    return KinematicModel("cartesian", [group])


def make_evaluator(repository=None, config=None):
    """Initialized evaluator with an episode already set up."""
    if repository is None:
        repository = TrajectoryRepository()
    model = make_cartesian_model()
    evaluator = TrajectoryAvoidance(repository=repository)
    assert evaluator.initialize(model, "manipulator", config or CONFIG)

    request = MotionPlanRequest("manipulator", np.zeros(3))
    ok, _ = evaluator.set_motion_plan_request(PlanningScene(model), request, {"num_timesteps": 10})
    assert ok
    return evaluator


def column(*points):
    """Parameter matrix with one column per point."""
    return np.asarray(points, dtype=float).T


# ============================================================================
# Cost shaping
# ============================================================================

def test_cost_is_zero_at_or_beyond_clearance():
    for d in np.linspace(CLEARANCE, 10.0, 50):
        assert compute_cost(d, CLEARANCE, PENALTY) == 0.0
    assert compute_cost(np.inf, CLEARANCE, PENALTY) == 0.0


def test_cost_inside_clearance_is_inverse_distance():
    for d in np.linspace(0.0005, 0.4999, 100):
        assert compute_cost(d, CLEARANCE, PENALTY) == pytest.approx(min(1.0 / d, PENALTY))


def test_cost_strictly_decreasing_below_clearance():
    distances = np.linspace(0.002, 0.499, 200)
    costs = compute_costs_from_distances(distances, CLEARANCE, PENALTY)
    assert np.all(np.diff(costs) < 0.0)


def test_zero_distance_clamps_to_penalty_without_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert compute_cost(0.0, CLEARANCE, PENALTY) == PENALTY
        costs = compute_costs_from_distances(np.array([0.0, 0.0]), CLEARANCE, PENALTY)
    np.testing.assert_array_equal(costs, [PENALTY, PENALTY])
    assert np.all(np.isfinite(costs))


def test_vectorized_matches_scalar():
    distances = np.array([0.0, 1e-4, 0.1, 0.25, 0.4999, 0.5, 0.75, np.inf])
    expected = [compute_cost(d, CLEARANCE, PENALTY) for d in distances]
    np.testing.assert_allclose(compute_costs_from_distances(distances, CLEARANCE, PENALTY), expected)


def test_boundary_discontinuity():
    just_inside = compute_cost(np.nextafter(CLEARANCE, 0.0), CLEARANCE, PENALTY)
    assert just_inside == pytest.approx(1.0 / CLEARANCE)
    assert compute_cost(CLEARANCE, CLEARANCE, PENALTY) == 0.0


# ============================================================================
# Scenarios
# ============================================================================

def test_scenario_a_empty_repository():
    evaluator = make_evaluator()
    params = np.random.default_rng(0).uniform(-1, 1, size=(3, 20))

    result = evaluator.compute_costs(params, 0, 20, 0, 0)

    assert result.success
    assert result.validity
    assert result.costs.shape == (20,)
    assert np.all(result.costs == 0.0)


def test_scenario_b_inside_clearance():
    repository = TrajectoryRepository()
    repository.add(np.array([[0.0, 0.0, 0.0]]))
    evaluator = make_evaluator(repository)

    result = evaluator.compute_costs(column([0.1, 0.0, 0.0]), 0, 1, 0, 0)

    assert result.success
    assert result.validity
    assert result.costs[0] == pytest.approx(10.0)


def test_scenario_c_exactly_at_clearance():
    repository = TrajectoryRepository()
    repository.add(np.array([[0.0, 0.0, 0.0]]))
    evaluator = make_evaluator(repository)

    result = evaluator.compute_costs(column([0.5, 0.0, 0.0]), 0, 1, 0, 0)

    assert result.success
    assert result.costs[0] == 0.0


def test_scenario_d_coincident_pose():
    repository = TrajectoryRepository()
    repository.add(np.array([[0.0, 0.0, 0.0]]))
    evaluator = make_evaluator(repository)

    result = evaluator.compute_costs(column([0.0, 0.0, 0.0]), 0, 1, 0, 0)

    assert result.success
    assert result.costs[0] == PENALTY
    # without a hard violation policy costs alone drive avoidance
    assert result.validity


def test_nearest_pose_across_all_trajectories():
    repository = TrajectoryRepository()
    repository.add(np.array([[5.0, 5.0, 5.0], [0.0, 0.0, 0.2]]))
    repository.add(np.array([[0.0, 0.25, 0.0]]))
    evaluator = make_evaluator(repository)

    result = evaluator.compute_costs(column([0.0, 0.0, 0.0], [3.0, 3.0, 3.0]), 0, 2, 1, 0)

    np.testing.assert_allclose(result.costs, [1.0 / 0.2, 0.0])


# ============================================================================
# Scoring contract
# ============================================================================

def test_costs_cover_selected_sub_range():
    repository = TrajectoryRepository()
    repository.add(np.array([[0.0, 0.0, 0.0]]))
    evaluator = make_evaluator(repository)

    points = [[d, 0.0, 0.0] for d in (0.05, 0.1, 0.2, 0.25, 0.4, 1.0)]
    result = evaluator.compute_costs(column(*points), 2, 3, 0, 0)

    assert result.success
    np.testing.assert_allclose(result.costs, [5.0, 4.0, 2.5])


def test_zero_timesteps_is_empty_success():
    evaluator = make_evaluator()
    result = evaluator.compute_costs(np.zeros((3, 4)), 4, 0, 0, 0)
    assert result.success
    assert result.validity
    assert result.costs.shape == (0,)


def test_repeated_scoring_is_deterministic():
    repository = TrajectoryRepository()
    rng = np.random.default_rng(3)
    repository.add(rng.uniform(-0.5, 0.5, size=(15, 3)))
    evaluator = make_evaluator(repository)
    params = rng.uniform(-0.5, 0.5, size=(3, 30))

    first = evaluator.compute_costs(params, 0, 30, 0, 0)
    second = evaluator.compute_costs(params.copy(), 0, 30, 7, 3)

    np.testing.assert_array_equal(first.costs, second.costs)
    assert first.validity == second.validity


def test_new_trajectories_are_visible_to_later_calls():
    repository = TrajectoryRepository()
    evaluator = make_evaluator(repository)
    params = column([0.0, 0.0, 0.0])

    assert evaluator.compute_costs(params, 0, 1, 0, 0).costs[0] == 0.0
    repository.add(np.array([[0.0, 0.0, 0.25]]))
    assert evaluator.compute_costs(params, 0, 1, 1, 0).costs[0] == pytest.approx(4.0)


def test_scoring_does_not_mutate_parameters():
    evaluator = make_evaluator()
    params = np.ones((3, 5))
    params.setflags(write=False)
    result = evaluator.compute_costs(params, 0, 5, 0, 0)
    assert result.success


def test_hard_violation_policy():
    repository = TrajectoryRepository()
    repository.add(np.array([[0.0, 0.0, 0.0]]))
    config = dict(CONFIG, hard_violation_distance=0.05)
    evaluator = make_evaluator(repository, config)

    touching = evaluator.compute_costs(column([0.5, 0.0, 0.0], [0.01, 0.0, 0.0]), 0, 2, 0, 0)
    assert touching.success
    assert not touching.validity
    np.testing.assert_allclose(touching.costs, [0.0, 100.0])

    clear = evaluator.compute_costs(column([0.1, 0.0, 0.0]), 0, 1, 0, 1)
    assert clear.validity

    # only the scored range is checked
    outside_range = evaluator.compute_costs(column([0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), 1, 1, 0, 2)
    assert outside_range.validity


def test_joint_space_scoring_uses_tip_link():
    arm = SerialChainKinematics([1.0, 1.0])
    model = KinematicModel("planar_arm", [JointGroup("arm", ("shoulder", "elbow"), "link_2", arm)])
    repository = TrajectoryRepository()
    repository.add(np.array([[2.0, 0.0, 0.0]]))

    evaluator = TrajectoryAvoidance(repository=repository)
    assert evaluator.initialize(model, "arm", CONFIG)
    ok, _ = evaluator.set_motion_plan_request(PlanningScene(model), MotionPlanRequest("arm", np.zeros(2)), None)
    assert ok

    # straight arm touches the stored pose, folded arm is far away
    params = np.array([[0.0, np.pi / 2],
                       [0.0, 0.0]])
    result = evaluator.compute_costs(params, 0, 2, 0, 0)

    assert result.success
    assert result.costs[0] == PENALTY
    assert result.costs[1] == 0.0


# ============================================================================
# Usage and compute errors
# ============================================================================

def test_scoring_before_episode_is_rejected():
    evaluator = TrajectoryAvoidance(repository=TrajectoryRepository())
    with pytest.warns(RuntimeWarning):
        result = evaluator.compute_costs(np.zeros((3, 2)), 0, 2, 0, 0)
    assert not result.success
    assert not result.validity
    assert result.costs.size == 0

    assert evaluator.initialize(make_cartesian_model(), "manipulator", CONFIG)
    with pytest.warns(RuntimeWarning):
        assert not evaluator.compute_costs(np.zeros((3, 2)), 0, 2, 0, 0).success


@pytest.mark.parametrize("start, num", [(4, 3), (0, 7), (-1, 2), (0, -1), (1.5, 2), (True, 1)])
def test_out_of_range_timesteps_are_rejected(start, num):
    evaluator = make_evaluator()
    with pytest.warns(RuntimeWarning):
        result = evaluator.compute_costs(np.zeros((3, 6)), start, num, 0, 0)
    assert not result.success
    assert result.costs.size == 0


@pytest.mark.parametrize("params", [
    np.zeros((2, 6)),
    np.zeros(6),
    np.zeros((3, 6, 1)),
    [["a", "b"], ["c", "d"], ["e", "f"]],
])
def test_malformed_parameters_are_rejected(params):
    evaluator = make_evaluator()
    with pytest.warns(RuntimeWarning):
        result = evaluator.compute_costs(params, 0, 2, 0, 0)
    assert not result.success


def test_non_finite_values_only_matter_inside_range():
    evaluator = make_evaluator()
    params = np.zeros((3, 4))
    params[1, 3] = np.nan

    assert evaluator.compute_costs(params, 0, 3, 0, 0).success
    with pytest.warns(RuntimeWarning):
        assert not evaluator.compute_costs(params, 1, 3, 0, 0).success
