"""Storage for trajectories accepted by the planner.

Available classes:
- Trajectory: Immutable sequence of poses
- TrajectoryRepository: Append-only, thread-safe store shared by cost functions
"""

from .TrajectoryRepository import (
    Trajectory,
    RepositorySnapshot,
    TrajectoryRepository,
    as_trajectory,
    get_shared_repository,
)

__all__ = ['Trajectory', 'RepositorySnapshot', 'TrajectoryRepository', 'as_trajectory', 'get_shared_repository']
