import threading
import numpy as np
import fcl
from typing import Iterator, NamedTuple, Optional, Sequence, Tuple, Union
from scipy.spatial.distance import cdist

from Utils.GeometryUtils import copy_transform, make_transform, transform_positions


class Trajectory:
    """
    An accepted trajectory: one pose per discrete time step.

    Poses are stored as a private tuple of fcl.Transform copies and handed
    out as fresh copies, so stored poses never change. Only the
    translations take part in distance queries, so they are cached once as a
    read-only (N, 3) array.

    Attributes:
        poses: Tuple of fcl.Transform, one per time step
        positions: Read-only (N, 3) array of pose translations
    """

    def __init__(self, poses: Sequence[fcl.Transform]):
        """
        Initialize a trajectory from a sequence of poses.

        Args:
            poses: Sequence of fcl.Transform objects ordered by time step

        Raises:
            ValueError: If the sequence is empty or a position is not finite
            TypeError: If an element is not an fcl.Transform
        """
        poses = tuple(poses)
        if not poses:
            raise ValueError("Trajectory must contain at least one pose")
        for pose in poses:
            if not isinstance(pose, fcl.Transform):
                raise TypeError(f"Trajectory poses must be fcl.Transform objects, got {type(pose).__name__}")
        # fcl.Transform is mutable, keep private copies
        poses = tuple(copy_transform(pose) for pose in poses)

        positions = transform_positions(poses)
        if not np.all(np.isfinite(positions)):
            raise ValueError("Trajectory positions must be finite")
        positions.setflags(write=False)

        self._poses = poses
        self._positions = positions

    @classmethod
    def from_positions(cls, positions, rotations: Optional[Sequence[np.ndarray]] = None) -> "Trajectory":
        """
        Build a trajectory from an (N, 3) or (N, 2) array of positions.

        Args:
            positions: Array-like of positions, one row per time step
            rotations: Optional sequence of N 3x3 rotation matrices (identity if omitted)

        Returns:
            Trajectory with one pose per row
        """
        positions = np.atleast_2d(np.asarray(positions, dtype=np.float64))
        if positions.ndim != 2 or positions.shape[1] not in (2, 3):
            raise ValueError(f"Positions must have shape (N, 3) or (N, 2), got {positions.shape}")
        if rotations is not None and len(rotations) != positions.shape[0]:
            raise ValueError(f"Expected {positions.shape[0]} rotations, got {len(rotations)}")

        poses = []
        for idx, position in enumerate(positions):
            rotation = None if rotations is None else rotations[idx]
            poses.append(make_transform(position, rotation))
        return cls(poses)

    @property
    def poses(self) -> Tuple[fcl.Transform, ...]:
        """Copies of the stored poses."""
        return tuple(copy_transform(pose) for pose in self._poses)

    @property
    def positions(self) -> np.ndarray:
        return self._positions

    def __len__(self) -> int:
        return len(self._poses)

    def __iter__(self) -> Iterator[fcl.Transform]:
        return (copy_transform(pose) for pose in self._poses)

    def __getitem__(self, index: int) -> fcl.Transform:
        if isinstance(index, slice):
            return tuple(copy_transform(pose) for pose in self._poses[index])
        return copy_transform(self._poses[index])

    def __repr__(self) -> str:
        return f"Trajectory(num_poses={len(self._poses)})"


def as_trajectory(trajectory: Union[Trajectory, Sequence]) -> Trajectory:
    """Return ``trajectory`` unchanged, or build one from poses or a position array."""
    if isinstance(trajectory, Trajectory):
        return trajectory
    if isinstance(trajectory, (list, tuple)) and trajectory and isinstance(trajectory[0], fcl.Transform):
        return Trajectory(trajectory)
    return Trajectory.from_positions(trajectory)


_EMPTY_POSITIONS = np.empty((0, 3))
_EMPTY_POSITIONS.setflags(write=False)


class RepositorySnapshot(NamedTuple):
    """
    Immutable view of a TrajectoryRepository at one instant.

    Attributes:
        trajectories: Stored trajectories, in insertion order
        positions: Read-only (total_poses, 3) stack of every stored pose position
    """
    trajectories: Tuple[Trajectory, ...]
    positions: np.ndarray

    @property
    def num_poses(self) -> int:
        return self.positions.shape[0]

    def nearest_distances(self, points) -> np.ndarray:
        """
        Minimum Euclidean distance from each point to every stored pose.

        Args:
            points: (T, 3) array of query positions

        Returns:
            (T,) array of distances (inf everywhere if the snapshot is empty)
        """
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        if points.shape[1] != 3:
            raise ValueError(f"Query points must have shape (T, 3), got {points.shape}")

        if self.positions.shape[0] == 0:
            return np.full(points.shape[0], np.inf)
        if points.shape[0] == 0:
            return np.empty(0)

        return cdist(points, self.positions).min(axis=1)


class TrajectoryRepository:
    """
    Append-only store of accepted trajectories shared by every cost function.

    Writers are serialized by a lock and publish a fresh RepositorySnapshot
    (copy-on-write); readers grab the current snapshot reference without
    locking, so iteration never sees a partially added trajectory.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = RepositorySnapshot((), _EMPTY_POSITIONS)

    def add(self, trajectory: Union[Trajectory, Sequence]) -> Trajectory:
        """
        Append a trajectory.

        Args:
            trajectory: Trajectory, sequence of fcl.Transform, or (N, 3) positions

        Returns:
            The stored Trajectory
        """
        trajectory = as_trajectory(trajectory)

        with self._lock:
            current = self._snapshot
            positions = np.vstack([current.positions, trajectory.positions])
            positions.setflags(write=False)
            self._snapshot = RepositorySnapshot(current.trajectories + (trajectory,), positions)

        return trajectory

    def snapshot_for_read(self) -> RepositorySnapshot:
        """Get a consistent, immutable view of the current contents."""
        return self._snapshot

    def nearest_distances(self, points) -> np.ndarray:
        """Minimum distance from each point to every stored pose (see RepositorySnapshot)."""
        return self.snapshot_for_read().nearest_distances(points)

    @property
    def num_poses(self) -> int:
        return self._snapshot.num_poses

    def __len__(self) -> int:
        return len(self._snapshot.trajectories)

    def __repr__(self) -> str:
        snapshot = self._snapshot
        return f"TrajectoryRepository(num_trajectories={len(snapshot.trajectories)}, num_poses={snapshot.num_poses})"


_shared_repository: Optional[TrajectoryRepository] = None
_shared_repository_lock = threading.Lock()


def get_shared_repository() -> TrajectoryRepository:
    """Get the process-wide repository, creating it on first use."""
    global _shared_repository
    if _shared_repository is None:
        with _shared_repository_lock:
            if _shared_repository is None:
                _shared_repository = TrajectoryRepository()
    return _shared_repository
