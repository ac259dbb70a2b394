import numpy as np
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d import Axes3D
from typing import Optional, Union

from Trajectories.TrajectoryRepository import RepositorySnapshot, TrajectoryRepository


def plot_accepted_trajectories(repository: Union[TrajectoryRepository, RepositorySnapshot],
                               candidate_positions: Optional[np.ndarray] = None,
                               ax: Optional[plt.Axes] = None,
                               trajectory_color: str = 'gray',
                               trajectory_width: float = 1.5,
                               show_poses: bool = True,
                               candidate_color: str = 'blue',
                               candidate_width: float = 2.0,
                               title: Optional[str] = None) -> plt.Axes:
    """
    Plot every accepted trajectory, and optionally a candidate, in 3D.

    Args:
        repository: TrajectoryRepository or a snapshot of one
        candidate_positions: Optional (T, 3) tip-link positions of a rollout
        ax: Matplotlib 3D axes. If None, creates new figure (default: None)
        trajectory_color: Color for accepted trajectories (default: 'gray')
        trajectory_width: Width of accepted trajectory lines (default: 1.5)
        show_poses: Whether to mark each stored pose (default: True)
        candidate_color: Color for the candidate line (default: 'blue')
        candidate_width: Width of the candidate line (default: 2.0)
        title: Plot title. If None, generates default title (default: None)

    Returns:
        Matplotlib 3D axes with the plot
    """
    if isinstance(repository, TrajectoryRepository):
        snapshot = repository.snapshot_for_read()
    else:
        snapshot = repository

    # Create axes if not provided
    if ax is None:
        fig = plt.figure(figsize=(10, 8))
        ax = fig.add_subplot(111, projection='3d')

    for idx, trajectory in enumerate(snapshot.trajectories):
        positions = trajectory.positions
        ax.plot(positions[:, 0], positions[:, 1], positions[:, 2],
                color=trajectory_color, linewidth=trajectory_width,
                label='Accepted trajectories' if idx == 0 else None)
        if show_poses:
            ax.scatter(positions[:, 0], positions[:, 1], positions[:, 2],
                       color=trajectory_color, s=8)

    if candidate_positions is not None:
        candidate_positions = np.atleast_2d(np.asarray(candidate_positions, dtype=np.float64))
        if candidate_positions.shape[1] != 3:
            raise ValueError(f"Candidate positions must have shape (T, 3), got {candidate_positions.shape}")
        ax.plot(candidate_positions[:, 0], candidate_positions[:, 1], candidate_positions[:, 2],
                color=candidate_color, linewidth=candidate_width, label='Candidate', zorder=10)

    # Labels
    ax.set_xlabel('X (m)')
    ax.set_ylabel('Y (m)')
    ax.set_zlabel('Z (m)')

    if title is None:
        title = f'Accepted Trajectories ({len(snapshot.trajectories)})'
    ax.set_title(title)

    handles, labels = ax.get_legend_handles_labels()
    if handles:
        ax.legend(handles=handles, labels=labels, loc='upper right')

    return ax
