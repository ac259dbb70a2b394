import numpy as np
import fcl
from typing import Dict, Optional, Sequence, Tuple
from scipy.spatial.transform import Rotation

from Utils.GeometryUtils import DCM3D, compose_transforms, make_transform


class KinematicsProvider:
    """Base class for forward kinematics used by cost functions.

    Maps a single parameter vector (one column of the optimizer's parameter
    matrix) to the pose of a named body frame. Implementations must not keep
    per-call state: cost functions call them concurrently from several
    rollout threads.

    Attributes
    ----------
    num_dimensions : int
        Length of the parameter vector.
    link_names : tuple of str
        Body frames whose pose can be queried.
    """

    def __init__(self, num_dimensions: int, link_names: Sequence[str]):
        if num_dimensions <= 0:
            raise ValueError(f"num_dimensions must be positive, got {num_dimensions}")
        self.num_dimensions = int(num_dimensions)
        self.link_names: Tuple[str, ...] = tuple(link_names)

    def has_link(self, link_name: str) -> bool:
        return link_name in self.link_names

    def get_link_pose(self, parameters: np.ndarray, link_name: str) -> fcl.Transform:
        """Compute the pose of ``link_name`` for one parameter vector.

        Parameters
        ----------
        parameters : np.ndarray
            Parameter vector of length ``num_dimensions``.
        link_name : str
            Body frame to evaluate.

        Returns
        -------
        fcl.Transform
            Pose of the link in the model's base frame.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_link_positions(self, parameters: np.ndarray, link_name: str) -> np.ndarray:
        """Compute link positions for every column of a parameter matrix.

        Parameters
        ----------
        parameters : np.ndarray
            Matrix of shape (num_dimensions, T).
        link_name : str
            Body frame to evaluate.

        Returns
        -------
        np.ndarray
            Positions of shape (T, 3).
        """
        parameters = self._as_matrix(parameters)
        positions = np.empty((parameters.shape[1], 3))
        for t in range(parameters.shape[1]):
            positions[t] = self.get_link_pose(parameters[:, t], link_name).getTranslation()
        return positions

    def _as_vector(self, parameters: np.ndarray) -> np.ndarray:
        vec = np.asarray(parameters, dtype=np.float64).flatten()
        if vec.size != self.num_dimensions:
            raise ValueError(f"Expected {self.num_dimensions} parameters, got {vec.size}")
        return vec

    def _as_matrix(self, parameters: np.ndarray) -> np.ndarray:
        mat = np.asarray(parameters, dtype=np.float64)
        if mat.ndim == 1:
            mat = mat.reshape(-1, 1)
        if mat.ndim != 2 or mat.shape[0] != self.num_dimensions:
            raise ValueError(f"Parameters must have shape ({self.num_dimensions}, T), got {mat.shape}")
        return mat

    def _check_link(self, link_name: str):
        if link_name not in self.link_names:
            raise KeyError(f"Unknown link '{link_name}'. Known links are: {self.link_names}")


class StateIndexKinematics(KinematicsProvider):
    """Reads a link pose straight out of the parameter vector.

    Suited to parameterizations where the optimized vector already holds the
    body position (and optionally its attitude), e.g. Cartesian waypoints or
    a rigid-body state vector.

    Parameters
    ----------
    num_dimensions : int
        Length of the parameter vector.
    link_name : str
        Name of the single body frame this provider exposes.
    state_indices : dict, optional
        Dictionary mapping 'position' (required) and optionally 'dcm' or 'quat'.
        'position': [x_idx, y_idx, z_idx] or [x_idx, y_idx] (z = 0 for 2D)
        'dcm': [i0, ..., i8] - indices for a 9-element DCM (row-major)
        'quat': [qw_idx, qx_idx, qy_idx, qz_idx] - scalar-first quaternion
        Example: {'position': [0, 1, 2], 'quat': [6, 7, 8, 9]}
        If None, assumes position at [0, 1, 2] with no rotation (identity DCM).
    """

    def __init__(self, num_dimensions: int, link_name: str = "tip_link",
                 state_indices: Optional[Dict[str, Sequence[int]]] = None):
        super().__init__(num_dimensions, [link_name])
        self.link_name = link_name

        state_indices = state_indices or {}
        self._pos_idx = np.array(state_indices.get('position', [0, 1, 2]), dtype=np.int32)
        if len(self._pos_idx) not in (2, 3):
            raise ValueError(f"Position indices must have 2 or 3 elements, got {len(self._pos_idx)}")

        self._dcm_idx = None
        self._quat_idx = None
        if state_indices.get('dcm') is not None and state_indices.get('quat') is not None:
            raise ValueError("Specify at most one of 'dcm' and 'quat' indices")
        if state_indices.get('dcm') is not None:
            dcm = state_indices['dcm']
            if len(dcm) != 9:
                raise ValueError(f"DCM indices must have exactly 9 elements (row-major 3x3), got {len(dcm)}")
            self._dcm_idx = np.array(dcm, dtype=np.int32)
        elif state_indices.get('quat') is not None:
            quat = state_indices['quat']
            if len(quat) != 4:
                raise ValueError(f"Quaternion indices must have exactly 4 elements [qw, qx, qy, qz], got {len(quat)}")
            self._quat_idx = np.array(quat, dtype=np.int32)

        for idx in (self._pos_idx, self._dcm_idx, self._quat_idx):
            if idx is not None and (idx.min() < 0 or idx.max() >= self.num_dimensions):
                raise ValueError(f"State indices {idx.tolist()} out of range for {self.num_dimensions} dimensions")

    def _rotation_from_state(self, state: np.ndarray) -> np.ndarray:
        if self._dcm_idx is not None:
            return state[self._dcm_idx].reshape(3, 3)
        if self._quat_idx is not None:
            qw, qx, qy, qz = state[self._quat_idx]
            # scipy expects scalar-last ordering
            return Rotation.from_quat([qx, qy, qz, qw]).as_matrix()
        return np.eye(3)

    def get_link_pose(self, parameters: np.ndarray, link_name: str) -> fcl.Transform:
        self._check_link(link_name)
        state = self._as_vector(parameters)
        return make_transform(state[self._pos_idx], self._rotation_from_state(state))

    def get_link_positions(self, parameters: np.ndarray, link_name: str) -> np.ndarray:
        self._check_link(link_name)
        parameters = self._as_matrix(parameters)
        positions = parameters[self._pos_idx, :].T
        if len(self._pos_idx) == 2:
            positions = np.hstack([positions, np.zeros((positions.shape[0], 1))])
        return np.ascontiguousarray(positions)

    def __repr__(self) -> str:
        return f"StateIndexKinematics(num_dimensions={self.num_dimensions}, link_name={self.link_name!r})"


class SerialChainKinematics(KinematicsProvider):
    """Forward kinematics of a serial chain of revolute joints.

    Joint ``i`` rotates about its axis (expressed in the previous link frame)
    and is followed by a link of length ``link_lengths[i]`` along the rotated
    local x-axis. Every link frame is queryable; the last one is the natural
    tip link.

    Parameters
    ----------
    link_lengths : sequence of float
        Length of each link (one per joint).
    axes : sequence of str, optional
        Rotation axis of each joint, one of 'x', 'y', 'z'. Defaults to all 'z'
        (a planar arm).
    link_names : sequence of str, optional
        Name of the frame at the end of each link. Defaults to
        ``link_1 .. link_n``.
    base_transform : fcl.Transform, optional
        Pose of the chain base in the model frame (identity if omitted).
    """

    def __init__(self, link_lengths: Sequence[float], axes: Optional[Sequence[str]] = None,
                 link_names: Optional[Sequence[str]] = None,
                 base_transform: Optional[fcl.Transform] = None):
        link_lengths = np.asarray(link_lengths, dtype=np.float64).flatten()
        num_joints = link_lengths.size
        if link_names is None:
            link_names = [f"link_{i + 1}" for i in range(num_joints)]
        if axes is None:
            axes = ["z"] * num_joints
        if len(link_names) != num_joints or len(axes) != num_joints:
            raise ValueError(f"Need one axis and one link name per joint ({num_joints}), "
                             f"got {len(axes)} axes and {len(link_names)} link names")
        for axis in axes:
            if axis not in ("x", "y", "z"):
                raise ValueError(f"Invalid joint axis '{axis}'")

        super().__init__(num_joints, link_names)
        self.link_lengths = link_lengths
        self.axes = tuple(axes)

        if base_transform is None:
            base_transform = make_transform([0.0, 0.0, 0.0])
        self.base_transform = base_transform

    @property
    def tip_link(self) -> str:
        return self.link_names[-1]

    def get_link_pose(self, parameters: np.ndarray, link_name: str) -> fcl.Transform:
        self._check_link(link_name)
        joints = self._as_vector(parameters)
        last = self.link_names.index(link_name)

        # chain pose relative to the base
        rotation = np.eye(3)
        position = np.zeros(3)
        for i in range(last + 1):
            rotation = rotation @ DCM3D(joints[i], self.axes[i])
            position = position + rotation @ np.array([self.link_lengths[i], 0.0, 0.0])

        return compose_transforms(self.base_transform, fcl.Transform(rotation, position))

    def __repr__(self) -> str:
        return f"SerialChainKinematics(num_joints={self.num_dimensions}, axes={self.axes})"
