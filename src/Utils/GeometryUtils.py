import numpy as np
from typing import Iterable, Optional
import fcl


def DCM3D(angle: float, axis: str):
    """ this is a direction cosine matrix for 3D rotation
        It will express the vector currently in the 'rotated' frame to the 'base' frame
        when using the theta measured around the axis of rotation of the base frame with positive following the RHR
        i.e. if i rotate 90 degrees about the z axis i expect the roated frame to appear 90 CCW from the base frame about the z axis
        such that when I point my thumb along the z axis my fingers curl in the direction of rotation"""
    if axis == "x":
        return np.array([[1, 0, 0], [0, np.cos(angle), -np.sin(angle)], [0, np.sin(angle), np.cos(angle)]])
    elif axis == "y":
        return np.array([[np.cos(angle), 0, np.sin(angle)], [0, 1, 0], [-np.sin(angle), 0, np.cos(angle)]])
    elif axis == "z":
        return np.array([[np.cos(angle), -np.sin(angle), 0], [np.sin(angle), np.cos(angle), 0], [0, 0, 1]])
    else:
        raise ValueError("Invalid axis")


def euler_to_dcm(roll: float = 0.0, pitch: float = 0.0, yaw: float = 0.0) -> np.ndarray:
    """
    Build a rotation matrix from Euler angles (ZYX convention).

    Args:
        roll: Rotation about x-axis in radians
        pitch: Rotation about y-axis in radians
        yaw: Rotation about z-axis in radians

    Returns:
        3x3 rotation matrix Rz @ Ry @ Rx
    """
    Rx = DCM3D(roll, "x")
    Ry = DCM3D(pitch, "y")
    Rz = DCM3D(yaw, "z")
    return Rz @ Ry @ Rx


def make_transform(position: Iterable[float], rotation: Optional[np.ndarray] = None) -> fcl.Transform:
    """
    Create an fcl.Transform from a position and an optional rotation matrix.

    2D positions are lifted to the z = 0 plane.

    Args:
        position: [x, y, z] or [x, y]
        rotation: 3x3 rotation matrix (identity if not provided)

    Returns:
        fcl.Transform representing the pose
    """
    position = np.asarray(position, dtype=np.float64).flatten()
    if position.size == 2:
        position = np.array([position[0], position[1], 0.0])
    elif position.size != 3:
        raise ValueError(f"Position must have 2 or 3 values, got {position.size}")

    if rotation is None:
        rotation = np.eye(3)
    else:
        rotation = np.asarray(rotation, dtype=np.float64)
        if rotation.shape != (3, 3):
            raise ValueError(f"Rotation must have shape (3, 3), got {rotation.shape}")

    return fcl.Transform(rotation, position)


def compose_transforms(parent: fcl.Transform, child: fcl.Transform) -> fcl.Transform:
    """Express ``child`` (given relative to ``parent``) in the parent's base frame."""
    rotation = parent.getRotation() @ child.getRotation()
    translation = parent.getRotation() @ child.getTranslation() + parent.getTranslation()
    return fcl.Transform(rotation, translation)


def transform_positions(transforms: Iterable[fcl.Transform]) -> np.ndarray:
    """
    Stack the translations of a sequence of transforms.

    Returns:
        (N, 3) array of positions (shape (0, 3) for an empty sequence)
    """
    positions = [np.asarray(tf.getTranslation(), dtype=np.float64) for tf in transforms]
    if not positions:
        return np.empty((0, 3))
    return np.vstack(positions)


def copy_transform(transform: fcl.Transform) -> fcl.Transform:
    """Independent copy of an fcl.Transform."""
    return fcl.Transform(np.array(transform.getRotation(), dtype=np.float64),
                         np.array(transform.getTranslation(), dtype=np.float64))
