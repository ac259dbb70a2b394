"""Geometry and plotting helpers shared across the cost function packages."""

from .GeometryUtils import DCM3D, euler_to_dcm, make_transform, compose_transforms, copy_transform, transform_positions

__all__ = ['DCM3D', 'euler_to_dcm', 'make_transform', 'compose_transforms', 'copy_transform', 'transform_positions']
