"""Kinematic collaborators queried by cost functions.

Available providers:
- StateIndexKinematics: Pose read directly out of the parameter vector
- SerialChainKinematics: Revolute serial chain forward kinematics
"""

from .KinematicsProviders import KinematicsProvider, StateIndexKinematics, SerialChainKinematics
from .KinematicModel import ContextProvider, JointGroup, KinematicModel, PlanningScene, MotionPlanRequest

__all__ = [
    'KinematicsProvider',
    'StateIndexKinematics',
    'SerialChainKinematics',
    'ContextProvider',
    'JointGroup',
    'KinematicModel',
    'PlanningScene',
    'MotionPlanRequest',
]
