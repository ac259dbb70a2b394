import numpy as np
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from Kinematics.KinematicsProviders import KinematicsProvider


class JointGroup(NamedTuple):
    """
    A set of joints planned for together.

    Attributes:
        name: Group name used by planning requests
        joint_names: Joints controlled by the group, one per parameter row
        tip_link: Body frame used as the measurement point (None if undefined)
        kinematics: Forward kinematics for the group's parameter vector
    """
    name: str
    joint_names: Tuple[str, ...]
    tip_link: Optional[str]
    kinematics: KinematicsProvider

    @property
    def num_dimensions(self) -> int:
        return len(self.joint_names)


class ContextProvider:
    """Base class for the robot description queried while setting up an episode.

    Cost functions only need to resolve a planning group and its tip link, so
    this is all the interface exposes.
    """

    def has_group(self, group_name: str) -> bool:
        """Check whether ``group_name`` is a known planning group."""
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_joint_group(self, group_name: str) -> Optional[JointGroup]:
        """Get the JointGroup called ``group_name`` (None if unknown)."""
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_tip_link(self, group_name: str) -> Optional[str]:
        group = self.get_joint_group(group_name)
        return None if group is None else group.tip_link


class KinematicModel(ContextProvider):
    """Kinematic robot model holding named joint groups.

    Attributes
    ----------
    name : str
        Robot name.
    groups : dict
        Mapping of group name to JointGroup.
    """

    def __init__(self, name: str = "robot", groups: Optional[Sequence[JointGroup]] = None):
        self.name = name
        self.groups: Dict[str, JointGroup] = {}
        for group in groups or []:
            self.add_group(group)

    def add_group(self, group: JointGroup):
        """
        Add a JointGroup to the model.

        Args:
            group: JointGroup whose joint count matches its kinematics dimension

        Raises:
            ValueError: If the group is not a JointGroup or its sizes disagree
        """
        if not isinstance(group, JointGroup):
            raise ValueError("Group must be a JointGroup object")
        if group.num_dimensions != group.kinematics.num_dimensions:
            raise ValueError(f"Group '{group.name}' has {group.num_dimensions} joints but its kinematics "
                             f"expects {group.kinematics.num_dimensions} parameters")
        self.groups[group.name] = group

    def has_group(self, group_name: str) -> bool:
        return group_name in self.groups

    def get_joint_group(self, group_name: str) -> Optional[JointGroup]:
        return self.groups.get(group_name)

    def get_group_names(self) -> List[str]:
        return list(self.groups.keys())

    def __repr__(self) -> str:
        return f"KinematicModel(name={self.name!r}, groups={self.get_group_names()})"


class PlanningScene:
    """Snapshot of the planning world handed to cost functions once per episode."""

    def __init__(self, robot_model: ContextProvider, name: str = "", frame_id: str = "world"):
        self.robot_model = robot_model
        self.name = name
        self.frame_id = frame_id

    def get_robot_model(self) -> ContextProvider:
        return self.robot_model

    def __repr__(self) -> str:
        return f"PlanningScene(name={self.name!r}, frame_id={self.frame_id!r})"


class MotionPlanRequest(NamedTuple):
    """
    A single planning request.

    Attributes:
        group_name: Planning group the request is for
        start_state: Parameter vector of the start configuration
        goal_state: Parameter vector of the goal configuration (optional)
        num_timesteps: Requested trajectory resolution (optional, informational)
    """
    group_name: str
    start_state: np.ndarray
    goal_state: Optional[np.ndarray] = None
    num_timesteps: Optional[int] = None
