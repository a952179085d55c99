"""
Cluster Configuration.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ClusterRoleSetting(str, Enum):
    AUTO = "auto"
    MASTER = "master"
    WORKER = "worker"


class ClusterSettings(BaseModel):
    """
    Forwarding channel settings, only used with ``using_cluster``.

    ``auto`` makes the process master when it has no multiprocessing parent.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: ClusterRoleSetting = Field(default=ClusterRoleSetting.AUTO, description="Process role")
    endpoint: Optional[str] = Field(default=None, description="zmq endpoint shared by master and workers")
