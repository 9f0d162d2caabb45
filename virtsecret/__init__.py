"""
VirtSecret: secret registry and value store for virtualization hosts

Stores small sensitive values (disk passphrases, iSCSI/CHAP credentials,
Ceph keys) that volumes and network disks reference by usage type and ID.
"""

__version__ = "0.1.0"
__author__ = "VirtSecret Team"

from .connection import Connection

__all__ = ["Connection", "__version__"]
