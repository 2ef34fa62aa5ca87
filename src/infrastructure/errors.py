"""
Error taxonomy for cluster provisioning and supervision.
Every fatal error carries a message naming the offending path or parameter.
"""


class ClusterError(Exception):
    """Base class for every error raised while setting up or running a cluster."""


class ResourceExhaustionError(ClusterError):
    """A port or socket could not be acquired."""


class MissingResourceError(ClusterError):
    """A required file or directory of the installation is absent."""


class InvalidArgument(ClusterError, ValueError):
    """A parameter is out of range or malformed."""


class LaunchError(ClusterError):
    """The OS refused to start a server process."""


class StartupError(ClusterError):
    """A server process was not alive right after it was started."""


class InterruptedWait(ClusterError):
    """The blocking wait on the primary process was interrupted."""
