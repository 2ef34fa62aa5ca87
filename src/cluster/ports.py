import socket
import logging

from infrastructure.errors import InvalidArgument, ResourceExhaustionError

log = logging.getLogger(__name__)


def _listen():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(('', 0))
        sock.listen(1)
    except OSError:
        sock.close()
        raise
    return sock


def allocate_ports(count):
    """
    Return `count` probably-free TCP ports in acquisition order.

    All sockets are opened before any port is read, and all ports are read before
    any socket is closed, so the OS cannot hand the same port out twice within
    one batch. The ports are free again once this returns; another process may
    still grab one before the server binds it.
    """
    if count < 0:
        raise InvalidArgument(f"Port count must not be negative, got {count}")

    sockets = []
    try:
        try:
            for _ in range(count):
                sockets.append(_listen())
        except OSError as e:
            raise ResourceExhaustionError(
                f"Could not open listening socket {len(sockets) + 1} of {count}: {e}") from e
        ports = [s.getsockname()[1] for s in sockets]
    finally:
        for s in sockets:
            s.close()

    log.debug(f"Allocated ports {ports}")
    return ports


def allocate_port():
    """Return a single probably-free TCP port."""
    try:
        with _listen() as sock:
            return sock.getsockname()[1]
    except OSError as e:
        raise ResourceExhaustionError(f"Could not open listening socket: {e}") from e
