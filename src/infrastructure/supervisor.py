import logging
from contextlib import ExitStack
from enum import Enum

from cluster.ports import allocate_ports
from infrastructure.errors import ClusterError, InterruptedWait
from infrastructure.process import ProcessOrchestrator, is_alive
from storage.install import Installation, prepare_extension_folder
from storage.node_dirs import clean_node_folders, generate_node_folders

log = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = 'Idle'
    PORTS_ALLOCATED = 'PortsAllocated'
    NODES_PROVISIONED = 'NodesProvisioned'
    PROCESSES_STARTED = 'ProcessesStarted'
    RUNNING = 'Running'
    PARTIALLY_FAILED = 'PartiallyFailed'
    TERMINATED = 'Terminated'


class ClusterSupervisor:
    """
    Drives a whole run: ports, node folders, processes, then waits on the primary.

    Use as a context manager. Leaving the block stops every process that was
    started, on success, error and interruption alike. A node that fails to
    start does not roll back the nodes started before it; they keep running
    until the block is left.
    """

    def __init__(self, settings, clean=False):
        self.settings = settings
        self.clean = clean
        self.installation = Installation(settings.hivemq_dir, settings.jar, settings.config_file)
        self.state = RunState.IDLE
        self.ports = []
        self.nodes = []
        self.processes = []  # [(node or None, handle)], index order
        self.readers = []
        self._cleanups = ExitStack()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()

    def cleanup(self):
        """Stop every started process, newest first."""
        if self.processes:
            log.info(f"Stopping {len(self.processes)} server process(es)...")
        self._cleanups.close()
        self.state = RunState.TERMINATED

    @property
    def primary(self):
        return self.processes[0][1] if self.processes else None

    def _orchestrator(self):
        s = self.settings
        extension_folder = None
        if not s.no_extensions:
            extension_folder = prepare_extension_folder(s.extension_dir, s.extension_zip)
        return ProcessOrchestrator(s, self.installation, self._cleanups, extension_folder)

    def start(self):
        if self.settings.nodes == 0:
            self._start_single()
        else:
            self._start_cluster()
        return self

    def _start_single(self):
        self.installation.verify()
        orchestrator = self._orchestrator()
        stream = self.settings.verbose or self.settings.cluster_logs
        handle = orchestrator.start(orchestrator.assemble_command(), 'hivemq', stream=stream)
        orchestrator.register_shutdown(handle, 'hivemq')
        self.processes.append((None, handle))
        self.state = RunState.PROCESSES_STARTED

        if stream:
            self.readers.append(orchestrator.stream_output(handle, 'hivemq'))
        self.state = RunState.RUNNING

    def _start_cluster(self):
        s = self.settings
        self.installation.verify()

        self.ports = allocate_ports(s.nodes)
        self.state = RunState.PORTS_ALLOCATED
        log.info(f"Cluster ports: {self.ports}")

        if self.clean:
            clean_node_folders(s.base_dir)
        self.nodes = generate_node_folders(s.base_dir, self.installation, self.ports, s.root_tag)
        self.state = RunState.NODES_PROVISIONED

        orchestrator = self._orchestrator()
        streamed = len(self.nodes) if s.cluster_logs else (1 if s.verbose else 0)
        for node in self.nodes:
            try:
                handle = orchestrator.start(orchestrator.assemble_command(node), node.name,
                                            stream=node.index < streamed)
            except ClusterError:
                if self.processes:
                    self.state = RunState.PARTIALLY_FAILED
                    log.error(f"{node} failed to start; {len(self.processes)} node(s) already started keep running")
                raise
            orchestrator.register_shutdown(handle, node.name)
            self.processes.append((node, handle))
        self.state = RunState.PROCESSES_STARTED

        for node, handle in self.processes[:streamed]:
            self.readers.append(orchestrator.stream_output(handle, node.name))

        log.info(f"Cluster of {len(self.nodes)} nodes started, primary is {self.nodes[0]}")
        self.state = RunState.RUNNING

    def alive(self):
        """Nodes (or None for the single process) whose process is still running."""
        return [node for node, handle in self.processes if is_alive(handle)]

    def wait(self):
        """Block until the primary process exits and return its exit code."""
        if self.primary is None:
            raise ClusterError("No server process was started")
        try:
            code = self.primary.wait()
        except KeyboardInterrupt as e:
            raise InterruptedWait("An interrupt was received while the server was running!") from e
        log.info(f"Primary process exited with code {code}")
        return code

    def run(self):
        with self:
            self.start()
            return self.wait()
