"""
Launching, watching and stopping server processes.
"""
import os
import sys
import logging
import subprocess

import psutil

from infrastructure.console import ConsoleReader
from infrastructure.errors import LaunchError, StartupError
from infrastructure.settings import DEBUG_MODE_CLIENT, DEBUG_MODE_SERVER

log = logging.getLogger(__name__)

DEBUG_AGENT = '-agentlib:jdwp'
DEBUG_PARAMETER_CLIENT = DEBUG_AGENT + '=transport=dt_socket,server=n,address={host}:{port}'
DEBUG_PARAMETER_SERVER = DEBUG_AGENT + '=transport=dt_socket,server=y,suspend=n,address={port}'

ADD_OPENS = '--add-opens'
RUNTIME_FLAGS = [
    ADD_OPENS, 'java.base/java.lang=ALL-UNNAMED',
    ADD_OPENS, 'java.base/java.nio=ALL-UNNAMED',
    ADD_OPENS, 'java.base/sun.nio.ch=ALL-UNNAMED',
    ADD_OPENS, 'jdk.management/com.sun.management.internal=ALL-UNNAMED',
    '--add-exports', 'java.base/jdk.internal.misc=ALL-UNNAMED',
]


def is_alive(handle):
    """True while the process runs; an exited or zombie process counts as dead."""
    if handle.poll() is not None: return False
    try:
        return handle.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def stop_process(handle, name, poll_interval=1.0, max_polls=30):
    """
    Terminate a process and wait for it to go away, logging every poll.
    Sends a kill once `max_polls` polls have passed. Best effort: a process that
    is already gone is left alone.
    """
    if not is_alive(handle): return

    log.info(f"Stopping {name} process (pid {handle.pid}).")
    try:
        handle.terminate()
        for _ in range(max_polls):
            try:
                handle.wait(timeout=poll_interval)
                log.info(f"{name} stopped.")
                return
            except psutil.TimeoutExpired:
                log.info(f"Waiting for {name} to stop.")
        log.warning(f"{name} did not stop after {max_polls} polls, killing it.")
        handle.kill()
        handle.wait(timeout=poll_interval)
    except psutil.NoSuchProcess:
        pass
    except psutil.TimeoutExpired:
        log.error(f"{name} (pid {handle.pid}) is still running after kill.")


def find_node_processes(home, prefix='hivemq'):
    """Processes launched from the installation at `home`, other than this one."""
    marker = f"-D{prefix}.home={os.path.abspath(home)}"
    found = []
    for proc in psutil.process_iter(['pid', 'cmdline']):
        try:
            cmd = proc.info['cmdline']
            if proc.info['pid'] != os.getpid() and cmd and marker in cmd:
                found.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied): pass
    return found


def kill_stale_nodes(home, prefix='hivemq'):
    """Kill server processes left over from an earlier run. Returns how many were killed."""
    procs = find_node_processes(home, prefix)
    for proc in procs:
        try:
            log.info(f"Killing stale process {proc.pid}: {' '.join(proc.info['cmdline'])}")
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied): pass
    psutil.wait_procs(procs, timeout=5)
    return len(procs)


class ProcessOrchestrator:
    """
    Builds launch commands for the server and starts processes from them.
    Shutdown callbacks go onto the cleanup stack owned by the caller.
    """

    def __init__(self, settings, installation, cleanups, extension_folder=None):
        self.settings = settings
        self.installation = installation
        self.cleanups = cleanups
        self.extension_folder = extension_folder

    def java_command(self):
        """Prefer the java binary of the configured java home, fall back to the search path."""
        java_home = self.settings.java_home
        if java_home and java_home.strip():
            exe = 'java.exe' if sys.platform.startswith('win') else 'java'
            java_bin = os.path.join(java_home, 'bin', exe)
            if os.path.exists(java_bin):
                return os.path.abspath(java_bin)
        return 'java'

    def debug_flag(self):
        s = self.settings
        if s.debug_mode == DEBUG_MODE_CLIENT:
            return DEBUG_PARAMETER_CLIENT.format(host=s.debug_host, port=s.debug_port)
        if s.debug_mode == DEBUG_MODE_SERVER:
            return DEBUG_PARAMETER_SERVER.format(port=s.debug_port)
        return None

    def assemble_command(self, node=None):
        """
        Build the server command line. With a node, its folder properties go in
        front of the runtime flags, and non-primary nodes lose the debug agent
        since only the primary can hold the debug port.
        """
        prefix = self.settings.property_prefix
        commands = [self.java_command()]

        debug = self.debug_flag()
        if debug: commands.append(debug)
        if self.extension_folder:
            commands.append(f"-D{prefix}.extensions.folder={self.extension_folder}")

        commands += [
            '-Djava.net.preferIPv4Stack=true',
            f"-D{prefix}.home={self.installation.home}",
            '-noverify',
        ]
        commands += RUNTIME_FLAGS
        commands += ['-jar', self.installation.jar_file]

        if node is None: return commands

        if not node.is_primary:
            commands = [c for c in commands if not c.startswith(DEBUG_AGENT)]
        at = commands.index(ADD_OPENS)
        return commands[:at] + node.system_properties(prefix) + commands[at:]

    def start(self, commands, name, stream=False):
        """Start a server process in the installation folder and check it is alive."""
        log.debug(f"Starting {name}: {' '.join(commands)}")
        try:
            handle = psutil.Popen(
                commands,
                cwd=self.installation.home,
                stdout=subprocess.PIPE if stream else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
                text=True,
                errors='replace',
                bufsize=1,
            )
        except OSError as e:
            log.error(f"An error occurred while starting {name}: {e}")
            raise LaunchError(f"An error occurred while starting {name} ({commands[0]})!") from e

        if not is_alive(handle):
            raise StartupError(f"{name} process could not be started!")
        log.info(f"{name} started | PID={handle.pid}")
        return handle

    def register_shutdown(self, handle, name):
        self.cleanups.callback(stop_process, handle, name,
                               self.settings.stop_poll_interval, self.settings.stop_max_polls)

    def stream_output(self, handle, name):
        reader = ConsoleReader(handle.stdout, name)
        reader.start()
        return reader
