import sys
import signal
import logging
import argparse

from infrastructure.errors import ClusterError
from infrastructure.process import kill_stale_nodes
from infrastructure.settings import DEBUG_MODES, resolve_settings
from infrastructure.supervisor import ClusterSupervisor

LOG_FORMAT = '[%(levelname)s][%(name)s] %(message)s'
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Run a server installation as a local cluster of N nodes.")
    p.add_argument('--hivemq-dir', dest='hivemq_dir', help="unpacked server installation (bin/, conf/)")
    p.add_argument('--nodes', type=int, help="cluster size; 0 runs a single unclustered process")
    p.add_argument('--base-dir', dest='base_dir', help="where the node-<port> folders are created")
    p.add_argument('--jar', help="server jar inside bin/")
    p.add_argument('--config-file', dest='config_file', help="config file inside conf/")
    p.add_argument('--debug-mode', dest='debug_mode', type=str.upper, choices=DEBUG_MODES)
    p.add_argument('--debug-port', dest='debug_port', type=int, help="0 picks a free port")
    p.add_argument('--debug-host', dest='debug_host')
    p.add_argument('--java-home', dest='java_home', help="defaults to $JAVA_HOME")
    p.add_argument('--verbose', action=argparse.BooleanOptionalAction, default=None,
                   help="forward the primary's output")
    p.add_argument('--cluster-logs', dest='cluster_logs', action='store_true', default=None,
                   help="forward the output of every node")
    p.add_argument('--no-extensions', dest='no_extensions', action='store_true', default=None)
    p.add_argument('--extension-dir', dest='extension_dir')
    p.add_argument('--extension-zip', dest='extension_zip')
    p.add_argument('--artifact-id', dest='artifact_id')
    p.add_argument('--version')
    p.add_argument('--settings', help="JSON file with default settings")
    p.add_argument('--clean', action='store_true', help="remove old node folders first")
    p.add_argument('--kill-stale', dest='kill_stale', action='store_true',
                   help="kill processes left over from an earlier run of this installation")
    p.add_argument('--log-level', dest='log_level', default='INFO', type=str.upper, choices=LOG_LEVELS)
    return p.parse_args(argv)


def _interrupt(signum, frame):
    raise KeyboardInterrupt(f"signal {signum}")


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(format=LOG_FORMAT, level=args.log_level)
    log = logging.getLogger('main')

    signal.signal(signal.SIGTERM, _interrupt)

    try:
        settings = resolve_settings(vars(args), settings_file=args.settings)
        if args.kill_stale:
            killed = kill_stale_nodes(settings.hivemq_dir, settings.property_prefix)
            log.info(f"Killed {killed} stale server process(es)")
        ClusterSupervisor(settings, clean=args.clean).run()
    except ClusterError as e:
        log.error(str(e))
        return 1
    except KeyboardInterrupt:
        log.error("Interrupted before the cluster was running")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
