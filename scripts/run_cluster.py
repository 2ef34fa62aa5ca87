import subprocess
import sys
import os

def run_cluster(argv):
    """
    Launch a local cluster from the command line of this repository checkout.
    Sets up the PYTHONPATH and runs src/main.py, forwarding all arguments.
    Defaults to three nodes when --nodes is not given.
    """
    root = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..')
    env = os.environ.copy()
    env['PYTHONPATH'] = os.path.join(root, 'src')
    if '--nodes' not in argv:
        argv = ['--nodes', '3'] + argv

    print(f"[INFO] Starting cluster: {' '.join(argv)}")
    # Output stays on the console; Ctrl+C reaches the launcher, which stops every node.
    p = subprocess.Popen([sys.executable, os.path.join(root, 'src', 'main.py')] + argv, env=env)
    try:
        return p.wait()
    except KeyboardInterrupt:
        print("\n[INFO] Waiting for the cluster to stop...")
        return p.wait()

if __name__ == '__main__':
    sys.exit(run_cluster(sys.argv[1:]))
