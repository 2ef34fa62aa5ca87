import os
import glob
import shutil
import logging

from cluster.config_rewriter import DEFAULT_ROOT_TAG, apply_cluster_rewrite
from infrastructure.node import NODE_PREFIX, Node

log = logging.getLogger(__name__)


def generate_node_folders(base_dir, installation, ports, root_tag=DEFAULT_ROOT_TAG):
    """
    Create one isolated folder tree per port and write each node's cluster config.

    Layout per node: <base_dir>/node-<port>/{conf,data,log}. The conf folder is a
    copy of the installation's conf folder with the config file replaced by the
    rewritten one. Returns the nodes in port (= index) order.
    """
    installation.verify()
    conf_dir = installation.conf_dir
    base_config = installation.read_config()

    nodes = []
    for index, port in enumerate(ports):
        node = Node.for_port(base_dir, index, port, installation.config_name)

        os.makedirs(node.folder, exist_ok=True)
        shutil.copytree(conf_dir, node.conf_dir, dirs_exist_ok=True)
        os.makedirs(node.data_dir, exist_ok=True)
        os.makedirs(node.log_dir, exist_ok=True)

        if os.path.exists(node.config_file):
            os.remove(node.config_file)
        config = apply_cluster_rewrite(base_config, ports, index, root_tag)
        with open(node.config_file, 'w', encoding='utf-8') as f: f.write(config)

        log.info(f"Provisioned {node} at {node.folder}")
        log.debug(config)
        nodes.append(node)

    return nodes


def clean_node_folders(base_dir):
    """Remove node folders left behind by earlier runs. Returns how many were removed."""
    removed = 0
    for folder in glob.glob(os.path.join(base_dir, f"{NODE_PREFIX}*")):
        if not os.path.isdir(folder): continue
        shutil.rmtree(folder)
        removed += 1
    if removed:
        log.info(f"Removed {removed} stale node folder(s) from {base_dir}")
    return removed
