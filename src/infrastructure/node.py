import os
from dataclasses import dataclass

NODE_PREFIX = 'node-'


@dataclass(frozen=True)
class Node:
    """
    One provisioned cluster node: its index, cluster port and isolated folder tree.
    Node 0 is the primary.
    """
    index: int
    port: int
    folder: str
    config_name: str = 'config.xml'

    @classmethod
    def for_port(cls, base_dir, index, port, config_name='config.xml'):
        return cls(index, port, os.path.abspath(os.path.join(base_dir, f"{NODE_PREFIX}{port}")), config_name)

    @property
    def name(self):
        return os.path.basename(self.folder)

    @property
    def is_primary(self):
        return self.index == 0

    @property
    def conf_dir(self):
        return os.path.join(self.folder, 'conf')

    @property
    def config_file(self):
        return os.path.join(self.conf_dir, self.config_name)

    @property
    def data_dir(self):
        return os.path.join(self.folder, 'data')

    @property
    def log_dir(self):
        return os.path.join(self.folder, 'log')

    def system_properties(self, prefix):
        """The -D flags pointing the server at this node's data, config and log folders."""
        return [
            f"-D{prefix}.data.folder={self.data_dir}",
            f"-D{prefix}.config.folder={self.conf_dir}",
            f"-D{prefix}.log.folder={self.log_dir}",
        ]

    def __str__(self):
        return f"Node {self.index} ({self.name}, cluster port {self.port})"
