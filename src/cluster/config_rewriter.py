"""
Text rewrites that turn one server config.xml into the config of a cluster node.

The rewrites work on regions of the raw text instead of a parsed tree so that
everything they do not touch (comments, formatting, unknown sections) is kept
byte for byte. Replaced sections are commented out line by line, never deleted.
"""
import re
import logging

from cluster.ports import allocate_port
from infrastructure.errors import InvalidArgument

log = logging.getLogger(__name__)

DEFAULT_ROOT_TAG = 'hivemq'
LOOPBACK = '127.0.0.1'

LISTENERS_PATTERN = re.compile(r'<listeners>.+?(<port>.+?</port>).+?</listeners>', re.DOTALL)
CLUSTER_PATTERN = re.compile(r'<cluster>.+?</cluster>', re.DOTALL)
CONTROL_CENTER_PATTERN = re.compile(r'<control-center>.+?</control-center>', re.DOTALL)

PORT_FORMAT = '<port>{}</port>'

CLUSTER_FORMAT = (
    '    <cluster>\n'
    '        <enabled>true</enabled>\n'
    '        <transport>\n'
    '           <tcp>\n'
    '                <bind-address>{address}</bind-address>\n'
    '                <bind-port>{port}</bind-port>\n'
    '           </tcp>\n'
    '        </transport>\n'
    '        <discovery>\n'
    '            <static>\n'
    '{nodes}'
    '            </static>\n'
    '        </discovery>\n'
    '\n'
    '    </cluster>'
)

NODE_FORMAT = (
    '                <node>\n'
    '                    <host>{address}</host>\n'
    '                    <port>{port}</port>\n'
    '                </node>\n'
)

DISABLED_CONTROL_CENTER = (
    '    <control-center>\n'
    '        <enabled>false</enabled>\n'
    '    </control-center>\n'
)


def comment_out(match):
    """Wrap every line of a matched region in its own XML comment."""
    return '<!-- ' + ' -->\n<!-- '.join(match.group().split('\n')) + ' -->\n'


def _opening_tag(root_tag):
    return re.compile(r'<{}(\s[^>]*)?>'.format(re.escape(root_tag)))


def replace_listener_port(config, port_source=allocate_port):
    """Give the first <port> of every <listeners> block a freshly allocated port."""
    def replace(match):
        port_section = PORT_FORMAT.format(port_source())
        log.info(f"Replacing listener port {match.group(1)} with random generated port {port_section}.")
        start, end = match.start(1) - match.start(), match.end(1) - match.start()
        section = match.group()
        return section[:start] + port_section + section[end:]

    return LISTENERS_PATTERN.sub(replace, config)


def remove_control_center_section(config, root_tag=DEFAULT_ROOT_TAG):
    """
    Comment out the <control-center> section and put a disabled one right before
    the closing root tag. Returns the config unchanged if there is no section.
    """
    if not CONTROL_CENTER_PATTERN.search(config):
        return config

    cleaned = CONTROL_CENTER_PATTERN.sub(comment_out, config)
    closing_tag = f'</{root_tag}>'
    before, found, after = cleaned.rpartition(closing_tag)
    if not found:
        raise InvalidArgument(f"Config has no closing {closing_tag} tag")

    return before + '\n' + DISABLED_CONTROL_CENTER + closing_tag + after


def replace_cluster_section(config, ports, node, root_tag=DEFAULT_ROOT_TAG):
    """
    Comment out the existing <cluster> section and insert a static cluster of all
    `ports` on the loopback address, bound to `ports[node]`.
    """
    if node < 0 or node >= len(ports):
        raise InvalidArgument(
            f"List of ports must contain one port per cluster node (node {node}, {len(ports)} ports)")

    cleaned = CLUSTER_PATTERN.sub(comment_out, config)

    nodes = ''.join(NODE_FORMAT.format(address=LOOPBACK, port=port) for port in ports)
    cluster = CLUSTER_FORMAT.format(address=LOOPBACK, port=ports[node], nodes=nodes)

    opening = _opening_tag(root_tag).search(cleaned)
    if opening is None:
        raise InvalidArgument(f"Config has no opening <{root_tag}> tag")

    return cleaned[:opening.end()] + '\n' + cluster + cleaned[opening.end():]


def clean_and_replace_cluster_section(config, ports, node, root_tag=DEFAULT_ROOT_TAG,
                                      port_source=allocate_port):
    """Cluster rewrite for non-primary nodes: also moves the listener and disables the control center."""
    clean = replace_listener_port(config, port_source)
    clean = remove_control_center_section(clean, root_tag)
    return replace_cluster_section(clean, ports, node, root_tag)


def apply_cluster_rewrite(config, ports, node, root_tag=DEFAULT_ROOT_TAG, port_source=allocate_port):
    """
    Produce the config of cluster node `node`.

    The primary (node 0) keeps its listener port and control center so tooling
    can still reach it on the configured port; every other node gets both moved
    out of the way.
    """
    if node == 0:
        return replace_cluster_section(config, ports, node, root_tag)
    return clean_and_replace_cluster_section(config, ports, node, root_tag, port_source)
