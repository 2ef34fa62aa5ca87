import itertools
import xml.etree.ElementTree as ET

from harness import BASE_CONFIG, run_tests

from cluster.config_rewriter import (
    apply_cluster_rewrite, clean_and_replace_cluster_section,
    remove_control_center_section, replace_cluster_section, replace_listener_port,
)
from infrastructure.errors import InvalidArgument

CLUSTER_CONFIG = (
    '<?xml version="1.0"?>\n'
    '<hivemq>\n'
    '    <cluster>\n'
    '        <enabled>true</enabled>\n'
    '        <transport>\n'
    '           <tcp>\n'
    '                <bind-address>192.168.1.1</bind-address>\n'
    '                <bind-port>7800</bind-port>\n'
    '           </tcp>\n'
    '        </transport>\n'
    '        <discovery>\n'
    '            <static>\n'
    '                <node>\n'
    '                    <host>192.168.1.1</host>\n'
    '                    <port>7800</port>\n'
    '                </node>\n'
    '                <node>\n'
    '                    <host>192.168.1.2</host>\n'
    '                    <port>7800</port>\n'
    '                </node>\n'
    '            </static>\n'
    '        </discovery>\n'
    '\n'
    '    </cluster>\n'
    '\n'
    '    <anonymous-usage-statistics>\n'
    '        <enabled>true</enabled>\n'
    '    </anonymous-usage-statistics>\n'
    '\n'
    '</hivemq>'
)

EXPECTED_NODE_2 = (
    '<?xml version="1.0"?>\n'
    '<hivemq>\n'
    '    <cluster>\n'
    '        <enabled>true</enabled>\n'
    '        <transport>\n'
    '           <tcp>\n'
    '                <bind-address>127.0.0.1</bind-address>\n'
    '                <bind-port>3</bind-port>\n'
    '           </tcp>\n'
    '        </transport>\n'
    '        <discovery>\n'
    '            <static>\n'
    '                <node>\n'
    '                    <host>127.0.0.1</host>\n'
    '                    <port>1</port>\n'
    '                </node>\n'
    '                <node>\n'
    '                    <host>127.0.0.1</host>\n'
    '                    <port>2</port>\n'
    '                </node>\n'
    '                <node>\n'
    '                    <host>127.0.0.1</host>\n'
    '                    <port>3</port>\n'
    '                </node>\n'
    '            </static>\n'
    '        </discovery>\n'
    '\n'
    '    </cluster>\n'
    '    <!-- <cluster> -->\n'
    '<!--         <enabled>true</enabled> -->\n'
    '<!--         <transport> -->\n'
    '<!--            <tcp> -->\n'
    '<!--                 <bind-address>192.168.1.1</bind-address> -->\n'
    '<!--                 <bind-port>7800</bind-port> -->\n'
    '<!--            </tcp> -->\n'
    '<!--         </transport> -->\n'
    '<!--         <discovery> -->\n'
    '<!--             <static> -->\n'
    '<!--                 <node> -->\n'
    '<!--                     <host>192.168.1.1</host> -->\n'
    '<!--                     <port>7800</port> -->\n'
    '<!--                 </node> -->\n'
    '<!--                 <node> -->\n'
    '<!--                     <host>192.168.1.2</host> -->\n'
    '<!--                     <port>7800</port> -->\n'
    '<!--                 </node> -->\n'
    '<!--             </static> -->\n'
    '<!--         </discovery> -->\n'
    '<!--  -->\n'
    '<!--     </cluster> -->\n'
    '\n'
    '\n'
    '    <anonymous-usage-statistics>\n'
    '        <enabled>true</enabled>\n'
    '    </anonymous-usage-statistics>\n'
    '\n'
    '</hivemq>'
)

LISTENER_CONFIG = (
    '<hivemq>\n'
    '    <listeners>\n'
    '        <tcp-listener>\n'
    '            <port>1883</port>\n'
    '            <bind-address>0.0.0.0</bind-address>\n'
    '        </tcp-listener>\n'
    '    </listeners>\n'
    '</hivemq>\n'
)


def fixed_ports(*ports):
    it = iter(ports)
    return lambda: next(it)


def test_replace_cluster_section():
    assert replace_cluster_section(CLUSTER_CONFIG, [1, 2, 3], 2) == EXPECTED_NODE_2


def test_replace_cluster_section_middle_node():
    """Node 1 binds the second port; every port, own included, is a peer in order."""
    clean = replace_cluster_section(CLUSTER_CONFIG, [11000, 11001, 11002], 1)
    root = ET.fromstring(clean)
    clusters = root.findall('cluster')
    assert len(clusters) == 1
    tcp = clusters[0].find('transport/tcp')
    assert tcp.find('bind-address').text == '127.0.0.1'
    assert tcp.find('bind-port').text == '11001'
    peers = clusters[0].findall('discovery/static/node')
    assert [p.find('port').text for p in peers] == ['11000', '11001', '11002']
    assert all(p.find('host').text == '127.0.0.1' for p in peers)
    assert '<!--                 <bind-port>7800</bind-port> -->' in clean


def test_replace_cluster_section_index_out_of_range():
    for node in (3, 4, 10):
        try:
            replace_cluster_section(CLUSTER_CONFIG, [1, 2, 3], node)
        except InvalidArgument as e:
            assert 'one port per cluster node' in str(e)
        else:
            raise AssertionError(f"node {node} accepted for 3 ports")


def test_replace_cluster_section_root_with_attributes():
    config = CLUSTER_CONFIG.replace(
        '<hivemq>', '<hivemq xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">')
    clean = replace_cluster_section(config, [5, 6], 0)
    assert '<hivemq xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">\n    <cluster>\n' in clean
    assert '<bind-port>5</bind-port>' in clean


def test_replace_cluster_section_without_existing_cluster():
    clean = replace_cluster_section('<hivemq>\n</hivemq>\n', [7], 0)
    assert clean.startswith('<hivemq>\n    <cluster>\n')
    assert '<!--' not in clean


def test_replace_cluster_section_without_root():
    try:
        replace_cluster_section('<broker></broker>', [7], 0)
    except InvalidArgument as e:
        assert '<hivemq>' in str(e)
    else:
        raise AssertionError("config without root tag accepted")


def test_replace_listener_port_without_listeners():
    assert replace_listener_port(CLUSTER_CONFIG, fixed_ports()) == CLUSTER_CONFIG


def test_replace_listener_port_single_block():
    clean = replace_listener_port(LISTENER_CONFIG, fixed_ports(12345))
    assert clean == LISTENER_CONFIG.replace('<port>1883</port>', '<port>12345</port>')


def test_replace_listener_port_every_block():
    config = LISTENER_CONFIG.replace('</hivemq>', LISTENER_CONFIG.replace('<hivemq>\n', ''))
    clean = replace_listener_port(config, fixed_ports(20001, 20002))
    assert '<port>1883</port>' not in clean
    assert clean.index('<port>20001</port>') < clean.index('<port>20002</port>')


def test_replace_listener_port_allocates_fresh_port():
    clean = replace_listener_port(LISTENER_CONFIG)
    port = int(clean.split('<port>')[1].split('</port>')[0])
    assert port != 1883 and 0 < port < 65536


def test_remove_control_center_section():
    config = (
        '<hivemq>\n'
        '    <control-center>\n'
        '        <enabled>true</enabled>\n'
        '    </control-center>\n'
        '</hivemq>\n'
    )
    assert remove_control_center_section(config) == (
        '<hivemq>\n'
        '    <!-- <control-center> -->\n'
        '<!--         <enabled>true</enabled> -->\n'
        '<!--     </control-center> -->\n'
        '\n'
        '\n'
        '    <control-center>\n'
        '        <enabled>false</enabled>\n'
        '    </control-center>\n'
        '</hivemq>\n'
    )


def test_remove_control_center_section_absent():
    assert remove_control_center_section(CLUSTER_CONFIG) == CLUSTER_CONFIG


def test_clean_and_replace_disables_control_center():
    clean = clean_and_replace_cluster_section(BASE_CONFIG, [11000, 11001], 1, port_source=fixed_ports(40000))
    root = ET.fromstring(clean)
    assert [c.find('enabled').text for c in root.findall('control-center')] == ['false']
    assert root.find('listeners/tcp-listener/port').text == '40000'
    assert root.find('cluster/transport/tcp/bind-port').text == '11001'


def test_apply_cluster_rewrite_keeps_primary_listener():
    primary = apply_cluster_rewrite(BASE_CONFIG, [11000, 11001], 0, port_source=fixed_ports())
    root = ET.fromstring(primary)
    assert root.find('listeners/tcp-listener/port').text == '1883'
    assert root.find('control-center/enabled').text == 'true'

    other = apply_cluster_rewrite(BASE_CONFIG, [11000, 11001], 1, port_source=fixed_ports(40001))
    assert ET.fromstring(other).find('listeners/tcp-listener/port').text == '40001'


def test_rewrites_leave_unrelated_content_alone():
    tail = '    <anonymous-usage-statistics>\n        <enabled>true</enabled>\n    </anonymous-usage-statistics>\n'
    ports = itertools.count(30000)
    clean = clean_and_replace_cluster_section(CLUSTER_CONFIG, [1, 2], 1, port_source=lambda: next(ports))
    assert tail in clean
    assert clean.startswith('<?xml version="1.0"?>\n<hivemq>\n')


if __name__ == '__main__':
    run_tests(globals())
