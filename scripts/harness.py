"""
Shared helpers for the test scripts: sample installation, fake java binary,
and a tiny runner so every script can also be run on its own.
"""
import os
import sys
import stat
import traceback

script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
src_dir = os.path.join(project_root, 'src')
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

BASE_CONFIG = """<?xml version="1.0"?>
<hivemq>
    <listeners>
        <tcp-listener>
            <port>1883</port>
            <bind-address>0.0.0.0</bind-address>
        </tcp-listener>
    </listeners>

    <cluster>
        <enabled>true</enabled>
        <transport>
           <tcp>
                <bind-address>192.168.1.1</bind-address>
                <bind-port>7800</bind-port>
           </tcp>
        </transport>
        <discovery>
            <static>
                <node>
                    <host>192.168.1.1</host>
                    <port>7800</port>
                </node>
                <node>
                    <host>192.168.1.2</host>
                    <port>7800</port>
                </node>
            </static>
        </discovery>

    </cluster>

    <control-center>
        <enabled>true</enabled>
    </control-center>

</hivemq>
"""


def make_installation(root, config=BASE_CONFIG, jar='hivemq.jar'):
    """Lay out a minimal server installation: bin/<jar>, conf/config.xml, conf/logback.xml."""
    home = os.path.join(root, 'hivemq')
    os.makedirs(os.path.join(home, 'bin'))
    os.makedirs(os.path.join(home, 'conf'))
    with open(os.path.join(home, 'bin', jar), 'w') as f: f.write('')
    with open(os.path.join(home, 'conf', 'config.xml'), 'w') as f: f.write(config)
    with open(os.path.join(home, 'conf', 'logback.xml'), 'w') as f: f.write('<configuration/>\n')
    return home


def make_java_home(root, seconds=30):
    """A java home whose bin/java prints its arguments and sleeps instead of running a jar."""
    java_home = os.path.join(root, 'jdk')
    os.makedirs(os.path.join(java_home, 'bin'))
    java = os.path.join(java_home, 'bin', 'java')
    with open(java, 'w') as f:
        f.write('#!/bin/sh\necho "fake java $@"\nexec sleep %s\n' % seconds)
    os.chmod(java, os.stat(java).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return java_home


def run_tests(namespace):
    """Run every test_* function in `namespace`; exit 0 only if all pass."""
    tests = [(name, fn) for name, fn in sorted(namespace.items())
             if name.startswith('test_') and callable(fn)]
    failed = 0
    for name, fn in tests:
        try:
            fn()
            print(f"[PASS] {name}")
        except Exception:
            failed += 1
            print(f"[FAIL] {name}")
            traceback.print_exc()
    print(f"{len(tests) - failed}/{len(tests)} passed")
    sys.exit(1 if failed else 0)
