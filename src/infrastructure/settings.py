"""
Run settings, resolved once at start-up into an immutable Settings object.

Precedence: built-in defaults, then the optional JSON settings file, then
options given explicitly on the command line.
"""
import os
import json
import logging
from dataclasses import dataclass, fields
from typing import Optional

from cluster.ports import allocate_port
from infrastructure.errors import InvalidArgument, MissingResourceError

log = logging.getLogger(__name__)

DEBUG_MODE_CLIENT = 'CLIENT'
DEBUG_MODE_SERVER = 'SERVER'
DEBUG_MODE_NONE = 'NONE'
DEBUG_MODES = (DEBUG_MODE_CLIENT, DEBUG_MODE_SERVER, DEBUG_MODE_NONE)


@dataclass(frozen=True)
class Settings:
    hivemq_dir: str
    nodes: int = 0
    base_dir: str = 'cluster'
    jar: str = 'hivemq.jar'
    config_file: str = 'config.xml'
    root_tag: str = 'hivemq'
    property_prefix: str = 'hivemq'
    debug_mode: str = DEBUG_MODE_SERVER
    debug_port: int = 5005
    debug_host: str = 'localhost'
    java_home: Optional[str] = None
    verbose: bool = True
    cluster_logs: bool = False
    no_extensions: bool = False
    extension_dir: str = 'target'
    extension_zip: Optional[str] = None
    artifact_id: Optional[str] = None
    version: Optional[str] = None
    stop_poll_interval: float = 1.0
    stop_max_polls: int = 30


FIELD_NAMES = {f.name for f in fields(Settings)}


def load_settings_file(path):
    """Load a JSON settings file whose keys are Settings field names."""
    if not os.path.exists(path):
        raise MissingResourceError(f"Settings file {path} does not exist!")
    with open(path, 'r', encoding='utf-8') as f:
        try:
            values = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"Settings file {path} is not valid JSON: {e}") from e
    if not isinstance(values, dict):
        raise InvalidArgument(f"Settings file {path} must contain a JSON object")
    unknown = set(values) - FIELD_NAMES
    if unknown:
        raise InvalidArgument(f"Unknown setting(s) in {path}: {', '.join(sorted(unknown))}")
    return values


def check_debug_mode(debug_mode):
    if not isinstance(debug_mode, str) or debug_mode.upper() not in DEBUG_MODES:
        raise InvalidArgument(
            f"parameter 'debugMode' must be either {DEBUG_MODE_CLIENT}, {DEBUG_MODE_SERVER} or {DEBUG_MODE_NONE}")
    return debug_mode.upper()


def _number(values, name, convert, default):
    value = values.get(name, default)
    if isinstance(value, bool):
        raise InvalidArgument(f"parameter '{name}' must be a number, got {value!r}")
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"parameter '{name}' must be a number, got {value!r}") from e


def resolve_settings(overrides, settings_file=None, environ=None):
    """
    Merge defaults, settings file and explicit overrides (None values are ignored
    in both) and derive everything that depends on other values, exactly once.
    """
    environ = os.environ if environ is None else environ
    values = {}
    if settings_file:
        values.update({k: v for k, v in load_settings_file(settings_file).items() if v is not None})
    values.update({k: v for k, v in overrides.items() if v is not None and k in FIELD_NAMES})

    if not values.get('hivemq_dir'):
        raise InvalidArgument("parameter 'hivemqDir' is required")

    nodes = _number(values, 'nodes', int, 0)
    if nodes < 0:
        raise InvalidArgument(f"parameter 'nodes' must not be negative, got {nodes}")
    values['nodes'] = nodes
    values['debug_port'] = _number(values, 'debug_port', int, 5005)
    values['stop_poll_interval'] = _number(values, 'stop_poll_interval', float, 1.0)
    values['stop_max_polls'] = _number(values, 'stop_max_polls', int, 30)
    values['debug_mode'] = check_debug_mode(values.get('debug_mode', DEBUG_MODE_SERVER))

    if values.get('java_home') is None and environ.get('JAVA_HOME'):
        values['java_home'] = environ['JAVA_HOME']

    if values['debug_mode'] != DEBUG_MODE_NONE and values['debug_port'] == 0:
        values['debug_port'] = allocate_port()
        log.info(f"Using random generated debug port {values['debug_port']}")

    if not values.get('no_extensions') and not values.get('extension_zip'):
        if not values.get('artifact_id') or not values.get('version'):
            raise InvalidArgument(
                "parameter 'extensionZip' or both 'artifactId' and 'version' are required unless 'noExtensions' is set")
        values['extension_zip'] = f"{values['artifact_id']}-{values['version']}-distribution.zip"

    return Settings(**values)
