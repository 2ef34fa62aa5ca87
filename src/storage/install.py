import os
import shutil
import zipfile
import logging

from infrastructure.errors import MissingResourceError

log = logging.getLogger(__name__)


class Installation:
    """
    Read-only view of an unpacked server distribution (bin/<jar>, conf/<config>).
    Every accessor checks that the path exists before handing it out.
    """

    def __init__(self, home, jar_name='hivemq.jar', config_name='config.xml'):
        self.home = os.path.abspath(home)
        self.jar_name = jar_name
        self.config_name = config_name

    def _dir(self, name):
        path = os.path.join(self.home, name)
        log.debug(f"Server {name} directory is located at {path}")
        if not os.path.isdir(path):
            raise MissingResourceError(f"{path} is not a directory!")
        return path

    @property
    def bin_dir(self):
        return self._dir('bin')

    @property
    def conf_dir(self):
        return self._dir('conf')

    @property
    def jar_file(self):
        path = os.path.join(self.bin_dir, self.jar_name)
        if not os.path.exists(path):
            raise MissingResourceError(f"Server jar file {path} does not exist!")
        return path

    @property
    def config_file(self):
        path = os.path.join(self.conf_dir, self.config_name)
        if not os.path.exists(path):
            raise MissingResourceError(f"Server config file {path} does not exist!")
        return path

    def verify(self):
        """Check the whole layout at once so a broken install fails before any work starts."""
        for path in (self.jar_file, self.config_file):
            log.debug(f"Found {path}")
        return self

    def read_config(self):
        with open(self.config_file, 'r', encoding='utf-8') as f: return f.read()


def prepare_extension_folder(extension_dir, zip_name):
    """Unpack the packaged extension into a fresh <extension_dir>/debug folder and return its path."""
    zip_path = os.path.abspath(os.path.join(extension_dir, zip_name))
    if not os.path.exists(zip_path):
        raise MissingResourceError(f"Could not find extension zip file {zip_path}")

    debug_folder = os.path.abspath(os.path.join(extension_dir, 'debug'))
    if os.path.exists(debug_folder):
        shutil.rmtree(debug_folder)
    os.makedirs(debug_folder)

    try:
        with zipfile.ZipFile(zip_path) as archive: archive.extractall(debug_folder)
    except zipfile.BadZipFile as e:
        raise MissingResourceError(f"Error while copying extension {zip_path} to debug folder: {e}") from e

    log.info(f"Extension unpacked to {debug_folder}")
    return debug_folder
