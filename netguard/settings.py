#
#  MIT License
#
#  (C) Copyright 2023 Hewlett Packard Enterprise Development LP
#
#  Permission is hereby granted, free of charge, to any person obtaining a
#  copy of this software and associated documentation files (the "Software"),
#  to deal in the Software without restriction, including without limitation
#  the rights to use, copy, modify, merge, publish, distribute, sublicense,
#  and/or sell copies of the Software, and to permit persons to whom the
#  Software is furnished to do so, subject to the following conditions:
#
#  The above copyright notice and this permission notice shall be included
#  in all copies or substantial portions of the Software.
#
#  THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
#  IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
#  FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
#  THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR
#  OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE,
#  ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR
#  OTHER DEALINGS IN THE SOFTWARE.
#
"""
Settings shared by every netguard operation.
"""
import dataclasses
import os

from yaml import safe_load
from yaml import YAMLError

from netguard.logger import Logger

LOG = Logger(__name__)

DEFAULT_PATH = '/etc/netguard/netguard'


class SettingsError(Exception):

    """
    An exception for unusable settings.
    """

    def __init__(self, message) -> None:
        self.message = message
        super().__init__(self.message)


@dataclasses.dataclass
class Settings:
    """
    Paths and policies used by a transaction.
    """

    interfaces_file: str = '/etc/network/interfaces'
    hosts_file: str = '/etc/hosts'
    resolv_conf: str = '/etc/resolv.conf'
    hostname_file: str = '/etc/hostname'
    backup_dir: str = '/var/backups/netguard'
    lock_dir: str = '/run/lock/netguard'
    log_file: str = '/var/log/netguard/netguard.log'
    hook_path: str = '/etc/dhcp/dhclient-exit-hooks.d/netguard-hosts'
    max_backups: int = 5
    probe_targets: list = dataclasses.field(
        default_factory=lambda: ['8.8.8.8', '1.1.1.1']
    )
    probe_attempts: int = 3
    probe_timeout: int = 2

    def __post_init__(self) -> None:
        if self.max_backups < 1:
            raise SettingsError('max_backups must be at least 1.')
        if self.probe_attempts < 1:
            raise SettingsError('probe_attempts must be at least 1.')
        if isinstance(self.probe_targets, str):
            self.probe_targets = self.probe_targets.split(',')

    @property
    def tracked_files(self) -> dict:
        """
        Logical names of the files captured by a snapshot, and their paths.
        """
        return {
            'interfaces': self.interfaces_file,
            'hosts': self.hosts_file,
            'resolv_conf': self.resolv_conf,
            'hostname': self.hostname_file,
        }


def _settings_file(path: str = None) -> [str, None]:
    """
    Resolves which settings file to read, if any.
    :param path: An explicit path, which must exist.
    """
    if path:
        if not os.path.exists(path):
            raise SettingsError(f'Settings file {path} does not exist.')
        return path
    for extension in ['yml', 'yaml']:
        candidate = f'{DEFAULT_PATH}.{extension}'
        if os.path.exists(candidate):
            return candidate
    return None


def load(path: str = None) -> Settings:
    """
    Loads settings, overriding defaults with values from a YAML file.

    :param path: Path to a settings file; defaults to
        ``/etc/netguard/netguard.yml`` (or ``.yaml``) when present.
    :raises SettingsError: When the file is unreadable or has unknown keys.
    """
    settings_path = _settings_file(path)
    if settings_path is None:
        LOG.debug('No settings file found, using defaults.')
        return Settings()
    LOG.info('Using settings file: %s', settings_path)
    try:
        with open(settings_path, 'r', encoding='utf-8') as settings_file:
            overrides = safe_load(settings_file.read()) or {}
    except (OSError, YAMLError) as error:
        raise SettingsError(
            f'Could not read settings from {settings_path}: {error}'
        ) from error
    if not isinstance(overrides, dict):
        raise SettingsError(f'{settings_path} must contain a mapping.')
    known = {field.name for field in dataclasses.fields(Settings)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise SettingsError(
            f'Unknown settings in {settings_path}: {", ".join(unknown)}'
        )
    return Settings(**overrides)
