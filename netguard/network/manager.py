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
Base object for network backends, and the configuration they apply.
"""
# pylint: disable=duplicate-code
import dataclasses
import enum
import os

import jinja2
import netaddr
from j2ipaddr import filters

from netguard.logger import Logger

jinja2.filters.FILTERS.update(filters.load_all())

LOG = Logger(__name__)


class ValidationError(Exception):

    """
    An exception for a malformed network configuration.
    """

    def __init__(self, message) -> None:
        self.message = message
        super().__init__(self.message)


class ApplyError(Exception):

    """
    An exception for a failed step while configuring a live interface.
    """

    def __init__(self, stage: str, cause: str) -> None:
        self.stage = stage
        self.cause = cause
        self.message = f'Failed at stage [{stage}]: {cause}'
        super().__init__(self.message)


class Mode(enum.Enum):
    """
    How an interface gets its address.
    """

    DHCP = 'dhcp'
    STATIC = 'static'
    UNCONFIGURED = 'unconfigured'

    def __str__(self) -> str:
        return self.value


def from_netmask(ip_address: str, netmask: [str, int]) -> str:
    """
    Combines an IP and a netmask into ``ip/prefix`` notation.

    :param ip_address: An IPv4 address.
    :param netmask: A dotted netmask (``255.255.255.0``) or a prefix length.
    :raises ValidationError: When either value is malformed.
    """
    try:
        network = netaddr.IPNetwork(f'{ip_address}/{netmask}')
    except (netaddr.AddrFormatError, ValueError, TypeError) as error:
        raise ValidationError(
            f'Invalid address {ip_address} with netmask {netmask}: {error}'
        ) from error
    return f'{network.ip}/{network.prefixlen}'


def _is_ipv4(value: str) -> bool:
    """
    Whether a value is an IPv4 literal.
    :param value: The value to check.
    """
    try:
        return netaddr.valid_ipv4(value, flags=netaddr.INET_PTON)
    except (netaddr.AddrFormatError, TypeError):
        return False


@dataclasses.dataclass
class NetworkConfig:
    """
    The desired state of one interface.
    """

    name: str
    mode: Mode = Mode.DHCP
    address: str = ''
    gateway: str = ''
    dns: list = dataclasses.field(default_factory=list)
    hostname: str = ''
    bridge_ports: list = dataclasses.field(default_factory=list)

    @property
    def is_bridge(self) -> bool:
        """
        Whether this interface is a bridge.
        """
        return bool(self.bridge_ports)

    @property
    def ipaddr(self) -> [netaddr.IPNetwork, None]:
        """
        The address as an ``IPNetwork``, if one was given.
        """
        if not self.address:
            return None
        return netaddr.IPNetwork(self.address)

    def validate(self) -> None:
        """
        Checks this configuration before anything is changed.

        :raises ValidationError: When the configuration can not be applied.
        """
        if not self.name or not self.name.strip():
            raise ValidationError('An interface name is required.')
        if not isinstance(self.mode, Mode) or \
                self.mode == Mode.UNCONFIGURED:
            raise ValidationError(
                f'Unknown mode [{self.mode}], use dhcp or static.'
            )
        for port in self.bridge_ports:
            if not port or port == self.name:
                raise ValidationError(f'Invalid bridge port [{port}].')
        if self.mode == Mode.DHCP:
            return
        if not self.address:
            raise ValidationError('A static configuration needs an address.')
        if not self.gateway:
            raise ValidationError('A static configuration needs a gateway.')
        if not self.dns:
            raise ValidationError(
                'A static configuration needs at least one DNS server.'
            )
        ip_address, _, prefix = self.address.partition('/')
        if not _is_ipv4(ip_address):
            raise ValidationError(f'Invalid IPv4 address [{ip_address}].')
        if not prefix.isdigit() or not 0 <= int(prefix) <= 32:
            raise ValidationError(
                f'Invalid prefix [{prefix}] in [{self.address}], '
                f'expected ip/prefix with a prefix between 0 and 32.'
            )
        if not _is_ipv4(self.gateway):
            raise ValidationError(f'Invalid gateway [{self.gateway}].')
        for server in self.dns:
            if not _is_ipv4(server):
                raise ValidationError(f'Invalid DNS server [{server}].')

    def to_dict(self) -> dict:
        """
        This configuration as plain data, for storing in a snapshot.
        """
        data = dataclasses.asdict(self)
        data['mode'] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'NetworkConfig':
        """
        Rebuilds a configuration stored with ``to_dict``.
        :param data: Plain data from a snapshot.
        """
        data = dict(data)
        data['mode'] = Mode(data.get('mode', Mode.DHCP.value))
        return cls(**data)


class NetworkBackend:

    """
    Base class for a backend that applies a ``NetworkConfig``.

    A backend reads and writes live OS state and the configuration files it
    is pointed at; it never manages snapshots.
    """

    name = ''

    def __init__(self, settings) -> None:
        """
        :param settings: ``Settings`` naming the files this backend manages.
        """
        self.settings = settings

    def __str__(self) -> str:
        """
        Name of the backend.
        """
        return self.name

    def _render_template(self, template_name: str, **context) -> str:
        """
        Renders a template file from ``templates/<backend name>/``.
        """
        directory = os.path.dirname(__file__)
        template_directory = os.path.join(directory, 'templates', self.name)
        loader = jinja2.FileSystemLoader(template_directory)
        env = jinja2.Environment(loader=loader, keep_trailing_newline=True)
        template = env.get_template(f'{template_name}.j2')
        return template.render(**context)

    def apply_live(self, config: NetworkConfig, files: bool = True) -> None:
        """
        Applies a configuration to the running system.

        ``files`` is off when re-applying a snapshot whose files were just
        restored, so that they are left byte-for-byte as captured.
        """
        raise NotImplementedError

    def apply_persistent(self, config: NetworkConfig) -> None:
        """
        Writes a configuration to the persisted configuration file.
        """
        raise NotImplementedError

    def current_mode(self, name: str) -> Mode:
        """
        Classifies how an interface is currently configured.
        """
        raise NotImplementedError

    def read_live(self, name: str) -> [NetworkConfig, None]:
        """
        Reads the live configuration of an interface.
        """
        raise NotImplementedError

    def release(self, name: str) -> None:
        """
        Returns an interface to an unconfigured state.
        """
        raise NotImplementedError

    def default_route(self) -> [dict, None]:
        """
        The system's default route as ``{'gateway': ..., 'dev': ...}``.
        """
        raise NotImplementedError

    def set_default_route(self, route: dict) -> None:
        """
        Replaces the system's default route.
        """
        raise NotImplementedError

    def interfaces(self) -> list:
        """
        Names of the interfaces this backend can configure.
        """
        raise NotImplementedError
