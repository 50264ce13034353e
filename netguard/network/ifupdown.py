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
Module for handling ``ifupdown`` (Debian style) networking.

Live changes are made with ``ip`` and ``dhclient``; persisted changes go to
``/etc/network/interfaces``.
"""
import json
import os
import re
import shutil
import socket

import jinja2

from netguard.network import hosts
from netguard.network.interfaces import find_stanza
from netguard.network.interfaces import remove_stanza
from netguard.network.interfaces import replace_stanza
from netguard.network.interfaces import Stanza
from netguard.network.manager import ApplyError
from netguard.network.manager import Mode
from netguard.network.manager import NetworkBackend
from netguard.network.manager import NetworkConfig
from netguard.os import run_command
from netguard.logger import Logger

LOG = Logger(__name__)

SYS_CLASS_NET = '/sys/class/net'


def _read(path: str) -> str:
    """
    Reads a text file, treating a missing file as empty.
    :param path: Path to read.
    """
    try:
        with open(path, 'r', encoding='utf-8') as text_file:
            return text_file.read()
    except FileNotFoundError:
        return ''


def _json(output: str) -> list:
    """
    Parses ``ip -j`` output, treating garbage as no output.
    :param output: stdout of an ``ip -j`` command.
    """
    try:
        parsed = json.loads(output or '[]')
    except ValueError:
        LOG.warning('Could not parse ip output: %s', output)
        return []
    return parsed if isinstance(parsed, list) else []


class Ifupdown(NetworkBackend):

    """
    Abstraction of an ``ifupdown``/``ifupdown2`` managed system.
    """

    name = 'ifupdown'

    @staticmethod
    def _run(stage: str, args: list) -> None:
        """
        Runs one step of a live change.

        :param stage: Name of the step, reported on failure.
        :param args: Command to run.
        :raises ApplyError: When the command fails.
        """
        result = run_command(args)
        if result.return_code != 0:
            cause = result.stderr or \
                f'{args[0]} exited with {result.return_code}'
            LOG.error('Stage [%s] failed: %s', stage, cause)
            raise ApplyError(stage, cause)

    @staticmethod
    def _release_lease(name: str) -> None:
        """
        Releases any DHCP lease held for an interface; there may be none.
        :param name: Interface name.
        """
        result = run_command(['dhclient', '-r', name])
        if result.return_code != 0:
            LOG.info(
                'No DHCP lease released on %s (%s), continuing.',
                name,
                result.stderr or result.return_code,
            )
        else:
            LOG.info('Released any DHCP lease on %s.', name)

    @staticmethod
    def _resolved_active() -> bool:
        """
        Whether DNS is managed by ``systemd-resolved``.
        """
        if shutil.which('resolvectl') is None:
            return False
        result = run_command(
            ['systemctl', 'is-active', '--quiet', 'systemd-resolved'],
            silence=True,
        )
        return result.return_code == 0

    def _ensure_bridge(self, config: NetworkConfig) -> None:
        """
        Creates a bridge if it is missing, and enslaves its ports.
        :param config: Configuration of the bridge.
        """
        exists = run_command(['ip', 'link', 'show', 'dev', config.name])
        if exists.return_code != 0:
            LOG.info('Creating bridge %s', config.name)
            self._run(
                'bridge',
                ['ip', 'link', 'add', 'name', config.name, 'type', 'bridge'],
            )
        for port in config.bridge_ports:
            self._run(
                'bridge',
                ['ip', 'link', 'set', 'dev', port, 'master', config.name],
            )
            self._run('bridge', ['ip', 'link', 'set', 'dev', port, 'up'])

    def _update_dns(self, config: NetworkConfig, files: bool = True) -> None:
        """
        Points name resolution at the configured DNS servers.
        :param config: Configuration holding the DNS servers.
        :param files: Write ``resolv.conf`` when ``systemd-resolved`` is not
            in use.
        """
        if self._resolved_active():
            LOG.info('Setting DNS for %s with resolvectl.', config.name)
            self._run('dns', ['resolvectl', 'dns', config.name] + config.dns)
            return
        if not files:
            return
        LOG.info('Writing %s', self.settings.resolv_conf)
        content = self._render_template(
            'resolv.conf',
            interface=config.name,
            dns=config.dns,
        )
        try:
            with open(
                    self.settings.resolv_conf, 'w', encoding='utf-8'
            ) as resolv_conf:
                resolv_conf.write(content.rstrip('\n') + '\n')
        except OSError as error:
            raise ApplyError('dns', str(error)) from error

    def _set_hostname(self, hostname: str, files: bool = True) -> None:
        """
        Sets the running hostname.
        :param hostname: The new hostname.
        :param files: Also write the hostname file.
        """
        if shutil.which('hostnamectl') is not None:
            args = ['hostnamectl', 'set-hostname', hostname]
            if not files:
                args.insert(2, '--transient')
            self._run('hostname', args)
            return
        if files:
            try:
                with open(
                        self.settings.hostname_file, 'w', encoding='utf-8'
                ) as hostname_file:
                    hostname_file.write(f'{hostname}\n')
            except OSError as error:
                raise ApplyError('hostname', str(error)) from error
        self._run('hostname', ['hostname', hostname])

    def _update_hostname(self, hostname: str, files: bool = True) -> None:
        """
        Sets the system hostname and its loopback hosts entry.

        With ``files`` off only the running hostname changes; the hostname
        and hosts files are left as they are.

        :param hostname: The new hostname.
        :param files: Also rewrite the hostname and hosts files.
        """
        self._set_hostname(hostname, files=files)
        if not files:
            LOG.info('Running hostname set to %s', hostname)
            return
        try:
            content = hosts.set_loopback_hostname(
                _read(self.settings.hosts_file),
                hostname,
            )
            with open(
                    self.settings.hosts_file, 'w', encoding='utf-8'
            ) as hosts_file:
                hosts_file.write(content)
        except OSError as error:
            raise ApplyError('hosts', str(error)) from error
        LOG.info('Hostname set to %s', hostname)

    def _revert_dns(self, name: str) -> None:
        """
        Drops per-link DNS servers set through ``systemd-resolved`` so that
        a DHCP lease can provide its own; there may be none.
        :param name: Interface name.
        """
        if not self._resolved_active():
            return
        result = run_command(['resolvectl', 'revert', name])
        if result.return_code != 0:
            LOG.warning(
                'Could not revert DNS settings of %s (%s), continuing.',
                name,
                result.stderr or result.return_code,
            )

    def apply_live(self, config: NetworkConfig, files: bool = True) -> None:
        """
        Applies a configuration to the running interface.

        The interface is always flushed first; on failure it may be left
        down or half configured.

        :param config: Configuration to apply.
        :param files: Write ``resolv.conf``, the hosts file and the hostname
            file; off when they were just restored from a snapshot.
        :raises ApplyError: When a step fails.
        """
        name = config.name
        LOG.info('Configuring %s for %s.', name, config.mode)
        self._release_lease(name)
        if config.is_bridge:
            self._ensure_bridge(config)
        self._run('link-down', ['ip', 'link', 'set', 'dev', name, 'down'])
        self._run('flush', ['ip', 'addr', 'flush', 'dev', name])
        if config.mode == Mode.STATIC:
            self._run(
                'address',
                ['ip', 'addr', 'add', config.address, 'dev', name],
            )
            self._run('link-up', ['ip', 'link', 'set', 'dev', name, 'up'])
            if config.gateway:
                self._run(
                    'route',
                    [
                        'ip', 'route', 'replace', 'default',
                        'via', config.gateway,
                        'dev', name,
                    ],
                )
            if config.dns:
                self._update_dns(config, files=files)
            LOG.info(
                'Interface %s configured with static IP %s and gateway %s.',
                name,
                config.address,
                config.gateway or '(none)',
            )
        else:
            self._run('link-up', ['ip', 'link', 'set', 'dev', name, 'up'])
            self._revert_dns(name)
            self._run('dhcp', ['dhclient', name])
            LOG.info('Interface %s configured for DHCP.', name)
        if config.hostname and config.hostname != socket.gethostname():
            self._update_hostname(config.hostname, files=files)

    def apply_persistent(self, config: NetworkConfig) -> None:
        """
        Rewrites the interface's stanza in the interfaces file.

        Bridge ports get ``manual`` stanzas ahead of the bridge so that
        nothing else configures them.

        :param config: Configuration to persist.
        :raises ApplyError: When the stanza can not be rendered or the file
            can not be written.
        """
        path = self.settings.interfaces_file
        try:
            content = _read(path)
        except OSError as error:
            raise ApplyError('persist', str(error)) from error
        previous = find_stanza(content, config.name)
        if previous:
            LOG.info('Replacing stanza in %s:\n%s', path, previous.rstrip())
        block = ''
        try:
            for port in config.bridge_ports:
                content = remove_stanza(content, port)
                block += Stanza.manual(port).render() + '\n'
            block += Stanza.from_config(config).render()
        except jinja2.TemplateError as error:
            LOG.error('Could not render stanza for %s: %s', config.name, error)
            raise ApplyError('persist', str(error)) from error
        content = replace_stanza(content, config.name, block)
        try:
            with open(path, 'w', encoding='utf-8') as interfaces_file:
                interfaces_file.write(content)
        except OSError as error:
            raise ApplyError('persist', str(error)) from error
        LOG.info('Wrote %s stanza for %s', path, config.name)

    @staticmethod
    def _addresses(name: str) -> list:
        """
        IPv4 addresses (``ip/prefix``) on an interface, global scope first.
        :param name: Interface name.
        """
        result = run_command(
            ['ip', '-j', '-4', 'addr', 'show', 'dev', name], silence=True
        )
        if result.return_code != 0:
            return []
        addresses = []
        for link in _json(result.stdout):
            for addr in link.get('addr_info', []):
                if addr.get('family', 'inet') != 'inet':
                    continue
                cidr = f'{addr["local"]}/{addr["prefixlen"]}'
                if addr.get('scope') == 'global':
                    addresses.insert(0, cidr)
                else:
                    addresses.append(cidr)
        return addresses

    @staticmethod
    def _dhcp_bound(name: str) -> bool:
        """
        Whether a ``dhclient`` process is running for an interface.
        :param name: Interface name.
        """
        result = run_command(['pgrep', '-a', 'dhclient'], silence=True)
        if result.return_code != 0:
            return False
        for line in result.stdout.splitlines():
            if name in line.split()[1:]:
                return True
        return False

    def current_mode(self, name: str) -> Mode:
        """
        Classifies an interface as DHCP, static, or unconfigured.
        :param name: Interface name.
        """
        if self._dhcp_bound(name):
            return Mode.DHCP
        if self._addresses(name):
            return Mode.STATIC
        return Mode.UNCONFIGURED

    @staticmethod
    def _gateway(name: str) -> str:
        """
        The default gateway routed through an interface, if any.
        :param name: Interface name.
        """
        result = run_command(
            ['ip', '-j', '-4', 'route', 'show', 'default', 'dev', name],
            silence=True,
        )
        if result.return_code != 0:
            return ''
        for route in _json(result.stdout):
            if route.get('gateway'):
                return route['gateway']
        return ''

    def default_route(self) -> [dict, None]:
        """
        The system's default route as ``{'gateway': ..., 'dev': ...}``, if
        there is one.
        """
        result = run_command(
            ['ip', '-j', '-4', 'route', 'show', 'default'], silence=True
        )
        if result.return_code != 0:
            return None
        for route in _json(result.stdout):
            if route.get('gateway') and route.get('dev'):
                return {'gateway': route['gateway'], 'dev': route['dev']}
        return None

    def set_default_route(self, route: dict) -> None:
        """
        Points the system's default route at a gateway.
        :param route: ``{'gateway': ..., 'dev': ...}``
        :raises ApplyError: When the route can not be replaced.
        """
        self._run(
            'route',
            [
                'ip', 'route', 'replace', 'default',
                'via', route['gateway'],
                'dev', route['dev'],
            ],
        )
        LOG.info('Default route set via %s on %s.', route['gateway'],
                 route['dev'])

    def _dns(self, name: str) -> list:
        """
        DNS servers in use for an interface.
        :param name: Interface name.
        """
        if self._resolved_active():
            result = run_command(['resolvectl', 'dns', name], silence=True)
            if result.return_code == 0 and ':' in result.stdout:
                servers = result.stdout.split(':', 1)[1].split()
                return [server for server in servers if '.' in server]
        servers = []
        for line in _read(self.settings.resolv_conf).splitlines():
            match = re.match(r'^\s*nameserver\s+(\d+\.\d+\.\d+\.\d+)', line)
            if match:
                servers.append(match.group(1))
        return servers

    def _hostname(self) -> str:
        """
        The configured hostname.
        """
        return _read(self.settings.hostname_file).strip() or \
            socket.gethostname()

    @staticmethod
    def _bridge_ports(name: str) -> list:
        """
        Interfaces enslaved to a bridge.
        :param name: Bridge name.
        """
        result = run_command(
            ['ip', '-j', 'link', 'show', 'master', name], silence=True
        )
        if result.return_code != 0:
            return []
        return [link['ifname'] for link in _json(result.stdout)
                if link.get('ifname')]

    def read_live(self, name: str) -> [NetworkConfig, None]:
        """
        Reads the live configuration of an interface.

        :param name: Interface name.
        :returns: ``None`` when the interface is unconfigured.
        """
        mode = self.current_mode(name)
        if mode == Mode.UNCONFIGURED:
            return None
        config = NetworkConfig(
            name=name,
            mode=mode,
            hostname=self._hostname(),
            bridge_ports=self._bridge_ports(name),
        )
        addresses = self._addresses(name)
        if addresses:
            config.address = addresses[0]
        if mode == Mode.STATIC:
            config.gateway = self._gateway(name)
            config.dns = self._dns(name)
        LOG.info('Live configuration of %s: %s', name, config)
        return config

    def release(self, name: str) -> None:
        """
        Returns an interface to an unconfigured state.
        :param name: Interface name.
        :raises ApplyError: When the addresses can not be flushed.
        """
        self._release_lease(name)
        self._run('flush', ['ip', 'addr', 'flush', 'dev', name])

    def interfaces(self) -> list:
        """
        Names of the system's interfaces, except loopback.
        """
        return sorted(
            nic for nic in os.listdir(SYS_CLASS_NET) if nic != 'lo'
        )
