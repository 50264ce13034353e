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
Operator entry points: gather a configuration, then hand it to a
transaction.
"""
import os
import time

import click

from netguard.logger import Logger
from netguard.network import hook as dhcp_hook
from netguard.network.ifupdown import Ifupdown
from netguard.network.manager import from_netmask
from netguard.network.manager import Mode
from netguard.network.manager import NetworkBackend
from netguard.network.manager import NetworkConfig
from netguard.network.snapshot import SnapshotStore
from netguard.network.transaction import Outcome
from netguard.network.transaction import Transaction
from netguard.network.transaction import TransactionResult
from netguard.os import supported_platforms

LOG = Logger(__name__)


class NetworkError(Exception):

    """
    An exception for network problems.
    """

    def __init__(self, message) -> None:
        self.message = message
        super().__init__(self.message)


def _split(value: [str, list, tuple, None]) -> list:
    """
    Splits a comma delimited option into a list.
    :param value: Comma delimited string, or an already split sequence.
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [item.strip() for item in value if item.strip()]
    return [item.strip() for item in value.split(',') if item.strip()]


def resolve_backend(settings) -> NetworkBackend:
    """
    Resolves the backend managing this system's network.
    :param settings: ``Settings`` passed on to the backend.
    :raises NetworkError: When no supported backend is found.
    """
    supported, platform = supported_platforms()
    if not supported:
        raise NetworkError(f'Network configuration is not supported on '
                           f'{platform}.')
    if os.path.isdir(os.path.dirname(settings.interfaces_file)):
        return Ifupdown(settings)
    raise NetworkError('Unknown network manager')


def _prompt_or_fail(
        label: str,
        value: str,
        default: str,
        no_confirm: bool,
) -> str:
    """
    Returns a value, prompting for it when it was not given.

    :param label: What is being asked for.
    :param value: The value given on the command line, if any.
    :param default: Default to offer (from the live interface).
    :param no_confirm: Whether prompting is disabled.
    :raises NetworkError: When the value is missing and prompting is
        disabled.
    """
    if value:
        return value
    if no_confirm:
        raise NetworkError(f'{label} not specified.')
    return click.prompt(f'Enter {label}', default=default or None,
                        show_default=bool(default))


def _static_address(kwargs: dict, live: NetworkConfig) -> str:
    """
    Resolves the ``ip/prefix`` to assign from ``CIDR``, ``--netmask`` and
    the live address.
    """
    no_confirm = kwargs.get('no_confirm', False)
    cidr = kwargs.get('cidr') or ''
    netmask = kwargs.get('netmask') or ''
    current_ip, current_prefix = '', ''
    if live is not None and live.address:
        current_ip, _, current_prefix = live.address.partition('/')
    ip_address, _, prefix = cidr.partition('/')
    ip_address = _prompt_or_fail(
        'IP address', ip_address, current_ip, no_confirm
    )
    prefix = _prompt_or_fail(
        'Netmask (CIDR notation, e.g., 24)',
        prefix or netmask,
        current_prefix,
        no_confirm,
    )
    return from_netmask(ip_address, prefix)


def build_config(backend: NetworkBackend, **kwargs) -> NetworkConfig:
    """
    Builds the configuration requested on the command line, filling gaps
    from the live interface or by prompting.

    :param backend: Backend used to inspect the live interface.
    :raises NetworkError: When the interface is unknown or a required value
        is missing.
    :raises ValidationError: When the resulting configuration is invalid.
    """
    name = kwargs.get('interface')
    no_confirm = kwargs.get('no_confirm', False)
    if name not in backend.interfaces():
        raise NetworkError(f'Interface {name} does not exist.')
    live = backend.read_live(name)
    if kwargs.get('dhcp'):
        mode = Mode.DHCP
    elif kwargs.get('static') or kwargs.get('cidr'):
        mode = Mode.STATIC
    elif no_confirm:
        raise NetworkError('Mode not specified.')
    else:
        current = backend.current_mode(name)
        click.echo(f'Current configuration mode for {name} is {current}.')
        mode = Mode(click.prompt(
            'Enter mode',
            type=click.Choice([Mode.DHCP.value, Mode.STATIC.value]),
            default=Mode.DHCP.value if current != Mode.STATIC
            else Mode.STATIC.value,
        ))
    config = NetworkConfig(
        name=name,
        mode=mode,
        hostname=kwargs.get('hostname') or '',
        bridge_ports=_split(kwargs.get('bridge_ports')),
    )
    if mode == Mode.STATIC:
        config.address = _static_address(kwargs, live)
        config.gateway = _prompt_or_fail(
            'Gateway',
            kwargs.get('gateway'),
            live.gateway if live else '',
            no_confirm,
        )
        config.dns = _split(_prompt_or_fail(
            'DNS servers (comma delimited)',
            kwargs.get('dns'),
            ','.join(live.dns) if live else '',
            no_confirm,
        ))
    config.validate()
    return config


def _summary(config: NetworkConfig, persistent: bool) -> str:
    """
    A human readable summary of a configuration.
    """
    lines = [
        'Configuration Summary:',
        f'Interface: {config.name}',
        f'Mode: {config.mode}',
    ]
    if config.mode == Mode.STATIC:
        lines.append(f'IP Address: {config.address}')
        lines.append(f'Gateway: {config.gateway}')
        lines.append(f'DNS: {", ".join(config.dns)}')
    if config.hostname:
        lines.append(f'Hostname: {config.hostname}')
    if config.bridge_ports:
        lines.append(f'Bridge ports: {", ".join(config.bridge_ports)}')
    lines.append(f'Persistent: {"yes" if persistent else "no"}')
    return '\n'.join(lines)


def hook(settings, path: str = None) -> dhcp_hook.HookStatus:
    """
    Installs the DHCP hook keeping the hosts file in sync.
    :param settings: ``Settings`` naming the hook and hosts file.
    :param path: Install location, overriding the settings.
    """
    status = dhcp_hook.ensure_hook(
        path or settings.hook_path,
        hosts_file=settings.hosts_file,
    )
    click.echo(f'DHCP hook {path or settings.hook_path}: {status.value}')
    return status


def interface(settings, **kwargs) -> [TransactionResult, None]:
    """
    Configures the given interface inside a transaction.

    :param settings: ``Settings`` for this run.
    :returns: The transaction result, or ``None`` when the operator backed
        out at the confirmation prompt.
    """
    name = kwargs.get('interface')
    LOG.info('Working on interface [%s] ... ', name)
    backend = resolve_backend(settings)
    LOG.info('Detected network backend: %s', backend)
    config = build_config(backend, **kwargs)
    persistent = kwargs.get('persistent', False)
    if not kwargs.get('no_confirm', False):
        click.echo(_summary(config, persistent))
        if not click.confirm('Proceed with the configuration?'):
            LOG.info('Configuration cancelled by user.')
            click.echo('Configuration cancelled.')
            return None
    timeout = kwargs.get('timeout')
    deadline = time.monotonic() + timeout if timeout else None
    LOG.info('Starting network configuration.')
    result = Transaction(settings, backend).run(
        config,
        persistent=persistent,
        targets=_split(kwargs.get('test_ip')) or None,
        deadline=deadline,
    )
    for step in result.trail:
        click.echo(step)
    if result.outcome == Outcome.COMMITTED and config.mode == Mode.DHCP:
        try:
            hook(settings)
        except OSError as error:
            LOG.error('Could not install the DHCP hook: %s', error)
            click.echo(f'Could not install the DHCP hook: {error}', err=True)
    click.echo(f'Configuration of {name} {result.outcome}.')
    return result


def restore(settings, snapshot_id: str = None, no_confirm: bool = False) \
        -> [TransactionResult, None]:
    """
    Rolls back to a committed snapshot, the latest one by default.

    :param settings: ``Settings`` for this run.
    :param snapshot_id: Snapshot to restore.
    :param no_confirm: Skip the confirmation prompt.
    :raises NetworkError: When there is nothing to restore.
    """
    store = SnapshotStore(settings)
    snapshot = store.load(snapshot_id) if snapshot_id else store.latest()
    if snapshot is None:
        raise NetworkError('No snapshots to restore.')
    if not no_confirm and not click.confirm(
            f'Restore snapshot {snapshot}?'
    ):
        click.echo('Restore cancelled.')
        return None
    result = Transaction(settings, resolve_backend(settings), store=store) \
        .restore(snapshot)
    for step in result.trail:
        click.echo(step)
    return result


def list_interfaces(settings) -> list:
    """
    Prints the interfaces with their address and configuration type.
    :param settings: ``Settings`` for this run.
    """
    backend = resolve_backend(settings)
    rows = []
    click.echo('Interface    IP Address          Configuration')
    click.echo('-' * 46)
    for name in backend.interfaces():
        live = backend.read_live(name)
        mode = live.mode if live is not None else Mode.UNCONFIGURED
        address = live.address if live is not None else ''
        rows.append((name, address, mode))
        click.echo(f'{name:<12} {address or "-":<19} {mode}')
    return rows


def list_snapshots(settings) -> list:
    """
    Prints committed snapshots, newest first.
    :param settings: ``Settings`` for this run.
    """
    snapshots = SnapshotStore(settings).list()
    if not snapshots:
        click.echo('No snapshots.')
    for snapshot in snapshots:
        state = snapshot.state
        described = f'{state.mode} {state.address}'.strip() if state \
            else 'unconfigured'
        click.echo(
            f'{snapshot.id}  {snapshot.interface or "-":<10} {described}'
        )
    return snapshots
