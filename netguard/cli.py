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
The netguard command line.
"""
import logging
import os
import sys

import click
from click_option_group import optgroup
from click_option_group import MutuallyExclusiveOptionGroup

from netguard import logger
from netguard import settings as netguard_settings
from netguard.network import config
from netguard.network.manager import ValidationError
from netguard.network.snapshot import SnapshotIOError
from netguard.network.transaction import LockError
from netguard.network.transaction import Outcome
from netguard.logger import Logger

CONTEXT_SETTINGS = {'help_option_names': ['-h', '--help']}
LOG = Logger(__name__)

EXIT_ROLLED_BACK = 1
EXIT_USAGE = 2
EXIT_ROLLBACK_FAILED = 3


def _require_root() -> None:
    """
    Exits unless running as root; changing interfaces and the tracked files
    needs it.
    """
    if os.geteuid() != 0:
        LOG.error('Refusing to run without root privileges.')
        sys.exit('Failed! Please run as root.')


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    '--config',
    'config_path',
    metavar='<file path>',
    default=None,
    help='Settings file (default: /etc/netguard/netguard.yml).'
)
@click.option('--verbose', is_flag=True, help='Log debug messages.')
@click.version_option()
@click.pass_context
def netguard(ctx, config_path: str, verbose: bool) -> None:
    """
    Safely reconfigures network interfaces, rolling back on failure.

    \f
    """
    try:
        ctx.obj = netguard_settings.load(config_path)
    except netguard_settings.SettingsError as error:
        sys.exit(f'Invalid settings: {error}')
    logger.setup(
        ctx.obj.log_file,
        level=logging.DEBUG if verbose else logging.INFO,
    )
    LOG.info('Invoked.')


@netguard.group()
def network() -> None:
    """
    Functions for configuring the running server's network.

    \f
    """
    LOG.info('Invoked network group.')


@network.command()
@optgroup.group(
    'Addressing', cls=MutuallyExclusiveOptionGroup,
)
@optgroup.option(
    '--dhcp',
    is_flag=True,
    default=False,
    help='Lease an address with DHCP.'
)
@optgroup.option(
    '--static',
    is_flag=True,
    default=False,
    help='Assign a static address.'
)
@click.argument('interface')
@click.argument('cidr', required=False)
@click.option(
    '--netmask',
    help='Netmask (dotted or prefix length) when CIDR has no prefix.'
)
@click.option('--gateway', help='The default gateway for a static address.')
@click.option(
    '--dns',
    type=str,
    default='',
    help='Comma delimited list of one or more IP addresses for DNS.'
)
@click.option('--hostname', help='A new hostname for the system.')
@click.option(
    '--bridge-ports',
    type=str,
    default='',
    help='Comma delimited list of ports when INTERFACE is a bridge.'
)
@click.option(
    '--test-ip',
    multiple=True,
    help='An address that must be reachable afterwards; repeatable '
         '(default: 8.8.8.8 then 1.1.1.1).'
)
@click.option(
    '--persistent',
    is_flag=True,
    default=False,
    help='Also write the configuration to the interfaces file.'
)
@click.option(
    '-y',
    '--no-confirm',
    is_flag=True,
    default=False,
    help='Do not prompt; missing values are an error.'
)
@click.option(
    '--timeout',
    type=float,
    default=None,
    metavar='<seconds>',
    help='Roll back if the change is not verified within this time.'
)
@click.pass_obj
def apply(settings, **kwargs) -> None:
    """
    Configures an interface, rolling back if connectivity is lost.

    \b
    INTERFACE to configure.
    CIDR a static IP, optionally in CIDR notation (A.B.C.D/E).
    \f
    """
    LOG.info('Calling network apply with: %s', kwargs)
    _require_root()
    try:
        result = config.interface(settings, **kwargs)
    except ValidationError as error:
        click.echo(f'Invalid configuration: {error}', err=True)
        sys.exit(EXIT_USAGE)
    except (config.NetworkError, LockError, SnapshotIOError) as error:
        LOG.error(error)
        sys.exit(f'Failed! {error}')
    if result is None or result.outcome == Outcome.COMMITTED:
        return
    if result.outcome == Outcome.ROLLBACK_FAILED:
        click.echo(
            'Rollback failed; the interface needs manual inspection.',
            err=True,
        )
        sys.exit(EXIT_ROLLBACK_FAILED)
    sys.exit(EXIT_ROLLED_BACK)


@network.command(name='list')
@click.pass_obj
def list_interfaces(settings) -> None:
    """
    Lists interfaces with their address and configuration type.
    """
    try:
        config.list_interfaces(settings)
    except config.NetworkError as error:
        sys.exit(f'Failed! {error}')


@network.command()
@click.option(
    '--path',
    metavar='<file path>',
    default=None,
    help='Where to install the hook (default: '
         '/etc/dhcp/dhclient-exit-hooks.d/netguard-hosts).'
)
@click.pass_obj
def hook(settings, path: str) -> None:
    """
    Installs the DHCP hook that keeps the hosts file on the leased address.
    """
    _require_root()
    try:
        config.hook(settings, path=path)
    except OSError as error:
        sys.exit(f'Root permission needed: {error}')


@netguard.group()
def backup() -> None:
    """
    Functions for inspecting and restoring snapshots.

    \f
    """
    LOG.info('Invoked backup group.')


@backup.command(name='list')
@click.pass_obj
def list_backups(settings) -> None:
    """
    Lists committed snapshots, newest first.
    """
    try:
        config.list_snapshots(settings)
    except SnapshotIOError as error:
        sys.exit(f'Failed! {error}')


@backup.command()
@click.argument('snapshot_id', required=False)
@click.option(
    '-y',
    '--no-confirm',
    is_flag=True,
    default=False,
    help='Do not prompt before restoring.'
)
@click.pass_obj
def restore(settings, snapshot_id: str, no_confirm: bool) -> None:
    """
    Restores a snapshot, the latest one by default.

    \b
    SNAPSHOT_ID to restore (see ``netguard backup list``).
    \f
    """
    _require_root()
    try:
        result = config.restore(
            settings, snapshot_id=snapshot_id, no_confirm=no_confirm
        )
    except (config.NetworkError, LockError, SnapshotIOError) as error:
        sys.exit(f'Failed! {error}')
    if result is not None and result.outcome == Outcome.ROLLBACK_FAILED:
        click.echo(
            'Restore failed; the interface needs manual inspection.',
            err=True,
        )
        sys.exit(EXIT_ROLLBACK_FAILED)
