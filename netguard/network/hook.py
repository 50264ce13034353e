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
Installs the DHCP client hook that keeps the hosts file in sync with the
leased address.
"""
import enum
import os

import jinja2

from netguard.logger import Logger

LOG = Logger(__name__)

TEMPLATE_DIRECTORY = os.path.join(
    os.path.dirname(__file__), 'templates', 'dhclient'
)


class HookStatus(enum.Enum):
    """
    What ``ensure_hook`` did.
    """

    INSTALLED = 'installed'
    ALREADY_PRESENT = 'already present'


def render_hook(hosts_file: str = '/etc/hosts') -> str:
    """
    Renders the hook script.
    :param hosts_file: The hosts file the hook rewrites.
    """
    loader = jinja2.FileSystemLoader(TEMPLATE_DIRECTORY)
    env = jinja2.Environment(loader=loader, keep_trailing_newline=True)
    template = env.get_template('hosts-hook.j2')
    return template.render(hosts_file=hosts_file)


def ensure_hook(path: str, hosts_file: str = '/etc/hosts') -> HookStatus:
    """
    Installs the hook unless a file already exists at ``path``.

    An existing file is never rewritten, so calling this repeatedly leaves
    the first installed copy untouched.

    :param path: Where the hook is installed.
    :param hosts_file: The hosts file the hook rewrites.
    """
    if os.path.exists(path):
        LOG.info('DHCP hook %s already present.', path)
        return HookStatus.ALREADY_PRESENT
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w', encoding='utf-8') as hook_file:
        hook_file.write(render_hook(hosts_file))
    os.chmod(path, 0o755)
    LOG.info('Installed DHCP hook %s.', path)
    return HookStatus.INSTALLED
