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
Tests for the ``netguard.network.hook`` module.
"""
import os
import shutil
import stat
import subprocess

import pytest

from netguard.network import hook
from netguard.network.hook import HookStatus


class TestHook:
    """
    Tests for installing the DHCP hook.
    """

    def test_render(self) -> None:
        """
        Asserts the hook rewrites the given hosts file on new leases only.
        """
        script = hook.render_hook('/tmp/hosts')
        assert script.startswith('#!/bin/sh\n')
        assert 'BOUND|RENEW|REBIND|REBOOT)' in script
        assert '/tmp/hosts' in script
        assert '$new_ip_address' in script
        assert 'FQDN_RE' in script

    def test_install(self, tmp_path) -> None:
        """
        Asserts the hook is installed executable, creating its directory.
        """
        path = str(tmp_path / 'dhclient-exit-hooks.d' / 'netguard-hosts')
        assert hook.ensure_hook(path) == HookStatus.INSTALLED
        assert os.stat(path).st_mode & stat.S_IXUSR
        with open(path, 'r', encoding='utf-8') as hook_file:
            assert hook_file.read() == hook.render_hook()

    def test_idempotent(self, tmp_path) -> None:
        """
        Asserts an existing hook is left exactly as it is.
        """
        path = str(tmp_path / 'netguard-hosts')
        assert hook.ensure_hook(path) == HookStatus.INSTALLED
        with open(path, 'a', encoding='utf-8') as hook_file:
            hook_file.write('# local change\n')
        with open(path, 'r', encoding='utf-8') as hook_file:
            before = hook_file.read()
        assert hook.ensure_hook(path, hosts_file='/other/hosts') == \
            HookStatus.ALREADY_PRESENT
        with open(path, 'r', encoding='utf-8') as hook_file:
            assert hook_file.read() == before

    @pytest.mark.skipif(shutil.which('sh') is None, reason='needs sh')
    def test_literal_name(self, tmp_path) -> None:
        """
        Asserts only the entry for the exact hostname is moved to the leased
        address; a name differing where the hostname has a dot is kept.
        """
        bin_dir = tmp_path / 'bin'
        bin_dir.mkdir()
        stub = bin_dir / 'hostname'
        stub.write_text(
            '#!/bin/sh\n'
            'case "$1" in\n'
            '    -f) echo node.example.com ;;\n'
            '    *) echo node ;;\n'
            'esac\n',
            encoding='utf-8',
        )
        stub.chmod(0o755)
        hosts_file = tmp_path / 'hosts'
        hosts_file.write_text('10.0.0.9\tnodeXexample.com other\n',
                              encoding='utf-8')
        script = tmp_path / 'hook'
        script.write_text(hook.render_hook(str(hosts_file)), encoding='utf-8')
        env = dict(
            os.environ,
            PATH=f'{bin_dir}{os.pathsep}{os.environ.get("PATH", "")}',
            reason='BOUND',
            new_ip_address='192.168.1.50',
        )
        subprocess.run(['sh', str(script)], env=env, check=True)
        assert hosts_file.read_text(encoding='utf-8') == (
            '10.0.0.9\tnodeXexample.com other\n'
            '192.168.1.50\tnode.example.com node\n'
        )
        subprocess.run(['sh', str(script)], env=dict(
            env, new_ip_address='192.168.1.51'
        ), check=True)
        assert hosts_file.read_text(encoding='utf-8') == (
            '10.0.0.9\tnodeXexample.com other\n'
            '192.168.1.51\tnode.example.com node\n'
        )
