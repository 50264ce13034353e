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
Tests for the ``netguard.settings`` module.
"""
import mock
import pytest

from netguard import settings
from netguard.settings import Settings
from netguard.settings import SettingsError


class TestSettings:
    """
    Tests for loading settings.
    """

    def test_defaults(self) -> None:
        """
        Asserts the defaults track the four system files and probe the public
        resolvers.
        """
        defaults = Settings()
        assert defaults.tracked_files == {
            'interfaces': '/etc/network/interfaces',
            'hosts': '/etc/hosts',
            'resolv_conf': '/etc/resolv.conf',
            'hostname': '/etc/hostname',
        }
        assert defaults.probe_targets == ['8.8.8.8', '1.1.1.1']
        assert defaults.probe_attempts == 3
        assert defaults.probe_timeout == 2
        assert defaults.max_backups == 5

    def test_no_file(self) -> None:
        """
        Asserts defaults are used when no settings file exists.
        """
        with mock.patch.object(settings, 'DEFAULT_PATH', '/nonexistent/x'):
            assert settings.load() == Settings()

    def test_load(self, tmp_path) -> None:
        """
        Asserts values in a settings file override the defaults.
        """
        path = tmp_path / 'netguard.yml'
        path.write_text(
            'max_backups: 2\nprobe_targets:\n  - 10.0.0.1\n',
            encoding='utf-8',
        )
        loaded = settings.load(str(path))
        assert loaded.max_backups == 2
        assert loaded.probe_targets == ['10.0.0.1']
        assert loaded.interfaces_file == '/etc/network/interfaces'

    def test_default_path(self, tmp_path) -> None:
        """
        Asserts a ``.yaml`` file is found at the default location.
        """
        (tmp_path / 'netguard.yaml').write_text('probe_attempts: 1\n',
                                                encoding='utf-8')
        with mock.patch.object(
                settings, 'DEFAULT_PATH', str(tmp_path / 'netguard')
        ):
            assert settings.load().probe_attempts == 1

    @pytest.mark.parametrize('content', [
        'max_backup: 2\n',
        'max_backups: 0\n',
        '- not a mapping\n',
        'max_backups: [\n',
    ])
    def test_invalid(self, tmp_path, content) -> None:
        """
        Asserts unusable settings files are refused.
        """
        path = tmp_path / 'netguard.yml'
        path.write_text(content, encoding='utf-8')
        with pytest.raises(SettingsError):
            settings.load(str(path))

    def test_missing(self, tmp_path) -> None:
        """
        Asserts an explicit settings file must exist.
        """
        with pytest.raises(SettingsError):
            settings.load(str(tmp_path / 'missing.yml'))
