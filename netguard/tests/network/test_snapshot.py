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
Tests for the ``netguard.network.snapshot`` module.
"""
# pylint: disable=attribute-defined-outside-init,protected-access
import os

import pytest

from netguard.network.manager import Mode
from netguard.network.manager import NetworkConfig
from netguard.network.snapshot import RestoreError
from netguard.network.snapshot import SnapshotIOError
from netguard.network.snapshot import SnapshotStore
from netguard.tests.fakes import make_settings

INTERFACES = 'auto eth0\niface eth0 inet dhcp\n'
HOSTS = '127.0.0.1\tlocalhost\n127.0.1.1\tnode1\n'


def _write(path: str, content: str) -> None:
    with open(path, 'w', encoding='utf-8') as text_file:
        text_file.write(content)


def _read(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as text_file:
        return text_file.read()


class TestSnapshotStore:
    """
    Tests for capturing, committing and restoring snapshots.
    """

    @pytest.fixture(autouse=True)
    def setup_store(self, tmp_path):
        """
        Creates a store over a temporary ``/etc`` holding an interfaces file
        and a hosts file.
        """
        self.settings = make_settings(tmp_path, max_backups=3)
        _write(self.settings.interfaces_file, INTERFACES)
        _write(self.settings.hosts_file, HOSTS)
        self.store = SnapshotStore(self.settings)

    def test_capture(self) -> None:
        """
        Asserts existing files are captured and missing ones left out.
        """
        snapshot = self.store.capture(interface='eth0')
        assert snapshot.files == {
            'interfaces': INTERFACES.encode(),
            'hosts': HOSTS.encode(),
        }
        assert snapshot.interface == 'eth0'
        assert not os.path.exists(self.settings.backup_dir)

    def test_round_trip(self) -> None:
        """
        Asserts restoring a snapshot brings back the captured content
        byte-for-byte.
        """
        snapshot = self.store.capture()
        _write(self.settings.interfaces_file, 'iface eth0 inet static\n')
        _write(self.settings.hosts_file, '')
        self.store.restore(snapshot)
        assert _read(self.settings.interfaces_file) == INTERFACES
        assert _read(self.settings.hosts_file) == HOSTS

    def test_absent_file_untouched(self) -> None:
        """
        Asserts a file missing at capture is not deleted or emptied on
        restore.
        """
        snapshot = self.store.capture()
        _write(self.settings.resolv_conf, 'nameserver 10.0.0.1\n')
        self.store.restore(snapshot)
        assert _read(self.settings.resolv_conf) == 'nameserver 10.0.0.1\n'

    def test_unreadable(self) -> None:
        """
        Asserts a tracked path that can not be read fails the capture.
        """
        os.remove(self.settings.hosts_file)
        os.mkdir(self.settings.hosts_file)
        with pytest.raises(SnapshotIOError):
            self.store.capture()

    def test_restore_fails(self) -> None:
        """
        Asserts a file that can not be written back fails the restore.
        """
        snapshot = self.store.capture()
        os.remove(self.settings.hosts_file)
        os.mkdir(self.settings.hosts_file)
        with pytest.raises(RestoreError):
            self.store.restore(snapshot)

    def test_commit_and_load(self) -> None:
        """
        Asserts a committed snapshot is loaded back with its state.
        """
        state = NetworkConfig(
            name='eth0', mode=Mode.DHCP, address='192.168.1.50/24'
        )
        snapshot = self.store.capture(state=state)
        self.store.commit(snapshot)
        loaded = self.store.latest()
        assert loaded.id == snapshot.id
        assert loaded.files == snapshot.files
        assert loaded.interface == 'eth0'
        assert loaded.state == state
        assert loaded.created_at == snapshot.created_at

    def test_latest_empty(self) -> None:
        """
        Asserts there is no latest snapshot before anything is committed.
        """
        assert self.store.latest() is None
        assert self.store.list() == []

    def test_load_missing(self) -> None:
        """
        Asserts loading an unknown snapshot fails.
        """
        with pytest.raises(SnapshotIOError):
            self.store.load('20000101-000000-000000')

    def test_retention(self) -> None:
        """
        Asserts only the newest snapshots are kept, the latest among them.
        """
        ids = []
        for _ in range(5):
            snapshot = self.store.capture()
            self.store.commit(snapshot)
            ids.append(snapshot.id)
        kept = [snapshot.id for snapshot in self.store.list()]
        assert kept == list(reversed(ids[2:]))
        assert self.store.latest().id == ids[-1]
        for pruned in ids[:2]:
            assert not os.path.exists(
                os.path.join(self.settings.backup_dir, pruned)
            )

    def test_ids_increase(self) -> None:
        """
        Asserts ids increase even when taken within the same instant, and
        across stores.
        """
        first = self.store.capture()
        second = self.store.capture()
        assert second.id > first.id
        self.store.commit(second)
        third = SnapshotStore(self.settings).capture()
        assert third.id > second.id

    def test_commit_fails(self) -> None:
        """
        Asserts an unwritable backup directory fails the commit.
        """
        snapshot = self.store.capture()
        _write(self.settings.backup_dir, 'not a directory')
        with pytest.raises(SnapshotIOError):
            self.store.commit(snapshot)
