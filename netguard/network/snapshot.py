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
Point-in-time copies of the files a network change touches.

Committed snapshots live in ``<backup_dir>/<id>/``, one file per captured
logical name plus ``snapshot.yml``. ``<backup_dir>/index.yml`` holds the
ordered snapshot ids and the ``latest`` pointer.
"""
import dataclasses
import datetime
import os
import shutil

import yaml

from netguard.network.manager import NetworkConfig
from netguard.logger import Logger

LOG = Logger(__name__)

ID_FORMAT = '%Y%m%d-%H%M%S-%f'
INDEX_FILE = 'index.yml'
METADATA_FILE = 'snapshot.yml'


class SnapshotIOError(Exception):

    """
    An exception for snapshots that can not be read or written.
    """

    def __init__(self, message) -> None:
        self.message = message
        super().__init__(self.message)


class RestoreError(Exception):

    """
    An exception for a rollback that could not be completed.
    """

    def __init__(self, message) -> None:
        self.message = message
        super().__init__(self.message)


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """
    An immutable capture of the tracked files.
    """

    id: str
    files: dict
    created_at: datetime.datetime
    interface: str = ''
    state: NetworkConfig = None
    route: dict = None

    def __str__(self) -> str:
        names = ', '.join(sorted(self.files)) or 'no files'
        return f'{self.id} ({self.interface or "-"}: {names})'


class SnapshotStore:
    """
    Captures, persists and restores snapshots.
    """

    def __init__(self, settings) -> None:
        """
        :param settings: ``Settings`` with the tracked files, the backup
            directory and the retention limit.
        """
        self.settings = settings
        self.backup_dir = settings.backup_dir
        self.max_backups = settings.max_backups
        self._last_id = None

    def _new_id(self) -> str:
        """
        A timestamp id, strictly greater than any id already handed out or
        committed.
        """
        now = datetime.datetime.now()
        newest = max(
            filter(None, [self._last_id, self._index()['latest']]),
            default=None,
        )
        if newest is not None:
            previous = datetime.datetime.strptime(newest, ID_FORMAT)
            if now <= previous:
                now = previous + datetime.timedelta(microseconds=1)
        self._last_id = now.strftime(ID_FORMAT)
        return self._last_id

    def capture(
            self,
            state: NetworkConfig = None,
            interface: str = '',
            route: dict = None,
    ) -> Snapshot:
        """
        Reads the current content of every tracked file.

        Missing files are left out of the snapshot. Nothing is persisted.

        :param state: Live configuration of the interface being changed.
        :param interface: Name of the interface being changed.
        :param route: The system's default route, re-installed on rollback
            when it ran through another interface.
        :raises SnapshotIOError: When a tracked file exists but can not be
            read.
        """
        files = {}
        for name, path in self.settings.tracked_files.items():
            try:
                with open(path, 'rb') as tracked:
                    files[name] = tracked.read()
            except FileNotFoundError:
                LOG.info('%s does not exist, not capturing it.', path)
            except OSError as error:
                raise SnapshotIOError(
                    f'Could not read {path}: {error}'
                ) from error
        snapshot = Snapshot(
            id=self._new_id(),
            files=files,
            created_at=datetime.datetime.now(),
            interface=interface or (state.name if state else ''),
            state=state,
            route=route,
        )
        LOG.info('Captured snapshot %s', snapshot)
        return snapshot

    def _index(self) -> dict:
        """
        Reads the snapshot index.
        """
        path = os.path.join(self.backup_dir, INDEX_FILE)
        try:
            with open(path, 'r', encoding='utf-8') as index_file:
                index = yaml.safe_load(index_file.read()) or {}
        except FileNotFoundError:
            index = {}
        except (OSError, yaml.YAMLError) as error:
            raise SnapshotIOError(
                f'Could not read snapshot index {path}: {error}'
            ) from error
        return {
            'snapshots': list(index.get('snapshots') or []),
            'latest': index.get('latest'),
        }

    def _write_index(self, index: dict) -> None:
        """
        Replaces the snapshot index.
        :param index: Ordered ids (oldest first) and the latest pointer.
        """
        path = os.path.join(self.backup_dir, INDEX_FILE)
        temporary = f'{path}.tmp'
        with open(temporary, 'w', encoding='utf-8') as index_file:
            yaml.safe_dump(index, index_file, default_flow_style=False)
        os.replace(temporary, path)

    def commit(self, snapshot: Snapshot) -> None:
        """
        Persists a snapshot, points ``latest`` at it, and prunes the oldest
        snapshots beyond the retention limit.

        :param snapshot: Snapshot to persist.
        :raises SnapshotIOError: When the snapshot can not be written.
        """
        directory = os.path.join(self.backup_dir, snapshot.id)
        metadata = {
            'id': snapshot.id,
            'created_at': snapshot.created_at.isoformat(),
            'interface': snapshot.interface,
            'files': sorted(snapshot.files),
            'state': snapshot.state.to_dict() if snapshot.state else None,
            'route': snapshot.route,
        }
        try:
            os.makedirs(directory, exist_ok=True)
            for name, content in snapshot.files.items():
                with open(os.path.join(directory, name), 'wb') as backup:
                    backup.write(content)
            with open(
                    os.path.join(directory, METADATA_FILE),
                    'w',
                    encoding='utf-8',
            ) as metadata_file:
                yaml.safe_dump(
                    metadata, metadata_file, default_flow_style=False
                )
            index = self._index()
            if snapshot.id not in index['snapshots']:
                index['snapshots'].append(snapshot.id)
            index['snapshots'].sort()
            index['latest'] = snapshot.id
            self._prune(index)
            self._write_index(index)
        except OSError as error:
            raise SnapshotIOError(
                f'Could not commit snapshot {snapshot.id}: {error}'
            ) from error
        LOG.info('Committed snapshot %s to %s', snapshot.id, directory)

    def _prune(self, index: dict) -> None:
        """
        Deletes the oldest snapshots, never the latest, until the index is
        within the retention limit.
        :param index: The index to prune, modified in place.
        """
        while len(index['snapshots']) > self.max_backups:
            oldest = next(
                (snapshot_id for snapshot_id in index['snapshots']
                 if snapshot_id != index['latest']),
                None,
            )
            if oldest is None:
                break
            index['snapshots'].remove(oldest)
            shutil.rmtree(
                os.path.join(self.backup_dir, oldest), ignore_errors=True
            )
            LOG.info('Pruned snapshot %s', oldest)

    def restore(self, snapshot: Snapshot) -> None:
        """
        Writes every captured file back to its path.

        Files absent from the snapshot are left alone. A failed write stops
        the restore; files already written stay written.

        :param snapshot: Snapshot to restore.
        :raises RestoreError: When a file can not be written.
        """
        paths = self.settings.tracked_files
        for name, content in snapshot.files.items():
            path = paths.get(name)
            if path is None:
                LOG.warning('Snapshot %s has unknown file %s', snapshot, name)
                continue
            try:
                with open(path, 'wb') as tracked:
                    tracked.write(content)
            except OSError as error:
                raise RestoreError(
                    f'Could not restore {path} from snapshot '
                    f'{snapshot.id}: {error}'
                ) from error
            LOG.info('Restored %s from snapshot %s', path, snapshot.id)

    def load(self, snapshot_id: str) -> Snapshot:
        """
        Reads a committed snapshot.

        :param snapshot_id: Id of the snapshot.
        :raises SnapshotIOError: When the snapshot does not exist or is
            unreadable.
        """
        directory = os.path.join(self.backup_dir, snapshot_id)
        try:
            with open(
                    os.path.join(directory, METADATA_FILE),
                    'r',
                    encoding='utf-8',
            ) as metadata_file:
                metadata = yaml.safe_load(metadata_file.read()) or {}
            files = {}
            for name in metadata.get('files', []):
                with open(os.path.join(directory, name), 'rb') as backup:
                    files[name] = backup.read()
        except (OSError, yaml.YAMLError) as error:
            raise SnapshotIOError(
                f'Could not load snapshot {snapshot_id}: {error}'
            ) from error
        state = metadata.get('state')
        return Snapshot(
            id=metadata.get('id', snapshot_id),
            files=files,
            created_at=datetime.datetime.fromisoformat(
                metadata['created_at']
            ),
            interface=metadata.get('interface', ''),
            state=NetworkConfig.from_dict(state) if state else None,
            route=metadata.get('route'),
        )

    def latest(self) -> [Snapshot, None]:
        """
        The most recently committed snapshot, if any.
        """
        latest = self._index()['latest']
        if latest is None:
            return None
        return self.load(latest)

    def list(self) -> list:
        """
        Committed snapshots, newest first.
        """
        return [
            self.load(snapshot_id)
            for snapshot_id in reversed(self._index()['snapshots'])
        ]
