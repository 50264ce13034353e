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
Applies a network configuration as a transaction: snapshot, apply, verify,
then keep the change or roll it back.
"""
import contextlib
import dataclasses
import enum
import os
import time

import filelock

from netguard.network.manager import ApplyError
from netguard.network.manager import NetworkConfig
from netguard.network.probe import ConnectivityProber
from netguard.network.snapshot import RestoreError
from netguard.network.snapshot import Snapshot
from netguard.network.snapshot import SnapshotIOError
from netguard.network.snapshot import SnapshotStore
from netguard.logger import Logger

LOG = Logger(__name__)


class LockError(Exception):

    """
    An exception for a transaction already running on an interface.
    """

    def __init__(self, message) -> None:
        self.message = message
        super().__init__(self.message)


class Outcome(enum.Enum):
    """
    How a transaction ended.
    """

    COMMITTED = 'committed'
    ROLLED_BACK = 'rolled back'
    ROLLBACK_FAILED = 'rollback failed'

    def __str__(self) -> str:
        return self.value


@dataclasses.dataclass
class TransactionResult:
    """
    The outcome of a transaction and the steps it took.
    """

    outcome: Outcome
    trail: list
    snapshot: Snapshot = None
    error: Exception = None


@contextlib.contextmanager
def interface_lock(lock_dir: str, name: str):
    """
    Holds an advisory lock for an interface.

    :param lock_dir: Directory holding the lock files.
    :param name: Interface to lock.
    :raises LockError: When another process holds the lock.
    """
    os.makedirs(lock_dir, exist_ok=True)
    path = os.path.join(lock_dir, f'{name}.lock')
    lock = filelock.FileLock(path, timeout=0)
    try:
        lock.acquire()
    except filelock.Timeout as error:
        raise LockError(
            f'Another transaction is running on {name} ({path}).'
        ) from error
    try:
        yield path
    finally:
        lock.release()


class Transaction:
    """
    Coordinates one network change and its rollback.
    """

    def __init__(
            self,
            settings,
            backend,
            store: SnapshotStore = None,
            prober: ConnectivityProber = None,
    ) -> None:
        """
        :param settings: ``Settings`` for paths, retention and probing.
        :param backend: The ``NetworkBackend`` that applies changes.
        :param store: Snapshot store; built from ``settings`` if not given.
        :param prober: Connectivity prober; built from ``settings`` if not
            given.
        """
        self.settings = settings
        self.backend = backend
        self.store = store or SnapshotStore(settings)
        self.prober = prober or ConnectivityProber(
            attempts=settings.probe_attempts,
            timeout=settings.probe_timeout,
        )
        self.trail = []

    def _step(self, message: str, *args) -> None:
        """
        Logs a step and records it in the trail.
        """
        text = message % args
        LOG.info(text)
        self.trail.append(text)

    def _result(
            self,
            outcome: Outcome,
            snapshot: Snapshot,
            error: Exception = None,
    ) -> TransactionResult:
        return TransactionResult(
            outcome=outcome,
            trail=list(self.trail),
            snapshot=snapshot,
            error=error,
        )

    @staticmethod
    def _cancelled(cancel, deadline: float) -> bool:
        """
        Whether the caller asked to stop.

        :param cancel: A ``threading.Event``-like token, or ``None``.
        :param deadline: A ``time.monotonic()`` deadline, or ``None``.
        """
        if cancel is not None and cancel.is_set():
            return True
        return deadline is not None and time.monotonic() >= deadline

    def run(
            self,
            config: NetworkConfig,
            persistent: bool = False,
            targets: list = None,
            cancel=None,
            deadline: float = None,
    ) -> TransactionResult:
        """
        Applies a configuration, keeping it only if connectivity survives.

        :param config: The configuration to apply.
        :param persistent: Also write the configuration to the interfaces
            file, committing the snapshot taken beforehand.
        :param targets: Addresses to probe; defaults to the settings.
        :param cancel: Token that forces a rollback when set before the
            change is verified.
        :param deadline: ``time.monotonic()`` value after which an
            unverified change is rolled back.
        :raises ValidationError: When the configuration is malformed.
        :raises SnapshotIOError: When the snapshot can not be captured;
            nothing has been changed.
        :raises LockError: When the interface is locked by another run.
        """
        config.validate()
        targets = targets or self.settings.probe_targets
        self.trail = []
        with interface_lock(self.settings.lock_dir, config.name):
            return self._run(config, persistent, targets, cancel, deadline)

    def _run(
            self,
            config: NetworkConfig,
            persistent: bool,
            targets: list,
            cancel,
            deadline: float,
    ) -> TransactionResult:
        name = config.name
        before = self.store.capture(
            state=self.backend.read_live(name),
            interface=name,
            route=self.backend.default_route(),
        )
        self._step('Captured snapshot %s of %s.', before.id, name)

        self._step('Configuring %s for %s.', name, config.mode)
        try:
            self.backend.apply_live(config)
        except ApplyError as error:
            self._step(
                'Configuring %s failed at stage [%s]: %s',
                name,
                error.stage,
                error.cause,
            )
            return self._rollback(before, error)

        if persistent:
            try:
                self.store.commit(before)
                self._step('Committed snapshot %s.', before.id)
                self.backend.apply_persistent(config)
            except (ApplyError, SnapshotIOError) as error:
                self._step('Persisting %s failed: %s', name, error)
                return self._rollback(before, error)
            self._step(
                'Persisted %s to %s.', name, self.settings.interfaces_file
            )

        if self._cancelled(cancel, deadline):
            self._step('Cancelled before %s was verified.', name)
            return self._rollback(before)

        if self.prober.probe(targets):
            self._step('Connectivity test passed.')
            return self._result(Outcome.COMMITTED, before)
        self._step(
            'Connectivity test failed, no response from %s.',
            ', '.join(targets),
        )
        return self._rollback(before)

    def restore(self, snapshot: Snapshot) -> TransactionResult:
        """
        Rolls back to a previously committed snapshot on request.

        :param snapshot: The snapshot to restore.
        :raises LockError: When the interface is locked by another run.
        """
        self.trail = []
        with interface_lock(
                self.settings.lock_dir, snapshot.interface or 'files'
        ):
            return self._rollback(snapshot)

    def _rollback(
            self,
            before: Snapshot,
            cause: Exception = None,
    ) -> TransactionResult:
        """
        Restores the snapshot files and re-applies the live configuration
        they were captured with.

        :param before: Snapshot taken before the change.
        :param cause: The error that triggered the rollback, if any.
        """
        self._step('Rolling back to snapshot %s.', before.id)
        try:
            self.store.restore(before)
            if before.state is not None:
                self.backend.apply_live(before.state, files=False)
            elif before.interface:
                self.backend.release(before.interface)
            route = before.route
            if route and route.get('dev') != before.interface:
                self.backend.set_default_route(route)
                self._step(
                    'Restored default route via %s on %s.',
                    route['gateway'],
                    route['dev'],
                )
        except (ApplyError, RestoreError) as error:
            # TODO: Fall back to ``ifreload -a`` with the restored interfaces
            # file when re-applying the snapshot fails.
            LOG.critical('Rollback of %s failed: %s', before.interface, error)
            self._step(
                'Rollback failed: %s. Inspect %s manually.',
                error,
                before.interface,
            )
            return self._result(Outcome.ROLLBACK_FAILED, before, error)
        self._step('Rolled back %s to snapshot %s.', before.interface,
                   before.id)
        return self._result(Outcome.ROLLED_BACK, before, cause)
