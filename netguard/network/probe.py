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
Connectivity checks run after a network change.
"""
import dataclasses
import datetime

from netguard.os import run_command
from netguard.logger import Logger

LOG = Logger(__name__)


@dataclasses.dataclass
class ProbeResult:
    """
    The outcome of one reachability check.
    """

    target: str
    reachable: bool
    attempted_at: datetime.datetime


class ConnectivityProber:
    """
    Checks whether any of a list of targets can be reached.
    """

    def __init__(self, attempts: int = 3, timeout: int = 2) -> None:
        """
        :param attempts: Checks per target before moving to the next one.
        :param timeout: Seconds to wait for each check.
        """
        self.attempts = attempts
        self.timeout = timeout
        self.results = []

    def _ping(self, target: str) -> bool:
        """
        Sends one echo request.
        :param target: IP address to reach.
        """
        result = run_command(
            ['ping', '-c', '1', '-W', self.timeout, target],
            silence=True,
            timeout=self.timeout + 1,
        )
        return result.return_code == 0

    def probe(self, targets: list) -> bool:
        """
        Tries each target in order and stops at the first one reached.

        :param targets: IP addresses to try.
        :returns: Whether any target was reached.
        """
        self.results = []
        for target in targets:
            LOG.info('Testing connectivity to %s...', target)
            for attempt in range(1, self.attempts + 1):
                reachable = self._ping(target)
                self.results.append(
                    ProbeResult(
                        target=target,
                        reachable=reachable,
                        attempted_at=datetime.datetime.now(),
                    )
                )
                if reachable:
                    LOG.info('Successfully reached %s.', target)
                    return True
                LOG.info(
                    'Attempt %s/%s to reach %s failed.',
                    attempt,
                    self.attempts,
                    target,
                )
            LOG.warning('Failed to reach %s.', target)
        return False
