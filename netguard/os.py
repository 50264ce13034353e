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
Helpers for running system commands.
"""
import platform
import subprocess
import time

from netguard.logger import Logger

LOG = Logger(__name__)


class _CLI:
    """
    The result of a command, ran on construction.
    """

    stdout = ''
    stderr = ''
    return_code = None
    duration = None

    def __init__(
            self,
            args: list,
            shell: bool = False,
            timeout: float = None,
    ) -> None:
        """
        Runs the given command.

        :param args: Command and its arguments.
        :param shell: Whether to run the command through a shell.
        :param timeout: Seconds to wait before giving up on the command.
        """
        self._args = args
        self._shell = shell
        self._timeout = timeout
        self._run()

    def _run(self) -> None:
        """
        Invokes the command, recording its output and return code.

        A missing executable is reported with return code 127, and a timeout
        with return code 124, the same codes a shell would use.
        """
        command = ' '.join(self._args) if self._shell else self._args
        start = time.monotonic()
        try:
            result = subprocess.run(
                command,
                shell=self._shell,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as error:
            self.stderr = str(error)
            self.return_code = 127
        except subprocess.TimeoutExpired as error:
            self.stdout = _decode(error.stdout)
            self.stderr = _decode(error.stderr)
            self.return_code = 124
        else:
            self.stdout = _decode(result.stdout)
            self.stderr = _decode(result.stderr)
            self.return_code = result.returncode
        finally:
            self.duration = time.monotonic() - start


def _decode(output: [bytes, None]) -> str:
    """
    Decodes command output, tolerating missing output and invalid bytes.
    :param output: Raw output from ``subprocess``.
    """
    if not output:
        return ''
    return output.decode('utf-8', errors='replace').strip()


def run_command(
        args: list,
        in_shell: bool = False,
        silence: bool = False,
        timeout: float = None,
) -> _CLI:
    """
    Runs a command, returning an object describing the result.

    :param args: Command and its arguments; non-strings are converted.
    :param in_shell: Run the command through a shell.
    :param silence: Do not log the command or its result.
    :param timeout: Seconds to wait before giving up on the command.
    """
    args = [str(arg) for arg in args]
    if not silence:
        LOG.debug('Running: %s', ' '.join(args))
    result = _CLI(args, shell=in_shell, timeout=timeout)
    if not silence:
        LOG.debug(
            'Finished [%s] with return code %s in %.2fs',
            args[0],
            result.return_code,
            result.duration or 0,
        )
    return result


def supported_platforms() -> tuple:
    """
    Returns whether the running platform is supported, and its name.
    """
    system = platform.system()
    return system == 'Linux', system
