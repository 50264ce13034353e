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
Logging for netguard.

Every module logs through ``LOG = Logger(__name__)``; handlers live on the
package logger and are attached once by ``setup``.
"""
import logging
import logging.handlers
import os

PACKAGE = 'netguard'
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
SYSLOG_SOCKET = '/dev/log'


class Logger(logging.LoggerAdapter):
    """
    A logger for a netguard module.
    """

    def __init__(self, name: str) -> None:
        """
        :param name: Name of the module doing the logging.
        """
        if not name.startswith(PACKAGE):
            name = f'{PACKAGE}.{os.path.basename(name)}'
        super().__init__(logging.getLogger(name), {})


def setup(log_file: str = None, level: int = logging.INFO) -> logging.Logger:
    """
    Attaches handlers to the package logger.

    A file handler is attached when ``log_file`` can be opened, and a syslog
    handler when the local syslog socket exists. Calling this again replaces
    the previously attached handlers.

    :param log_file: Path to the durable log file.
    :param level: Minimum level to record.
    """
    logger = logging.getLogger(PACKAGE)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
        except OSError as error:
            logger.warning('Not logging to %s: %s', log_file, error)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    if os.path.exists(SYSLOG_SOCKET):
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=SYSLOG_SOCKET
            )
        except OSError as error:
            logger.warning('Not logging to syslog: %s', error)
        else:
            syslog_handler.ident = f'{PACKAGE}: '
            syslog_handler.setFormatter(logging.Formatter('%(message)s'))
            logger.addHandler(syslog_handler)
    return logger
