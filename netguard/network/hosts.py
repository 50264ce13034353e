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
Edits the hosts file.
"""
LOOPBACK_HOSTNAME_IP = '127.0.1.1'


def loopback_line(hostname: str) -> str:
    """
    The hosts line mapping the loopback hostname address to a hostname.

    A fully-qualified hostname is followed by its short name.

    :param hostname: Hostname, short or fully-qualified.
    """
    names = [hostname]
    short = hostname.split('.', 1)[0]
    if short != hostname:
        names.append(short)
    return f'{LOOPBACK_HOSTNAME_IP}\t{" ".join(names)}\n'


def set_loopback_hostname(content: str, hostname: str) -> str:
    """
    Rewrites the ``127.0.1.1`` line of a hosts file wholesale.

    When there is no such line one is added after the ``127.0.0.1`` line,
    or at the end of the file. Every other line is left as it was.

    :param content: Content of a hosts file.
    :param hostname: New hostname.
    """
    new_line = loopback_line(hostname)
    lines = content.splitlines(keepends=True)
    replaced = False
    updated = []
    for line in lines:
        fields = line.split()
        if fields and fields[0] == LOOPBACK_HOSTNAME_IP:
            if not replaced:
                updated.append(new_line)
                replaced = True
            continue
        updated.append(line)
    if replaced:
        return ''.join(updated)
    for index, line in enumerate(updated):
        fields = line.split()
        if fields and fields[0] == '127.0.0.1':
            if not line.endswith('\n'):
                updated[index] = f'{line}\n'
            updated.insert(index + 1, new_line)
            return ''.join(updated)
    if updated and not updated[-1].endswith('\n'):
        updated[-1] = f'{updated[-1]}\n'
    updated.append(new_line)
    return ''.join(updated)
