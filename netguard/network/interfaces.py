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
Reads and rewrites stanzas of an ``ifupdown`` interfaces file.

Only the lines belonging to one interface are ever touched; everything else
in the file is carried over byte-for-byte.
"""
import dataclasses
import os

import jinja2

from netguard.network.manager import Mode
from netguard.network.manager import NetworkConfig

TEMPLATE_DIRECTORY = os.path.join(
    os.path.dirname(__file__), 'templates', 'ifupdown'
)

# Keywords that start a new stanza, ``allow-*`` is matched by prefix.
STANZA_KEYWORDS = {
    'auto',
    'iface',
    'mapping',
    'source',
    'source-directory',
}


@dataclasses.dataclass
class Stanza:
    """
    One interface's block in an interfaces file.
    """

    name: str
    method: str = 'dhcp'
    address: str = ''
    gateway: str = ''
    dns: list = dataclasses.field(default_factory=list)
    bridge_ports: list = dataclasses.field(default_factory=list)
    auto: bool = True

    @classmethod
    def from_config(cls, config: NetworkConfig) -> 'Stanza':
        """
        Builds the stanza describing a configuration.
        :param config: The configuration to persist.
        """
        if config.mode == Mode.STATIC:
            return cls(
                name=config.name,
                method='static',
                address=config.address,
                gateway=config.gateway,
                dns=list(config.dns),
                bridge_ports=list(config.bridge_ports),
            )
        return cls(
            name=config.name,
            method='dhcp',
            bridge_ports=list(config.bridge_ports),
        )

    @classmethod
    def manual(cls, name: str) -> 'Stanza':
        """
        A stanza that leaves an interface for something else to configure,
        such as a bridge port.
        :param name: Interface name.
        """
        return cls(name=name, method='manual', auto=False)

    def render(self) -> str:
        """
        The exact text block for this stanza, ending in a single newline.
        """
        loader = jinja2.FileSystemLoader(TEMPLATE_DIRECTORY)
        env = jinja2.Environment(loader=loader, keep_trailing_newline=True)
        template = env.get_template('stanza.j2')
        return template.render(stanza=self).rstrip('\n') + '\n'


def _starts_stanza(line: str) -> bool:
    """
    Whether a line opens a new stanza.
    :param line: A line from an interfaces file.
    """
    if not line or line[0].isspace():
        return False
    tokens = line.split()
    if not tokens:
        return False
    return tokens[0] in STANZA_KEYWORDS or tokens[0].startswith('allow-')


def remove_stanza(content: str, name: str) -> str:
    """
    Removes every ``iface`` stanza of an interface, and drops the interface
    from ``auto``/``allow-*`` lines (removing lines left empty).

    :param content: Content of an interfaces file.
    :param name: Interface whose stanzas are removed.
    """
    kept = []
    removing = False
    for line in content.splitlines(keepends=True):
        if _starts_stanza(line):
            removing = False
            tokens = line.split()
            keyword = tokens[0]
            if keyword == 'iface' and len(tokens) > 1 and tokens[1] == name:
                removing = True
                continue
            if (keyword == 'auto' or keyword.startswith('allow-')) \
                    and name in tokens[1:]:
                others = [token for token in tokens[1:] if token != name]
                if others:
                    ending = line[len(line.rstrip('\r\n')):]
                    kept.append(f'{keyword} {" ".join(others)}{ending}')
                continue
            kept.append(line)
            continue
        if removing and line[:1].isspace() and line.strip():
            continue
        kept.append(line)
    return ''.join(kept)


def find_stanza(content: str, name: str) -> [str, None]:
    """
    Returns the first ``iface`` stanza of an interface, with its options.

    :param content: Content of an interfaces file.
    :param name: Interface to look for.
    """
    found = []
    for line in content.splitlines(keepends=True):
        if _starts_stanza(line):
            if found:
                break
            tokens = line.split()
            if tokens[0] == 'iface' and len(tokens) > 1 and \
                    tokens[1] == name:
                found.append(line)
            continue
        if found and line[:1].isspace() and line.strip():
            found.append(line)
    return ''.join(found) or None


def replace_stanza(content: str, name: str, block: str) -> str:
    """
    Replaces an interface's stanza, appending the new block at the end.

    :param content: Content of an interfaces file.
    :param name: Interface being replaced.
    :param block: Rendered text of the new stanza(s).
    """
    remaining = remove_stanza(content, name)
    if remaining and not remaining.endswith('\n'):
        remaining += '\n'
    if remaining.strip() and not remaining.endswith('\n\n'):
        remaining += '\n'
    return remaining + block
