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
Tests for the ``netguard.network.manager`` module.
"""
import pytest

from netguard.network import manager
from netguard.network.manager import Mode
from netguard.network.manager import NetworkConfig
from netguard.network.manager import ValidationError


class TestNetworkConfig:
    """
    Tests for validating a ``NetworkConfig``.
    """

    def test_static(self) -> None:
        """
        Asserts a complete static configuration validates.
        """
        config = NetworkConfig(
            name='eth0',
            mode=Mode.STATIC,
            address='10.0.0.5/24',
            gateway='10.0.0.1',
            dns=['1.1.1.1'],
        )
        config.validate()
        assert str(config.ipaddr.ip) == '10.0.0.5'
        assert config.ipaddr.prefixlen == 24

    def test_dhcp_needs_nothing_else(self) -> None:
        """
        Asserts a DHCP configuration only needs a name.
        """
        NetworkConfig(name='eth0', mode=Mode.DHCP).validate()

    @pytest.mark.parametrize('changes', [
        {'address': ''},
        {'gateway': ''},
        {'dns': []},
        {'address': '10.0.0.5'},
        {'address': '10.0.0.5/33'},
        {'address': '10.0.0.5/-1'},
        {'address': '10.0.0.500/24'},
        {'address': 'eth0/24'},
        {'gateway': '10.0.0'},
        {'dns': ['1.1.1.1', 'one.one.one.one']},
        {'name': ''},
        {'mode': Mode.UNCONFIGURED},
        {'mode': 'static'},
    ])
    def test_invalid_static(self, changes) -> None:
        """
        Asserts malformed static configurations are rejected.
        """
        values = {
            'name': 'eth0',
            'mode': Mode.STATIC,
            'address': '10.0.0.5/24',
            'gateway': '10.0.0.1',
            'dns': ['1.1.1.1'],
        }
        values.update(changes)
        with pytest.raises(ValidationError):
            NetworkConfig(**values).validate()

    def test_prefix_bounds(self) -> None:
        """
        Asserts prefixes 0 and 32 are both accepted.
        """
        for address in ['10.0.0.5/0', '10.0.0.5/32']:
            NetworkConfig(
                name='eth0',
                mode=Mode.STATIC,
                address=address,
                gateway='10.0.0.1',
                dns=['1.1.1.1'],
            ).validate()

    def test_bridge_port_is_not_the_bridge(self) -> None:
        """
        Asserts a bridge can not be its own port.
        """
        config = NetworkConfig(name='br0', bridge_ports=['br0'])
        assert config.is_bridge
        with pytest.raises(ValidationError):
            config.validate()

    def test_dict_round_trip(self) -> None:
        """
        Asserts a configuration survives being stored as plain data.
        """
        config = NetworkConfig(
            name='br0',
            mode=Mode.STATIC,
            address='10.0.0.5/24',
            gateway='10.0.0.1',
            dns=['1.1.1.1', '9.9.9.9'],
            hostname='node1.example.com',
            bridge_ports=['eth0', 'eth1'],
        )
        data = config.to_dict()
        assert data['mode'] == 'static'
        assert NetworkConfig.from_dict(data) == config


class TestFromNetmask:
    """
    Tests for combining an address and a netmask.
    """

    def test_dotted(self) -> None:
        """
        Asserts a dotted netmask becomes a prefix length.
        """
        assert manager.from_netmask('10.0.0.5', '255.255.255.0') == \
            '10.0.0.5/24'

    def test_prefix(self) -> None:
        """
        Asserts a prefix length is kept.
        """
        assert manager.from_netmask('192.168.1.50', 16) == '192.168.1.50/16'

    def test_invalid(self) -> None:
        """
        Asserts garbage is rejected.
        """
        with pytest.raises(ValidationError):
            manager.from_netmask('10.0.0.5', 'not-a-mask')


class TestApplyError:
    """
    Tests for ``ApplyError``.
    """

    def test_stage(self) -> None:
        """
        Asserts the failed stage is carried and reported.
        """
        error = manager.ApplyError('route', 'Nexthop has invalid gateway.')
        assert error.stage == 'route'
        assert 'route' in str(error)
        assert 'Nexthop' in str(error)
