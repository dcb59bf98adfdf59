"""Tests for discovery and the query pass."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nuheat import AuthError, NuHeatConnectionError
from nuheat2mqtt.context import NodeServerContext
from nuheat2mqtt.hub import Hub
from nuheat2mqtt.nodes import ControllerNode, ThermostatNodeC, ThermostatNodeF
from nuheat2mqtt.reconciler import Reconciler


def listing(*serials) -> dict:
    return {
        "Groups": [
            {
                "groupName": "Home",
                "Thermostats": [{"SerialNumber": serial, "Room": f"Room {serial}"} for serial in serials],
            }
        ]
    }


async def test_discover_creates_fahrenheit_nodes(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test a first discovery creates one node per thermostat."""
    hub.save_custom_params({"Scale": "Fahrenheit"})

    created = await reconciler.discover()

    assert created == 2
    mock_nuheat_client.authenticate.assert_awaited_once()
    assert isinstance(hub.get_device("12345"), ThermostatNodeF)
    assert hub.get_device("12345").name == "Bathroom"
    assert isinstance(hub.get_device("67890"), ThermostatNodeF)


async def test_discover_celsius(reconciler: Reconciler, hub: Hub) -> None:
    """Test the Celsius scale selects the Celsius variant."""
    hub.save_custom_params({"Scale": "Celsius"})

    await reconciler.discover()

    assert isinstance(hub.get_device("12345"), ThermostatNodeC)


async def test_discover_without_scale_uses_celsius(reconciler: Reconciler, hub: Hub) -> None:
    """Test an unset scale selects the Celsius variant."""
    await reconciler.discover()

    assert isinstance(hub.get_device("12345"), ThermostatNodeC)


async def test_discover_skips_known(
    reconciler: Reconciler,
    context: NodeServerContext,
    hub: Hub,
) -> None:
    """Test existing addresses are not recreated."""
    await hub.add_device(ControllerNode(context))
    await hub.add_device(ThermostatNodeC(context, "12345", "Bathroom"))
    hub.save_custom_params({"Scale": "Fahrenheit"})

    created = await reconciler.discover()

    assert created == 1
    assert isinstance(hub.get_device("12345"), ThermostatNodeC)
    assert isinstance(hub.get_device("67890"), ThermostatNodeF)


async def test_discover_twice_is_stable(reconciler: Reconciler, hub: Hub) -> None:
    """Test a second discovery against the same listing creates nothing."""
    await reconciler.discover()

    assert await reconciler.discover() == 0
    assert len(hub.list_devices()) == 2


@pytest.mark.parametrize("error", [AuthError("bad password"), NuHeatConnectionError("down")])
async def test_discover_auth_failure(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
    error: Exception,
) -> None:
    """Test a failed login aborts discovery before listing."""
    mock_nuheat_client.authenticate.side_effect = error

    assert await reconciler.discover() == 0

    mock_nuheat_client.list_groups.assert_not_called()
    assert hub.list_devices() == {}


@pytest.mark.parametrize("groups", [None, {}, {"Groups": []}])
async def test_discover_empty_listing(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
    groups: dict | None,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test an empty listing is logged and creates nothing."""
    mock_nuheat_client.list_groups.return_value = groups

    assert await reconciler.discover() == 0

    assert hub.list_devices() == {}
    assert "no thermostats found" in caplog.text


async def test_discover_listing_error(reconciler: Reconciler, mock_nuheat_client: MagicMock) -> None:
    """Test a transport failure while listing aborts the pass."""
    mock_nuheat_client.list_groups.side_effect = NuHeatConnectionError("timeout")

    assert await reconciler.discover() == 0


async def test_discover_partial_failure(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test one failing creation does not stop the others."""
    mock_nuheat_client.list_groups.return_value = listing(1, 2, 3)
    add_device = hub.add_device

    async def flaky_add(node):
        if node.address == "2":
            raise RuntimeError("hub refused")
        return await add_device(node)

    with patch.object(hub, "add_device", side_effect=flaky_add):
        created = await reconciler.discover()

    assert created == 2
    assert set(hub.list_devices()) == {"1", "3"}


async def test_discover_counts_only_persisted_devices(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test a device whose registration cannot be saved is neither counted nor kept."""
    hub._store.set = MagicMock(side_effect=[OSError("disk full"), None])

    created = await reconciler.discover()

    assert created == 1
    assert set(hub.list_devices()) == {"67890"}


async def test_discover_paces_creations(reconciler: Reconciler, mock_nuheat_client: MagicMock) -> None:
    """Test the pacing delay runs between creations, not before the first."""
    mock_nuheat_client.list_groups.return_value = listing(1, 2, 3)
    reconciler._pause = AsyncMock()

    await reconciler.discover()

    assert reconciler._pause.await_count == 2


async def test_discover_reads_scale_once(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test a scale change mid-pass does not mix variants."""
    mock_nuheat_client.list_groups.return_value = listing(1, 2, 3)
    hub.save_custom_params({"Scale": "Fahrenheit"})

    async def switch_scale():
        hub.save_custom_params({"Scale": "Celsius"})

    reconciler._pause = switch_scale

    await reconciler.discover()

    assert {type(node) for node in hub.list_devices().values()} == {ThermostatNodeF}


async def test_discover_skips_entries_without_serial(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test entries without a serial number are ignored."""
    mock_nuheat_client.list_groups.return_value = {
        "Groups": [{"groupName": "Home", "Thermostats": [{"Room": "Ghost"}, {"SerialNumber": 7, "Room": "Hall"}]}]
    }

    assert await reconciler.discover() == 1
    assert set(hub.list_devices()) == {"7"}


async def test_discover_multiple_groups(
    reconciler: Reconciler,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test thermostats from every group are created."""
    mock_nuheat_client.list_groups.return_value = {
        "Groups": [
            {"groupName": "Home", "Thermostats": [{"SerialNumber": 1}]},
            {"groupName": "Cabin", "Thermostats": [{"SerialNumber": 2}]},
        ]
    }

    assert await reconciler.discover() == 2
    assert hub.get_device("2").name == "2"


async def test_query_all_isolates_failures(
    reconciler: Reconciler,
    context: NodeServerContext,
    hub: Hub,
) -> None:
    """Test one failing node does not stop the others from refreshing."""
    await hub.add_device(ControllerNode(context))
    first = ThermostatNodeC(context, "1", "One")
    second = ThermostatNodeC(context, "2", "Two")
    await hub.add_device(first)
    await hub.add_device(second)
    first.query = AsyncMock(side_effect=RuntimeError("boom"))
    second.query = AsyncMock()

    await reconciler.query_all()

    first.query.assert_awaited_once()
    second.query.assert_awaited_once()


async def test_query_all_skips_controller(
    reconciler: Reconciler,
    context: NodeServerContext,
    hub: Hub,
    mock_nuheat_client: MagicMock,
) -> None:
    """Test only thermostats are queried."""
    await hub.add_device(ControllerNode(context))
    await hub.add_device(ThermostatNodeF(context, "12345", "Bathroom"))

    await reconciler.query_all()

    mock_nuheat_client.fetch_device.assert_awaited_once_with("12345")
    assert hub.get_device("12345").drivers["ST"].value == pytest.approx(71.6)


async def test_query_all_session_expiry(
    reconciler: Reconciler,
    context: NodeServerContext,
    hub: Hub,
    mock_nuheat_client: MagicMock,
    publisher,
) -> None:
    """Test an expired session writes nothing and re-authenticates once."""
    await hub.add_device(ThermostatNodeF(context, "12345", "Bathroom"))
    mock_nuheat_client.fetch_device.return_value = None
    publisher.clear()

    await reconciler.query_all()
    await context.drain()

    assert [topic for topic in publisher.topics() if "/state/" in topic] == []
    mock_nuheat_client.authenticate.assert_awaited_once()
