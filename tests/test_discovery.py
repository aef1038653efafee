"""Tests for ScanSession discovery."""

import asyncio
import logging

from conftest import TARGET_ADDRESS, make_advertisement

from ledremote.interfaces.ble.connection import ConnectionManager
from ledremote.interfaces.ble.discovery import ScanSession
from ledremote.interfaces.ble.gating import PermissionGate
from ledremote.interfaces.ble.gatt import ServiceResolver
from ledremote.interfaces.ble.state import BLEStateManager


def _build_session(backend, publisher, timeout=0.1):
    state_manager = BLEStateManager()
    resolver = ServiceResolver(backend, state_manager)
    manager = ConnectionManager(backend, state_manager, resolver, publisher)
    gate = PermissionGate(backend, publisher)
    return ScanSession(backend, gate, publisher, manager, timeout=timeout)


async def _granted_scan(session, **kwargs):
    await session.permission_gate.request_capabilities()
    return await session.start_scan(**kwargs)


class TestScanSession:
    """Test cases for ScanSession.start_scan."""

    def test_timeout_without_match(self, backend, publisher, recorder):
        """No matching name: no handle, no connect, scanning returns to False."""
        backend.scan_batches = [[make_advertisement(name="Other", address="11:22")]]
        session = _build_session(backend, publisher, timeout=0.05)

        assert asyncio.run(_granted_scan(session)) is None
        assert not session.is_scanning
        assert backend.calls_named("connect") == []
        assert recorder.values("is_scanning") == [True, False]
        assert recorder.errors == []
        assert len(backend.scan_results) == 0

    def test_match_stops_scan_and_connects_once(self, backend, publisher):
        backend.scan_batches = [
            [make_advertisement(name=None, address="11:22"), make_advertisement()],
        ]
        session = _build_session(backend, publisher)

        handle = asyncio.run(_granted_scan(session))

        assert handle is not None
        assert handle.address == TARGET_ADDRESS
        assert session.last_handle == handle
        assert not session.is_scanning
        connects = backend.calls_named("connect")
        assert len(connects) == 1
        assert connects[0][1] == handle
        assert session.connection_manager.is_connected

    def test_scan_stopped_before_connect(self, backend, publisher):
        """The scan subscription is gone and the radio idle when connect starts."""
        backend.scan_batches = [[make_advertisement()]]
        session = _build_session(backend, publisher)

        asyncio.run(_granted_scan(session))

        assert backend.scan_state_at_connect == [(False, 0)]
        stop_index = backend.calls.index(("stop_scan",))
        connect_index = next(i for i, c in enumerate(backend.calls) if c[0] == "connect")
        assert stop_index < connect_index

    def test_batch_short_circuits_after_match(self, backend, publisher):
        backend.scan_batches = [
            [make_advertisement(), make_advertisement(address="99:99")],
            [make_advertisement(address="77:77")],
        ]
        session = _build_session(backend, publisher)

        handle = asyncio.run(_granted_scan(session))

        assert handle.address == TARGET_ADDRESS
        assert len(backend.calls_named("connect")) == 1

    def test_name_match_is_exact(self, backend, publisher):
        backend.scan_batches = [
            [make_advertisement(name="esp32_led"), make_advertisement(name="ESP32_LED_2")]
        ]
        session = _build_session(backend, publisher, timeout=0.05)

        assert asyncio.run(_granted_scan(session)) is None

    def test_custom_filter_name(self, backend, publisher):
        backend.scan_batches = [[make_advertisement(name="Desk", address="12:34")]]
        session = _build_session(backend, publisher)

        handle = asyncio.run(_granted_scan(session, filter_name="Desk"))

        assert handle.address == "12:34"

    def test_second_scan_while_scanning_is_ignored(self, backend, publisher):
        session = _build_session(backend, publisher, timeout=0.05)

        async def _run():
            await session.permission_gate.request_capabilities()
            return await asyncio.gather(session.start_scan(), session.start_scan())

        assert asyncio.run(_run()) == [None, None]
        assert len(backend.calls_named("start_scan")) == 1

    def test_scan_requires_permissions(self, backend, publisher, recorder):
        session = _build_session(backend, publisher)

        assert asyncio.run(session.start_scan()) is None
        assert backend.calls_named("start_scan") == []
        assert recorder.values("is_scanning") == []

    def test_running_scan_is_stopped_first(self, backend, publisher):
        backend._scanning = True
        session = _build_session(backend, publisher, timeout=0.01)

        asyncio.run(_granted_scan(session))

        names = [c[0] for c in backend.calls if c[0] in ("start_scan", "stop_scan")]
        assert names[:2] == ["stop_scan", "start_scan"]

    def test_scan_error_ends_scan(self, backend, publisher, caplog):
        backend.start_scan_error = RuntimeError("radio busy")
        session = _build_session(backend, publisher)

        with caplog.at_level(logging.WARNING, logger="ledremote.ble"):
            assert asyncio.run(_granted_scan(session)) is None

        assert not session.is_scanning
        assert backend.calls_named("connect") == []
        assert "Scan error: radio busy" in caplog.text

    def test_stop_error_is_suppressed(self, backend, publisher):
        backend.scan_batches = [[make_advertisement()]]
        backend.stop_scan_error = RuntimeError("already stopped")
        session = _build_session(backend, publisher)

        assert asyncio.run(_granted_scan(session)) is not None
        assert not session.is_scanning

    def test_session_without_connection_manager(self, backend, publisher):
        backend.scan_batches = [[make_advertisement()]]
        gate = PermissionGate(backend, publisher)
        session = ScanSession(backend, gate, publisher, timeout=0.1)

        assert asyncio.run(_granted_scan(session)) is not None
        assert backend.calls_named("connect") == []


class TestMatchTimeoutRace:
    """The match handler and the scan timeout race; exactly one of them decides the outcome."""

    def test_match_wins_when_timeout_is_reported_late(self, backend, publisher):
        """A match that cancelled the subscription first is kept even though the wait timed out."""
        session = _build_session(backend, publisher)
        resolved_before_timeout = []

        async def match_then_timeout(found, timeout):
            backend.scan_results.emit([make_advertisement()])
            resolved_before_timeout.append(found.done())
            raise asyncio.TimeoutError

        session._await_match = match_then_timeout

        handle = asyncio.run(_granted_scan(session))

        assert resolved_before_timeout == [True]
        assert handle is not None
        assert handle.address == TARGET_ADDRESS
        assert session.last_handle == handle
        assert len(backend.calls_named("connect")) == 1
        assert not session.is_scanning

    def test_match_after_timeout_is_dropped(self, backend, publisher):
        session = _build_session(backend, publisher)
        delivered = []
        backend.scan_results.subscribe(delivered.append)

        async def timeout_then_match(found, timeout):
            asyncio.get_running_loop().call_soon(
                backend.scan_results.emit, [make_advertisement()]
            )
            raise asyncio.TimeoutError

        session._await_match = timeout_then_match

        async def _run():
            result = await _granted_scan(session)
            # Let the late advertisement be delivered.
            await asyncio.sleep(0)
            return result

        assert asyncio.run(_run()) is None
        assert len(delivered) == 1
        assert session.last_handle is None
        assert backend.calls_named("connect") == []
        assert not session.is_scanning


class TestCollect:
    """Test cases for ScanSession.collect."""

    def test_collect_returns_distinct_advertisers(self, backend, publisher):
        backend.scan_batches = [
            [make_advertisement(name=None, address="11:22"), make_advertisement()],
            [make_advertisement(name="Lamp", address="11:22"), make_advertisement()],
        ]
        session = _build_session(backend, publisher, timeout=0.05)

        async def _run():
            await session.permission_gate.request_capabilities()
            return await session.collect()

        devices = asyncio.run(_run())

        assert [(d.name, d.address) for d in devices] == [
            ("ESP32_LED", TARGET_ADDRESS),
            ("Lamp", "11:22"),
        ]
        assert backend.calls_named("connect") == []
        assert not session.is_scanning

    def test_collect_requires_permissions(self, backend, publisher):
        session = _build_session(backend, publisher)

        assert asyncio.run(session.collect()) == []
