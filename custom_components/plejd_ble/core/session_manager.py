from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from .ble_interface import (
    PLEJD_AUTH_CHAR_UUID,
    PLEJD_DATA_CHAR_UUID,
    PLEJD_LAST_DATA_CHAR_UUID,
    PLEJD_MESH_NAME,
    PLEJD_PING_CHAR_UUID,
    PLEJD_SERVICE_UUID,
    MeshTransport,
    normalize_uuid,
)
from .crypto import CRYPTO_KEY_SIZE, create_challenge_response, encrypt_decrypt
from .exceptions import (
    InvalidInputError,
    MeshTimeoutError,
    PlejdError,
    StateViolationError,
    TransportError,
)
from .keepalive import KeepaliveMonitor, ping
from .models import (
    CharacteristicHandles,
    CharacteristicState,
    ConnectionState,
    MeshEvent,
    MeshEventType,
    MeshSession,
    MeshSettings,
    Peripheral,
)
from .protocol import decode_notification, encode_turn_off, encode_turn_on
from .write_queue import WriteQueue

_LOGGER = logging.getLogger(__name__)


def _as_plejd_error(err: Exception) -> PlejdError:
    """Return err as a PlejdError, wrapping stray transport exceptions."""
    if isinstance(err, PlejdError):
        return err
    _LOGGER.debug("Unexpected %s from transport", type(err).__name__, exc_info=err)
    return TransportError(f"{type(err).__name__}: {err}")


def _abort_request(done: asyncio.Future[Any] | None) -> None:
    if done is not None and not done.done():
        done.set_exception(StateViolationError("Session manager stopped"))


# --- SIGNALS ---
# Everything that can change engine state arrives as one of these on a single
# queue and is handled by one task.


@dataclass(slots=True)
class _PowerStateChanged:
    powered_on: bool


@dataclass(slots=True)
class _PeripheralDiscovered:
    peripheral: Peripheral


@dataclass(slots=True)
class _ScanWindowElapsed:
    scan_id: int


@dataclass(slots=True)
class _ConnectFinished:
    attempt: int
    error: PlejdError | None = None


@dataclass(slots=True)
class _ConnectTimedOut:
    attempt: int


@dataclass(slots=True)
class _DiscoveryFinished:
    attempt: int
    handles: dict[str, Any] | None = None
    error: PlejdError | None = None


@dataclass(slots=True)
class _DiscoveryTimedOut:
    attempt: int


@dataclass(slots=True)
class _AuthFinished:
    attempt: int
    error: PlejdError | None = None


@dataclass(slots=True)
class _PeerDisconnected:
    pass


@dataclass(slots=True)
class _NotificationReceived:
    attempt: int
    data: bytes


@dataclass(slots=True)
class _PingTick:
    pass


@dataclass(slots=True)
class _PingFinished:
    attempt: int
    echo: int | None = None
    error: PlejdError | None = None


@dataclass(slots=True)
class _ScanRequested:
    done: asyncio.Future[Any] | None = None


@dataclass(slots=True)
class _ConnectRequested:
    identifier: str | None = None
    done: asyncio.Future[Any] | None = None


@dataclass(slots=True)
class _SendRequested:
    frame: bytes
    done: asyncio.Future[Any] | None = None


@dataclass(slots=True)
class _DisconnectRequested:
    done: asyncio.Future[Any] | None = None


@dataclass(slots=True)
class _ResetRequested:
    done: asyncio.Future[Any] | None = None


class CandidateSelector(Protocol):
    """Chooses which discovered peripheral to connect to next."""

    def pick_next(
        self, candidates: Sequence[Peripheral], index: int
    ) -> Peripheral | None:
        """Return the candidate for a retry index, or None when exhausted."""


class RoundRobinSelector:
    """Walk the candidates in discovery order, one per retry."""

    def pick_next(
        self, candidates: Sequence[Peripheral], index: int
    ) -> Peripheral | None:
        if 0 <= index < len(candidates):
            return candidates[index]
        return None


class PlejdSessionManager:
    """Owns the single connection to a Plejd mesh.

    Scans for gateway peripherals, connects, authenticates, keeps the link
    alive and reconnects after failures. Commands issued while the mesh is not
    reachable are queued and sent once authenticated.
    """

    def __init__(
        self,
        crypto_key: bytes,
        transport: MeshTransport,
        settings: MeshSettings | None = None,
        selector: CandidateSelector | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            crypto_key: The 16-byte mesh key.
            transport: The BLE stack to talk through.
            settings: Timing and queue settings, defaults if None.
            selector: Candidate selection policy, round robin if None.
        """
        if len(crypto_key) != CRYPTO_KEY_SIZE:
            raise InvalidInputError(f"Invalid crypto key size: {len(crypto_key)}")

        self._crypto_key = bytes(crypto_key)
        self._transport = transport
        self._settings = settings or MeshSettings()
        self._selector = selector or RoundRobinSelector()

        self._state = ConnectionState.IDLE
        self._peripherals: dict[str, Peripheral] = {}
        self._candidate_index = 0
        self._session: MeshSession | None = None
        # Bumped for every connection attempt; results and timers carry the
        # attempt they belong to and are dropped once it is stale.
        self._attempt = 0
        self._scan_id = 0
        self._last_error: PlejdError | None = None

        self._write_queue = WriteQueue(self._settings.write_queue_limit)
        self._keepalive = KeepaliveMonitor(
            self._settings.ping_interval, lambda: self._post(_PingTick())
        )
        self._ping_in_flight = False

        self._signals: asyncio.Queue[Any] = asyncio.Queue()
        self._runner: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._connect_task: asyncio.Task[None] | None = None
        self._discovery_task: asyncio.Task[None] | None = None
        self._listeners: list[Callable[[MeshEvent], None]] = []

        self._handlers: dict[type, Callable[[Any], Coroutine[Any, Any, Any]]] = {
            _PowerStateChanged: self._handle_power_state,
            _PeripheralDiscovered: self._handle_discovered,
            _ScanRequested: self._handle_scan_requested,
            _ScanWindowElapsed: self._handle_scan_window_elapsed,
            _ConnectRequested: self._handle_connect_requested,
            _ConnectFinished: self._handle_connect_finished,
            _ConnectTimedOut: self._handle_connect_timed_out,
            _DiscoveryFinished: self._handle_discovery_finished,
            _DiscoveryTimedOut: self._handle_discovery_timed_out,
            _AuthFinished: self._handle_auth_finished,
            _PeerDisconnected: self._handle_peer_disconnected,
            _NotificationReceived: self._handle_notification,
            _PingTick: self._handle_ping_tick,
            _PingFinished: self._handle_ping_finished,
            _SendRequested: self._handle_send,
            _DisconnectRequested: self._handle_disconnect_requested,
            _ResetRequested: self._handle_reset_requested,
        }

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state == ConnectionState.AUTHENTICATED

    @property
    def peripherals(self) -> tuple[Peripheral, ...]:
        """Mesh peripherals found so far."""
        return tuple(self._peripherals.values())

    @property
    def session(self) -> MeshSession | None:
        return self._session

    @property
    def keepalive_running(self) -> bool:
        return self._keepalive.is_running

    @property
    def pending_writes(self) -> int:
        return len(self._write_queue)

    # --- LIFECYCLE ---

    async def async_start(self) -> None:
        """Start processing events from the transport."""
        if self._runner is not None:
            return

        _LOGGER.debug("Wiring events and waiting for BLE interface to power up")
        self._transport.register_callbacks(
            power_state=lambda powered_on: self._post(_PowerStateChanged(powered_on)),
            discovered=lambda peripheral: self._post(_PeripheralDiscovered(peripheral)),
            disconnected=lambda: self._post(_PeerDisconnected()),
        )
        self._runner = asyncio.create_task(self._run())
        await self._transport.start()

    async def async_stop(self) -> None:
        """Stop all activity and close the link."""
        if self._runner is None:
            return

        self._runner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._runner
        self._runner = None

        while not self._signals.empty():
            _abort_request(getattr(self._signals.get_nowait(), "done", None))

        self._keepalive.stop()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        self._attempt += 1
        self._session = None
        self._state = ConnectionState.IDLE
        await self._close_link()

    # --- PUBLIC COMMANDS ---

    def add_listener(self, callback: Callable[[MeshEvent], None]) -> Callable[[], None]:
        """Register a callback for mesh events.

        Returns:
            A function that removes the callback again.
        """
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    async def async_turn_on(
        self, device_id: int, brightness: int | None = None
    ) -> bool:
        """Turn a device on, optionally at a brightness (0-255).

        Returns:
            True if the command was sent, False if it was queued.
        """
        _LOGGER.debug("Turning on %d at brightness %s", device_id, brightness)
        frame = encode_turn_on(device_id, brightness)
        return await self._request(_SendRequested(frame))

    async def async_turn_off(self, device_id: int) -> bool:
        """Turn a device off.

        Returns:
            True if the command was sent, False if it was queued.
        """
        _LOGGER.debug("Turning off %d", device_id)
        return await self._request(_SendRequested(encode_turn_off(device_id)))

    async def async_scan(self) -> None:
        await self._request(_ScanRequested())

    async def async_connect(self, identifier: str | None = None) -> None:
        """Connect to a peripheral by id, or to the next candidate."""
        await self._request(_ConnectRequested(identifier))

    async def async_disconnect(self) -> None:
        await self._request(_DisconnectRequested())

    async def async_reset(self) -> None:
        """Return to idle without touching the transport."""
        await self._request(_ResetRequested())

    # --- EVENT LOOP ---

    def _post(self, signal: Any) -> None:
        self._signals.put_nowait(signal)

    async def _request(self, signal: Any) -> Any:
        if self._runner is None:
            raise StateViolationError("Session manager is not started")

        signal.done = asyncio.get_running_loop().create_future()
        self._post(signal)
        return await signal.done

    async def _run(self) -> None:
        while True:
            signal = await self._signals.get()
            done = getattr(signal, "done", None)
            try:
                result = await self._handlers[type(signal)](signal)
            except asyncio.CancelledError:
                _abort_request(done)
                raise
            except Exception as err:  # pylint: disable=broad-except
                _LOGGER.exception(
                    "Unexpected error handling %s: %s", type(signal).__name__, err
                )
                if done is not None and not done.done():
                    done.set_exception(err)
            else:
                if done is not None and not done.done():
                    done.set_result(result)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule(self, delay: float, signal: Any) -> None:
        async def _fire() -> None:
            await asyncio.sleep(delay)
            self._post(signal)

        self._spawn(_fire())

    @staticmethod
    def _cancel(task: asyncio.Task[Any] | None) -> None:
        if task is not None and not task.done():
            task.cancel()

    def _emit(self, event_type: MeshEventType, **kwargs: Any) -> None:
        event = MeshEvent(type=event_type, **kwargs)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error in listener for %s", event_type)

    # --- SCANNING ---

    async def _handle_power_state(self, signal: _PowerStateChanged) -> None:
        if not signal.powered_on:
            _LOGGER.warning("Bluetooth adapter is not powered on")
            return

        _LOGGER.info("Bluetooth adapter powered on")
        if self._state == ConnectionState.IDLE:
            await self._start_scan()

    async def _handle_scan_requested(self, signal: _ScanRequested) -> None:
        await self._start_scan()

    async def _start_scan(self) -> None:
        if self._state == ConnectionState.SCANNING:
            _LOGGER.warning("Already scanning, please wait")
            return
        if self._state not in (ConnectionState.IDLE, ConnectionState.DISCONNECTED):
            _LOGGER.warning("Cannot scan while %s", self._state.name.lower())
            return

        previous = self._state
        self._state = ConnectionState.SCANNING
        try:
            await self._transport.start_scan(PLEJD_SERVICE_UUID)
        except TransportError as err:
            _LOGGER.error("Failed to start scanning: %s", err)
            self._state = previous
            return

        self._scan_id += 1
        _LOGGER.info(
            "Scanning for mesh peripherals for %.1f s", self._settings.scan_window
        )
        self._schedule(self._settings.scan_window, _ScanWindowElapsed(self._scan_id))

    async def _handle_discovered(self, signal: _PeripheralDiscovered) -> None:
        peripheral = signal.peripheral
        if peripheral.name != PLEJD_MESH_NAME:
            _LOGGER.debug(
                "Ignoring %s advertising as %r", peripheral.identifier, peripheral.name
            )
            return

        if peripheral.identifier not in self._peripherals:
            _LOGGER.debug(
                "Found mesh peripheral %s (rssi %s)",
                peripheral.identifier,
                peripheral.rssi,
            )
        self._peripherals[peripheral.identifier] = peripheral

    async def _handle_scan_window_elapsed(self, signal: _ScanWindowElapsed) -> None:
        if signal.scan_id != self._scan_id or self._state != ConnectionState.SCANNING:
            return

        try:
            await self._transport.stop_scan()
        except TransportError as err:
            _LOGGER.warning("Failed to stop scanning: %s", err)
        self._state = ConnectionState.IDLE

        _LOGGER.info("Scan completed, found %d device(s)", len(self._peripherals))
        if not self._peripherals:
            _LOGGER.warning("No mesh devices found")
            self._emit(MeshEventType.CONNECTION_FAILED, error="No mesh devices found")
            return

        self._emit(MeshEventType.SCAN_COMPLETE, peripherals=self.peripherals)
        _LOGGER.info("Trying to connect to the mesh network")
        await self._connect(None)

    # --- CONNECTING ---

    async def _handle_connect_requested(self, signal: _ConnectRequested) -> None:
        if self._state == ConnectionState.CONNECTING:
            _LOGGER.warning("Currently connecting to a device, please wait")
            return
        if self._state not in (ConnectionState.IDLE, ConnectionState.DISCONNECTED):
            _LOGGER.warning("Cannot connect while %s", self._state.name.lower())
            return

        await self._connect(signal.identifier)

    async def _connect(self, identifier: str | None) -> None:
        if identifier is not None:
            peripheral = self._peripherals.get(identifier)
            if peripheral is None:
                _LOGGER.error("Could not find a device with id %s", identifier)
                return
        else:
            peripheral = self._selector.pick_next(
                self.peripherals, self._candidate_index
            )
            if peripheral is None:
                self._connection_exhausted()
                return

        self._attempt += 1
        self._session = MeshSession.for_peripheral(peripheral)
        self._state = ConnectionState.CONNECTING

        _LOGGER.info(
            "Connecting to %s (rssi %s)", peripheral.identifier, peripheral.rssi
        )
        self._schedule(
            self._settings.connect_timeout, _ConnectTimedOut(self._attempt)
        )
        self._connect_task = self._spawn(self._open_link(self._attempt, peripheral))

    def _connection_exhausted(self) -> None:
        _LOGGER.error("Reached end of device list, cannot continue")
        self._candidate_index = 0
        self._session = None
        self._state = ConnectionState.IDLE
        self._emit(
            MeshEventType.CONNECTION_FAILED,
            error=str(self._last_error) if self._last_error else None,
        )

    async def _retry_next(self) -> None:
        self._candidate_index += 1
        await self._connect(None)

    async def _open_link(self, attempt: int, peripheral: Peripheral) -> None:
        try:
            await self._transport.connect(peripheral)
        except Exception as err:  # pylint: disable=broad-except
            self._post(_ConnectFinished(attempt, _as_plejd_error(err)))
            return
        self._post(_ConnectFinished(attempt))

    async def _close_link(self) -> None:
        try:
            await self._transport.disconnect()
        except TransportError as err:
            _LOGGER.warning("Error during disconnect: %s", err)

    async def _handle_connect_timed_out(self, signal: _ConnectTimedOut) -> None:
        session = self._session
        if (
            signal.attempt != self._attempt
            or self._state != ConnectionState.CONNECTING
            or session is None
        ):
            return

        _LOGGER.warning(
            "Connection timed out after %.1f s, trying next",
            self._settings.connect_timeout,
        )
        self._last_error = MeshTimeoutError(
            f"Connecting to {session.peripheral.identifier} timed out"
        )
        self._cancel(self._connect_task)
        await self._close_link()
        await self._retry_next()

    async def _handle_connect_finished(self, signal: _ConnectFinished) -> None:
        session = self._session
        if (
            signal.attempt != self._attempt
            or self._state != ConnectionState.CONNECTING
            or session is None
        ):
            _LOGGER.debug("Ignoring result of stale connect attempt %d", signal.attempt)
            return

        if signal.error is not None:
            _LOGGER.warning(
                "Failed to connect to %s: %s, picking next",
                session.peripheral.identifier,
                signal.error,
            )
            self._last_error = signal.error
            await self._retry_next()
            return

        self._state = ConnectionState.CONNECTED
        _LOGGER.info("Connected to %s", session.peripheral.identifier)

        if session.characteristic_state == CharacteristicState.UNINITIALIZED:
            _LOGGER.debug("Discovering services and characteristics")
            self._schedule(
                self._settings.discovery_timeout, _DiscoveryTimedOut(self._attempt)
            )
            self._discovery_task = self._spawn(
                self._discover(self._attempt, session.peripheral)
            )

    # --- CHARACTERISTICS ---

    async def _discover(self, attempt: int, peripheral: Peripheral) -> None:
        try:
            handles = await self._transport.discover_characteristics(
                peripheral, PLEJD_SERVICE_UUID
            )
        except Exception as err:  # pylint: disable=broad-except
            self._post(_DiscoveryFinished(attempt, error=_as_plejd_error(err)))
            return
        self._post(_DiscoveryFinished(attempt, handles=handles))

    async def _handle_discovery_timed_out(self, signal: _DiscoveryTimedOut) -> None:
        session = self._session
        if (
            signal.attempt != self._attempt
            or self._state != ConnectionState.CONNECTED
            or session is None
            or session.characteristic_state != CharacteristicState.UNINITIALIZED
        ):
            return

        _LOGGER.error("Discovering characteristics timed out, trying next device")
        self._last_error = MeshTimeoutError(
            f"Characteristic discovery on {session.peripheral.identifier} timed out"
        )
        self._cancel(self._discovery_task)
        await self._close_link()
        await self._retry_next()

    async def _handle_discovery_finished(self, signal: _DiscoveryFinished) -> None:
        session = self._session
        if (
            signal.attempt != self._attempt
            or self._state != ConnectionState.CONNECTED
            or session is None
            or session.characteristic_state != CharacteristicState.UNINITIALIZED
        ):
            _LOGGER.warning("Found characteristics in invalid state, ignoring")
            return

        if signal.error is not None:
            _LOGGER.error("Failed to discover services: %s", signal.error)
            return

        found = {
            normalize_uuid(uuid): handle
            for uuid, handle in (signal.handles or {}).items()
        }
        _LOGGER.debug("Found %d characteristic(s)", len(found))

        characteristics = CharacteristicHandles(
            data=found.get(normalize_uuid(PLEJD_DATA_CHAR_UUID)),
            last_data=found.get(normalize_uuid(PLEJD_LAST_DATA_CHAR_UUID)),
            auth=found.get(normalize_uuid(PLEJD_AUTH_CHAR_UUID)),
            ping=found.get(normalize_uuid(PLEJD_PING_CHAR_UUID)),
        )
        session.characteristics = characteristics
        if not characteristics.is_complete():
            _LOGGER.warning(
                "Mesh characteristics missing on %s", session.peripheral.identifier
            )
            return

        session.characteristic_state = CharacteristicState.INITIALIZED

        attempt = self._attempt
        try:
            await self._transport.subscribe(
                characteristics.last_data,
                lambda data: self._post(_NotificationReceived(attempt, data)),
            )
        except TransportError as err:
            _LOGGER.error("Could not subscribe to notifications: %s", err)

        _LOGGER.debug("Characteristics complete for %s", session.peripheral.identifier)
        self._authenticate()

    # --- AUTHENTICATION ---

    def _authenticate(self) -> None:
        session = self._session
        if (
            self._state != ConnectionState.CONNECTED
            or session is None
            or session.characteristic_state != CharacteristicState.INITIALIZED
        ):
            _LOGGER.error(
                "Need a new connection with discovered characteristics to "
                "authenticate, state is %s",
                self._state.name.lower(),
            )
            return

        self._spawn(self._handshake(self._attempt, session.characteristics.auth))

    async def _handshake(self, attempt: int, handle: Any) -> None:
        try:
            await self._transport.write(handle, b"\x00", response=True)
            challenge = await self._transport.read(handle)
            response = create_challenge_response(self._crypto_key, challenge)
            await self._transport.write(handle, response, response=True)
        except Exception as err:  # pylint: disable=broad-except
            self._post(_AuthFinished(attempt, _as_plejd_error(err)))
            return
        self._post(_AuthFinished(attempt))

    async def _handle_auth_finished(self, signal: _AuthFinished) -> None:
        session = self._session
        if (
            signal.attempt != self._attempt
            or self._state != ConnectionState.CONNECTED
            or session is None
        ):
            _LOGGER.debug("Ignoring result of stale handshake %d", signal.attempt)
            return

        if signal.error is not None:
            _LOGGER.error(
                "Failed to authenticate with %s: %s",
                session.peripheral.identifier,
                signal.error,
            )
            self._emit(MeshEventType.AUTHENTICATION_FAILED, error=str(signal.error))
            return

        self._state = ConnectionState.AUTHENTICATED
        _LOGGER.info("Authenticated with mesh via %s", session.peripheral.identifier)
        self._emit(MeshEventType.AUTHENTICATED)

        self._keepalive.start()
        if len(self._write_queue):
            _LOGGER.debug("Sending %d queued frame(s)", len(self._write_queue))
            await self._write_queue.drain(self._write_frame)

    # --- DATA ---

    async def _write_frame(self, frame: bytes) -> None:
        session = self._session
        if session is None:
            raise TransportError("No active session")

        _LOGGER.debug("Writing frame %s", frame.hex())
        await self._transport.write(
            session.characteristics.data,
            encrypt_decrypt(self._crypto_key, session.address, frame),
            response=True,
        )

    async def _handle_send(self, signal: _SendRequested) -> bool:
        self._write_queue.enqueue(signal.frame)
        if self._state != ConnectionState.AUTHENTICATED:
            _LOGGER.debug(
                "Not connected, queued frame %s (%d pending)",
                signal.frame.hex(),
                len(self._write_queue),
            )
            return False
        return await self._write_queue.drain(self._write_frame)

    async def _handle_notification(self, signal: _NotificationReceived) -> None:
        session = self._session
        if signal.attempt != self._attempt or session is None:
            return

        decoded = encrypt_decrypt(self._crypto_key, session.address, signal.data)
        _LOGGER.debug("Received notification: %s", decoded.hex())

        event = decode_notification(decoded)
        if event is None:
            return

        if event.dim is not None:
            self._emit(MeshEventType.DIM_CHANGED, device=event)
        else:
            self._emit(MeshEventType.STATE_CHANGED, device=event)

    # --- KEEPALIVE ---

    async def _handle_ping_tick(self, signal: _PingTick) -> None:
        if self._state != ConnectionState.AUTHENTICATED or self._session is None:
            _LOGGER.debug("Skipping ping while %s", self._state.name.lower())
            return
        if self._ping_in_flight:
            _LOGGER.debug("Previous ping still outstanding")
            return

        self._ping_in_flight = True
        self._spawn(self._ping(self._attempt, self._session.characteristics.ping))

    async def _ping(self, attempt: int, handle: Any) -> None:
        try:
            echo = await ping(self._transport, handle)
        except Exception as err:  # pylint: disable=broad-except
            self._post(_PingFinished(attempt, error=_as_plejd_error(err)))
            return
        self._post(_PingFinished(attempt, echo=echo))

    async def _handle_ping_finished(self, signal: _PingFinished) -> None:
        if signal.attempt != self._attempt:
            return
        self._ping_in_flight = False

        session = self._session
        if self._state != ConnectionState.AUTHENTICATED or session is None:
            return

        if signal.error is None:
            _LOGGER.debug("Pong: %s", signal.echo)
            self._emit(MeshEventType.PING_SUCCESS, ping=signal.echo)
            return

        _LOGGER.warning("Ping failed: %s, stopping ping and reconnecting", signal.error)
        await self._drop_link()
        self._emit(MeshEventType.PING_FAILED, error=str(signal.error))
        await self._connect(session.peripheral.identifier)

    # --- TEARDOWN ---

    async def _drop_link(self) -> None:
        self._keepalive.stop()
        self._ping_in_flight = False

        session = self._session
        if (
            session is not None
            and session.characteristic_state == CharacteristicState.INITIALIZED
        ):
            try:
                await self._transport.unsubscribe(session.characteristics.last_data)
            except TransportError as err:
                _LOGGER.debug("Could not unsubscribe from notifications: %s", err)

        await self._close_link()
        self._session = None
        self._attempt += 1
        self._state = ConnectionState.DISCONNECTED

    async def _handle_peer_disconnected(self, signal: _PeerDisconnected) -> None:
        session = self._session
        if session is None or self._state not in (
            ConnectionState.CONNECTED,
            ConnectionState.AUTHENTICATED,
        ):
            _LOGGER.debug(
                "Link lost while %s, reconnect will not be performed",
                self._state.name.lower(),
            )
            return

        _LOGGER.warning(
            "Lost connection to %s, reconnecting", session.peripheral.identifier
        )
        self._keepalive.stop()
        self._ping_in_flight = False
        self._session = None
        self._attempt += 1
        self._state = ConnectionState.DISCONNECTED
        self._emit(MeshEventType.DISCONNECTED)
        await self._connect(session.peripheral.identifier)

    async def _handle_disconnect_requested(self, signal: _DisconnectRequested) -> None:
        if self._state not in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.AUTHENTICATED,
        ):
            _LOGGER.debug("Not connected, nothing to disconnect")
            return

        self._cancel(self._connect_task)
        self._cancel(self._discovery_task)
        await self._drop_link()
        _LOGGER.info("Disconnected from mesh")
        self._emit(MeshEventType.DISCONNECTED)

    async def _handle_reset_requested(self, signal: _ResetRequested) -> None:
        _LOGGER.debug("Resetting session state")
        was_authenticated = self.is_authenticated
        self._keepalive.stop()
        self._ping_in_flight = False
        self._attempt += 1
        self._scan_id += 1
        self._session = None
        self._state = ConnectionState.IDLE
        if was_authenticated:
            self._emit(MeshEventType.DISCONNECTED)
