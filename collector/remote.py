"""Remote polling: stats from a repeater reached across the mesh.

Session flow per tick:
  1. Uninitialized: app-start, fetch contacts, find the repeater by name.
  2. Discovered: refresh contacts once the snapshot is older than an hour.
  3. Not logged in: send login, wait for login-success / login-fail.
  4. Logged in: send status request, wait for the status push, publish.

A fatal transport error at any step reboots and reconnects the radio and
resets the session to Uninitialized, so the next tick rediscovers from
scratch. Everything else is logged, counted, and the tick moves on.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto

from collector.publish import (
    count_scrape_error,
    publish_core,
    publish_packets,
    publish_position,
    publish_radio,
)
from collector.recovery import recover
from exporter import metrics
from exporter.metrics import MetricsSink
from meshcore.contacts import ContactDirectory
from meshcore.encoding import parse_login_success, parse_owner_info, parse_status_response
from meshcore.errors import MeshcoreError, ProtocolError, WaitTimeoutError, is_fatal
from meshcore.model import Contact, OwnerInfo, SelfInfo
from meshcore.protocol import PUSH_WAIT_TIMEOUT_S, PushCode
from meshcore.push import PushDispatcher
from meshcore.radio import Radio

logger = logging.getLogger(__name__)

CONTACT_REFRESH_INTERVAL_S = 3600.0
OWNER_INFO_TIMEOUT_S = 10.0


@dataclass
class SessionState:
    """Remote session state. logged_in implies target_contact is set."""

    target_contact: Contact | None = None
    logged_in: bool = False
    last_contact_refresh: float = 0.0
    self_info: SelfInfo | None = None
    owner_info: OwnerInfo | None = None

    def reset(self) -> None:
        """Forget everything learned this session."""
        self.target_contact = None
        self.logged_in = False
        self.last_contact_refresh = 0.0
        self.self_info = None
        self.owner_info = None


class LoginOutcome(Enum):
    SUCCESS = auto()
    REJECTED = auto()
    TIMED_OUT = auto()
    ERROR = auto()
    RECOVERED = auto()  # fatal error, radio reconnected, session reset


class RemoteCollector:
    """Polls a repeater through the companion radio."""

    def __init__(
        self,
        radio: Radio,
        sink: MetricsSink,
        directory: ContactDirectory,
        dispatcher: PushDispatcher,
        repeater: str,
        password: str = "",
        push_timeout_s: float = PUSH_WAIT_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.radio = radio
        self.sink = sink
        self.directory = directory
        self.dispatcher = dispatcher
        self.repeater = repeater
        self.password = password
        self.push_timeout_s = push_timeout_s
        self.state = SessionState()
        self._clock = clock
        self._sleep = sleep
        self._labels = {metrics.NODE: repeater}

    def collect(self) -> None:
        """Run one tick of the session state machine."""
        if self.state.target_contact is None:
            if not self._discover():
                return
        elif self._refresh_due():
            if not self._refresh_contacts():
                return

        if not self.state.logged_in:
            outcome = self._login()
            if outcome not in (LoginOutcome.SUCCESS, LoginOutcome.TIMED_OUT):
                return

        self._poll_status()

    # -------------------------------------------------------------------------
    # Error handling
    # -------------------------------------------------------------------------

    def _handle_error(self, what: str, e: MeshcoreError) -> bool:
        """Log and count a failure. Returns True if it forced a recovery."""
        count_scrape_error(self.sink, self.repeater)
        if is_fatal(e):
            logger.error(f"Fatal transport error {what}: {e}")
            recover(self.radio, self.sink, self.repeater, self._sleep)
            self.state.reset()
            self.sink.observe(metrics.LOGIN_STATUS, self._labels, 0)
            logger.info("Session reset, rediscovering on next tick")
            return True
        logger.warning(f"Error {what}: {e}")
        return False

    def _set_logged_in(self, logged_in: bool) -> None:
        self.state.logged_in = logged_in
        self.sink.observe(metrics.LOGIN_STATUS, self._labels, 1 if logged_in else 0)

    # -------------------------------------------------------------------------
    # Discovery and contacts
    # -------------------------------------------------------------------------

    def _discover(self) -> bool:
        logger.info("Initializing companion radio...")
        try:
            self_info = self.radio.app_start()
        except MeshcoreError as e:
            self._handle_error("starting app", e)
            return False

        logger.info(f"Connected as: {self_info.name} ({self_info.lat:.6f}, {self_info.lon:.6f})")
        self.state.self_info = self_info
        self.dispatcher.node = self.repeater
        self.directory.add_self(self_info)
        publish_position(self.sink, self_info.name, self_info.lat, self_info.lon)

        logger.info("Getting contacts...")
        try:
            contacts = self.radio.get_contacts()
        except MeshcoreError as e:
            self._handle_error("getting contacts", e)
            return False
        self._apply_contacts(contacts)

        target = self.directory.find_by_name(self.repeater)
        if target is None:
            logger.warning(f"Repeater '{self.repeater}' not found in contacts. Available:")
            for c in contacts:
                logger.warning(f"  - {c.name} (type={c.type})")
            return False

        self.state.target_contact = target
        logger.info(
            f"Found repeater: {target.name} (type={target.type}) at ({target.lat:.6f}, {target.lon:.6f})"
        )
        return True

    def _apply_contacts(self, contacts: list[Contact]) -> None:
        self.directory.rebuild(contacts)
        if self.state.self_info is not None:
            self.directory.add_self(self.state.self_info)
        for c in contacts:
            publish_position(self.sink, c.name, c.lat, c.lon)
        self.state.last_contact_refresh = self._clock()

    def _refresh_due(self) -> bool:
        return self._clock() - self.state.last_contact_refresh >= CONTACT_REFRESH_INTERVAL_S

    def _refresh_contacts(self) -> bool:
        """Refresh the contact snapshot. Returns False if the session was reset."""
        logger.info("Refreshing contacts...")
        try:
            contacts = self.radio.get_contacts()
        except MeshcoreError as e:
            return not self._handle_error("refreshing contacts", e)
        self._apply_contacts(contacts)

        target = self.state.target_contact
        assert target is not None
        fresh = next((c for c in contacts if c.pubkey == target.pubkey), None)
        if fresh is None:
            logger.warning(f"Repeater {target.name} missing from refreshed contacts, keeping last record")
        else:
            self.state.target_contact = fresh
        logger.info(f"Contacts refreshed ({len(contacts)} contacts)")
        return True

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    def _login(self) -> LoginOutcome:
        target = self.state.target_contact
        assert target is not None
        logger.info(f"Logging into repeater {target.name}...")
        try:
            self.radio.send_login(target.pubkey, self.password)
            data = self.radio.wait_for_push_code(
                (PushCode.LOGIN_SUCCESS, PushCode.LOGIN_FAIL), self.push_timeout_s
            )
        except MeshcoreError as e:
            if self._handle_error("logging in", e):
                return LoginOutcome.RECOVERED
            if isinstance(e, WaitTimeoutError):
                return LoginOutcome.TIMED_OUT
            return LoginOutcome.ERROR

        if data[0] != PushCode.LOGIN_SUCCESS:
            logger.warning("Login failed!")
            self._set_logged_in(False)
            return LoginOutcome.REJECTED

        self._set_logged_in(True)
        self.sink.observe(metrics.REPEATER_LOGINS, self._labels, 1)
        try:
            prefix = parse_login_success(data)
            logger.info(f"Login successful! ({self.directory.resolve_by_prefix(prefix)})")
        except ProtocolError:
            logger.info("Login successful!")

        if self.state.owner_info is None and not self._fetch_owner_info():
            return LoginOutcome.RECOVERED
        return LoginOutcome.SUCCESS

    def _fetch_owner_info(self) -> bool:
        """Ask the repeater for its owner info. Returns False if the session was reset."""
        target = self.state.target_contact
        assert target is not None
        try:
            self.radio.send_owner_info_request(target.pubkey)
            data = self.radio.wait_for_push_code((PushCode.BINARY_RESPONSE,), OWNER_INFO_TIMEOUT_S)
            info = parse_owner_info(data)
        except MeshcoreError as e:
            return not self._handle_error("fetching owner info", e)
        self.state.owner_info = info
        logger.info(
            f"Repeater {info.node_name or target.name}: firmware {info.firmware_version or 'unknown'}"
            + (f", owner {info.owner_info!r}" if info.owner_info else "")
        )
        return True

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def _poll_status(self) -> None:
        target = self.state.target_contact
        assert target is not None
        logger.info(f"Requesting status from {target.name}...")
        try:
            self.radio.send_status_request(target.pubkey)
            data = self.radio.wait_for_push_code((PushCode.STATUS_RESPONSE,), self.push_timeout_s)
        except MeshcoreError as e:
            if self.state.logged_in:
                self._set_logged_in(False)
            self._handle_error("requesting status", e)
            return

        try:
            core, radio_stats, packets = parse_status_response(data)
        except ProtocolError as e:
            self._handle_error("parsing status response", e)
            return

        publish_core(self.sink, self.repeater, core)
        publish_radio(self.sink, self.repeater, radio_stats)
        publish_packets(self.sink, self.repeater, packets)
        logger.info(
            f"Stats: battery={core.battery_mv}mV, rssi={radio_stats.last_rssi}, "
            f"snr={radio_stats.last_snr:.1f}, rx={packets.recv} (flood={packets.flood_rx}, "
            f"direct={packets.direct_rx}), tx={packets.sent} (flood={packets.flood_tx}, "
            f"direct={packets.direct_tx})"
        )
