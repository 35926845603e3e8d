"""
SOS Beacon Command Line Entry Point

Wires configuration, logging, the backend client, the session, the location
tracker and the SOS lifecycle controller together and exposes them as
sub-commands.
"""

import argparse
import asyncio
import getpass
import signal
import sys
from typing import Optional

from .core.config import ConfigurationError, ConfigurationManager
from .core.http_client import ApiClient
from .core.logging import get_logger, initialize_logging
from .models.alert import ControllerState
from .services.sos import (
    ApiSessionProvider, AuthenticationError, CredentialStore, HttpAlertService,
    LocationTracker, PositionSource, ReplayPositionSource, SOSLifecycleController
)


class SOSBeaconApplication:
    """Main SOS Beacon application class"""

    def __init__(self, config_dir: str = "config", positions_file: Optional[str] = None,
                 interval: Optional[float] = None):
        self.config_dir = config_dir
        self.positions_file = positions_file
        self.interval = interval

        self.config_manager: Optional[ConfigurationManager] = None
        self.client: Optional[ApiClient] = None
        self.session: Optional[ApiSessionProvider] = None
        self.tracker: Optional[LocationTracker] = None
        self.controller: Optional[SOSLifecycleController] = None
        self.logger = None

        self.shutdown_event = asyncio.Event()

    async def initialize(self):
        """Initialize all application components"""
        self.config_manager = ConfigurationManager(self.config_dir)
        self.config_manager.load_config()
        if self.positions_file:
            self.config_manager.set('location.replay_file', self.positions_file)
        if self.interval:
            self.config_manager.set('location.replay_interval', self.interval)

        initialize_logging(self.config_manager.config)
        self.logger = get_logger('main')

        endpoints = self.config_manager.get_endpoints()
        store = CredentialStore(self.config_manager.get_credentials_file())

        self.client = ApiClient(
            base_url=self.config_manager.get('api.base_url'),
            timeout=self.config_manager.get('api.timeout', 30),
            max_retries=self.config_manager.get('api.max_retries', 0),
            token_provider=store.get_token
        )
        self.session = ApiSessionProvider(self.client, store, endpoints)

        self.tracker = LocationTracker(
            self._build_position_source(),
            self.config_manager.get_section('location')
        )
        self.controller = SOSLifecycleController(
            self.tracker,
            HttpAlertService(self.client, endpoints),
            self.session,
            self.config_manager.get_section('sos')
        )

        self.logger.info("SOS Beacon initialized")

    def _build_position_source(self) -> Optional[PositionSource]:
        replay_file = self.config_manager.get('location.replay_file')
        if not replay_file:
            self.logger.warning("No position source configured")
            return None

        interval = self.config_manager.get('location.replay_interval', 5)
        try:
            return ReplayPositionSource.from_file(replay_file, interval=interval)
        except (OSError, ValueError) as e:
            self.logger.error(f"Cannot load position recording {replay_file}: {e}")
            return None

    async def _require_session(self) -> bool:
        user = await self.session.refresh_user()
        if user is None:
            print("Not signed in. Run 'sosbeacon login EMAIL' first.")
            return False
        await self.controller.start()
        return True

    async def login(self, email: str, password: str) -> int:
        try:
            user = await self.session.sign_in(email, password)
        except AuthenticationError as e:
            print(f"Login failed: {e}")
            return 1
        print(f"Signed in as {user.name or user.email}")
        return 0

    async def logout(self) -> int:
        self.session.logout()
        print("Signed out")
        return 0

    async def whoami(self) -> int:
        user = await self.session.refresh_user()
        if user is None:
            print("Not signed in")
            return 1
        print(f"{user.name} <{user.email}> ({user.id})")
        return 0

    async def status(self) -> int:
        if not await self._require_session():
            return 1
        self._print_alert()
        return 0

    async def trigger(self, notes: Optional[str] = None) -> int:
        if not await self._require_session():
            return 1

        result = await self.controller.trigger(notes)
        if not result.success:
            print(f"Failed to trigger SOS: {result.error} [{result.error_kind.value}]")
            return 1

        self._print_alert()
        await self._track_until_shutdown()
        return 0

    async def resume(self) -> int:
        if not await self._require_session():
            return 1
        if self.controller.current_alert is None:
            print("No active alert")
            return 1

        self._print_alert()
        await self._track_until_shutdown()
        return 0

    async def cancel(self) -> int:
        if not await self._require_session():
            return 1

        result = await self.controller.cancel()
        if not result.success:
            print(f"Failed to cancel SOS: {result.error} [{result.error_kind.value}]")
            return 1

        print("SOS alert cancelled. Stay safe.")
        return 0

    def _print_alert(self):
        alert = self.controller.current_alert
        if alert is None:
            print("No active alert")
            return

        print("SOS ALERT ACTIVE")
        print(f"  ID:           {alert.id}")
        print(f"  Triggered at: {alert.created_at.astimezone():%Y-%m-%d %H:%M:%S}")
        if alert.notes:
            print(f"  Notes:        {alert.notes}")
        location = alert.display_location
        if location:
            print(f"  Location:     {location.latitude:.6f}, {location.longitude:.6f}")
            print(f"  Map:          {location.map_url()}")
        else:
            print("  Location:     unavailable")

    async def _track_until_shutdown(self):
        """Keep the location watch running until signalled or the alert ends"""
        def on_state(controller: SOSLifecycleController):
            if controller.current_alert is None and controller.state == ControllerState.IDLE:
                self.shutdown_event.set()

        unsubscribe = self.controller.subscribe(on_state)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler, sig)

        print("Tracking location. Press Ctrl+C to stop tracking "
              "(the alert stays active until you run 'sosbeacon cancel').")
        try:
            await self.shutdown_event.wait()
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            unsubscribe()
            print(f"Heartbeats sent: {self.controller.heartbeats_sent}, "
                  f"failed: {self.controller.heartbeat_failures}")

    def _signal_handler(self, signum):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signal.Signals(signum).name}")
        self.shutdown_event.set()

    async def shutdown(self):
        """Stop tracking and release network resources"""
        if self.controller:
            self.controller.close()
            await self.controller.flush_heartbeats()
        if self.tracker:
            self.tracker.close()
        if self.client:
            await self.client.close()
        if self.logger:
            self.logger.info("SOS Beacon shutdown complete")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sosbeacon", description="Personal SOS alerts with live location")
    parser.add_argument("--config-dir", default="config", help="Directory holding default.yaml/config.yaml")
    parser.add_argument("--positions", help="Position recording (YAML or JSON) to replay")
    parser.add_argument("--interval", type=float, help="Seconds between replayed positions")

    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Sign in and store the session token")
    login.add_argument("email")
    commands.add_parser("logout", help="Forget the stored session")
    commands.add_parser("whoami", help="Show the signed-in user")
    commands.add_parser("status", help="Show the active alert")
    trigger = commands.add_parser("trigger", help="Raise an SOS and keep reporting location")
    trigger.add_argument("--notes", help="Additional information sent with the alert")
    commands.add_parser("resume", help="Resume location reporting for the active alert")
    commands.add_parser("cancel", help="Cancel the active alert")

    return parser


async def run(args: argparse.Namespace) -> int:
    """Run one command"""
    app = SOSBeaconApplication(args.config_dir, args.positions, args.interval)
    await app.initialize()

    try:
        if args.command == "login":
            password = getpass.getpass("Password: ")
            return await app.login(args.email, password)
        if args.command == "logout":
            return await app.logout()
        if args.command == "whoami":
            return await app.whoami()
        if args.command == "status":
            return await app.status()
        if args.command == "trigger":
            return await app.trigger(args.notes)
        if args.command == "resume":
            return await app.resume()
        if args.command == "cancel":
            return await app.cancel()
        return 2
    finally:
        await app.shutdown()


def main(argv=None):
    """Main entry point"""
    args = build_parser().parse_args(argv)
    try:
        code = asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        code = 2
    except KeyboardInterrupt:
        print("\nInterrupted")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
