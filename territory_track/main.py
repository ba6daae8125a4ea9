"""Command-line entry point.

Usage::

    python -m territory_track replay ride.gpx --kind cycling
    python -m territory_track replay ride.csv --save --email me@example.com --password ...
    python -m territory_track unlock-status <fingerprint> --email ... --password ...
    python -m territory_track territory-map --output maps/territory.html --email ... --password ...
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .activity_types import ActivityKind, normalize_activity_kind
from .app_state import AppState
from .auth import AuthSession
from .backend import BackendClient
from .config import UNLOCK_THRESHOLD, UNLOCK_WINDOW_DAYS
from .errors import TrackFormatError
from .geo import path_length_m
from .models import LocationSample
from .services import RideService, SaveStatus, TerritoryService
from .session import ActivitySession, EndStatus
from .subscriptions import ManualClock, NullTicker, PushLocationSource
from .track_io import load_track
from .unlock import evaluate_unlock
from .utils import format_duration, utcnow
from .visualization import create_territory_map

LOCAL_OWNER_ID = "local"


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _add_credentials(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--email", default=os.getenv("TERRITORY_EMAIL"))
    parser.add_argument(
        "--password",
        default=os.getenv("TERRITORY_PASSWORD"),
        help="Account password (default: $TERRITORY_PASSWORD)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="territory_track",
        description="Record rides into hex cells, unlock repeated routes and claim territory.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    replay = commands.add_parser("replay", help="Replay a recorded CSV/GPX track through a session")
    replay.add_argument("track", type=Path)
    replay.add_argument(
        "--kind",
        type=normalize_activity_kind,
        default=ActivityKind.CYCLING,
        help="cycling, running or hiking (default: cycling)",
    )
    replay.add_argument("--save", action="store_true", help="Persist the ride to the backend")
    replay.add_argument("--map", type=Path, help="Optional HTML map of the replayed cells")
    _add_credentials(replay)

    status = commands.add_parser("unlock-status", help="Show unlock progress for a route fingerprint")
    status.add_argument("fingerprint")
    _add_credentials(status)

    territory = commands.add_parser("territory-map", help="Render owned tiles to an HTML map")
    territory.add_argument("--output", type=Path, required=True)
    territory.add_argument("--track", type=Path, help="Optional track drawn over the tiles")
    _add_credentials(territory)
    return parser


def _connect(
    email: Optional[str], password: Optional[str], client: Optional[BackendClient] = None
) -> Optional[Tuple[BackendClient, AppState]]:
    """Sign in and load the user's data; ``None`` when that fails."""

    if not email or not password:
        logging.error("--email and --password (or TERRITORY_EMAIL / TERRITORY_PASSWORD) are required")
        return None
    client = client or BackendClient()
    auth = AuthSession(client)
    signed_in = auth.sign_in(email, password)
    if not signed_in.ok:
        logging.error("Sign in failed: %s", signed_in.error)
        return None
    user = signed_in.unwrap()
    state = AppState()
    profile = client.get_profile(user.id)
    if not profile.ok:
        logging.warning("Profile unavailable: %s", profile.error)
    state.sign_in(user.id, profile.unwrap_or(None))
    errors = state.load_user_data(client)
    if errors:
        logging.warning("Failed to load some data (%d request(s) failed)", len(errors))
    achievements = client.get_user_achievements(user.id)
    if achievements.ok:
        state.achievements = list(achievements.unwrap())
    return client, state


def replay_track(
    samples: Sequence[LocationSample],
    kind: ActivityKind,
    owner_id: str = LOCAL_OWNER_ID,
) -> Tuple[ActivitySession, ManualClock]:
    """Run ``samples`` through a fresh session using their own timestamps."""

    if not samples:
        raise TrackFormatError("Cannot replay an empty track")
    clock = ManualClock(samples[0].timestamp)
    source = PushLocationSource()
    session = ActivitySession(
        owner_id,
        kind,
        location_source=source,
        ticker=NullTicker(),
        clock=clock,
    )
    session.start()
    for sample in samples:
        clock.set(sample.timestamp)
        source.push(sample)
    return session, clock


def _print_summary(lines: List[Tuple[str, str]]) -> None:
    width = max(len(label) for label, _ in lines)
    for label, value in lines:
        print(f"{label.ljust(width)}  {value}")


def _cmd_replay(args: argparse.Namespace) -> int:
    try:
        samples = load_track(args.track)
    except (FileNotFoundError, TrackFormatError) as exc:
        logging.error("Failed to load track '%s': %s", args.track, exc)
        return 1

    connection = None
    owner_id = LOCAL_OWNER_ID
    if args.save:
        connection = _connect(args.email, args.password)
        if connection is None:
            return 1
        owner_id = connection[1].user_id or LOCAL_OWNER_ID

    session, _clock = replay_track(samples, args.kind, owner_id)
    stats = session.stats()
    outcome = session.end(save=True)
    lines = [
        ("Activity", args.kind.value),
        ("Samples", f"{outcome.accepted_samples} accepted / {stats.rejected_samples} rejected"),
        ("Distance", f"{stats.distance_m / 1000:.2f} km"),
        ("Raw track", f"{path_length_m([(s.latitude, s.longitude) for s in samples]) / 1000:.2f} km"),
        ("Duration", format_duration(session.duration_s)),
        ("Cells", str(len(session.visited_cells))),
    ]
    if outcome.ride is not None:
        lines.append(("Avg speed", f"{outcome.ride.average_speed_kmh:.1f} km/h"))
        lines.append(("Fingerprint", outcome.ride.route_fingerprint))
    _print_summary(lines)

    if args.map is not None:
        create_territory_map(session.visited_cells, samples, output_html_path=args.map)
        logging.info("Replay map written to %s", args.map)

    if connection is None:
        if outcome.status is EndStatus.TOO_SHORT:
            logging.warning("Ride too short to save (%d accepted samples)", outcome.accepted_samples)
        return 0

    client, state = connection
    service = RideService(client, state, territory=TerritoryService(client, state))
    saved = service.handle_end(outcome)
    print(saved.message)
    if saved.unlock is not None:
        print(
            f"Route unlock: {saved.unlock.count}/{saved.unlock.threshold} rides "
            f"in {saved.unlock.window_days} days ({'unlocked' if saved.unlock.unlocked else 'locked'})"
        )
    if saved.xp:
        print(f"XP earned: {saved.xp}")
    return 0 if saved.status in (SaveStatus.SAVED, SaveStatus.TOO_SHORT) else 1


def _cmd_unlock_status(args: argparse.Namespace) -> int:
    connection = _connect(args.email, args.password)
    if connection is None:
        return 1
    client, state = connection
    rides = client.get_user_rides(state.user_id, use_cache=False)
    if not rides.ok:
        logging.error("Failed to load ride history: %s", rides.error)
        return 1
    status = evaluate_unlock(
        args.fingerprint,
        rides.unwrap(),
        state.user_id,
        utcnow(),
        window_days=UNLOCK_WINDOW_DAYS,
        threshold=UNLOCK_THRESHOLD,
    )
    lines = [
        ("Route", status.route_fingerprint),
        ("Rides in window", f"{status.count}/{status.threshold} ({status.window_days} days)"),
        ("Unlocked", "yes" if status.unlocked else f"no, {status.remaining} more ride(s)"),
    ]
    if status.last_ride_at is not None:
        lines.append(("Last ride", status.last_ride_at.isoformat()))
    _print_summary(lines)
    return 0


def _cmd_territory_map(args: argparse.Namespace) -> int:
    track: Optional[List[LocationSample]] = None
    if args.track is not None:
        try:
            track = load_track(args.track)
        except (FileNotFoundError, TrackFormatError) as exc:
            logging.error("Failed to load track '%s': %s", args.track, exc)
            return 1
    connection = _connect(args.email, args.password)
    if connection is None:
        return 1
    client, state = connection
    territory = TerritoryService(client, state)
    refreshed = territory.refresh_tiles()
    if not refreshed.ok:
        logging.error("Failed to load tiles: %s", refreshed.error)
        return 1
    create_territory_map(state.tiles, track, output_html_path=args.output)
    logging.info("Territory map with %d tiles written to %s", len(state.tiles), args.output)
    remaining = territory.decay_days_remaining()
    if territory.decay_warning():
        logging.warning("Territory decays in %d day(s) without a ride", remaining)
    return 0


_COMMANDS = {
    "replay": _cmd_replay,
    "unlock-status": _cmd_unlock_status,
    "territory-map": _cmd_territory_map,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    return _COMMANDS[args.command](args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
