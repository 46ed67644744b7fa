"""Guildhall CLI — command-line interface for the marketplace directory.

Usage:
    python -m guildhall.cli status
    python -m guildhall.cli --as alice create-profile --contact alice@example.org --expertise Biohacking
    python -m guildhall.cli --as alice create-listing --title "Need help" --description "..." \
        --category Biohacking --expertise Biohacking --type seeking
    python -m guildhall.cli --as bob respond --id 1
    python -m guildhall.cli --as alice resolve --id 1
    python -m guildhall.cli list-listings --expertise Peptides
    python -m guildhall.cli events --since 2026-01-01T00:00:00Z
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable

from guildhall.logging_config import configure_logging
from guildhall.models.listing import ExpertiseType, Listing, ListingStatus
from guildhall.models.profile import Profile
from guildhall.persistence.event_log import EventKind, EventLog
from guildhall.persistence.state_store import StateStore
from guildhall.policy.resolver import PolicyResolver
from guildhall.service import ListingDirectoryService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(config_dir: Path, data_dir: Path = DEFAULT_DATA) -> ListingDirectoryService:
    """Create a ListingDirectoryService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(config_dir)
    event_log = EventLog(storage_path=data_dir / "events.jsonl")
    state_store = StateStore(storage_path=data_dir / "state.json")
    return ListingDirectoryService(
        resolver,
        event_log=event_log,
        state_store=state_store,
    )


def _dump(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


def _profile_view(profile: Profile) -> dict[str, Any]:
    return asdict(profile)


def _listing_view(listing: Listing) -> dict[str, Any]:
    data = asdict(listing)
    data["status"] = listing.status.value
    data["expertise_type"] = listing.expertise_type.value
    return data


def _report(result: ServiceResult, message: str) -> int:
    if result.success:
        print(message.format(**result.data))
        if "warning" in result.data:
            print(f"Warning: {result.data['warning']}", file=sys.stderr)
        return 0
    kind = result.error_kind.value if result.error_kind else "error"
    print(f"Failed ({kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _require_caller(args: argparse.Namespace) -> str:
    if not args.caller:
        raise SystemExit("This command needs --as <member id>")
    return args.caller


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    _dump(service.status())
    return 0


def cmd_create_profile(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.create_profile(
        _require_caller(args),
        contact_info=args.contact,
        on_site=args.on_site,
        travel_details=args.travel,
        expertise_areas=args.expertise or [],
        credentials=args.credentials,
        bio=args.bio,
    )
    return _report(result, "Created profile: {member_id}")


def cmd_update_profile(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.update_profile(
        _require_caller(args),
        contact_info=args.contact,
        on_site=args.on_site,
        travel_details=args.travel,
        expertise_areas=args.expertise or [],
        credentials=args.credentials,
        bio=args.bio,
    )
    return _report(result, "Updated profile: {member_id} (expertise: {new_expertise})")


def cmd_deactivate_profile(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.deactivate_profile(_require_caller(args))
    return _report(result, "Deactivated profile: {member_id}")


def cmd_show_profile(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    profile = service.get_profile(args.member or _require_caller(args))
    if not profile.exists:
        print(f"No profile: {profile.member_id}", file=sys.stderr)
        return 1
    _dump(_profile_view(profile))
    return 0


def cmd_find_profiles(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    if args.expertise is not None:
        profiles = service.get_profiles_by_expertise(args.expertise)
    elif args.on_site is not None:
        profiles = service.get_profiles_by_on_site_status(args.on_site == "yes")
    else:
        profiles = service.get_all_active_profiles()
    _dump([_profile_view(p) for p in profiles])
    return 0


def cmd_create_listing(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.create_listing(
        _require_caller(args),
        title=args.title,
        description=args.description,
        category=args.category,
        is_project=args.project,
        expertise_type=ExpertiseType(args.type),
        expertise=args.expertise,
        contact_method=args.contact,
    )
    return _report(result, "Created listing: {listing_id} ({status})")


def cmd_update_listing(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.update_listing(
        _require_caller(args),
        args.id,
        title=args.title,
        description=args.description,
        category=args.category,
        is_project=args.project,
        expertise_type=ExpertiseType(args.type),
        expertise=args.expertise,
        contact_method=args.contact,
    )
    return _report(result, "Updated listing: {listing_id}")


def cmd_respond(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.respond_to_listing(_require_caller(args), args.id)
    return _report(result, "Responded to listing: {listing_id} ({status})")


def cmd_resolve(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.mark_resolved(_require_caller(args), args.id)
    return _report(result, "Resolved listing: {listing_id}")


def cmd_deactivate_listing(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.deactivate_listing(_require_caller(args), args.id)
    return _report(result, "Deactivated listing: {listing_id}")


def cmd_show_listing(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    listing = service.get_listing(args.id)
    if listing is None:
        print(f"Listing not found: {args.id}", file=sys.stderr)
        return 1
    view = _listing_view(listing)
    view["is_expired"] = service.is_expired(args.id)
    _dump(view)
    return 0


def cmd_list_listings(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    if args.expertise is not None:
        listings = service.get_listings_by_expertise(args.expertise)
    elif args.status is not None:
        listings = service.get_listings_by_status(ListingStatus(args.status))
    elif args.member is not None:
        listings = service.get_user_listings(args.member)
    else:
        listings = service.get_active_listings()
    _dump([_listing_view(l) for l in listings])
    return 0


def cmd_events(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    kind = EventKind(args.kind) if args.kind else None
    if args.since:
        records = service.event_log.events_since(args.since, kind)
    else:
        records = service.event_log.events(kind)
    _dump([r.to_dict() for r in records])
    return 0


def cmd_add_category(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.add_category(_require_caller(args), args.name)
    return _report(result, "Added category: {category}")


def cmd_remove_category(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.remove_category(_require_caller(args), args.name)
    return _report(result, "Removed category: {category}")


def _add_profile_fields(p: argparse.ArgumentParser) -> None:
    p.add_argument("--contact", required=True, help="Contact info")
    p.add_argument("--on-site", action="store_true", help="Member is on site")
    p.add_argument("--travel", default="", help="Travel details")
    p.add_argument("--expertise", action="append", help="Expertise tag (repeatable)")
    p.add_argument("--credentials", default="", help="Credentials")
    p.add_argument("--bio", default="", help="Short bio")


def _add_listing_fields(p: argparse.ArgumentParser) -> None:
    p.add_argument("--title", required=True, help="Listing title")
    p.add_argument("--description", required=True, help="Listing description")
    p.add_argument("--category", required=True, help="Category name")
    p.add_argument("--project", action="store_true", help="Listing is a project")
    p.add_argument(
        "--type", default=ExpertiseType.SEEKING.value,
        choices=[t.value for t in ExpertiseType],
        help="Seeking or offering expertise (default: seeking)",
    )
    p.add_argument("--expertise", required=True, help="Expertise tag")
    p.add_argument("--contact", default="", help="Contact method")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guildhall",
        description="Guildhall — community marketplace directory CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to data directory (default: data/)",
    )
    parser.add_argument("--as", dest="caller", help="Member ID performing the command")
    parser.add_argument("--verbose", action="store_true", help="Log at debug level")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show directory status")

    # profiles
    _add_profile_fields(sub.add_parser("create-profile", help="Create your profile"))
    _add_profile_fields(sub.add_parser("update-profile", help="Update your profile"))
    sub.add_parser("deactivate-profile", help="Deactivate your profile")

    p_show = sub.add_parser("show-profile", help="Show a profile")
    p_show.add_argument("--member", help="Member ID (default: --as)")

    p_find = sub.add_parser("find-profiles", help="List active profiles")
    p_find.add_argument("--expertise", help="Filter by expertise tag")
    p_find.add_argument("--on-site", choices=["yes", "no"], help="Filter by on-site status")

    # listings
    _add_listing_fields(sub.add_parser("create-listing", help="Post a listing"))

    p_upd = sub.add_parser("update-listing", help="Edit an open listing")
    p_upd.add_argument("--id", type=int, required=True, help="Listing ID")
    _add_listing_fields(p_upd)

    for name, help_text in (
        ("respond", "Respond to a listing"),
        ("resolve", "Mark a listing resolved"),
        ("deactivate-listing", "Withdraw a listing"),
        ("show-listing", "Show a listing"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--id", type=int, required=True, help="Listing ID")

    p_list = sub.add_parser("list-listings", help="List listings (default: live ones)")
    p_list.add_argument("--expertise", help="Exact expertise tag")
    p_list.add_argument("--status", choices=[s.value for s in ListingStatus])
    p_list.add_argument("--member", help="Listings created by a member")

    p_events = sub.add_parser("events", help="Show the notification log")
    p_events.add_argument("--since", help="UTC timestamp, e.g. 2026-01-01T00:00:00Z")
    p_events.add_argument("--kind", choices=[k.value for k in EventKind])

    # categories
    p_add = sub.add_parser("add-category", help="Add a category (admin)")
    p_add.add_argument("--name", required=True)
    p_rm = sub.add_parser("remove-category", help="Remove a category (admin)")
    p_rm.add_argument("--name", required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    commands: dict[str, Callable[[argparse.Namespace], int]] = {
        "status": cmd_status,
        "create-profile": cmd_create_profile,
        "update-profile": cmd_update_profile,
        "deactivate-profile": cmd_deactivate_profile,
        "show-profile": cmd_show_profile,
        "find-profiles": cmd_find_profiles,
        "create-listing": cmd_create_listing,
        "update-listing": cmd_update_listing,
        "respond": cmd_respond,
        "resolve": cmd_resolve,
        "deactivate-listing": cmd_deactivate_listing,
        "show-listing": cmd_show_listing,
        "list-listings": cmd_list_listings,
        "events": cmd_events,
        "add-category": cmd_add_category,
        "remove-category": cmd_remove_category,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
