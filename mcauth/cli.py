from __future__ import annotations

import argparse
import getpass
import sys
from typing import List, Optional

from mcauth import enable_logging
from mcauth.authentication import AuthenticationService
from mcauth.config import Settings
from mcauth.exceptions import MCAuthError, PropertyError
from mcauth.federated import MicrosoftFlow
from mcauth.http import Transport
from mcauth.microsoft import DeviceCode
from mcauth.profile import GameProfile
from mcauth.repository import ProfileRepository
from mcauth.session import SessionService
from mcauth.token_cache import FileTokenCache
from mcauth.trust import TrustRegistry
from mcauth.yggdrasil import YggdrasilFlow


def _print_device_code(dc: DeviceCode) -> None:
    print(dc.message)


def _print_textures(profile: GameProfile, require_secure: bool, registry: TrustRegistry) -> None:
    try:
        textures = profile.get_textures(require_secure=require_secure, registry=registry)
    except PropertyError as e:
        print(f"textures: REJECTED ({type(e).__name__}: {e})")
        return
    if not textures:
        print("textures: none")
    for texture_type, texture in textures.items():
        print(f"{texture_type.value}: {texture.url} model={texture.model.value} hash={texture.hash}")


def cmd_login(args: argparse.Namespace, settings: Settings, transport: Transport, registry: TrustRegistry) -> int:
    if args.legacy:
        flow = YggdrasilFlow(registry=registry, transport=transport)
    else:
        flow = MicrosoftFlow(
            client_id=settings.client_id,
            transport=transport,
            token_cache=FileTokenCache(settings.token_cache_path),
            on_device_code=_print_device_code,
        )
    auth = AuthenticationService(flow)
    auth.username = args.username
    if args.password:
        auth.password = getpass.getpass("Password: ")
    auth.login()

    print("OK")
    print("id:", auth.id)
    print("username:", auth.username)
    print("profiles:", ", ".join(p.name or p.id_as_string for p in auth.available_profiles) or "(none)")
    print("selected:", auth.selected_profile.name if auth.selected_profile else "(none)")
    # Do not print tokens by default.
    if args.show_token:
        print("access_token:", auth.access_token)
    return 0


def cmd_lookup(args: argparse.Namespace, settings: Settings, transport: Transport, registry: TrustRegistry) -> int:
    repo = ProfileRepository(registry=registry, transport=transport)
    failed = 0
    for result in repo.find_profiles_by_names(args.names):
        if result.ok:
            print(f"{result.profile.name}: {result.profile.id}")
        else:
            failed += 1
            print(f"{result.profile.name}: NOT FOUND ({result.error})")
    return 1 if failed else 0


def cmd_textures(args: argparse.Namespace, settings: Settings, transport: Transport, registry: TrustRegistry) -> int:
    repo = ProfileRepository(registry=registry, transport=transport)
    results = list(repo.find_profiles_by_names([args.name]))
    if not results or not results[0].ok:
        print(f"{args.name}: NOT FOUND")
        return 1
    profile = SessionService(registry=registry, transport=transport).fill_profile_properties(results[0].profile)
    print(f"{profile.name}: {profile.id}")
    require_secure = settings.require_secure_textures and not args.insecure
    _print_textures(profile, require_secure, registry)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcauth", description="Account login and profile lookup")
    parser.add_argument("--debug", action="store_true", help="log requests (same as MS_DEBUG=1)")
    parser.add_argument("--service-root", help="alternate service root (overrides MCAUTH_SERVICE_ROOT)")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="log in and print the resolved profile")
    login.add_argument("--username", "-u", help="account email / login")
    login.add_argument("--password", "-p", action="store_true", help="prompt for a password")
    login.add_argument("--legacy", action="store_true", help="use the legacy auth server instead of Microsoft")
    login.add_argument("--show-token", action="store_true")
    login.set_defaults(func=cmd_login)

    lookup = sub.add_parser("lookup", help="resolve names to profile ids")
    lookup.add_argument("names", nargs="+")
    lookup.set_defaults(func=cmd_lookup)

    textures = sub.add_parser("textures", help="print the textures of a profile")
    textures.add_argument("name")
    textures.add_argument("--insecure", action="store_true", help="skip signature and domain checks")
    textures.set_defaults(func=cmd_textures)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    if args.debug or settings.debug:
        enable_logging()

    transport = Transport(proxy=settings.proxy, timeout=settings.timeout)
    registry = TrustRegistry(transport=transport, key_file=settings.signing_key_file)
    try:
        root = args.service_root or settings.service_root
        if root:
            registry.register_service_root(root)
        return args.func(args, settings, transport, registry)
    except MCAuthError as e:
        print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
