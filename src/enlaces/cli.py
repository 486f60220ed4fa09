#!/usr/bin/env python3
"""
Command line user administration for Enlaces EPN.

Every command signs in as the acting administrator first, so the same
permission checks apply as in the web application.
"""

import argparse
import asyncio
import getpass
import sys
from typing import List, Optional

from loguru import logger

from .access.errors import AccessError
from .access.permissions import Role, permissions_for
from .access.users import NewUser, UserPatch, role_counts
from .app import EnlacesApp, build_app
from .config import Settings
from .log import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="enlaces-admin", description="Enlaces EPN user administration")
    parser.add_argument(
        "--as",
        dest="actor",
        required=True,
        help="Email of the administrator running the command"
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Optional .env file with ENLACES_* settings"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create-user", help="Create an account and its profile")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True, help="Display name")
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.AGENT.value)
    create.add_argument("--department", default="")

    update = commands.add_parser("update-user", help="Change profile fields")
    update.add_argument("user_id")
    update.add_argument("--name", default=None)
    update.add_argument("--role", choices=[r.value for r in Role], default=None)
    update.add_argument("--department", default=None)
    active = update.add_mutually_exclusive_group()
    active.add_argument("--activate", dest="is_active", action="store_true", default=None)
    active.add_argument("--deactivate", dest="is_active", action="store_false")

    delete = commands.add_parser("delete-user", help="Remove a user profile")
    delete.add_argument("user_id")

    commands.add_parser("list-users", help="List user profiles")
    return parser


def prompt_new_password() -> str:
    password = getpass.getpass("Contraseña del nuevo usuario: ")
    confirmation = getpass.getpass("Confirme la contraseña: ")
    if password != confirmation:
        raise SystemExit("Las contraseñas no coinciden")
    return password


async def run_command(app: EnlacesApp, args: argparse.Namespace, actor_password: str) -> None:
    await app.access.sign_in(args.actor, actor_password)

    if args.command == "create-user":
        identity = await app.users.create_user(NewUser(
            email=args.email,
            password=prompt_new_password(),
            display_name=args.name,
            role=args.role,
            department=args.department,
        ))
        print(f"Usuario creado: {identity.email} ({identity.uid})")

    elif args.command == "update-user":
        await app.users.update_user(args.user_id, UserPatch(
            display_name=args.name,
            role=args.role,
            department=args.department,
            is_active=args.is_active,
        ))
        print(f"Usuario actualizado: {args.user_id}")

    elif args.command == "delete-user":
        await app.users.delete_user(args.user_id)
        print(f"Perfil eliminado: {args.user_id}")

    elif args.command == "list-users":
        users = await app.users.list_users()
        for uid, profile in users:
            status = "Activo" if profile.is_active else "Inactivo"
            label = permissions_for(profile.role).label
            print(f"{uid}  {profile.display_name:<30} {profile.email:<35} {label:<14} {status}")
        counts = role_counts(users)
        print(f"\nTotal: {len(users)}  " + "  ".join(
            f"{permissions_for(role).label}: {count}" for role, count in counts.items()
        ))

    await app.access.sign_out()


async def run(args: argparse.Namespace, actor_password: str) -> int:
    settings = Settings.from_env(env_file=args.env_file)
    setup_logging(settings.log_level)

    app = await build_app(settings)
    async with app:
        try:
            await run_command(app, args, actor_password)
        except AccessError as e:
            logger.debug(f"Command failed: {e}")
            print(f"Error: {e.user_message}", file=sys.stderr)
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    actor_password = getpass.getpass(f"Contraseña de {args.actor}: ")
    try:
        return asyncio.run(run(args, actor_password))
    except KeyboardInterrupt:
        print("\nOperación cancelada.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
