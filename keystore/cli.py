"""
Keystore CLI: operate the vault from a shell.

Usage:
    keystore init-key                         # Create the master key file
    keystore status                           # Show key source, backend, counts
    keystore secret set NS KEY VALUE [--type number] [--metadata '{"a": 1}']
    keystore secret get NS KEY
    keystore secret list NS
    keystore secret delete NS KEY
    keystore apikey create NAME TYPE VALUE [--description ...] [--expires-at ISO]
    keystore apikey reveal NAME
    keystore apikey list
    keystore apikey update ID [--name ...] [--value ...] [--inactive]
    keystore apikey delete ID
    keystore version

Exit codes: 0 ok, 1 not found, 2 invalid input, 3 stored data unreadable.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

EXIT_NOT_FOUND = 1
EXIT_INVALID = 2
EXIT_UNREADABLE = 3


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keystore",
        description="Encrypted secrets and API keys.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # version
    subparsers.add_parser("version", help="Show version")

    # init-key
    init_parser = subparsers.add_parser("init-key", help="Create the master key file")
    init_parser.add_argument("--workspace", type=str, help="Workspace dir (default: ~/.keystore)")

    # status
    subparsers.add_parser("status", help="Show vault status")

    # secret
    secret_parser = subparsers.add_parser("secret", help="Namespaced secrets")
    secret_sub = secret_parser.add_subparsers(dest="secret_command")
    s_set = secret_sub.add_parser("set", help="Create or overwrite a secret")
    s_set.add_argument("namespace")
    s_set.add_argument("key")
    s_set.add_argument("value")
    s_set.add_argument(
        "--type", dest="value_type", choices=["string", "number", "json"], default="string"
    )
    s_set.add_argument("--metadata", help="JSON object stored unencrypted alongside the value")
    s_get = secret_sub.add_parser("get", help="Decrypt and print a secret")
    s_get.add_argument("namespace")
    s_get.add_argument("key")
    s_list = secret_sub.add_parser("list", help="List secrets in a namespace (no values)")
    s_list.add_argument("namespace")
    s_del = secret_sub.add_parser("delete", help="Delete a secret")
    s_del.add_argument("namespace")
    s_del.add_argument("key")

    # apikey
    ak_parser = subparsers.add_parser("apikey", help="API keys")
    ak_sub = ak_parser.add_subparsers(dest="apikey_command")
    ak_create = ak_sub.add_parser("create", help="Store a new API key")
    ak_create.add_argument("name")
    ak_create.add_argument("type")
    ak_create.add_argument("value")
    ak_create.add_argument("--description")
    ak_create.add_argument("--expires-at", help="ISO-8601 timestamp")
    ak_reveal = ak_sub.add_parser("reveal", help="Print the value of the first active key by name")
    ak_reveal.add_argument("name")
    ak_sub.add_parser("list", help="List API keys (no values)")
    ak_update = ak_sub.add_parser("update", help="Update fields of an API key")
    ak_update.add_argument("id")
    ak_update.add_argument("--name", dest="key_name")
    ak_update.add_argument("--type", dest="key_type")
    ak_update.add_argument("--value")
    ak_update.add_argument("--description")
    ak_update.add_argument("--expires-at")
    active = ak_update.add_mutually_exclusive_group()
    active.add_argument("--active", dest="is_active", action="store_true", default=None)
    active.add_argument("--inactive", dest="is_active", action="store_false", default=None)
    ak_delete = ak_sub.add_parser("delete", help="Delete an API key")
    ak_delete.add_argument("id")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version or args.command == "version":
        from keystore import __version__

        print(f"keystore {__version__}")
        return 0

    if args.command == "init-key":
        return _cmd_init_key(args)
    elif args.command == "status":
        return _run(_cmd_status, args)
    elif args.command == "secret" and args.secret_command:
        return _run(_cmd_secret, args)
    elif args.command == "apikey" and args.apikey_command:
        return _run(_cmd_apikey, args)
    else:
        parser.print_help()
        return 0


def _run(handler, args: argparse.Namespace) -> int:
    """Open the vault, run a handler, map vault errors to exit codes."""
    from keystore.vault import (
        CodecError,
        CorruptRecordError,
        DecryptionError,
        KeyStoreService,
        ValidationError,
    )

    try:
        store = KeyStoreService.init()
    except (OSError, ValueError) as e:
        print(f"Cannot open vault: {e}")
        return EXIT_INVALID
    except CorruptRecordError as e:
        print(f"Cannot open vault: {e}")
        return EXIT_UNREADABLE
    try:
        return handler(store, args)
    except ValidationError as e:
        print(f"Invalid input: {e}")
        return EXIT_INVALID
    except (DecryptionError, CodecError, CorruptRecordError) as e:
        print(f"Stored data is unreadable: {e}")
        return EXIT_UNREADABLE
    finally:
        store.teardown()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _parse_json_arg(raw: str | None, what: str):
    from keystore.vault import ValidationError

    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{what} is not valid JSON: {e}") from e


def _parse_datetime(raw: str | None) -> datetime | None:
    from keystore.vault import ValidationError

    if raw is None:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp {raw!r}: {e}") from e


def _cmd_init_key(args: argparse.Namespace) -> int:
    from keystore.config import get_config
    from keystore.vault.crypto import init_master_key

    workspace = Path(args.workspace) if args.workspace else get_config().workspace
    existed = (workspace / ".vault-key").exists()
    key_path = init_master_key(workspace)
    if existed:
        print(f"Master key already exists at {key_path}")
    else:
        print(f"Created master key at {key_path}")
        print("Back it up: secrets cannot be decrypted without it.")
    return 0


def _cmd_status(store, args: argparse.Namespace) -> int:
    from keystore import __version__
    from keystore.config import get_config

    cfg = get_config()
    print(f"keystore {__version__}")
    print(f"  Workspace:   {cfg.workspace}")
    print(f"  Backend:     {cfg.backend}")
    print(f"  Master key:  {store.key_source}")
    if store.ephemeral:
        print("  WARNING: ephemeral key, secrets will not survive this process")
    namespaces = store.secrets.namespaces()
    total = sum(len(store.secrets.list(ns)) for ns in namespaces)
    print(f"  Secrets:     {total} in {len(namespaces)} namespace(s)")
    print(f"  API keys:    {len(store.api_keys.list_safe())}")
    return 0


def _cmd_secret(store, args: argparse.Namespace) -> int:
    cmd = args.secret_command

    if cmd == "set":
        value = args.value
        if args.value_type == "number":
            value = _parse_json_arg(args.value, "number value")
        elif args.value_type == "json":
            value = _parse_json_arg(args.value, "json value")
        metadata = _parse_json_arg(args.metadata, "--metadata")
        record = store.secrets.set(args.namespace, args.key, value, args.value_type, metadata)
        _print_json(record.to_summary().model_dump(mode="json"))
        return 0

    if cmd == "get":
        secret = store.secrets.get(args.namespace, args.key)
        if secret is None:
            print(f"Not found: {args.namespace}/{args.key}")
            return EXIT_NOT_FOUND
        if isinstance(secret.value, str):
            print(secret.value)
        else:
            _print_json(secret.value)
        return 0

    if cmd == "list":
        _print_json([s.model_dump(mode="json") for s in store.secrets.list(args.namespace)])
        return 0

    if cmd == "delete":
        if not store.secrets.delete(args.namespace, args.key):
            print(f"Not found: {args.namespace}/{args.key}")
            return EXIT_NOT_FOUND
        print(f"Deleted {args.namespace}/{args.key}")
        return 0

    return EXIT_INVALID


def _cmd_apikey(store, args: argparse.Namespace) -> int:
    cmd = args.apikey_command

    if cmd == "create":
        record = store.api_keys.create(
            args.name,
            args.type,
            args.value,
            description=args.description,
            expires_at=_parse_datetime(args.expires_at),
        )
        _print_json(record.to_summary().model_dump(mode="json"))
        return 0

    if cmd == "reveal":
        value = store.api_keys.get_value(args.name)
        if value is None:
            print(f"No active API key named {args.name}")
            return EXIT_NOT_FOUND
        print(value)
        return 0

    if cmd == "list":
        _print_json([k.model_dump(mode="json") for k in store.api_keys.list_safe()])
        return 0

    if cmd == "update":
        changes = {
            name: getattr(args, name)
            for name in ("key_name", "key_type", "value", "description", "is_active")
            if getattr(args, name) is not None
        }
        if args.expires_at is not None:
            changes["expires_at"] = _parse_datetime(args.expires_at)
        record = store.api_keys.update(args.id, changes)
        if record is None:
            print(f"Not found: API key {args.id}")
            return EXIT_NOT_FOUND
        _print_json(record.to_summary().model_dump(mode="json"))
        return 0

    if cmd == "delete":
        if not store.api_keys.delete(args.id):
            print(f"Not found: API key {args.id}")
            return EXIT_NOT_FOUND
        print(f"Deleted API key {args.id}")
        return 0

    return EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
