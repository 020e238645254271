"""jsonstash CLI entry points.
This module exposes inspection and maintenance commands over a data root.
It maps argparse commands onto namespace and collection calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
from pathlib import Path
import sys
from typing import Any, Sequence

from core.config import StashConfig
from core.errors import JsonStashError
from core.logging_config import configure_logging
from core.types import ChildKind
from store.keys import normalize_key
from store.namespace import Namespace
from store.record_collection import RecordCollection


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="jsonstash", description="jsonstash storage CLI")
    parser.add_argument("--data-root", help="Override JSONSTASH_DATA_ROOT for this command")
    parser.add_argument(
        "--schema",
        default="",
        help="Slash-separated namespace path under the data root, e.g. app/tenants",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("ls", help="List child models and schemas with counts")
    keys_parser = subparsers.add_parser("keys", help="List record keys of a model")
    keys_parser.add_argument("model")
    get_parser = subparsers.add_parser("get", help="Print one record as JSON")
    get_parser.add_argument("model")
    get_parser.add_argument("key")
    _add_set_command(subparsers)
    rm_parser = subparsers.add_parser("rm", help="Delete one record")
    rm_parser.add_argument("model")
    rm_parser.add_argument("key")
    rm_model_parser = subparsers.add_parser("rm-model", help="Remove a model and its records")
    rm_model_parser.add_argument("model")
    rm_schema_parser = subparsers.add_parser("rm-schema", help="Remove a child schema subtree")
    rm_schema_parser.add_argument("name")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the jsonstash CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        namespace = _open_namespace(args.data_root, args.schema, create=args.command == "set")
        if namespace is None:
            return 1
        if args.command == "ls":
            return _run_ls_command(namespace)
        if args.command == "keys":
            return _run_keys_command(namespace, args)
        if args.command == "get":
            return _run_get_command(namespace, args)
        if args.command == "set":
            return _run_set_command(namespace, args)
        if args.command == "rm":
            return _run_rm_command(namespace, args)
        if args.command == "rm-model":
            namespace.remove_model(args.model)
            return 0
        if args.command == "rm-schema":
            namespace.remove_schema(args.name)
            return 0
    except JsonStashError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _add_set_command(subparsers: Any) -> None:
    parser = subparsers.add_parser("set", help="Write one record from a JSON object")
    parser.add_argument("model")
    parser.add_argument("key")
    parser.add_argument("value", help="JSON object with the record fields")
    parser.add_argument(
        "--merge",
        action="store_true",
        help="Shallow-merge over the stored record instead of replacing it",
    )
    parser.add_argument("--index", help="JSON object stored as the index entry")


def _open_namespace(
    data_root: str | None, schema_path: str, *, create: bool = False
) -> Namespace | None:
    """Open the namespace addressed by data root and schema path.

    Args:
        data_root: Optional data-root override.
        schema_path: Slash-separated child schema names.
        create: Create missing schemas along the path.

    Returns:
        Namespace handle with events disabled, or None when a schema on
        the path does not exist and ``create`` is False.
    """
    config = StashConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    configure_logging(config.log_level)
    namespace = Namespace(config.data_root, emit_events=False)
    for name in (part for part in schema_path.split("/") if part.strip()):
        if not create and not _child_present(namespace, "schema", name):
            print(f"error: schema '{name}' not found", file=sys.stderr)
            return None
        namespace = namespace.open_schema(name)
    return namespace


def _run_ls_command(namespace: Namespace) -> int:
    """Handle ls command.

    Prints one ``kind<TAB>name<TAB>count`` line per child; the count is the
    record total for models and the child total for schemas. Indexed children
    whose folder is gone print ``-`` and are not recreated.
    """
    for name in namespace.model_keys():
        count = "-"
        if _child_present(namespace, "model", name):
            count = str(namespace.open_model(name).count())
        print(f"model\t{name}\t{count}")
    for name in namespace.schema_keys():
        count = "-"
        if _child_present(namespace, "schema", name):
            child = namespace.open_schema(name)
            count = str(child.model_count() + child.schema_count())
        print(f"schema\t{name}\t{count}")
    return 0


def _run_keys_command(namespace: Namespace, args: argparse.Namespace) -> int:
    model = _existing_model(namespace, args.model)
    if model is None:
        return 1
    for key in model.keys():
        print(key)
    return 0


def _run_get_command(namespace: Namespace, args: argparse.Namespace) -> int:
    model = _existing_model(namespace, args.model)
    if model is None:
        return 1
    record = model.get(args.key)
    if record is None:
        print(f"error: record '{args.key}' not found in model '{args.model}'", file=sys.stderr)
        return 1
    print(json.dumps(record, indent=2, ensure_ascii=False))
    return 0


def _run_set_command(namespace: Namespace, args: argparse.Namespace) -> int:
    """Handle set command.

    Args:
        namespace: Target namespace.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    value = _parse_json_object(args.value, "value")
    index_entry = _parse_json_object(args.index, "--index") if args.index else None
    if value is None or (args.index and index_entry is None):
        return 1
    model = namespace.open_model(args.model)
    model.set(args.key, value, index_entry, replace=not args.merge)
    return 0


def _run_rm_command(namespace: Namespace, args: argparse.Namespace) -> int:
    model = _existing_model(namespace, args.model)
    if model is None:
        return 1
    model.delete(args.key)
    return 0


def _existing_model(namespace: Namespace, name: str) -> RecordCollection | None:
    if not _child_present(namespace, "model", name):
        print(f"error: model '{name}' not found", file=sys.stderr)
        return None
    return namespace.open_model(name)


def _child_present(namespace: Namespace, kind: ChildKind, name: str) -> bool:
    """Return whether a child is both indexed and present on disk."""
    key = normalize_key(name)
    kind_folder = namespace.models_folder if kind == "model" else namespace.schemas_folder
    return namespace.has(kind, key) and (kind_folder / key).is_dir()


def _parse_json_object(raw_value: str, label: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(raw_value)
    except json.JSONDecodeError as error:
        print(f"error: {label} is not valid JSON: {error.msg}", file=sys.stderr)
        return None
    if not isinstance(payload, dict):
        print(f"error: {label} must be a JSON object", file=sys.stderr)
        return None
    return payload
