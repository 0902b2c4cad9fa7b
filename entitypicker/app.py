import argparse
import json
from pathlib import Path

from .env import load_env, catalog_token, catalog_url

from . import __version__
from .actions import resolve_entity_from_display
from .catalog import HttpCatalog, InMemoryCatalog
from .codec import AMBIGUITY_POLICIES, DEFAULT_SEPARATOR, IDENTITY_FRAGMENTS, MODES, ReferenceCodec
from .database import SqlCatalog, get_session, init_database, upsert_records
from .errors import EntityPickerError
from .filters import build_query
from .index import RecordIndex
from .schema import validate_options
from .storage import load_snapshot
from .templating import DEFAULT_TEMPLATE, render


def _read_json(path_str: str):
    path = Path(path_str)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _open_catalog(args: argparse.Namespace):
    if getattr(args, "db", None):
        return SqlCatalog(Path(args.db))
    if getattr(args, "catalog", None):
        path = Path(args.catalog)
        if not path.exists():
            raise SystemExit(f"Catalog snapshot not found: {path}")
        return InMemoryCatalog(load_snapshot(path))
    url = getattr(args, "catalog_url", None) or catalog_url()
    if url:
        return HttpCatalog(url, token=catalog_token())
    raise SystemExit("No catalog given. Use --catalog, --db, --catalog-url or set ENTITYPICKER_CATALOG_URL.")


def _filter_arg(args: argparse.Namespace):
    spec = json.loads(args.filter) if args.filter else {}
    if args.kind:
        spec = [dict(s, kind=args.kind) for s in spec] if isinstance(spec, list) else dict(spec, kind=args.kind)
    return spec


def cmd_render(args: argparse.Namespace) -> None:
    record = _read_json(args.input)
    print(render(args.template, record))


def cmd_encode(args: argparse.Namespace) -> None:
    record = _read_json(args.input)
    try:
        codec = ReferenceCodec(separator=args.separator, identity_fragment=args.fragment, mode=args.mode)
        print(codec.encode(record, args.template))
    except EntityPickerError as e:
        raise SystemExit(str(e))


def cmd_resolve(args: argparse.Namespace) -> None:
    catalog = _open_catalog(args)
    data = {"displayValue": args.display, "filter": _filter_arg(args)}
    if args.namespace:
        data["namespace"] = args.namespace
    try:
        outcome = resolve_entity_from_display(
            data,
            catalog,
            template=args.template,
            identity_fragment=args.fragment,
            separator=args.separator,
            on_ambiguous=args.on_ambiguous,
        )
    except EntityPickerError as e:
        raise SystemExit(f"Failed to resolve entity: {e}")
    if not args.with_entity:
        outcome.pop("entity")
    print(json.dumps(outcome, indent=2, ensure_ascii=False))


def cmd_validate(args: argparse.Namespace) -> None:
    options = _read_json(args.input)
    if not isinstance(options, dict):
        raise SystemExit("Options file must contain a JSON object")
    errors = validate_options(options)
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print("Valid")


def cmd_import(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    records = load_snapshot(input_path)
    print(f"Found {len(records)} records in {input_path}")
    db_path = Path(args.db)
    init_database(db_path)
    session = get_session(db_path)
    try:
        counts = upsert_records(session, records)
    finally:
        session.close()
    print(
        f"Done. new={counts['new']} updated={counts['updated']} "
        f"no-change={counts['no-change']} skipped={counts['skipped']}"
    )


def cmd_list(args: argparse.Namespace) -> None:
    catalog = _open_catalog(args)
    try:
        query = build_query(json.loads(args.filter) if args.filter else None, allowed_kinds=args.kind)
        records = catalog.find_records(query)
    except EntityPickerError as e:
        raise SystemExit(str(e))
    if not records:
        print("No records found.")
        return
    index = RecordIndex.build(records, args.template)
    print(f"Found {len(index)} records:\n")
    for identifier, label in index.items():
        print(f"{identifier}")
        print(f"  Label: {label}")


def _add_catalog_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--catalog", help="Path to a JSON catalog snapshot")
    p.add_argument("--db", help="Path to a SQLite catalog snapshot")
    p.add_argument("--catalog-url", help="Catalog base URL (or set ENTITYPICKER_CATALOG_URL)")


def _add_codec_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--fragment", default="full", choices=IDENTITY_FRAGMENTS, help="Embedded identity fragment (default: full)")
    p.add_argument("--separator", default=DEFAULT_SEPARATOR, help=f"Separator (default: {DEFAULT_SEPARATOR})")


def main():
    load_env()
    parser = argparse.ArgumentParser(prog="entitypicker", description="Entity selection and reference resolution")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ren = subparsers.add_parser("render", help="Render a display label for a record JSON")
    ren.add_argument("--input", required=True, help="Path to record JSON")
    ren.add_argument("--template", default=DEFAULT_TEMPLATE, help=f"Display template (default: {DEFAULT_TEMPLATE})")
    ren.set_defaults(func=cmd_render)

    enc = subparsers.add_parser("encode", help="Build the stored field value for a record JSON")
    enc.add_argument("--input", required=True, help="Path to record JSON")
    enc.add_argument("--template", default=DEFAULT_TEMPLATE, help="Display template")
    enc.add_argument("--mode", default="label+identifier", choices=MODES, help="Encoding mode")
    _add_codec_args(enc)
    enc.set_defaults(func=cmd_encode)

    res = subparsers.add_parser("resolve", help="Resolve a stored display value to an entity reference")
    res.add_argument("--display", required=True, help="Stored field value")
    res.add_argument("--kind", help="Entity kind (added to --filter)")
    res.add_argument("--filter", help="Filter specification as JSON")
    res.add_argument("--namespace", help="Entity namespace (default: default)")
    res.add_argument("--template", help="Display template, needed for values without a separator")
    res.add_argument("--on-ambiguous", default="pick-first", choices=AMBIGUITY_POLICIES, help="Ambiguity policy")
    res.add_argument("--with-entity", action="store_true", help="Include the resolved record in the output")
    _add_codec_args(res)
    _add_catalog_args(res)
    res.set_defaults(func=cmd_resolve)

    val = subparsers.add_parser("validate", help="Validate picker ui:options JSON")
    val.add_argument("--input", required=True, help="Path to options JSON")
    val.set_defaults(func=cmd_validate)

    imp = subparsers.add_parser("import", help="Import a JSON catalog snapshot into SQLite")
    imp.add_argument("--input", required=True, help="Path to JSON catalog snapshot")
    imp.add_argument("--db", default="data/catalog.db", help="Path to SQLite database (default: data/catalog.db)")
    imp.set_defaults(func=cmd_import)

    lst = subparsers.add_parser("list", help="List picker options for a filter")
    lst.add_argument("--kind", action="append", help="Allowed kind (repeatable)")
    lst.add_argument("--filter", help="Filter specification as JSON")
    lst.add_argument("--template", default=DEFAULT_TEMPLATE, help="Display template")
    _add_catalog_args(lst)
    lst.set_defaults(func=cmd_list)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
