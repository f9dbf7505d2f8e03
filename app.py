from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

import uvicorn

from liquidglass.bootstrap import Services, build_services
from liquidglass.core.config import ConfigFsPaths
from liquidglass.core.errors import LiquidGlassError
from liquidglass.core.logger import setup_logging
from liquidglass.core.modules.cli import (
    module_show_payload,
    modules_list_lines,
    search_result_lines,
    violation_lines,
)
from liquidglass.web.api import create_app


def _print_lines(lines: List[str]) -> None:
    for line in lines:
        print(line)


def _cmd_modules(services: Services, args: argparse.Namespace) -> int:
    reg = services.registry
    action = args.action
    if action == "list":
        _print_lines(modules_list_lines(registry=reg))
        return 0
    if action == "show":
        payload = module_show_payload(registry=reg, module_id=args.target)
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0 if payload.get("ok") else 1
    if action == "enable":
        ok = reg.enable_module(args.target)
        print(f"{args.target}: {'enabled' if ok else 'enable failed'}")
        return 0 if ok else 1
    if action == "disable":
        if not reg.disable_module(args.target):
            print(f"unknown module: {args.target}")
            return 1
        print(f"{args.target}: disabled")
        return 0
    if action == "toggle":
        enabled = reg.toggle_module(args.target)
        print(f"{args.target}: {'enabled' if enabled else 'disabled'}")
        return 0
    if action == "import":
        with open(args.target, "r", encoding="utf-8") as f:
            source = f.read()
        info = reg.register_dynamic_module(source)
        print(f"Imported {info.id} ({info.name} {info.version})")
        return 0
    if action == "delete":
        ok = reg.delete_dynamic_module(args.target)
        print(f"{args.target}: {'deleted' if ok else 'not a dynamic module'}")
        return 0 if ok else 1
    return 2


def _cmd_search(services: Services, args: argparse.Namespace) -> int:
    if args.module:
        results = {args.module: services.registry.search(args.module, args.query, limit=args.limit)}
    else:
        results = services.registry.search_all(args.query, limit=args.limit)
    _print_lines(search_result_lines(results))
    return 0


def _cmd_violations(services: Services, args: argparse.Namespace) -> int:
    store = services.policy_store
    if args.clear:
        n = store.clear_violations(args.module)
        print(f"Cleared {n} violation(s).")
        return 0
    _print_lines(violation_lines(store.get_violations(args.module)))
    return 0


def _cmd_serve(services: Services, args: argparse.Namespace, logger) -> int:
    app = create_app(
        registry=services.registry,
        policy_store=services.policy_store,
        validator=services.validator,
        logger=logger,
    )
    if args.host != "127.0.0.1":
        logger.warning("Binding to %s exposes the API beyond localhost.", args.host)
    uvicorn.run(app, host=args.host, port=int(args.port), log_level="info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="LiquidGlass music module core")
    ap.add_argument("--root", default=".", help="Directory holding config/, state/ and logs/.")
    sub = ap.add_subparsers(dest="command", required=True)

    mod = sub.add_parser("modules", help="List and manage music modules.")
    mod.add_argument("action", choices=["list", "show", "enable", "disable", "toggle", "import", "delete"])
    mod.add_argument("target", nargs="?", help="Module id, or a script path for import.")

    srch = sub.add_parser("search", help="Search enabled modules.")
    srch.add_argument("query")
    srch.add_argument("--module", default=None, help="Search only this module.")
    srch.add_argument("--limit", type=int, default=25)

    vio = sub.add_parser("violations", help="Show recorded policy violations.")
    vio.add_argument("--module", default=None)
    vio.add_argument("--clear", action="store_true", help="Clear instead of listing.")

    srv = sub.add_parser("serve", help="Run the HTTP API.")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if args.command == "modules" and args.action != "list" and not args.target:
        ap.error(f"modules {args.action} requires a target")

    logger = setup_logging(ConfigFsPaths(args.root).logs_dir)
    try:
        services = build_services(args.root, logger=logger)
    except LiquidGlassError as e:
        logger.error("Startup failed: %s: %s", e.code, e.user_message)
        return 1
    try:
        if args.command == "modules":
            return _cmd_modules(services, args)
        if args.command == "search":
            return _cmd_search(services, args)
        if args.command == "violations":
            return _cmd_violations(services, args)
        if args.command == "serve":
            return _cmd_serve(services, args, logger)
        return 2
    except LiquidGlassError as e:
        logger.error("%s: %s", e.code, e.user_message)
        return 1
    except OSError as e:
        logger.error("I/O error: %s", e)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
