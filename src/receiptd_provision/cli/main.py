from __future__ import annotations

import argparse
import os
import sys
from typing import Sequence

from ..assets import verify_assets
from ..config import build_provision_config, load_settings
from ..errors import PrivilegeError
from ..layout import DATA_DIR
from ..logging import get_logger
from ..paths import expand_abs, under_root
from ..provisioner import Provisioner

LOG = get_logger("cli-main")


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host-root", help="Root of the host to provision (default: / or RECEIPTD_HOST_ROOT)")
    p.add_argument(
        "--source-dir",
        help="Directory holding fonts/, receiptd.rc.d and receiptd.conf (default: discovered upwards from CWD)",
    )
    p.add_argument("--uid-min", type=int, help="Lowest uid the service account may get (default: 100)")
    p.add_argument("--uid-max", type=int, help="Highest uid the service account may get (default: 999)")
    p.add_argument("--skip-config", action="store_true", help="Do not install /etc/receiptd.conf")
    p.add_argument(
        "--overwrite-config",
        action="store_true",
        help="Replace an existing /etc/receiptd.conf with the template",
    )


def _print_changes(report) -> None:
    for step in report.steps:
        print(step.summary())
        for change in step.changes:
            print(f"  - {change}")


def _handle_provision(args: argparse.Namespace) -> int:
    config = build_provision_config(args, script_dir=os.getcwd())
    provisioner = Provisioner(config)
    try:
        report = provisioner.run()
    except PrivilegeError as exc:
        LOG.error(str(exc))
        return 2
    _print_changes(report)
    failed = report.failed_step
    if failed is not None:
        LOG.error(f"Failed at step '{failed.name}': {failed.error}")
        return 1
    return 0


def _handle_plan(args: argparse.Namespace) -> int:
    config = build_provision_config(args, script_dir=os.getcwd())
    report = Provisioner(config).plan()
    _print_changes(report)
    return 1 if report.failed_step is not None else 0


def _handle_status(args: argparse.Namespace) -> int:
    config = build_provision_config(args, script_dir=os.getcwd())
    report, problems = Provisioner(config).status()
    _print_changes(report)
    for p in problems:
        print(f"asset: {p.path}: {p.reason}")
    converged = report.succeeded and not report.pending and not problems
    LOG.info("Host is converged" if converged else "Host is NOT converged")
    return 0 if converged else 1


def _handle_verify_assets(args: argparse.Namespace) -> int:
    if args.data_dir:
        data_dir = expand_abs(args.data_dir)
    else:
        settings = load_settings(os.getcwd())
        data_dir = under_root(args.host_root or settings.get("RECEIPTD_HOST_ROOT") or "/", DATA_DIR)
    LOG.info(f"Verifying assets under {data_dir}")
    problems = verify_assets(data_dir)
    for p in problems:
        print(f"{p.path}: {p.reason}")
    return 1 if problems else 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="receiptd-provision",
        description="Prepare a host for the receiptd PDF receipt daemon.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser(
        "provision",
        help="Create the service account, directories, assets, init script and config (needs root).",
    )
    _add_target_args(provision)
    provision.add_argument("--dry-run", action="store_true", help="Only report what would change")
    provision.set_defaults(
        handler=lambda ns: _handle_plan(ns) if ns.dry_run else _handle_provision(ns)
    )

    plan = subparsers.add_parser("plan", help="Report the changes provisioning would make.")
    _add_target_args(plan)
    plan.set_defaults(handler=_handle_plan)

    status = subparsers.add_parser(
        "status",
        help="Exit 0 when the host is fully provisioned and assets verify, 1 otherwise.",
    )
    _add_target_args(status)
    status.set_defaults(handler=_handle_status)

    verify = subparsers.add_parser("verify-assets", help="Check fonts and logo in the receiptd data directory.")
    verify.add_argument("--data-dir", help="Data directory to inspect (default: /var/receiptd under --host-root)")
    verify.add_argument("--host-root", help="Root of the host (default: / or RECEIPTD_HOST_ROOT)")
    verify.set_defaults(handler=_handle_verify_assets)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
