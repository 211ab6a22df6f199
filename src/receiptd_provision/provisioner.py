"""Ordered, fail-fast provisioning of a host for receiptd."""

from __future__ import annotations

import os
from typing import Callable, List, Optional, Tuple

from .accounts import AccountDatabase, account_database_for, ensure_service_account
from .assets import AssetProblem, verify_assets
from .config import ProvisionConfig
from .domain.models import (
    STATUS_CHANGED,
    STATUS_FAILED,
    STATUS_OK,
    STATUS_PENDING,
    STATUS_SKIPPED,
    DirectorySpec,
    FileInstallSpec,
    ProvisionReport,
    StepResult,
    TreeInstallSpec,
)
from .errors import PrivilegeError, ProvisionError
from .filesystem import ensure_directory, install_file, install_tree, set_ownership
from .layout import (
    ASSET_MODE,
    CONFIG_MODE,
    CONFIG_SOURCE,
    DIR_MODE,
    FONTS_SOURCE,
    INIT_SCRIPT_MODE,
    INIT_SCRIPT_SOURCE,
    LOGO_MODE,
    LOGO_SOURCE,
    host_layout,
)
from .logging import get_logger

LOG = get_logger("provisioner")

StepFunc = Callable[[bool], List[str]]


class Provisioner:
    """Bring a host root into the state receiptd expects.

    Steps run in a fixed order and each one only changes what differs from
    the desired state, so re-running after a partial failure converges.
    The first failing step stops the run; later steps are reported as
    skipped and nothing is rolled back.
    """

    def __init__(self, config: ProvisionConfig, db: Optional[AccountDatabase] = None) -> None:
        self.config = config
        self.layout = host_layout(config.host_root)
        self.db = db if db is not None else account_database_for(config.host_root, config.useradd)
        self._account_pending = False

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _ensure_account(self, dry_run: bool) -> List[str]:
        result = ensure_service_account(self.db, self.config.account, dry_run=dry_run)
        self._account_pending = result.status == STATUS_PENDING
        return result.changes

    def _directories(self) -> List[DirectorySpec]:
        return [
            DirectorySpec(self.layout.log_dir, DIR_MODE),
            DirectorySpec(self.layout.data_dir, DIR_MODE),
        ]

    def _ensure_directories(self, dry_run: bool) -> List[str]:
        changes: List[str] = []
        for spec in self._directories():
            changes.extend(ensure_directory(spec, dry_run=dry_run))
        return changes

    def _set_ownership(self, dry_run: bool) -> List[str]:
        return set_ownership(
            [d.path for d in self._directories()],
            self.db,
            self.config.account.name,
            dry_run=dry_run,
            account_pending=self._account_pending,
        )

    def _install_assets(self, dry_run: bool) -> List[str]:
        source = self.config.source_dir
        changes = install_tree(
            TreeInstallSpec(
                source=os.path.join(source, FONTS_SOURCE),
                target=self.layout.fonts_dir,
                mode=ASSET_MODE,
            ),
            dry_run=dry_run,
        )
        logo = os.path.join(source, LOGO_SOURCE)
        if os.path.isfile(logo) and dry_run and not os.path.isdir(self.layout.data_dir):
            change = f"install {logo} -> {self.layout.logo_file} mode {LOGO_MODE:04o}"
            LOG.info(f"[dry-run] would {change}")
            changes.append(change)
        elif os.path.isfile(logo):
            changes.extend(
                install_file(FileInstallSpec(logo, self.layout.logo_file, LOGO_MODE), dry_run=dry_run)
            )
        else:
            LOG.debug(f"No {LOGO_SOURCE} in {source}; skipping logo")
        return changes

    def _install_init_script(self, dry_run: bool) -> List[str]:
        spec = FileInstallSpec(
            source=os.path.join(self.config.source_dir, INIT_SCRIPT_SOURCE),
            target=self.layout.init_script,
            mode=INIT_SCRIPT_MODE,
        )
        return install_file(spec, dry_run=dry_run)

    def _install_config(self, dry_run: bool) -> List[str]:
        spec = FileInstallSpec(
            source=os.path.join(self.config.source_dir, CONFIG_SOURCE),
            target=self.layout.config_file,
            mode=CONFIG_MODE,
            preserve_existing=not self.config.overwrite_config,
        )
        return install_file(spec, dry_run=dry_run)

    def steps(self) -> List[Tuple[str, Optional[StepFunc]]]:
        """(name, function) in execution order; a None function marks a disabled step."""
        return [
            ("ensure-account", self._ensure_account),
            ("ensure-directories", self._ensure_directories),
            ("set-ownership", self._set_ownership),
            ("install-assets", self._install_assets),
            ("install-init-script", self._install_init_script),
            ("install-config", self._install_config if self.config.install_config else None),
        ]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def preflight(self) -> None:
        if self.layout.is_live_root and os.geteuid() != 0:
            raise PrivilegeError("Provisioning / requires super-user privilege (run as root)")

    def run(self, dry_run: Optional[bool] = None) -> ProvisionReport:
        dry = self.config.dry_run if dry_run is None else dry_run
        if not dry:
            self.preflight()
        self._account_pending = False

        report = ProvisionReport(dry_run=dry)
        steps = self.steps()
        failed = False
        LOG.info(f"{'Planning' if dry else 'Provisioning'} receiptd on {self.layout.host_root}")
        for i, (name, func) in enumerate(steps, start=1):
            if failed:
                report.steps.append(StepResult(name=name, status=STATUS_SKIPPED))
                continue
            if func is None:
                LOG.info(f"Step {i}/{len(steps)} {name}: disabled")
                report.steps.append(StepResult(name=name, status=STATUS_SKIPPED))
                continue
            LOG.info(f"Step {i}/{len(steps)} {name}")
            try:
                changes = func(dry)
            except ProvisionError as exc:
                LOG.error(f"Step '{name}' failed: {exc}")
                exc.step = name
                report.steps.append(StepResult(name=name, status=STATUS_FAILED, error=exc))
                failed = True
                continue
            if not changes:
                status = STATUS_OK
            elif dry:
                status = STATUS_PENDING
            else:
                status = STATUS_CHANGED
            step = StepResult(name=name, status=status, changes=changes)
            LOG.info(step.summary())
            report.steps.append(step)

        if failed:
            LOG.error("Provisioning stopped; remaining steps were skipped")
        elif dry:
            LOG.info(f"Plan complete: {len(report.pending)} pending change(s)")
        else:
            LOG.info("Provisioning complete" + ("" if report.changed else " (no changes)"))
        return report

    def plan(self) -> ProvisionReport:
        return self.run(dry_run=True)

    def status(self) -> Tuple[ProvisionReport, List[AssetProblem]]:
        """Dry-run report plus the problems of the installed assets."""
        report = self.plan()
        problems = verify_assets(self.layout.data_dir)
        return report, problems
