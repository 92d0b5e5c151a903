"""Per-target update controller.

:class:`Installation` walks one target through::

    load local metadata -> query vendor -> decide
        -> up to date                       -> done
        -> needs update -> provision -> persist metadata -> done
    (any error)                             -> failed

and reports the outcome, fires notification commands, and records the run
in the structured operations log. Errors never escape :meth:`Installation.run`.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from packaging.version import Version

from .config import InstallationConfig
from .display import Reporter, format_version
from .host import host_os
from .logging import OperationScope, StructuredLogger
from .metadata import (
    Metadata,
    MetadataNotFoundError,
    check_vendor,
    load_metadata,
    metadata_path,
    save_metadata,
)
from .notify import Notifier, NotifyCommand, NotifyKind
from .package import Provisioner
from .providers import MetadataRequest, PackageProvider, RemotePackage, Vendor
from .vars import EnvironmentResolver, PlatformResolver, PrefixedResolver, StaticResolver, VarExpander

__all__ = [
    "Installation",
    "InstallationOutcome",
    "InstallationStatus",
    "InstallationTarget",
    "RunContext",
    "needs_update",
    "resolve_directory",
]

LOGGER = logging.getLogger(__name__)


class InstallationStatus(StrEnum):
    """Final state of one target."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DRY_RUN = "dry-run"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class InstallationTarget:
    """A configured installation with its directory resolved for this run."""

    vendor_id: str
    arch: str
    os: str
    package_type: str
    version: str
    directory: Path
    enabled: bool = True
    on_failure: tuple[NotifyCommand, ...] = ()
    on_success: tuple[NotifyCommand, ...] = ()
    on_update: tuple[NotifyCommand, ...] = ()

    @property
    def vendor(self) -> Vendor | None:
        return Vendor.parse(self.vendor_id)

    @classmethod
    def from_config(
        cls,
        config: InstallationConfig,
        basedir: Path,
        *,
        env: Mapping[str, str] | None = None,
    ) -> InstallationTarget:
        """Resolve *config* relative to *basedir* (the config file's directory)."""
        return cls(
            vendor_id=config.vendor.strip().lower(),
            arch=config.architecture.strip().lower(),
            os=host_os(),
            package_type=config.package_type.strip().lower(),
            version=config.version.strip(),
            directory=resolve_directory(config, basedir, env=env),
            enabled=config.enabled,
            on_failure=tuple(
                NotifyCommand.from_config(item, NotifyKind.FAILURE) for item in config.on_failure
            ),
            on_success=tuple(
                NotifyCommand.from_config(item, NotifyKind.SUCCESS) for item in config.on_success
            ),
            on_update=tuple(
                NotifyCommand.from_config(item, NotifyKind.UPDATE) for item in config.on_update
            ),
        )

    def describe(self) -> dict[str, object]:
        """Return a serialisable summary."""
        return {
            "vendor": self.vendor_id,
            "arch": self.arch,
            "os": self.os,
            "type": self.package_type,
            "version": self.version,
            "directory": str(self.directory),
            "enabled": self.enabled,
        }


def resolve_directory(
    config: InstallationConfig,
    basedir: Path,
    *,
    env: Mapping[str, str] | None = None,
) -> Path:
    """Expand the directory template leniently and make it absolute."""
    values = {
        "JU_CONFIG_ARCH": config.architecture,
        "JU_CONFIG_DIRECTORY": config.directory,
        "JU_CONFIG_TYPE": config.package_type,
        "JU_CONFIG_VENDOR": config.vendor,
        "JU_CONFIG_VERSION": config.version,
        "JU_TYPE": config.package_type,
        "JU_VENDOR": config.vendor,
        "JU_VERSION": config.version,
    }
    expander = VarExpander.lenient(
        StaticResolver(values),
        PrefixedResolver("env.", EnvironmentResolver(env)),
        PlatformResolver(),
    )
    directory = Path(expander.expand(config.directory)).expanduser()
    return Path(os.path.abspath(basedir / directory))


def needs_update(local: Metadata | None, remote: RemotePackage) -> bool:
    """Return ``True`` when *remote* should replace what is installed."""
    if local is None:
        return True
    if remote.version > local.version:
        return True
    return remote.checksum.strip().lower() != local.checksum


@dataclass(frozen=True, slots=True)
class InstallationOutcome:
    """What happened to one target."""

    target: InstallationTarget
    status: InstallationStatus
    old_version: Version | None = None
    new_version: Version | None = None
    error: str | None = None


@dataclass(slots=True)
class RunContext:
    """Collaborators shared by every installation in a run."""

    provisioner: Provisioner
    reporter: Reporter
    providers: Mapping[Vendor, PackageProvider]
    notifier: Notifier = field(default_factory=Notifier)
    logger: StructuredLogger = field(default_factory=lambda: StructuredLogger(None))
    dry_run: bool = False


class Installation:
    """Bring one target up to date."""

    def __init__(self, target: InstallationTarget, context: RunContext) -> None:
        self.target = target
        self.context = context

    def run(self) -> InstallationOutcome:
        target = self.target
        reporter = self.context.reporter
        if not target.enabled:
            reporter.skipped(target.directory, "disabled")
            return InstallationOutcome(target, InstallationStatus.SKIPPED)
        vendor = target.vendor
        provider = self.context.providers.get(vendor) if vendor is not None else None
        if vendor is None or provider is None:
            reporter.skipped(target.directory, f"unsupported vendor '{target.vendor_id}'")
            return InstallationOutcome(target, InstallationStatus.SKIPPED)

        with self.context.logger.operation(
            "install",
            args={"dry_run": self.context.dry_run},
            target=target.describe(),
        ) as op:
            local: Metadata | None = None
            try:
                local = self._load_local(vendor)
            except Exception as exc:
                reporter.processing(target.directory, None)
                return self._fail(op, vendor, None, exc)

            old_version = local.version if local is not None else None
            op.add_step("load-metadata", detail=format_version(old_version))
            reporter.processing(target.directory, old_version)
            try:
                return self._update(op, vendor, provider, local)
            except Exception as exc:
                return self._fail(op, vendor, old_version, exc)

    def _load_local(self, vendor: Vendor) -> Metadata | None:
        try:
            local = load_metadata(metadata_path(self.target.directory))
        except MetadataNotFoundError:
            return None
        check_vendor(local, vendor.vendor_id)
        return local

    def _update(
        self,
        op: OperationScope,
        vendor: Vendor,
        provider: PackageProvider,
        local: Metadata | None,
    ) -> InstallationOutcome:
        target = self.target
        reporter = self.context.reporter
        old_version = local.version if local is not None else None

        remote = provider.query(
            MetadataRequest(
                arch=target.arch,
                os=target.os,
                package_type=target.package_type,
                version=target.version,
            )
        )
        op.add_step("query", detail=str(remote.version))
        update = needs_update(local, remote)
        op.add_step("decide", detail="update" if update else "up-to-date")

        if self.context.dry_run:
            new_version = remote.version if update else old_version
            reporter.dry_run(target.directory, old_version, new_version)
            op.success("Dry run; nothing changed.", changed=0)
            return InstallationOutcome(
                target, InstallationStatus.DRY_RUN, old_version, new_version
            )

        if not update:
            LOGGER.debug("%s is up to date", target.directory)
            reporter.processed(target.directory, old_version, old_version)
            self._notify(target.on_success, vendor, old_version, old_version)
            op.success("Installation is up to date.", changed=0)
            return InstallationOutcome(
                target, InstallationStatus.UNCHANGED, old_version, old_version
            )

        result = self.context.provisioner.provide(remote, target.directory)
        op.add_step("provision", detail={"downloaded": result.downloaded})
        save_metadata(
            Metadata(vendor=vendor.vendor_id, version=remote.version, checksum=remote.checksum),
            metadata_path(target.directory),
        )
        op.add_step("persist-metadata")

        reporter.processed(target.directory, old_version, remote.version)
        if old_version != remote.version:
            self._notify(target.on_update, vendor, old_version, remote.version)
        self._notify(target.on_success, vendor, old_version, remote.version)
        op.success(
            "Installation updated.",
            changed=1,
            context={"old": format_version(old_version), "new": str(remote.version)},
        )
        return InstallationOutcome(
            target, InstallationStatus.UPDATED, old_version, remote.version
        )

    def _fail(
        self,
        op: OperationScope,
        vendor: Vendor,
        old_version: Version | None,
        exc: Exception,
    ) -> InstallationOutcome:
        LOGGER.debug("Processing %s failed", self.target.directory, exc_info=exc)
        self.context.reporter.failed(self.target.directory, exc)
        self._notify(self.target.on_failure, vendor, old_version, None, error=str(exc))
        op.error(str(exc), errors=[repr(exc)])
        return InstallationOutcome(
            self.target, InstallationStatus.FAILED, old_version, error=str(exc)
        )

    def _notify(
        self,
        commands: tuple[NotifyCommand, ...],
        vendor: Vendor,
        old_version: Version | None,
        new_version: Version | None,
        *,
        error: str | None = None,
    ) -> None:
        if not commands:
            return
        directory = str(self.target.directory)
        env = {
            "JU_ARCH": self.target.arch,
            "JU_DIRECTORY": directory,
            "JU_INSTALLATION": directory,
            "JU_TYPE": self.target.package_type,
            "JU_VENDOR_ID": vendor.vendor_id,
            "JU_VENDOR_NAME": vendor.display_name,
        }
        if old_version is not None:
            env["JU_OLD_VERSION"] = str(old_version)
        if new_version is not None:
            env["JU_NEW_VERSION"] = str(new_version)
        if error is not None:
            env["JU_ERROR"] = error
        self.context.notifier.notify(commands, env)
