"""Tests for the per-target update controller."""
from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from packaging.version import Version

from java_updater.config import InstallationConfig, NotifyCommandConfig
from java_updater.installation import (
    Installation,
    InstallationStatus,
    InstallationTarget,
    RunContext,
    needs_update,
    resolve_directory,
)
from java_updater.logging import StructuredLogger
from java_updater.metadata import Metadata, load_metadata, metadata_path, save_metadata
from java_updater.package import Provisioner
from java_updater.providers import RemotePackage, Vendor

URL = "https://vendor.invalid/jdk.tar.gz"
OTHER_CHECKSUM = "ee" * 32


def _config(directory: str, **overrides: object) -> InstallationConfig:
    values: dict[str, object] = {
        "vendor": "azul",
        "directory": directory,
        "version": "17",
        "architecture": "x86_64",
        "on_failure": (NotifyCommandConfig(path="fail", args=("${env.JU_ERROR}",)),),
        "on_success": (NotifyCommandConfig(path="ok", args=("${env.JU_NEW_VERSION}",)),),
        "on_update": (
            NotifyCommandConfig(path="upd", args=("${env.JU_OLD_VERSION:-n/a}", "${env.JU_NEW_VERSION}")),
        ),
    }
    values.update(overrides)
    return InstallationConfig(**values)  # type: ignore[arg-type]


@pytest.fixture
def setup(
    tmp_path: Path,
    make_tarball: Callable[..., Path],
    fake_http,
    fake_provider_factory,
    recording_notifier,
    reporter,
):
    """Return ``(target, context, provider, checksum)`` for an Azul JDK 17 target."""
    checksum = fake_http.serve(URL, make_tarball())
    provider = fake_provider_factory(Vendor.AZUL, version="17.0.9", url=URL, checksum=checksum)
    target = InstallationTarget.from_config(_config("jdk"), tmp_path)
    context = RunContext(
        provisioner=Provisioner(fake_http, extension="tar.gz", java_marker="bin/java"),
        reporter=reporter,
        providers={Vendor.AZUL: provider},
        notifier=recording_notifier,
        logger=StructuredLogger(tmp_path / "logs"),
    )
    return target, context, provider, checksum


@pytest.mark.parametrize(
    ("local", "remote_version", "remote_checksum", "expected"),
    [
        (None, "17.0.9", "ab" * 32, True),
        (("17.0.8", "ab" * 32), "17.0.9", "ab" * 32, True),
        (("17.0.9", "ab" * 32), "17.0.9", "AB" * 32, False),
        (("17.0.9", "ab" * 32), "17.0.9", "cd" * 32, True),
        (("17.0.10", "ab" * 32), "17.0.9", "ab" * 32, False),
        (("17.0.10", "ab" * 32), "17.0.9", "cd" * 32, True),
    ],
)
def test_needs_update_decision_rule(
    local: tuple[str, str] | None,
    remote_version: str,
    remote_checksum: str,
    expected: bool,
) -> None:
    """Update when nothing is installed, the remote is newer, or the bytes differ."""
    metadata = None
    if local is not None:
        metadata = Metadata(vendor="azul", version=Version(local[0]), checksum=local[1])
    remote = RemotePackage(version=Version(remote_version), url=URL, checksum=remote_checksum)
    assert needs_update(metadata, remote) is expected


def test_resolve_directory_expands_template_relative_to_basedir(tmp_path: Path) -> None:
    config = _config("java/${JU_VENDOR}/${JU_CONFIG_TYPE}-${JU_VERSION}/${env.FLAVOUR}/${NOPE}")
    path = resolve_directory(config, tmp_path, env={"FLAVOUR": "fx"})
    assert path == tmp_path / "java" / "azul" / "jdk-17" / "fx" / "${NOPE}"
    assert path.is_absolute()


def test_absolute_directory_ignores_basedir(tmp_path: Path) -> None:
    absolute = tmp_path / "elsewhere"
    assert resolve_directory(_config(str(absolute)), tmp_path / "cfg") == absolute


def test_first_install_end_to_end(setup) -> None:
    """An empty target is installed, persisted, reported and notified."""
    target, context, provider, checksum = setup

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.UPDATED
    assert outcome.old_version is None
    assert outcome.new_version == Version("17.0.9")
    assert (target.directory / "bin" / "java").exists()
    stored = load_metadata(metadata_path(target.directory))
    assert (stored.vendor, str(stored.version), stored.checksum) == ("azul", "17.0.9", checksum)

    output = context.reporter.out.getvalue()
    assert f"Processing installation at {target.directory} [n/a]" in output
    assert f"Processed installation at {target.directory} [n/a -> 17.0.9]" in output

    launched = [item.argv for item in context.notifier.launched]
    assert launched == [("upd", "n/a", "17.0.9"), ("ok", "17.0.9")]
    assert context.notifier.launched[0].env["JU_VENDOR_NAME"] == "Azul"
    assert context.notifier.launched[0].env["JU_DIRECTORY"] == str(target.directory)

    request = provider.requests[0]
    assert (request.arch, request.package_type, request.version) == ("x86_64", "jdk", "17")


def test_up_to_date_installation_is_left_alone(setup, fake_http) -> None:
    target, context, _, checksum = setup
    save_metadata(
        Metadata(vendor="azul", version=Version("17.0.9"), checksum=checksum),
        metadata_path(target.directory),
    )

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.UNCHANGED
    assert fake_http.downloads == []
    assert f"Processed installation at {target.directory} [17.0.9]" in context.reporter.out.getvalue()
    assert [item.argv[0] for item in context.notifier.launched] == ["ok"]


def test_checksum_change_without_version_change(setup) -> None:
    """A rebuilt package is installed but is not reported as a version update."""
    target, context, _, checksum = setup
    save_metadata(
        Metadata(vendor="azul", version=Version("17.0.9"), checksum=OTHER_CHECKSUM),
        metadata_path(target.directory),
    )

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.UPDATED
    assert load_metadata(metadata_path(target.directory)).checksum == checksum
    assert [item.argv[0] for item in context.notifier.launched] == ["ok"]


def test_dry_run_changes_nothing(setup, fake_http) -> None:
    target, context, _, _ = setup
    context.dry_run = True

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.DRY_RUN
    assert outcome.new_version == Version("17.0.9")
    assert not target.directory.exists()
    assert fake_http.downloads == []
    assert context.notifier.launched == []
    assert (
        f"dry-run: NOT processing installation at {target.directory} [n/a -> 17.0.9]"
        in context.reporter.out.getvalue()
    )


def test_vendor_mismatch_fails_target(setup) -> None:
    """Metadata from another vendor is never overwritten silently."""
    target, context, provider, _ = setup
    save_metadata(
        Metadata(vendor="eclipse", version=Version("17.0.8"), checksum=OTHER_CHECKSUM),
        metadata_path(target.directory),
    )

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.FAILED
    assert provider.requests == []
    assert f"Failed to process installation at {target.directory}!" in context.reporter.err.getvalue()
    assert [item.argv[0] for item in context.notifier.launched] == ["fail"]
    assert "eclipse" in context.notifier.launched[0].env["JU_ERROR"]


def test_query_failure_fires_on_failure(setup) -> None:
    target, context, provider, _ = setup
    provider.package = None

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.FAILED
    assert outcome.error == "feed unavailable"
    assert context.notifier.launched[0].argv == ("fail", "feed unavailable")
    assert "err = feed unavailable" in context.reporter.err.getvalue()


def test_dry_run_failure_still_fires_on_failure(setup, fake_http) -> None:
    target, context, provider, _ = setup
    provider.package = None
    context.dry_run = True

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.FAILED
    assert fake_http.downloads == []
    assert [item.argv for item in context.notifier.launched] == [("fail", "feed unavailable")]


@pytest.mark.parametrize(
    "content",
    [
        "vendor: [azul\n",
        "vendor: azul\nversion: 17.0.8\nchecksum: " + "ab" * 32 + "\nextra: 1\n",
    ],
)
def test_malformed_metadata_fails_target(setup, fake_http, content: str) -> None:
    """A broken meta file fails the target and leaves the installation alone."""
    target, context, provider, _ = setup
    path = metadata_path(target.directory)
    path.parent.mkdir(parents=True)
    path.write_text(content, encoding="utf-8")
    marker = target.directory / "bin" / "java"
    marker.parent.mkdir()
    marker.write_text("old", encoding="utf-8")

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.FAILED
    assert provider.requests == []
    assert fake_http.downloads == []
    assert marker.read_text(encoding="utf-8") == "old"
    assert path.read_text(encoding="utf-8") == content
    assert [item.argv[0] for item in context.notifier.launched] == ["fail"]
    assert f"Failed to process installation at {target.directory}!" in context.reporter.err.getvalue()


def test_disabled_target_is_skipped(setup, tmp_path: Path) -> None:
    _, context, provider, _ = setup
    target = InstallationTarget.from_config(_config("off", enabled=False), tmp_path)

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.SKIPPED
    assert provider.requests == []
    assert f"NOT processing installation at {target.directory} -> disabled" in context.reporter.out.getvalue()


def test_unsupported_vendor_is_skipped(setup, tmp_path: Path) -> None:
    _, context, _, _ = setup
    target = InstallationTarget.from_config(_config("x", vendor="Oracle"), tmp_path)

    outcome = Installation(target, context).run()

    assert outcome.status is InstallationStatus.SKIPPED
    assert "-> unsupported vendor 'oracle'" in context.reporter.out.getvalue()


def test_run_is_recorded_in_operations_log(setup, tmp_path: Path) -> None:
    target, context, _, _ = setup
    Installation(target, context).run()

    lines = (tmp_path / "logs" / "operations.jsonl").read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["operation"] == "install"
    assert record["result"]["status"] == "success"
    assert [step["name"] for step in record["steps"]] == [
        "load-metadata",
        "query",
        "decide",
        "provision",
        "persist-metadata",
    ]
