# Needs: python-package:pytest>=8.0

from dataclasses import replace

import pytest

from conftest import RecordingRunner, build_claim
from migration_errors import ClaimPairingError, TransferError
from sync_driver import SyncDriver, volume_dir


@pytest.mark.unit
def test_volume_dir_has_trailing_separator() -> None:
    assert volume_dir("/tmp/source-fs-1", "pvc-1") == "/tmp/source-fs-1/pvc-1/"


@pytest.mark.unit
def test_sync_transfers_each_bound_pair(config, runner) -> None:
    source = {
        "ns/a": build_claim("ns", "a", volume_name="v1"),
        "ns/b": build_claim("ns", "b", volume_name="v2"),
    }
    target = {
        "ns/a": build_claim("ns", "a", volume_name="t1"),
        "ns/b": build_claim("ns", "b", volume_name="t2"),
    }

    result = SyncDriver(runner, config).sync(source, target, "/mnt/src", "/mnt/dst")

    assert runner.calls == [
        ["rsync", "-rulpEto", "/mnt/src/v1/", "/mnt/dst/t1/"],
        ["rsync", "-rulpEto", "/mnt/src/v2/", "/mnt/dst/t2/"],
    ]
    assert result.transferred == ["ns/a", "ns/b"]
    assert result.skipped == []


@pytest.mark.unit
def test_sync_skips_pairs_with_unbound_volume_on_either_side(config, runner) -> None:
    source = {
        "ns/a": build_claim("ns", "a", volume_name="v1"),
        "ns/b": build_claim("ns", "b", volume_name=""),
        "ns/c": build_claim("ns", "c", volume_name="v3"),
    }
    target = {
        "ns/a": build_claim("ns", "a", volume_name="t1"),
        "ns/b": build_claim("ns", "b", volume_name="t2"),
        "ns/c": build_claim("ns", "c"),
    }

    result = SyncDriver(runner, config).sync(source, target, "/mnt/src", "/mnt/dst")

    assert runner.calls == [["rsync", "-rulpEto", "/mnt/src/v1/", "/mnt/dst/t1/"]]
    assert result.transferred == ["ns/a"]
    assert result.skipped == ["ns/b", "ns/c"]


@pytest.mark.unit
def test_unmatched_source_claims_abort_before_any_transfer(config, runner) -> None:
    source = {
        "ns/a": build_claim("ns", "a", volume_name="v1"),
        "ns/b": build_claim("ns", "b", volume_name="v2"),
        "ns/c": build_claim("ns", "c", volume_name="v3"),
    }
    target = {"ns/b": build_claim("ns", "b", volume_name="t2")}

    with pytest.raises(ClaimPairingError) as excinfo:
        SyncDriver(runner, config).sync(source, target, "/mnt/src", "/mnt/dst")

    assert excinfo.value.missing_keys == ["ns/a", "ns/c"]
    assert runner.calls == []


@pytest.mark.unit
def test_transfer_failure_stops_remaining_pairs(config) -> None:
    runner = RecordingRunner(returncodes={"rsync": 23})
    source = {
        "ns/a": build_claim("ns", "a", volume_name="v1"),
        "ns/b": build_claim("ns", "b", volume_name="v2"),
    }
    target = {
        "ns/a": build_claim("ns", "a", volume_name="t1"),
        "ns/b": build_claim("ns", "b", volume_name="t2"),
    }

    with pytest.raises(TransferError) as excinfo:
        SyncDriver(runner, config).sync(source, target, "/mnt/src", "/mnt/dst")

    assert excinfo.value.returncode == 23
    assert excinfo.value.argv[-2:] == ["/mnt/src/v1/", "/mnt/dst/t1/"]
    assert len(runner.calls) == 1


@pytest.mark.unit
def test_configured_rsync_args_are_split(config, runner) -> None:
    driver = SyncDriver(runner, replace(config, rsync_args="-av --delete --exclude 'lost+found'"))
    source = {"ns/a": build_claim("ns", "a", volume_name="v1")}
    target = {"ns/a": build_claim("ns", "a", volume_name="t1")}

    driver.sync(source, target, "/src", "/dst")

    assert runner.calls == [
        ["rsync", "-av", "--delete", "--exclude", "lost+found", "/src/v1/", "/dst/t1/"]
    ]


@pytest.mark.unit
def test_dry_run_logs_rsync_without_invoking_runner(config, runner, caplog) -> None:
    source = {"ns/a": build_claim("ns", "a", volume_name="v1")}
    target = {"ns/a": build_claim("ns", "a", volume_name="t1")}

    with caplog.at_level("INFO"):
        result = SyncDriver(runner, replace(config, dry_run=True)).sync(source, target, "/src", "/dst")

    assert runner.calls == []
    assert result.transferred == ["ns/a"]
    assert "exec: rsync -rulpEto /src/v1/ /dst/t1/" in caplog.text
