import pytest

from archrepo_provisioner.model import BuildItem, GuestStateSnapshot, ProvisioningRun, RunState, compute_rollback_plan, new_run_id


def test_workdirs_are_keyed_by_run_and_item():
    item = BuildItem(source="/mnt/c/work/packages/foo/")
    assert item.base_name == "foo"
    a = item.workdir("/build", "run-a")
    b = item.workdir("/build", "run-b")
    assert a == "/build/run-a/foo"
    assert a != b


def test_windows_source_base_name():
    assert BuildItem(source="C:\\work\\packages\\bar").base_name == "bar"


def test_unusable_base_name():
    with pytest.raises(ValueError):
        BuildItem(source="/").base_name


def test_rollback_plan_is_set_difference():
    snap = GuestStateSnapshot(config_text=b"conf", installed=frozenset({"base", "git"}))
    plan = compute_rollback_plan(snap, frozenset({"base", "git", "vim", "foo"}), ["/repo/foo.pkg"], ["/etc/sudoers.d/x"])
    assert plan.remove_packages == ("foo", "vim")
    assert plan.delete_files == ("/repo/foo.pkg", "/etc/sudoers.d/x")
    assert plan.restore_config == b"conf"


def test_rollback_plan_keeping_artifacts():
    snap = GuestStateSnapshot(config_text=b"", installed=frozenset())
    plan = compute_rollback_plan(snap, frozenset(), ["/repo/foo.pkg"], ["/etc/sudoers.d/x"], keep_artifacts=True)
    assert plan.delete_files == ("/etc/sudoers.d/x",)


def test_run_ids_are_unique():
    assert new_run_id() != new_run_id()


def test_record_tracks_transitions():
    run = ProvisioningRun(run_id="r", guest="g")
    run.transition(RunState.WAITING_RESPONSIVE)
    run.transition(RunState.ABORTED)
    rec = run.record()
    assert rec["state"] == "Aborted"
    assert rec["history"] == ["WaitingResponsive", "Aborted"]
    assert rec["snapshot_taken_at"] is None
