from archrepo_provisioner.state_store import load_records, record_run


def test_records_accumulate_per_run(tmp_path):
    path = str(tmp_path / "state" / "runs.json")
    record_run(path, {"run_id": "a", "state": "Success"})
    record_run(path, {"run_id": "b", "state": "Aborted"})
    data = load_records(path)
    assert set(data["runs"]) == {"a", "b"}
    assert data["last_run"] == "b"


def test_yaml_records(tmp_path):
    path = str(tmp_path / "runs.yaml")
    record_run(path, {"run_id": "a", "state": "RolledBack"})
    assert load_records(path)["runs"]["a"]["state"] == "RolledBack"


def test_missing_file_is_empty(tmp_path):
    assert load_records(str(tmp_path / "none.json")) == {"runs": {}}
