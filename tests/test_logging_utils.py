import logging

from archrepo_provisioner import logging_utils


def test_log_file_falls_back_to_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    handler, path = logging_utils._open_log_file(str(blocker / "run.log"))
    try:
        assert path == str(tmp_path / logging_utils.FALLBACK_LOG_NAME)
        assert isinstance(handler, logging.FileHandler)
    finally:
        handler.close()


def test_log_file_created_where_requested(tmp_path):
    target = tmp_path / "logs" / "run.log"
    handler, path = logging_utils._open_log_file(str(target))
    try:
        assert path == str(target)
        assert target.parent.is_dir()
    finally:
        handler.close()
