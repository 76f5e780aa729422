import json

import pytest

from kubemend import __version__
from kubemend.cli.main import main

BROKEN_POD = "apiVersion v1\nkind Pod\nmetadata\n  name test\n"
HOPELESS = 'key: "a" trailing\n'


@pytest.fixture
def manifest(tmp_path):
    path = tmp_path / "pod.yaml"
    path.write_text(BROKEN_POD)
    return path


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert f"kubemend v{__version__}" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: kubemend" in capsys.readouterr().out


def test_fix_dry_run(manifest, capsys):
    assert main(["fix", str(manifest), "--dry-run"]) == 0
    assert manifest.read_text() == BROKEN_POD
    assert "pod.yaml" in capsys.readouterr().out


def test_fix_writes_and_keeps_backup(manifest):
    assert main(["fix", str(manifest)]) == 0
    assert manifest.read_text().startswith("apiVersion: v1\nkind: Pod\n")
    assert (manifest.parent / "pod.yaml.kubemend.backup").read_text() == BROKEN_POD


def test_fix_json_output(manifest, capsys):
    assert main(["fix", str(manifest), "--dry-run", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    entry = payload["files"][0]
    assert entry["file"] == "pod.yaml"
    assert entry["status"] == "PREVIEW"
    assert entry["isValid"] is True
    assert entry["changes"][0]["code"] == "MISSING_COLON"
    assert entry["summary"]["totalIssues"] == len(entry["changes"])
    assert payload["summary"]["total_files"] == 1


def test_unrepairable_file_fails(tmp_path, capsys):
    path = tmp_path / "bad.yaml"
    path.write_text(HOPELESS)
    assert main(["fix", str(path), "--dry-run", "--json"]) == 1
    assert json.loads(capsys.readouterr().out)["files"][0]["isValid"] is False


def test_validate(tmp_path, manifest, capsys):
    good = tmp_path / "good.yaml"
    good.write_text("apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\n")
    assert main(["validate", str(good), "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["files"][0]["status"] == "VALID"
    assert main(["validate", str(manifest)]) == 1


def test_reorganize_dry_run(tmp_path):
    path = tmp_path / "svc.yaml"
    original = "apiVersion: v1\nkind: Service\nmetadata:\n  name: svc\nports:\n- port: 80\n"
    path.write_text(original)
    assert main(["reorganize", str(path), "--dry-run"]) == 0
    assert path.read_text() == original


def test_missing_path(tmp_path):
    assert main(["fix", str(tmp_path / "nope.yaml")]) == 1


def test_empty_directory(tmp_path):
    assert main(["validate", str(tmp_path)]) == 0
