import pytest
from ruamel.yaml import YAML

from kubemend.core.engine import BACKUP_SUFFIX, EngineError, ManifestEngine, detect_kind

BROKEN_POD = "apiVersion v1\nkind Pod\nmetadata\n  name test\n"
GOOD_CONFIGMAP = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\ndata:\n  greeting: hello\n"
MISPLACED = (
    "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\nspec:\n"
    "  selector:\n    matchLabels:\n      app: web\n  template:\n    metadata:\n      labels:\n        app: web\n"
    "  containers:\n  - name: web\n    image: nginx\n"
)


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "pod.yaml").write_text(BROKEN_POD)
    (tmp_path / "cfg.yaml").write_text(GOOD_CONFIGMAP)
    nested = tmp_path / "apps"
    nested.mkdir()
    (nested / "deploy.YAML").write_text(MISPLACED)
    (nested / "notes.txt").write_text("not a manifest")
    return tmp_path


@pytest.fixture
def engine(workspace):
    return ManifestEngine(str(workspace))


def test_fix_dry_run_leaves_the_file_alone(engine, workspace):
    report = engine.fix_file("pod.yaml", dry_run=True)
    assert report["status"] == "PREVIEW"
    assert report["modified"] is True
    assert report["success"] is True
    assert report["kind"] == "Pod"
    assert report["file_path"] == "pod.yaml"
    assert report["fixed_content"].startswith("apiVersion: v1\nkind: Pod\n")
    assert report["written"] is False
    assert (workspace / "pod.yaml").read_text() == BROKEN_POD


def test_fix_writes_with_backup(engine, workspace):
    report = engine.fix_file("pod.yaml", dry_run=False)
    assert report["status"] == "HEALED"
    assert report["written"] is True
    assert report["backup_created"] == str(workspace / ("pod.yaml" + BACKUP_SUFFIX))
    assert (workspace / ("pod.yaml" + BACKUP_SUFFIX)).read_text() == BROKEN_POD
    assert (workspace / "pod.yaml").read_text() == report["fixed_content"]
    assert not list(workspace.glob("*.kubemend.tmp"))


def test_backups_never_overwrite_each_other(engine, workspace):
    engine.fix_file("pod.yaml", dry_run=False)
    (workspace / "pod.yaml").write_text(BROKEN_POD)
    second = engine.fix_file("pod.yaml", dry_run=False)
    assert second["backup_created"] == str(workspace / ("pod.yaml-1" + BACKUP_SUFFIX))


def test_fix_without_backup(engine, workspace):
    report = engine.fix_file("pod.yaml", dry_run=False, backup=False)
    assert report["backup_created"] is None
    assert not (workspace / ("pod.yaml" + BACKUP_SUFFIX)).exists()


def test_valid_file_is_unchanged(engine, workspace):
    report = engine.fix_file("cfg.yaml", dry_run=False)
    assert report["status"] == "UNCHANGED"
    assert report["written"] is False
    assert report["changes"] == []


def test_byte_order_mark_is_not_a_modification(engine, workspace):
    (workspace / "bom.yaml").write_bytes(b"\xef\xbb\xbf" + GOOD_CONFIGMAP.encode())
    report = engine.fix_file("bom.yaml")
    assert report["status"] == "UNCHANGED"


def test_validate_file(engine):
    assert engine.validate_file("cfg.yaml")["status"] == "VALID"
    report = engine.validate_file("pod.yaml")
    assert report["status"] == "INVALID"
    assert report["success"] is False
    assert report["errors"]


def test_reorganize_file(engine, workspace):
    report = engine.reorganize_file("apps/deploy.YAML", dry_run=False, backup=False)
    assert report["status"] == "HEALED"
    assert [c.path for c in report["structural_changes"]] == ["spec.template.spec.containers"]
    written = YAML(typ="safe").load((workspace / "apps" / "deploy.YAML").read_text())
    assert written["spec"]["template"]["spec"]["containers"][0]["image"] == "nginx"


def test_reorganize_needs_parseable_input(engine, workspace):
    (workspace / "open.yaml").write_text('metadata:\n  name: "open\n')
    report = engine.reorganize_file("open.yaml")
    assert report["status"] == "UNPARSEABLE"
    assert report["success"] is False


def test_discover(engine, workspace):
    found = engine.discover(str(workspace))
    assert [p.name for p in found] == ["deploy.YAML", "cfg.yaml", "pod.yaml"]
    assert engine.discover("cfg.yaml") == [workspace.resolve() / "cfg.yaml"]
    with pytest.raises(EngineError):
        engine.discover("missing")


def test_read_failure_becomes_engine_error(engine, workspace):
    (workspace / "binary.yaml").write_bytes(b"\xff\xfe\x00bad")
    reports = engine.run_batch([workspace / "binary.yaml", workspace / "cfg.yaml"], engine.validate_file)
    assert reports[0]["status"] == "ENGINE_ERROR"
    assert reports[1]["status"] == "VALID"


def test_batch_progress_and_summary(engine, workspace):
    seen = []
    files = engine.discover(str(workspace))
    reports = engine.run_batch(files, engine.fix_file, progress_callback=lambda done, total: seen.append((done, total)))
    assert seen == [(1, 3), (2, 3), (3, 3)]

    summary = engine.generate_summary(reports)
    assert summary["total_files"] == 3
    assert summary["successful"] == 3
    assert summary["success_rate"] == 1.0
    assert summary["written_to_disk"] == 0
    assert summary["total_changes"] > 0
    assert engine.generate_summary([])["total_files"] == 0


@pytest.mark.parametrize("content,kind", [
    ("kind: Service\n", "Service"),
    ("apiVersion v1\nkind: Job\n", "Job"),
    ("", "Unknown"),
])
def test_detect_kind(content, kind):
    assert detect_kind(content) == kind
