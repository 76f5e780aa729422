#!/usr/bin/env python3
"""
KUBEMEND ENGINE - The High Orchestrator
---------------------------------------
File-level driver around the repair pipeline. Reads manifests (BOM-aware),
runs the fixer, validator or reorganizer on them, and persists results with
a unique backup and an atomic replace.

Per-file results are plain dicts so the CLI can tabulate or dump them as
JSON without further conversion.

Author: KubeMend Team
Date: 2026-01-16
"""

import os
import shutil
import time
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional

from kubemend.core.models import FixerOptions
from kubemend.healing.pipeline import MultiPassFixer
from kubemend.healing.reorganizer import StructureReorganizer
from kubemend.healing.structurer import ManifestStructurer
from kubemend.parsing.builder import AstBuilder, analyze
from kubemend.parsing.lexer import clean_artifacts
from kubemend.schema.registry import is_known_kind
from kubemend.validator.validator import ManifestValidator

logger = logging.getLogger("kubemend.engine")

BACKUP_SUFFIX = ".kubemend.backup"
TEMP_SUFFIX = ".kubemend.tmp"


def detect_kind(content: str) -> str:
    """Kind of the first document, as far as the fault-tolerant builder can tell."""
    return analyze(AstBuilder().build(content)).detected_kind or "Unknown"


class EngineError(RuntimeError):
    """A manifest could not be read or written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class ManifestEngine:
    """
    Principal orchestrator for manifest files inside one workspace.
    Each call builds its reports from scratch; the engine keeps no per-file state.
    """

    def __init__(self, workspace_path: str, options: Optional[FixerOptions] = None):
        self.workspace = Path(workspace_path).resolve()
        self.options = options or FixerOptions()
        self.fixer = MultiPassFixer(self.options)
        self.validator = ManifestValidator(ManifestStructurer(self.options.indent_size))
        self.structurer = ManifestStructurer(self.options.indent_size)
        self.reorganizer = StructureReorganizer()

    # --- single file operations ---

    def fix_file(self, path: str, dry_run: bool = True, backup: bool = True) -> Dict[str, Any]:
        """Performs a full repair cycle on a single manifest."""
        full_path = self.resolve(path)
        raw_text = self.read_manifest(full_path)
        result = self.fixer.fix(raw_text)
        is_modified = clean_artifacts(raw_text) != result.content

        report = self._base_report(full_path, raw_text)
        report.update({
            "status": self._derive_status(is_modified, dry_run, result.is_valid),
            "success": result.is_valid,
            "modified": is_modified,
            "kind": detect_kind(result.content),
            "fixed_content": result.content,
            "changes": result.changes,
            "confidence": result.confidence,
            "errors": list(result.errors),
            "result": result,
        })
        if not dry_run and is_modified:
            self._persist(full_path, result.content, backup, report)
        return report

    def validate_file(self, path: str) -> Dict[str, Any]:
        full_path = self.resolve(path)
        raw_text = self.read_manifest(full_path)
        validation = self.validator.validate(raw_text)

        report = self._base_report(full_path, raw_text)
        report.update({
            "status": "VALID" if validation.is_valid else "INVALID",
            "success": validation.is_valid,
            "kind": validation.kind or "Unknown",
            "errors": validation.parse_errors + validation.schema_errors,
            "validation": validation,
        })
        return report

    def reorganize_file(self, path: str, dry_run: bool = True, backup: bool = True) -> Dict[str, Any]:
        """Structural relocation only: no syntax or type repair."""
        full_path = self.resolve(path)
        raw_text = self.read_manifest(full_path)
        report = self._base_report(full_path, raw_text)

        text = clean_artifacts(raw_text)
        documents, failure = self.structurer.try_parse(text)
        if failure is not None:
            report.update({"status": "UNPARSEABLE", "success": False, "modified": False,
                           "errors": [failure.describe()], "structural_changes": []})
            return report

        rebuilt, structural, errors = [], [], []
        for doc in documents:
            if isinstance(doc, MutableMapping) and is_known_kind(doc.get('kind')):
                outcome = self.reorganizer.reorganize(doc)
                rebuilt.append(outcome.document)
                structural.extend(outcome.changes)
                errors.extend(outcome.errors)
            else:
                rebuilt.append(doc)

        is_modified = bool(structural)
        content = self.structurer.dump_documents(rebuilt, source=text) if is_modified else text
        report.update({
            "status": self._derive_status(is_modified, dry_run, not errors),
            "success": not errors,
            "modified": is_modified,
            "kind": detect_kind(content),
            "fixed_content": content,
            "structural_changes": structural,
            "errors": errors,
        })
        if not dry_run and is_modified:
            self._persist(full_path, content, backup, report)
        return report

    # --- batch ---

    def discover(self, target: str, extension: str = ".yaml", max_depth: int = 10) -> List[Path]:
        """A single file, or every `*<extension>` file below a directory (symlinks excluded)."""
        full_path = self.resolve(target)
        if full_path.is_file():
            return [full_path]
        if not full_path.is_dir():
            raise EngineError(f"Path missing: {full_path}", full_path)

        patterns = {f"*{extension.lower()}", f"*{extension.upper()}"}
        found = set()
        for pattern in patterns:
            for candidate in full_path.rglob(pattern):
                if not candidate.is_file() or candidate.is_symlink():
                    continue
                if len(candidate.relative_to(full_path).parts) > max_depth:
                    continue
                found.add(candidate)
        return sorted(found)

    def run_batch(self, files: List[Path], operation: Callable[[str], Dict[str, Any]],
                  progress_callback: Optional[Callable[[int, int], None]] = None) -> List[Dict[str, Any]]:
        """Applies `operation` to every file; an EngineError becomes an ENGINE_ERROR report."""
        reports = []
        for processed, file_path in enumerate(files, start=1):
            try:
                reports.append(operation(str(file_path)))
            except EngineError as e:
                logger.error(f"Error processing {file_path}: {e}")
                reports.append(self._file_error(file_path, "ENGINE_ERROR", str(e)))
            if progress_callback:
                progress_callback(processed, len(files))
        return reports

    def generate_summary(self, reports: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not reports:
            return {
                "total_files": 0, "success_rate": 0, "successful": 0,
                "written_to_disk": 0, "backups_created": 0, "system_errors": 0, "total_changes": 0,
            }

        total = len(reports)
        successful = sum(1 for r in reports if r.get('success', False))
        return {
            "total_files": total,
            "success_rate": successful / total,
            "successful": successful,
            "written_to_disk": sum(1 for r in reports if r.get('written', False)),
            "backups_created": sum(1 for r in reports if r.get('backup_created') is not None),
            "system_errors": sum(1 for r in reports if r.get('status') == "ENGINE_ERROR"),
            "total_changes": sum(len(r.get('changes') or r.get('structural_changes') or []) for r in reports),
            "summary_timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
        }

    # --- disk I/O ---

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.workspace / candidate
        return candidate.resolve()

    def read_manifest(self, full_path: Path) -> str:
        try:
            return full_path.read_text(encoding='utf-8-sig')
        except (OSError, UnicodeDecodeError) as e:
            raise EngineError(f"Cannot read {full_path}: {e}", full_path) from e

    def _persist(self, full_path: Path, content: str, backup: bool, report: Dict[str, Any]):
        if backup:
            backup_path = self._create_unique_backup(full_path)
            try:
                shutil.copy2(full_path, backup_path)
                report["backup_created"] = str(backup_path)
            except OSError as e:
                report["backup_warning"] = f"Backup failed: {e}"
        self._atomic_write(full_path, content)
        report["written"] = True

    def _atomic_write(self, target_path: Path, content: str):
        if not os.access(target_path.parent, os.W_OK):
            raise EngineError(f"No write access to {target_path.parent}", target_path)
        temp_file = target_path.with_name(target_path.name + TEMP_SUFFIX)
        try:
            temp_file.write_text(content, encoding='utf-8')
            os.replace(temp_file, target_path)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise EngineError(f"Atomic write failed: {e}", target_path) from e

    def _create_unique_backup(self, target_path: Path) -> Path:
        backup_path = target_path.with_name(target_path.name + BACKUP_SUFFIX)
        counter = 1
        while backup_path.exists():
            backup_path = target_path.with_name(f"{target_path.name}-{counter}{BACKUP_SUFFIX}")
            counter += 1
        return backup_path

    # --- report helpers ---

    def _display_path(self, full_path: Path) -> str:
        try:
            return str(full_path.relative_to(self.workspace))
        except ValueError:
            return str(full_path)

    def _base_report(self, full_path: Path, raw_text: str) -> Dict[str, Any]:
        return {
            "file_path": self._display_path(full_path),
            "original": raw_text,
            "written": False,
            "backup_created": None,
            "timestamp": time.time(),
        }

    @staticmethod
    def _derive_status(modified: bool, dry: bool, success: bool) -> str:
        if not modified:
            return "UNCHANGED" if success else "FAILED"
        if dry:
            return "PREVIEW"
        return "HEALED" if success else "PARTIAL"

    def _file_error(self, path: Path, status: str, error: str) -> Dict[str, Any]:
        return {
            "file_path": self._display_path(path), "status": status, "errors": [error],
            "success": False, "written": False, "backup_created": None, "kind": "Unknown",
        }
