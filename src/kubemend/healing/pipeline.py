#!/usr/bin/env python3
"""
KUBEMEND HEALING PIPELINE - The Chief Surgeon
---------------------------------------------
Central coordinator of the five repair passes. Raw text goes through them
in a strict order and comes out as a FixResult:

  1. Syntax Normalization  - line heuristics (tabs, colons, quotes, typos)
  2. Tree Reconstruction   - parse, relocate misplaced fields, re-dump
  3. Semantic Validation   - type coercion and duplicate keys
  4. Validation Iteration  - parser-guided single-line repairs
  5. Confidence Scoring    - final verdict and overall confidence

A pass that blows up is logged and treated as "no change"; nothing here
raises to the caller.

Author: KubeMend Team
Date: 2026-01-16
"""

import time
import logging
import dataclasses
from typing import Any, Callable, List, MutableMapping, Optional, Tuple

from kubemend.core.models import ChangeCategory, FixChange, FixerOptions, FixResult, PassMetric, Severity
from kubemend.healing.coercer import SemanticCoercer
from kubemend.healing.context import FixSession
from kubemend.healing.heuristics import SyntaxNormalizer
from kubemend.healing.reorganizer import ChangeType, StructuralChange, StructureReorganizer
from kubemend.healing.structurer import ManifestStructurer
from kubemend.knowledge.dictionary import FIXER_KEYS, KeyDictionary
from kubemend.parsing.lexer import clean_artifacts
from kubemend.schema.registry import is_known_kind, split_path

logger = logging.getLogger("kubemend.pipeline")

_STRUCTURE_SEVERITY = {
    ChangeType.RELOCATE: Severity.WARNING,
    ChangeType.MERGE: Severity.WARNING,
    ChangeType.REMOVE: Severity.INFO,
    ChangeType.CREATE: Severity.INFO,
}


class MultiPassFixer:
    """
    The Orchestrator: one instance can fix any number of inputs; every
    `fix` call works on its own FixSession.
    """

    def __init__(self, options: Optional[FixerOptions] = None, keys: KeyDictionary = FIXER_KEYS):
        self.options = options or FixerOptions()
        self.normalizer = SyntaxNormalizer(self.options, keys)
        self.reorganizer = StructureReorganizer()
        self.coercer = SemanticCoercer(self.options)
        self.structurer = ManifestStructurer(self.options.indent_size)

    def fix(self, content: str) -> FixResult:
        text = clean_artifacts(content or '')
        session = FixSession(original=content or '', content=text, options=self.options)
        if not text.strip():
            session.content = ''
            return session.to_result()

        passes: List[Tuple[str, Callable[[FixSession], List[FixChange]]]] = [
            ("Syntax Normalization", self._syntax_normalization),
            ("Tree Reconstruction", self._tree_reconstruction),
            ("Semantic Validation", self._semantic_validation),
            ("Validation Iteration", self._validation_iteration),
            ("Confidence Scoring", self._confidence_scoring),
        ]
        for number, (name, run_pass) in enumerate(passes, start=1):
            self._run_pass(session, number, name, run_pass)
        return session.to_result()

    def _run_pass(self, session: FixSession, number: int, name: str,
                  run_pass: Callable[[FixSession], List[FixChange]]):
        started = time.perf_counter()
        try:
            changes = run_pass(session)
        except Exception as e:
            logger.warning("Pass %d (%s) failed, continuing without its changes: %s", number, name, e)
            changes = []
        session.record(changes)
        elapsed = (time.perf_counter() - started) * 1000
        session.pass_breakdown.append(PassMetric(number, name, len(changes), elapsed))
        logger.debug("Pass %d (%s): %d change(s) in %.2fms", number, name, len(changes), elapsed)

    # --- PASS 1 ---

    def _syntax_normalization(self, session: FixSession) -> List[FixChange]:
        session.content, changes = self.normalizer.run(session.content)
        return changes

    # --- PASS 2 ---

    def _tree_reconstruction(self, session: FixSession) -> List[FixChange]:
        documents, failure = self.structurer.try_parse(session.content)
        if failure is not None:
            logger.debug("Tree reconstruction skipped: %s", failure.describe())
            return []

        changes: List[FixChange] = []
        rebuilt: List[Any] = []
        for doc in documents:
            if not isinstance(doc, MutableMapping) or not is_known_kind(doc.get('kind')):
                rebuilt.append(doc)
                continue
            result = self.reorganizer.reorganize(doc)
            rebuilt.append(result.document)
            changes.extend(_structure_change(doc, change) for change in result.changes)

        if changes:
            session.content = self.structurer.dump_documents(rebuilt, source=session.content)
        return changes

    # --- PASS 3 ---

    def _semantic_validation(self, session: FixSession) -> List[FixChange]:
        session.content, changes = self.coercer.run(session.content)
        return changes

    # --- PASS 4 ---

    def _validation_iteration(self, session: FixSession) -> List[FixChange]:
        changes: List[FixChange] = []
        for _ in range(self.options.max_iterations):
            _, failure = self.structurer.try_parse(session.content)
            if failure is None:
                break
            repaired, patch = self.structurer.repair(session.content, failure)
            if patch is None:
                logger.debug("No line repair for %s", failure.describe())
                break
            session.content = repaired
            changes.append(FixChange(
                line=patch.line,
                original=patch.original,
                fixed=patch.fixed,
                reason=patch.reason,
                category=ChangeCategory.SYNTAX,
                confidence=0.70,
                severity=Severity.ERROR,
                code=failure.kind.value,
            ))
        return changes

    # --- PASS 5 ---

    def _confidence_scoring(self, session: FixSession) -> List[FixChange]:
        _, failure = self.structurer.try_parse(session.content)
        session.is_valid = failure is None
        session.errors = [] if failure is None else [failure.describe()]

        threshold = self.options.confidence_threshold
        session.changes = [
            dataclasses.replace(change, severity=Severity.WARNING) if change.confidence < threshold else change
            for change in session.changes
        ]
        if session.changes:
            session.confidence = sum(c.confidence for c in session.changes) / len(session.changes)
        return []


def _structure_change(document: Any, change: StructuralChange) -> FixChange:
    if change.type == ChangeType.CREATE:
        original, fixed = '', f"{change.path}: {{}}"
    else:
        original, fixed = f"{change.source_path}: {_summarize(change.before)}", f"Moved to {change.path}"
    return FixChange(
        line=_source_line(document, change.source_path) if change.source_path else 0,
        original=original,
        fixed=fixed,
        reason=change.description,
        category=ChangeCategory.STRUCTURE,
        confidence=change.confidence,
        severity=_STRUCTURE_SEVERITY[change.type],
        code="CREATE_STRUCTURE" if change.type == ChangeType.CREATE else f"{change.type.value.upper()}_FIELD",
    )


def _source_line(document: Any, path: str) -> int:
    """1-indexed line of `path` in the round-trip document, 0 when unknown."""
    parts = split_path(path)
    parent = document
    for part in parts[:-1]:
        if not isinstance(parent, MutableMapping) or part not in parent:
            return 0
        parent = parent[part]
    lc = getattr(parent, 'lc', None)
    if lc is None:
        return 0
    try:
        return lc.key(parts[-1])[0] + 1
    except (KeyError, TypeError):
        return 0


def _summarize(value: Any) -> str:
    if isinstance(value, MutableMapping):
        return f"{{{len(value)} key(s)}}"
    if isinstance(value, list):
        return f"[{len(value)} item(s)]"
    return str(value)


def fix_content(content: str, options: Optional[FixerOptions] = None) -> FixResult:
    """Convenience wrapper: one-shot fix with a throwaway fixer."""
    return MultiPassFixer(options).fix(content)
