#!/usr/bin/env python3
"""
KUBEMEND VALIDATOR - The Judge
------------------------------
Validate-without-fixing entry point. Combines three independent opinions
on a manifest:
  * the fault-tolerant AST builder (line diagnostics, broken lines)
  * ruamel.yaml (does it parse at all?)
  * the schema and type registries (identity fields, scalar field values)

Required paths from the schema registry are advisory and never make a
manifest invalid.

Author: KubeMend Team
Date: 2026-01-16
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, MutableMapping, Optional

from kubemend.healing.reorganizer import get_in
from kubemend.healing.structurer import ManifestStructurer
from kubemend.knowledge.types import validate_field_value
from kubemend.parsing.builder import AstBuilder, analyze
from kubemend.parsing.lexer import clean_artifacts
from kubemend.parsing.nodes import Diagnostic
from kubemend.schema.registry import get_required_paths, get_schema

logger = logging.getLogger("kubemend.validator")

REQUIRED_FIELDS = ("apiVersion", "kind", "metadata")

# Field names whose registered type only holds in one place.
_METADATA_ONLY = frozenset({'name', 'namespace'})
_NAMED_PORT_PARENTS = frozenset({'httpGet', 'tcpSocket', 'grpc'})


@dataclass
class ValidationReport:
    is_valid: bool
    parse_errors: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    schema_errors: List[str] = field(default_factory=list)
    kind: Optional[str] = None
    api_version: Optional[str] = None
    advisories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "parseErrors": list(self.parse_errors),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "schemaErrors": list(self.schema_errors),
            "kind": self.kind,
            "apiVersion": self.api_version,
            "advisories": list(self.advisories),
        }


class ManifestValidator:
    """
    Read-only counterpart of MultiPassFixer: reports what is wrong and
    leaves the text alone.
    """

    def __init__(self, structurer: Optional[ManifestStructurer] = None):
        self.structurer = structurer or ManifestStructurer()
        self.builder = AstBuilder()

    def validate(self, content: str) -> ValidationReport:
        text = clean_artifacts(content or '')
        analysis = analyze(self.builder.build(text))
        report = ValidationReport(
            is_valid=True,
            diagnostics=list(analysis.all_diagnostics),
            kind=analysis.detected_kind,
            api_version=analysis.detected_api_version,
        )

        documents, failure = self.structurer.try_parse(text)
        if failure is not None:
            report.parse_errors.append(failure.describe())
        else:
            for index, doc in enumerate(doc for doc in documents if doc is not None):
                self._validate_document(doc, index, report)

        report.is_valid = not report.parse_errors and not report.schema_errors and analysis.structure_valid
        logger.debug("Validated %s: valid=%s, %d schema error(s)",
                     report.kind or 'manifest', report.is_valid, len(report.schema_errors))
        return report

    def _validate_document(self, doc: Any, index: int, report: ValidationReport):
        prefix = f"Document {index + 1}: "
        if not isinstance(doc, MutableMapping):
            report.schema_errors.append(f"{prefix}Top level must be a mapping")
            return

        # --- TEST 1: Identity & Metadata Presence ---
        for required in REQUIRED_FIELDS:
            if required not in doc:
                report.schema_errors.append(f"{prefix}Missing required top-level field '{required}'")

        kind = doc.get('kind')
        schema = get_schema(kind)
        if schema is None:
            if kind:
                report.advisories.append(f"{prefix}Kind '{kind}' is not registered; basic validation only")
        else:
            if doc.get('apiVersion') and doc.get('apiVersion') != schema.api_version:
                report.advisories.append(
                    f"{prefix}{kind} is usually served as '{schema.api_version}', found '{doc.get('apiVersion')}'")
            for path in get_required_paths(kind):
                if get_in(doc, path) is None:
                    report.advisories.append(f"{prefix}Recommended field '{path}' is missing")

        # --- TEST 2: Scalar field values ---
        self._validate_fields(doc, [], prefix, report)

    def _validate_fields(self, node: Any, path: List[str], prefix: str, report: ValidationReport):
        if isinstance(node, MutableMapping):
            for key, value in node.items():
                child = path + [str(key)]
                if isinstance(value, (MutableMapping, list)):
                    self._validate_fields(value, child, prefix, report)
                elif value is not None and self._applies(str(key), path):
                    result = validate_field_value(str(key), value)
                    for error in result.errors:
                        report.schema_errors.append(f"{prefix}{'.'.join(child)}: {error}")
        elif isinstance(node, list):
            for i, item in enumerate(node):
                self._validate_fields(item, path + [str(i)], prefix, report)

    @staticmethod
    def _applies(key: str, parent_path: List[str]) -> bool:
        if key in _METADATA_ONLY:
            return parent_path == ['metadata']
        if key == 'port' and parent_path and parent_path[-1] in _NAMED_PORT_PARENTS:
            return False
        return True


def validate_content(content: str) -> ValidationReport:
    return ManifestValidator().validate(content)
