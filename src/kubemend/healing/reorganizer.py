#!/usr/bin/env python3
"""
KUBEMEND REORGANIZER - Structure Surgeon
----------------------------------------
Moves misplaced fields to where their kind's schema says they belong and
creates the container objects every resource of that kind must carry.

Works on any mutable mapping tree (plain dicts or ruamel CommentedMaps):
the input is deep-copied and new mappings are created with the same type
as their parent, so round-trip metadata survives relocation.

Author: KubeMend Team
Date: 2026-01-16
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

from kubemend.schema.registry import (
    CRON_POD_SPEC, POD_SPEC, REPLICASET_FAMILY, get_relocation_table, join_path, split_path,
)

logger = logging.getLogger("kubemend.reorganizer")

_MISSING = object()

# Pod-template fields that users commonly leave directly under `spec`.
_POD_TEMPLATE_FIELDS: Dict[str, List[Tuple[str, float]]] = {
    'workload': [('containers', 0.85), ('initContainers', 0.85), ('volumes', 0.85),
                 ('nodeSelector', 0.82), ('tolerations', 0.82), ('affinity', 0.82),
                 ('serviceAccountName', 0.82)],
    'job': [('containers', 0.85), ('restartPolicy', 0.85), ('volumes', 0.85)],
}

# Containers that must exist, per kind.
_REQUIRED_STRUCTURE: Dict[str, List[str]] = {
    **{kind: ['spec.template.spec', 'spec.selector'] for kind in REPLICASET_FAMILY},
    'Job': ['spec.template.spec'],
    'CronJob': [CRON_POD_SPEC],
    'Service': ['spec'],
    'Ingress': ['spec'],
    'PersistentVolumeClaim': ['spec.resources.requests'],
}


class ChangeType(str, Enum):
    RELOCATE = "relocate"
    CREATE = "create"
    MERGE = "merge"
    REMOVE = "remove"


@dataclass
class StructuralChange:
    type: ChangeType
    path: str
    description: str
    confidence: float
    source_path: Optional[str] = None
    before: Any = None
    after: Any = None


@dataclass
class ReorganizeResult:
    document: Any
    changes: List[StructuralChange] = field(default_factory=list)
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)


def _is_mapping(value: Any) -> bool:
    return isinstance(value, MutableMapping)


def get_in(document: Any, path: str, default: Any = None) -> Any:
    current = document
    for part in split_path(path):
        if not _is_mapping(current) or part not in current:
            return default
        current = current[part]
    return current


class StructureReorganizer:
    """
    Schema-driven relocation of misplaced fields.
    One instance may be reused; every `reorganize` call starts clean.
    """

    def __init__(self):
        self.changes: List[StructuralChange] = []

    def reorganize(self, document: Any) -> ReorganizeResult:
        self.changes = []
        kind = document.get('kind') if _is_mapping(document) else None
        if not kind:
            return ReorganizeResult(document, [], False, ['Document has no "kind" field'])

        doc = copy.deepcopy(document)
        table = get_relocation_table(kind)

        for field_name, target in table.items():
            if field_name in doc and len(split_path(target)) > 1:
                self._relocate(doc, field_name, target, 0.80,
                               f'"{field_name}" belongs under {join_path(*split_path(target)[:-1])}')

        self._relocate_pod_template_fields(doc, kind)
        self._ensure_required_structure(doc, kind)

        errors = []
        if not doc.get('apiVersion'):
            errors.append('Missing required field: apiVersion')
        if not _is_mapping(doc.get('metadata')):
            errors.append('Missing required field: metadata')

        if self.changes:
            logger.debug("Reorganized %s with %d structural change(s)", kind, len(self.changes))
        return ReorganizeResult(doc, list(self.changes), not errors, errors)

    def _relocate_pod_template_fields(self, doc: MutableMapping, kind: str):
        if kind in REPLICASET_FAMILY:
            fields, prefix = _POD_TEMPLATE_FIELDS['workload'], POD_SPEC
        elif kind == 'Job':
            fields, prefix = _POD_TEMPLATE_FIELDS['job'], POD_SPEC
        elif kind == 'CronJob':
            fields, prefix = _POD_TEMPLATE_FIELDS['job'], CRON_POD_SPEC
        else:
            return
        spec = doc.get('spec')
        if not _is_mapping(spec):
            return
        for field_name, confidence in fields:
            if field_name in spec:
                self._relocate(doc, f"spec.{field_name}", f"{prefix}.{field_name}", confidence,
                               f'"{field_name}" belongs under {prefix} for {kind}')

    def _relocate(self, doc: MutableMapping, source: str, target: str, confidence: float, reason: str):
        source_parts = split_path(source)
        source_parent = get_in(doc, join_path(*source_parts[:-1])) if len(source_parts) > 1 else doc
        if not _is_mapping(source_parent) or source_parts[-1] not in source_parent:
            return
        value = source_parent[source_parts[-1]]

        target_parts = split_path(target)
        parent = self._walk_to_parent(doc, target_parts, create=False)
        existing = parent.get(target_parts[-1], _MISSING) if _is_mapping(parent) else _MISSING

        if existing is _MISSING or existing is None:
            parent = self._walk_to_parent(doc, target_parts, create=True)
            if parent is None:
                logger.debug("Cannot relocate %s: %s is not a mapping", source, target)
                return
            del source_parent[source_parts[-1]]
            parent[target_parts[-1]] = value
            self.changes.append(StructuralChange(
                ChangeType.RELOCATE, target, f'Moved "{source_parts[-1]}" from {source} to {target} ({reason})',
                confidence, source_path=source, before=value, after=value))
            return

        if _is_mapping(existing) and _is_mapping(value):
            for key, item in value.items():
                if key not in existing:
                    existing[key] = item
            change_type = ChangeType.MERGE
        elif isinstance(existing, list) and isinstance(value, list):
            existing.extend(value)
            change_type = ChangeType.MERGE
        elif existing == value:
            change_type = ChangeType.REMOVE
        else:
            logger.debug("Kept %s in place: %s already holds a different value", source, target)
            return

        del source_parent[source_parts[-1]]
        verb = 'Merged' if change_type is ChangeType.MERGE else 'Removed duplicate'
        self.changes.append(StructuralChange(
            change_type, target, f'{verb} "{source_parts[-1]}" from {source} into {target}',
            confidence, source_path=source, before=value, after=existing))

    def _walk_to_parent(self, doc: MutableMapping, parts: List[str], create: bool) -> Optional[MutableMapping]:
        current = doc
        for part in parts[:-1]:
            child = current.get(part)
            if child is None:
                if not create:
                    return None
                child = type(current)()
                if current is doc and part == 'metadata':
                    _insert_after(doc, 'kind', part, child)
                else:
                    current[part] = child
            if not _is_mapping(child):
                return None
            current = child
        return current

    def _ensure_required_structure(self, doc: MutableMapping, kind: str):
        if doc.get('metadata') is None:
            _insert_after(doc, 'kind', 'metadata', type(doc)())
            self.changes.append(StructuralChange(
                ChangeType.CREATE, 'metadata', 'Created required metadata object', 1.0))
        for path in _REQUIRED_STRUCTURE.get(kind, []):
            self._ensure_path(doc, split_path(path))

    def _ensure_path(self, doc: MutableMapping, parts: List[str]):
        current = doc
        created: List[str] = []
        for part in parts:
            created.append(part)
            child = current.get(part)
            if child is None:
                child = type(current)()
                current[part] = child
                self.changes.append(StructuralChange(
                    ChangeType.CREATE, join_path(*created), f'Created required structure: {join_path(*created)}',
                    0.95))
            if not _is_mapping(child):
                return
            current = child


def _insert_after(container: MutableMapping, anchor_key: str, key: str, value: Any):
    """CommentedMap keeps position; plain dicts append."""
    if hasattr(container, 'insert') and anchor_key in container:
        container.insert(list(container).index(anchor_key) + 1, key, value)
    else:
        container[key] = value


def reorganize_document(document: Any) -> ReorganizeResult:
    return StructureReorganizer().reorganize(document)
