#!/usr/bin/env python3
"""
KUBEMEND TYPE REGISTRY - The Appraiser
--------------------------------------
Field name -> expected type catalog for Kubernetes manifests, plus the
confidence-scored coercion rules that turn loosely typed scalars
("3", "three", "yes", "on") into what the API server expects.

The registry is advisory: unknown field names pass through untouched.

Author: KubeMend Team
Date: 2026-01-16
"""

import re
import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional, Tuple, List, Mapping


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    MAP = "map"
    ANY = "any"


@dataclass(frozen=True)
class FieldTypeDef:
    type: FieldType
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    enum: Optional[Tuple[str, ...]] = None
    default: Any = None
    required: bool = False
    item_type: Optional[FieldType] = None
    description: str = ""


@dataclass(frozen=True)
class CoercionResult:
    success: bool
    value: Any
    confidence: float
    original_type: str
    target_type: FieldType
    reason: Optional[str] = None


@dataclass(frozen=True)
class FieldValidation:
    valid: bool
    errors: Tuple[str, ...] = ()
    coerced_value: Any = None
    confidence: Optional[float] = None


def _int(minimum=None, maximum=None, description="", default=None) -> FieldTypeDef:
    return FieldTypeDef(FieldType.INTEGER, minimum=minimum, maximum=maximum,
                        description=description, default=default)


def _bool(description="", default=None) -> FieldTypeDef:
    return FieldTypeDef(FieldType.BOOLEAN, description=description, default=default)


def _enum(values, description="", default=None) -> FieldTypeDef:
    return FieldTypeDef(FieldType.STRING, enum=tuple(values), description=description, default=default)


def _array(item_type=FieldType.OBJECT, description="", required=False) -> FieldTypeDef:
    return FieldTypeDef(FieldType.ARRAY, item_type=item_type, description=description, required=required)


DNS_LABEL = r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$'
CRON_PATTERN = (r'^((@(annually|yearly|monthly|weekly|daily|hourly|reboot))'
                r'|(@every (\d+(ns|us|µs|ms|s|m|h))+)'
                r'|((((\d+,)+\d+|(\d+(/|-)\d+)|\d+|\*) ?){5,7}))$')

_DEFINITIONS = {
    # --- numeric ---
    'replicas': _int(0, description='Number of desired pods', default=1),
    'port': _int(1, 65535, 'Port number'),
    'containerPort': _int(1, 65535, 'Container port number'),
    'hostPort': _int(1, 65535, 'Host port number'),
    'nodePort': _int(30000, 32767, 'NodePort range'),
    'targetPort': FieldTypeDef(FieldType.ANY, description='Port number or named port'),
    'initialDelaySeconds': _int(0, description='Delay before the first check'),
    'periodSeconds': _int(1, description='Check interval', default=10),
    'timeoutSeconds': _int(1, description='Check timeout', default=1),
    'successThreshold': _int(1, description='Minimum consecutive successes', default=1),
    'failureThreshold': _int(1, description='Minimum consecutive failures', default=3),
    'terminationGracePeriodSeconds': _int(0, description='Grace period before kill', default=30),
    'activeDeadlineSeconds': _int(0, description='Job or pod deadline'),
    'ttlSecondsAfterFinished': _int(0, description='TTL for finished jobs'),
    'backoffLimit': _int(0, description='Job retries before failure', default=6),
    'parallelism': _int(0, description='Parallel job pods'),
    'completions': _int(0, description='Required successful completions'),
    'minReadySeconds': _int(0, description='Seconds before pod counts as ready'),
    'revisionHistoryLimit': _int(0, description='Old ReplicaSets to retain', default=10),
    'progressDeadlineSeconds': _int(0, description='Rollout deadline', default=600),
    'minReplicas': _int(1, description='HPA lower bound'),
    'maxReplicas': _int(1, description='HPA upper bound'),
    'runAsUser': _int(0, description='UID for the container process'),
    'runAsGroup': _int(0, description='GID for the container process'),
    'fsGroup': _int(0, description='Supplemental filesystem group'),
    'defaultMode': _int(0, 511, 'Default file mode bits'),
    'mode': _int(0, 511, 'File mode bits'),
    'successfulJobsHistoryLimit': _int(0, description='Successful jobs to keep', default=3),
    'failedJobsHistoryLimit': _int(0, description='Failed jobs to keep', default=1),
    'startingDeadlineSeconds': _int(0, description='CronJob start deadline'),

    # --- boolean ---
    'hostNetwork': _bool('Use host network namespace', False),
    'hostPID': _bool('Use host PID namespace', False),
    'hostIPC': _bool('Use host IPC namespace', False),
    'privileged': _bool('Run container privileged', False),
    'readOnlyRootFilesystem': _bool('Mount root filesystem read-only', False),
    'runAsNonRoot': _bool('Require non-root user'),
    'allowPrivilegeEscalation': _bool('Allow privilege escalation'),
    'readOnly': _bool('Mount read-only', False),
    'optional': _bool('Reference is optional'),
    'automountServiceAccountToken': _bool('Mount the SA token'),
    'shareProcessNamespace': _bool('Share a single process namespace', False),
    'suspend': _bool('Suspend the job', False),
    'immutable': _bool('ConfigMap/Secret is immutable'),
    'publishNotReadyAddresses': _bool('Publish not-ready endpoints', False),
    'enableServiceLinks': _bool('Inject service env vars', True),
    'stdin': _bool('Allocate stdin', False),
    'stdinOnce': _bool('Close stdin after first attach', False),
    'tty': _bool('Allocate a TTY', False),
    'paused': _bool('Pause the deployment', False),

    # --- enums ---
    'imagePullPolicy': _enum(['Always', 'Never', 'IfNotPresent'], 'Image pull policy'),
    'restartPolicy': _enum(['Always', 'OnFailure', 'Never'], 'Pod restart policy', 'Always'),
    'protocol': _enum(['TCP', 'UDP', 'SCTP'], 'Port protocol', 'TCP'),
    'serviceType': _enum(['ClusterIP', 'NodePort', 'LoadBalancer', 'ExternalName'],
                         'Service type', 'ClusterIP'),
    'sessionAffinity': _enum(['None', 'ClientIP'], 'Service session affinity', 'None'),
    'dnsPolicy': _enum(['ClusterFirst', 'ClusterFirstWithHostNet', 'Default', 'None'],
                       'Pod DNS policy', 'ClusterFirst'),
    'concurrencyPolicy': _enum(['Allow', 'Forbid', 'Replace'], 'CronJob concurrency', 'Allow'),
    'podManagementPolicy': _enum(['OrderedReady', 'Parallel'], 'StatefulSet pod management',
                                 'OrderedReady'),
    'pathType': _enum(['Exact', 'Prefix', 'ImplementationSpecific'], 'Ingress path matching'),
    'accessMode': _enum(['ReadWriteOnce', 'ReadOnlyMany', 'ReadWriteMany', 'ReadWriteOncePod'],
                        'Volume access mode'),
    'volumeMode': _enum(['Filesystem', 'Block'], 'Volume mode', 'Filesystem'),
    'reclaimPolicy': _enum(['Retain', 'Recycle', 'Delete'], 'PV reclaim policy', 'Delete'),
    'volumeBindingMode': _enum(['Immediate', 'WaitForFirstConsumer'], 'Volume binding', 'Immediate'),
    'scheme': _enum(['HTTP', 'HTTPS'], 'HTTP check scheme', 'HTTP'),
    'operator': _enum(['In', 'NotIn', 'Exists', 'DoesNotExist', 'Gt', 'Lt', 'Equal'],
                      'Selector or toleration operator'),
    'effect': _enum(['NoSchedule', 'PreferNoSchedule', 'NoExecute'], 'Taint effect'),
    'secretType': _enum(['Opaque', 'kubernetes.io/service-account-token', 'kubernetes.io/dockercfg',
                         'kubernetes.io/dockerconfigjson', 'kubernetes.io/basic-auth',
                         'kubernetes.io/ssh-auth', 'kubernetes.io/tls',
                         'bootstrap.kubernetes.io/token'], 'Secret type', 'Opaque'),

    # --- patterned strings ---
    'name': FieldTypeDef(FieldType.STRING, pattern=DNS_LABEL, max_length=253,
                         description='Resource name (DNS subdomain)'),
    'namespace': FieldTypeDef(FieldType.STRING, pattern=DNS_LABEL, max_length=63,
                              description='Namespace name'),
    'image': FieldTypeDef(FieldType.STRING, description='Container image reference'),
    'schedule': FieldTypeDef(FieldType.STRING, pattern=CRON_PATTERN, description='Cron schedule'),
    'mountPath': FieldTypeDef(FieldType.STRING, pattern=r'^/.*', description='Volume mount path'),
    'path': FieldTypeDef(FieldType.STRING, description='File or URL path'),
    'clusterIP': FieldTypeDef(FieldType.STRING, pattern=r'^((None)|(\d{1,3}\.){3}\d{1,3})$',
                              description='Cluster IP address'),

    # --- objects and maps ---
    'metadata': FieldTypeDef(FieldType.OBJECT, required=True, description='Object metadata'),
    'spec': FieldTypeDef(FieldType.OBJECT, required=True, description='Desired state'),
    'status': FieldTypeDef(FieldType.OBJECT, description='Observed state'),
    'selector': FieldTypeDef(FieldType.OBJECT, description='Label selector'),
    'resources': FieldTypeDef(FieldType.OBJECT, description='Compute resources'),
    'securityContext': FieldTypeDef(FieldType.OBJECT, description='Security options'),
    'affinity': FieldTypeDef(FieldType.OBJECT, description='Scheduling constraints'),
    'matchLabels': FieldTypeDef(FieldType.MAP, description='Exact label match'),
    'labels': FieldTypeDef(FieldType.MAP, description='Labels'),
    'annotations': FieldTypeDef(FieldType.MAP, description='Annotations'),
    'nodeSelector': FieldTypeDef(FieldType.MAP, description='Node label selector'),
    'limits': FieldTypeDef(FieldType.MAP, description='Resource limits'),
    'requests': FieldTypeDef(FieldType.MAP, description='Resource requests'),
    'data': FieldTypeDef(FieldType.MAP, description='Config or secret data'),
    'stringData': FieldTypeDef(FieldType.MAP, description='Plain-text secret data'),

    # --- arrays ---
    'containers': _array(description='Pod containers', required=True),
    'initContainers': _array(description='Init containers'),
    'volumes': _array(description='Pod volumes'),
    'volumeMounts': _array(description='Container volume mounts'),
    'ports': _array(description='Port specifications'),
    'env': _array(description='Environment variables'),
    'envFrom': _array(description='Environment sources'),
    'command': _array(FieldType.STRING, 'Container entrypoint'),
    'args': _array(FieldType.STRING, 'Container arguments'),
    'tolerations': _array(description='Tolerations'),
    'rules': _array(description='Ingress or RBAC rules'),
    'subjects': _array(description='RBAC subjects'),
    'accessModes': _array(FieldType.STRING, 'PVC access modes'),
    'imagePullSecrets': _array(description='Image pull secret references'),
    'finalizers': _array(FieldType.STRING, 'Finalizers'),
}

TYPE_DEFINITIONS: Mapping[str, FieldTypeDef] = MappingProxyType(_DEFINITIONS)

WORD_TO_NUMBER: Mapping[str, int] = MappingProxyType({
    'zero': 0, 'one': 1, 'two': 2, 'three': 3, 'four': 4, 'five': 5, 'six': 6,
    'seven': 7, 'eight': 8, 'nine': 9, 'ten': 10, 'eleven': 11, 'twelve': 12,
    'thirteen': 13, 'fourteen': 14, 'fifteen': 15, 'sixteen': 16, 'seventeen': 17,
    'eighteen': 18, 'nineteen': 19, 'twenty': 20, 'thirty': 30, 'forty': 40,
    'fifty': 50, 'sixty': 60, 'seventy': 70, 'eighty': 80, 'ninety': 90,
    'hundred': 100, 'thousand': 1000,
})

BOOLEAN_STRINGS: Mapping[str, bool] = MappingProxyType({
    'true': True, 'yes': True, 'on': True, '1': True,
    'enabled': True, 'enable': True, 'active': True,
    'false': False, 'no': False, 'off': False, '0': False,
    'disabled': False, 'disable': False, 'inactive': False,
})

_QUOTED_INT = re.compile(r'^["\'](-?\d+)["\']$')
_BARE_INT = re.compile(r'^-?\d+$')
_BARE_FLOAT = re.compile(r'^-?\d*\.\d+$')
_BASE64 = re.compile(r'^[A-Za-z0-9+/]*={0,2}$')
_TENS = ('twenty', 'thirty', 'forty', 'fifty', 'sixty', 'seventy', 'eighty', 'ninety')
_UNITS = ('one', 'two', 'three', 'four', 'five', 'six', 'seven', 'eight', 'nine')


def word_to_number(word: str) -> Optional[int]:
    """
    Resolves an English numeral: the base table plus hyphenated compounds
    ("twenty-one", "three-hundred", "two-thousand").
    """
    token = word.strip().lower()
    if token in WORD_TO_NUMBER:
        return WORD_TO_NUMBER[token]
    head, sep, tail = token.partition('-')
    if not sep:
        return None
    if head in _TENS and tail in _UNITS:
        return WORD_TO_NUMBER[head] + WORD_TO_NUMBER[tail]
    if head in _UNITS and tail in ('hundred', 'thousand'):
        return WORD_TO_NUMBER[head] * WORD_TO_NUMBER[tail]
    return None


def _type_name(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, (list, tuple)):
        return 'array'
    if isinstance(value, dict):
        return 'object'
    return type(value).__name__


def get_field_type(field_name: str) -> Optional[FieldTypeDef]:
    return TYPE_DEFINITIONS.get(field_name)


def matches_expected_type(field_name: str, value: Any) -> bool:
    definition = TYPE_DEFINITIONS.get(field_name)
    if definition is None:
        return True
    kind = definition.type
    if kind == FieldType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == FieldType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == FieldType.BOOLEAN:
        return isinstance(value, bool)
    if kind == FieldType.STRING:
        return isinstance(value, str)
    if kind in (FieldType.OBJECT, FieldType.MAP):
        return isinstance(value, dict)
    if kind == FieldType.ARRAY:
        return isinstance(value, (list, tuple))
    return True


def coerce_value(field_name: str, value: Any) -> CoercionResult:
    """
    Converts `value` to the registered type of `field_name`.

    Unknown fields and values already of the right type come back unchanged
    with confidence 1.0. A failed or out-of-range coercion returns
    success=False with the original value and a reason.
    """
    definition = TYPE_DEFINITIONS.get(field_name)
    original_type = _type_name(value)
    if definition is None:
        return CoercionResult(True, value, 1.0, original_type, FieldType.ANY)
    if matches_expected_type(field_name, value):
        return CoercionResult(True, value, 1.0, original_type, definition.type)

    if definition.type in (FieldType.INTEGER, FieldType.NUMBER):
        return _coerce_to_number(value, definition)
    if definition.type == FieldType.BOOLEAN:
        return _coerce_to_boolean(value)
    if definition.type == FieldType.STRING:
        return _coerce_to_string(value)
    return CoercionResult(False, value, 0.0, original_type, definition.type,
                          f"Cannot coerce {original_type} to {definition.type.value}")


def _coerce_to_number(value: Any, definition: FieldTypeDef) -> CoercionResult:
    original_type = _type_name(value)
    result = None
    confidence = 0.0

    if isinstance(value, str):
        text = value.strip()
        quoted = _QUOTED_INT.match(text)
        if quoted:
            result, confidence = int(quoted.group(1)), 0.95
        elif _BARE_INT.match(text):
            result, confidence = int(text), 0.95
        elif _BARE_FLOAT.match(text):
            result, confidence = float(text), 0.90
        else:
            word = word_to_number(text)
            if word is not None:
                result, confidence = word, 0.85
    elif isinstance(value, bool):
        result, confidence = int(value), 0.70
    elif isinstance(value, float):
        # Only integer fields get here.
        result, confidence = value, 0.90 if value.is_integer() else 0.75

    if result is None:
        return CoercionResult(False, value, 0.0, original_type, definition.type,
                              f'Cannot convert "{value}" to number')

    if definition.minimum is not None and result < definition.minimum:
        return CoercionResult(False, value, 0.0, original_type, definition.type,
                              f"Value {result} is below minimum {definition.minimum:g}")
    if definition.maximum is not None and result > definition.maximum:
        return CoercionResult(False, value, 0.0, original_type, definition.type,
                              f"Value {result} is above maximum {definition.maximum:g}")

    if definition.type == FieldType.INTEGER:
        result = int(result // 1)
    return CoercionResult(True, result, confidence, original_type, definition.type)


def _coerce_to_boolean(value: Any) -> CoercionResult:
    original_type = _type_name(value)
    if isinstance(value, str):
        unquoted = value.strip().lower().strip('"\'')
        if unquoted in BOOLEAN_STRINGS:
            return CoercionResult(True, BOOLEAN_STRINGS[unquoted], 0.90, original_type, FieldType.BOOLEAN)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return CoercionResult(True, value != 0, 0.75, original_type, FieldType.BOOLEAN)
    return CoercionResult(False, value, 0.0, original_type, FieldType.BOOLEAN,
                          f'Cannot convert "{value}" to boolean')


def _coerce_to_string(value: Any) -> CoercionResult:
    original_type = _type_name(value)
    if value is None:
        return CoercionResult(True, '', 0.80, original_type, FieldType.STRING)
    if isinstance(value, bool):
        return CoercionResult(True, 'true' if value else 'false', 0.95, original_type, FieldType.STRING)
    if isinstance(value, (int, float)):
        return CoercionResult(True, str(value), 0.95, original_type, FieldType.STRING)
    return CoercionResult(False, value, 0.0, original_type, FieldType.STRING,
                          f"Cannot convert {original_type} to string")


def validate_field_value(field_name: str, value: Any) -> FieldValidation:
    """Type, pattern, length, enum and range checks for one field value."""
    definition = TYPE_DEFINITIONS.get(field_name)
    if definition is None:
        return FieldValidation(True)

    errors: List[str] = []
    if not matches_expected_type(field_name, value):
        coerced = coerce_value(field_name, value)
        if coerced.success and coerced.confidence >= 0.7:
            return FieldValidation(True, (), coerced.value, coerced.confidence)
        errors.append(f"Expected {definition.type.value}, got {_type_name(value)}")

    if definition.type == FieldType.STRING and isinstance(value, str):
        if definition.pattern and not re.search(definition.pattern, value):
            errors.append(f"Value does not match pattern {definition.pattern}")
        if definition.min_length is not None and len(value) < definition.min_length:
            errors.append(f"Value is shorter than minimum length {definition.min_length}")
        if definition.max_length is not None and len(value) > definition.max_length:
            errors.append(f"Value is longer than maximum length {definition.max_length}")
        if definition.enum and value not in definition.enum:
            errors.append(f"Value must be one of: {', '.join(definition.enum)}")

    if (definition.type in (FieldType.INTEGER, FieldType.NUMBER)
            and isinstance(value, (int, float)) and not isinstance(value, bool)):
        if definition.minimum is not None and value < definition.minimum:
            errors.append(f"Value {value} is below minimum {definition.minimum:g}")
        if definition.maximum is not None and value > definition.maximum:
            errors.append(f"Value {value} is above maximum {definition.maximum:g}")

    return FieldValidation(not errors, tuple(errors))


def is_valid_base64(value: Any) -> bool:
    if not isinstance(value, str) or not _BASE64.match(value) or len(value) % 4:
        return False
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def get_enum_values(field_name: str) -> Optional[Tuple[str, ...]]:
    definition = TYPE_DEFINITIONS.get(field_name)
    return definition.enum if definition else None


def get_default_value(field_name: str) -> Any:
    definition = TYPE_DEFINITIONS.get(field_name)
    return definition.default if definition else None


def is_required_field(field_name: str) -> bool:
    definition = TYPE_DEFINITIONS.get(field_name)
    return bool(definition and definition.required)


def is_numeric_field(field_name: str) -> bool:
    definition = TYPE_DEFINITIONS.get(field_name)
    return bool(definition and definition.type in (FieldType.INTEGER, FieldType.NUMBER))


def is_boolean_field(field_name: str) -> bool:
    definition = TYPE_DEFINITIONS.get(field_name)
    return bool(definition and definition.type == FieldType.BOOLEAN)


def is_structural_field(field_name: str) -> bool:
    """Object, map and array fields: their value belongs on the following lines."""
    definition = TYPE_DEFINITIONS.get(field_name)
    return bool(definition and definition.type in (FieldType.OBJECT, FieldType.MAP, FieldType.ARRAY))
