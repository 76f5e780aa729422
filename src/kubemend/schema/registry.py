#!/usr/bin/env python3
"""
KUBEMEND SCHEMA REGISTRY - The Atlas
------------------------------------
Static catalog of the Kubernetes kinds KubeMend understands: API group and
version, namespacing, the paths a healthy manifest must carry, and where a
stray bare field actually belongs (e.g. `containers` ->
`spec.template.spec.containers` for a Deployment).

Built once at import time; every table is read-only.

Author: KubeMend Team
Date: 2026-01-16
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ResourceSchema:
    kind: str
    api_group: str
    api_version: str
    namespaced: bool = True
    short_names: Tuple[str, ...] = ()
    required_paths: Tuple[str, ...] = ("metadata.name",)
    field_relocations: Mapping[str, str] = field(default_factory=dict)
    description: str = ""


# Fields that belong under metadata whatever the kind.
WILDCARD_RELOCATIONS: Mapping[str, str] = MappingProxyType({
    'name': 'metadata.name',
    'namespace': 'metadata.namespace',
    'labels': 'metadata.labels',
    'annotations': 'metadata.annotations',
    'generateName': 'metadata.generateName',
    'finalizers': 'metadata.finalizers',
})

POD_SPEC = 'spec.template.spec'
CRON_POD_SPEC = 'spec.jobTemplate.spec.template.spec'

REPLICASET_FAMILY = frozenset({'Deployment', 'StatefulSet', 'DaemonSet', 'ReplicaSet'})


def _under(prefix: str, *names: str) -> Dict[str, str]:
    return {name: f"{prefix}.{name}" for name in names}


_WORKLOAD_POD_FIELDS = (
    'containers', 'initContainers', 'volumes', 'nodeSelector', 'tolerations',
    'affinity', 'serviceAccountName', 'imagePullSecrets', 'restartPolicy',
    'terminationGracePeriodSeconds', 'dnsPolicy', 'hostNetwork', 'hostPID',
    'securityContext', 'schedulerName', 'priorityClassName',
)

_WORKLOAD_RELOCATIONS = {
    **_under('spec', 'replicas', 'strategy', 'minReadySeconds', 'revisionHistoryLimit',
             'progressDeadlineSeconds', 'paused'),
    'selector': 'spec.selector',
    'matchLabels': 'spec.selector.matchLabels',
    'matchExpressions': 'spec.selector.matchExpressions',
    'serviceAccount': f'{POD_SPEC}.serviceAccountName',
    **_under(POD_SPEC, *_WORKLOAD_POD_FIELDS),
}


def _schema(kind: str, api_version: str, namespaced: bool = True, short_names: Tuple[str, ...] = (),
            required: Tuple[str, ...] = ("metadata.name",), relocations: Optional[Dict[str, str]] = None,
            description: str = "") -> ResourceSchema:
    group = api_version.split('/')[0] if '/' in api_version else 'core'
    return ResourceSchema(
        kind=kind,
        api_group=group,
        api_version=api_version,
        namespaced=namespaced,
        short_names=short_names,
        required_paths=required,
        field_relocations=MappingProxyType(dict(relocations or {})),
        description=description,
    )


_SCHEMAS = [
    # --- core/v1 ---
    _schema('Pod', 'v1', short_names=('po',),
            required=('metadata.name', 'spec.containers'),
            relocations=_under('spec', 'containers', 'initContainers', 'volumes', 'nodeSelector',
                               'tolerations', 'affinity', 'serviceAccountName', 'restartPolicy',
                               'imagePullSecrets', 'terminationGracePeriodSeconds', 'dnsPolicy',
                               'hostNetwork', 'securityContext'),
            description='Smallest deployable unit of computing'),
    _schema('Service', 'v1', short_names=('svc',),
            required=('metadata.name', 'spec.ports'),
            relocations=_under('spec', 'selector', 'ports', 'type', 'clusterIP', 'externalIPs',
                               'sessionAffinity', 'loadBalancerIP', 'externalTrafficPolicy'),
            description='Stable network endpoint for a set of pods'),
    _schema('ConfigMap', 'v1', short_names=('cm',), description='Non-confidential key-value data'),
    _schema('Secret', 'v1', description='Confidential key-value data'),
    _schema('Namespace', 'v1', namespaced=False, short_names=('ns',),
            description='Virtual cluster partition'),
    _schema('PersistentVolume', 'v1', namespaced=False, short_names=('pv',),
            required=('metadata.name', 'spec.capacity', 'spec.accessModes'),
            relocations=_under('spec', 'capacity', 'accessModes', 'storageClassName',
                               'persistentVolumeReclaimPolicy', 'volumeMode'),
            description='Cluster storage resource'),
    _schema('PersistentVolumeClaim', 'v1', short_names=('pvc',),
            required=('metadata.name', 'spec.accessModes', 'spec.resources.requests.storage'),
            relocations={**_under('spec', 'accessModes', 'storageClassName', 'volumeMode', 'volumeName'),
                         'storage': 'spec.resources.requests.storage'},
            description='Request for storage'),
    _schema('ServiceAccount', 'v1', short_names=('sa',), description='Identity for pod processes'),
    _schema('ResourceQuota', 'v1', short_names=('quota',),
            relocations=_under('spec', 'hard', 'scopes'),
            description='Aggregate resource limits per namespace'),
    _schema('LimitRange', 'v1', short_names=('limits',),
            required=('metadata.name', 'spec.limits'),
            relocations=_under('spec', 'limits'),
            description='Per-object resource constraints'),

    # --- apps/v1 ---
    _schema('Deployment', 'apps/v1', short_names=('deploy',),
            required=('metadata.name', 'spec.selector.matchLabels', 'spec.template.spec.containers'),
            relocations=_WORKLOAD_RELOCATIONS,
            description='Declarative updates for pods and ReplicaSets'),
    _schema('StatefulSet', 'apps/v1', short_names=('sts',),
            required=('metadata.name', 'spec.serviceName', 'spec.selector.matchLabels',
                      'spec.template.spec.containers'),
            relocations={**_WORKLOAD_RELOCATIONS,
                         **_under('spec', 'serviceName', 'volumeClaimTemplates', 'podManagementPolicy',
                                  'updateStrategy')},
            description='Workload with stable identity and storage'),
    _schema('DaemonSet', 'apps/v1', short_names=('ds',),
            required=('metadata.name', 'spec.selector.matchLabels', 'spec.template.spec.containers'),
            relocations={**_WORKLOAD_RELOCATIONS, **_under('spec', 'updateStrategy')},
            description='One pod per node'),
    _schema('ReplicaSet', 'apps/v1', short_names=('rs',),
            required=('metadata.name', 'spec.selector.matchLabels', 'spec.template.spec.containers'),
            relocations=_WORKLOAD_RELOCATIONS,
            description='Maintains a stable set of replica pods'),

    # --- batch/v1 ---
    _schema('Job', 'batch/v1',
            required=('metadata.name', 'spec.template.spec.containers'),
            relocations={**_under('spec', 'backoffLimit', 'completions', 'parallelism',
                                  'activeDeadlineSeconds', 'ttlSecondsAfterFinished'),
                         **_under(POD_SPEC, 'containers', 'initContainers', 'volumes', 'restartPolicy',
                                  'nodeSelector', 'tolerations', 'serviceAccountName')},
            description='Run-to-completion workload'),
    _schema('CronJob', 'batch/v1', short_names=('cj',),
            required=('metadata.name', 'spec.schedule', 'spec.jobTemplate.spec.template.spec.containers'),
            relocations={**_under('spec', 'schedule', 'concurrencyPolicy', 'suspend',
                                  'startingDeadlineSeconds', 'successfulJobsHistoryLimit',
                                  'failedJobsHistoryLimit'),
                         **_under(CRON_POD_SPEC, 'containers', 'initContainers', 'volumes',
                                  'restartPolicy', 'serviceAccountName')},
            description='Scheduled Jobs'),

    # --- networking.k8s.io/v1 ---
    _schema('Ingress', 'networking.k8s.io/v1', short_names=('ing',),
            relocations=_under('spec', 'rules', 'tls', 'ingressClassName', 'defaultBackend'),
            description='External HTTP(S) routing'),
    _schema('NetworkPolicy', 'networking.k8s.io/v1', short_names=('netpol',),
            required=('metadata.name', 'spec.podSelector'),
            relocations=_under('spec', 'podSelector', 'policyTypes', 'ingress', 'egress'),
            description='Pod-level network rules'),

    # --- storage.k8s.io/v1 ---
    _schema('StorageClass', 'storage.k8s.io/v1', namespaced=False, short_names=('sc',),
            required=('metadata.name', 'provisioner'),
            description='Class of dynamically provisioned storage'),

    # --- rbac.authorization.k8s.io/v1 ---
    _schema('Role', 'rbac.authorization.k8s.io/v1',
            required=('metadata.name', 'rules'),
            description='Namespaced set of permissions'),
    _schema('ClusterRole', 'rbac.authorization.k8s.io/v1', namespaced=False,
            description='Cluster-wide set of permissions'),
    _schema('RoleBinding', 'rbac.authorization.k8s.io/v1',
            required=('metadata.name', 'roleRef'),
            description='Grants a Role to subjects in a namespace'),
    _schema('ClusterRoleBinding', 'rbac.authorization.k8s.io/v1', namespaced=False,
            required=('metadata.name', 'roleRef'),
            description='Grants a ClusterRole cluster-wide'),

    # --- autoscaling / policy ---
    _schema('HorizontalPodAutoscaler', 'autoscaling/v2', short_names=('hpa',),
            required=('metadata.name', 'spec.scaleTargetRef', 'spec.maxReplicas'),
            relocations=_under('spec', 'scaleTargetRef', 'minReplicas', 'maxReplicas', 'metrics',
                               'behavior'),
            description='Scales a workload on observed metrics'),
    _schema('PodDisruptionBudget', 'policy/v1', short_names=('pdb',),
            required=('metadata.name', 'spec.selector'),
            relocations=_under('spec', 'selector', 'minAvailable', 'maxUnavailable'),
            description='Limits voluntary disruptions'),
]

SCHEMAS: Mapping[str, ResourceSchema] = MappingProxyType({s.kind: s for s in _SCHEMAS})


def get_schema(kind: Optional[str]) -> Optional[ResourceSchema]:
    if not isinstance(kind, str):
        return None
    return SCHEMAS.get(kind)


def get_schema_by_api_version_kind(api_version: str, kind: str) -> Optional[ResourceSchema]:
    """Only matches when the registered apiVersion agrees."""
    schema = get_schema(kind)
    if schema and schema.api_version == api_version:
        return schema
    return None


def get_all_kinds() -> List[str]:
    return list(SCHEMAS)


def is_known_kind(kind: Optional[str]) -> bool:
    return get_schema(kind) is not None


def get_relocation_table(kind: str) -> Dict[str, str]:
    """Wildcard relocations merged with the kind's own table (kind wins)."""
    table = dict(WILDCARD_RELOCATIONS)
    schema = get_schema(kind)
    if schema:
        table.update(schema.field_relocations)
    return table


def get_field_path(kind: str, field_name: str) -> Optional[str]:
    return get_relocation_table(kind).get(field_name) if is_known_kind(kind) else None


def get_required_paths(kind: str) -> List[str]:
    schema = get_schema(kind)
    return list(schema.required_paths) if schema else []


# --- path helpers ---

def join_path(*parts: str) -> str:
    return '.'.join(p for p in parts if p)


def split_path(path: str) -> List[str]:
    return [p for p in path.split('.') if p] if path else []


def get_parent_path(path: str) -> str:
    return '.'.join(split_path(path)[:-1])


def get_field_name(path: str) -> str:
    parts = split_path(path)
    return parts[-1] if parts else ''
