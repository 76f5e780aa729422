#!/usr/bin/env python3
"""
KUBEMEND KEY DICTIONARY
-----------------------
Static Kubernetes vocabulary used by the line heuristics: which bare words
are field names, and which misspellings map to which field.

The AST builder and the syntax pass each get their own KeyDictionary so the
two heuristics can be tuned independently while sharing one interface.

Author: KubeMend Team
Date: 2026-01-16
"""

import re
from typing import FrozenSet, Dict, Optional, Mapping

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9_-]*$')
MAX_KEY_LENGTH = 30

_CORE_KEYS = frozenset({
    'apiVersion', 'kind', 'metadata', 'spec', 'status', 'data', 'stringData',
    'name', 'namespace', 'labels', 'annotations', 'generateName',
    'replicas', 'selector', 'template', 'strategy', 'minReadySeconds',
    'containers', 'initContainers', 'volumes', 'volumeMounts', 'volumeClaimTemplates',
    'image', 'imagePullPolicy', 'command', 'args', 'env', 'envFrom',
    'ports', 'containerPort', 'protocol', 'hostPort', 'targetPort', 'nodePort',
    'resources', 'limits', 'requests', 'cpu', 'memory',
    'livenessProbe', 'readinessProbe', 'startupProbe', 'httpGet', 'tcpSocket', 'exec',
    'path', 'port', 'scheme', 'initialDelaySeconds', 'periodSeconds', 'timeoutSeconds',
    'successThreshold', 'failureThreshold',
    'securityContext', 'runAsUser', 'runAsGroup', 'fsGroup', 'privileged',
    'readOnlyRootFilesystem',
    'serviceAccountName', 'serviceAccount', 'automountServiceAccountToken',
    'nodeSelector', 'affinity', 'tolerations', 'nodeName',
    'restartPolicy', 'terminationGracePeriodSeconds', 'dnsPolicy', 'hostNetwork', 'hostPID',
    'configMap', 'secret', 'persistentVolumeClaim', 'emptyDir', 'hostPath',
    'claimName', 'secretName', 'key', 'optional',
    'matchLabels', 'matchExpressions', 'operator', 'values',
    'type', 'clusterIP', 'externalIPs', 'loadBalancerIP', 'sessionAffinity',
    'rules', 'host', 'http', 'paths', 'backend', 'serviceName', 'servicePort',
    'tls', 'hosts',
    'schedule', 'concurrencyPolicy', 'suspend', 'startingDeadlineSeconds',
    'successfulJobsHistoryLimit', 'failedJobsHistoryLimit',
    'completions', 'parallelism', 'backoffLimit', 'activeDeadlineSeconds',
    'accessModes', 'storageClassName', 'volumeMode', 'capacity', 'storage',
    'roleRef', 'subjects', 'apiGroup', 'verbs', 'resourceNames',
})

# The syntax pass also knows env, health check and HPA vocabulary.
_FIXER_EXTRA_KEYS = frozenset({
    'configMapName', 'mountPath', 'subPath', 'readOnly', 'value', 'valueFrom',
    'configMapKeyRef', 'secretKeyRef', 'fieldRef', 'resourceFieldRef',
    'scaleTargetRef', 'minReplicas', 'maxReplicas', 'metrics',
})

# Keys are matched lower-cased.
TYPO_CORRECTIONS: Dict[str, str] = {
    'apiversion': 'apiVersion', 'api-version': 'apiVersion',
    'metdata': 'metadata', 'meta': 'metadata', 'metadta': 'metadata',
    'sepc': 'spec', 'spc': 'spec', 'specf': 'spec',
    'contianers': 'containers', 'conatainers': 'containers', 'containres': 'containers',
    'conatiners': 'containers', 'cotainers': 'containers',
    'imge': 'image', 'imagee': 'image',
    'conainerport': 'containerPort', 'containerport': 'containerPort',
    'replcia': 'replicas', 'replcias': 'replicas', 'replicase': 'replicas',
    'lables': 'labels', 'laebls': 'labels',
    'anntotations': 'annotations', 'anntoations': 'annotations', 'annotatons': 'annotations',
    'namesapce': 'namespace', 'namepsace': 'namespace', 'namspace': 'namespace',
    'seletor': 'selector', 'slector': 'selector', 'selectro': 'selector',
    'matchlabels': 'matchLabels', 'match-labels': 'matchLabels',
    'volumemounts': 'volumeMounts', 'volume-mounts': 'volumeMounts',
    'nodeselctor': 'nodeSelector', 'nodeselector': 'nodeSelector',
    'toleratons': 'tolerations',
    'affinty': 'affinity',
    'resurces': 'resources', 'resoruces': 'resources', 'resouces': 'resources',
    'livenessprobe': 'livenessProbe', 'liveness-probe': 'livenessProbe',
    'readinessprobe': 'readinessProbe', 'readiness-probe': 'readinessProbe',
    'securitycontext': 'securityContext', 'security-context': 'securityContext',
    'serviceaccountname': 'serviceAccountName', 'service-account-name': 'serviceAccountName',
    'imagepullpolicy': 'imagePullPolicy', 'image-pull-policy': 'imagePullPolicy',
    'restartpolicy': 'restartPolicy', 'restart-policy': 'restartPolicy',
    'terminationgraceperiodseconds': 'terminationGracePeriodSeconds',
}


def looks_like_key(token: str) -> bool:
    """Lexical test for an identifier-shaped YAML key."""
    return len(token) <= MAX_KEY_LENGTH and bool(IDENTIFIER_PATTERN.match(token))


class KeyDictionary:
    """
    Read-only lookup over a known-key set and a typo table.
    """

    def __init__(self, known_keys: FrozenSet[str], typos: Optional[Mapping[str, str]] = None):
        self._known = frozenset(known_keys)
        self._known_lower = frozenset(k.lower() for k in self._known)
        self._typos = dict(typos or {})

    def is_known(self, token: str) -> bool:
        return token in self._known or token.lower() in self._known_lower

    def correct_typo(self, token: str) -> Optional[str]:
        """Returns the corrected key, or None when the token is not a known typo."""
        corrected = self._typos.get(token.lower())
        if corrected and corrected != token:
            return corrected
        return None

    def is_key_candidate(self, token: str, permissive: bool = True) -> bool:
        """
        True when `token` should be read as a key that lost its colon.
        `permissive` also accepts any identifier-shaped token.
        """
        if self.is_known(token) or token.lower() in self._typos:
            return True
        return permissive and looks_like_key(token)

    def __contains__(self, token: str) -> bool:
        return self.is_known(token)

    def __len__(self) -> int:
        return len(self._known)


BUILDER_KEYS = KeyDictionary(_CORE_KEYS)
FIXER_KEYS = KeyDictionary(_CORE_KEYS | _FIXER_EXTRA_KEYS, TYPO_CORRECTIONS)
