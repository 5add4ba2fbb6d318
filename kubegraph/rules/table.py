"""Static relationship rule table.

Each rule maps a path expression evaluated against the source object to a
target resource type and a relationship tag.  DEFAULT_RULES apply to every
object and are always evaluated before the per-kind rules; both are ordered
tuples because the order of derived descriptors is observable downstream.

Adding coverage for a new relation means adding an entry here.
"""

from __future__ import annotations

from dataclasses import dataclass

from kubegraph.models.resources import NAMESPACE_TYPE, RelationshipType


@dataclass(frozen=True)
class RelationshipRule:
    """One path rule.

    With ``object_reference`` set the path selects reference objects such as
    RBAC subjects, and each one names its own target through its ``kind``,
    ``name`` and optional ``namespace`` keys; ``target_resource`` is unused.
    """

    path: str
    target_resource: str
    relationship_type: str
    object_reference: bool = False


# (group, version, kind) of the source object
RuleKey = tuple[str, str, str]

_RBAC = "rbac.authorization.k8s.io/v1"

# Target types whose instances never live in a namespace.  Name references
# to them are resolved without a namespace qualifier.
CLUSTER_SCOPED_TYPES: frozenset[str] = frozenset(
    {
        NAMESPACE_TYPE,
        "v1/Node",
        "v1/PersistentVolume",
        f"{_RBAC}/ClusterRole",
    }
)

DEFAULT_RULES: tuple[RelationshipRule, ...] = (
    RelationshipRule(".metadata.ownerReferences[*].uid", "", RelationshipType.OWNED_BY),
    RelationshipRule(".metadata.namespace", NAMESPACE_TYPE, RelationshipType.BELONGS_TO),
)


def _pod_spec_rules(prefix: str) -> tuple[RelationshipRule, ...]:
    """Rules shared by a bare PodSpec and every pod template under *prefix*."""
    return (
        RelationshipRule(f"{prefix}.volumes[*].configMap.name", "v1/ConfigMap", RelationshipType.MOUNT_VOLUME),
        RelationshipRule(f"{prefix}.volumes[*].secret.secretName", "v1/Secret", RelationshipType.MOUNT_VOLUME),
        RelationshipRule(
            f"{prefix}.volumes[*].persistentVolumeClaim.claimName",
            "v1/PersistentVolumeClaim",
            RelationshipType.MOUNT_VOLUME,
        ),
        RelationshipRule(
            f"{prefix}.containers[*].envFrom[*].configMapRef.name", "v1/ConfigMap", RelationshipType.ENV_CONFIG
        ),
        RelationshipRule(f"{prefix}.containers[*].envFrom[*].secretRef.name", "v1/Secret", RelationshipType.ENV_CONFIG),
        RelationshipRule(f"{prefix}.serviceAccountName", "v1/ServiceAccount", RelationshipType.USE_ACCOUNT),
        RelationshipRule(f"{prefix}.imagePullSecrets[*].name", "v1/Secret", RelationshipType.PULL_SECRET),
    )


_TEMPLATE_RULES = _pod_spec_rules(".spec.template.spec")

KIND_RULES: dict[RuleKey, tuple[RelationshipRule, ...]] = {
    ("", "v1", "Pod"): (
        *_pod_spec_rules(".spec"),
        RelationshipRule(".spec.nodeName", "v1/Node", RelationshipType.SCHEDULED_ON),
    ),
    ("", "v1", "PersistentVolumeClaim"): (
        RelationshipRule(".spec.volumeName", "v1/PersistentVolume", RelationshipType.BIND_VOLUME),
    ),
    ("", "v1", "ServiceAccount"): (
        RelationshipRule(".imagePullSecrets[*].name", "v1/Secret", RelationshipType.PULL_SECRET),
    ),
    ("apps", "v1", "Deployment"): _TEMPLATE_RULES,
    ("apps", "v1", "StatefulSet"): _TEMPLATE_RULES,
    ("apps", "v1", "DaemonSet"): _TEMPLATE_RULES,
    ("apps", "v1", "ReplicaSet"): _TEMPLATE_RULES,
    ("batch", "v1", "Job"): _TEMPLATE_RULES,
    ("networking.k8s.io", "v1", "Ingress"): (
        RelationshipRule(".spec.rules[*].http.paths[*].backend.service.name", "v1/Service", RelationshipType.ROUTE_TRAFFIC),
        RelationshipRule(".spec.defaultBackend.service.name", "v1/Service", RelationshipType.ROUTE_TRAFFIC),
        RelationshipRule(".spec.tls[*].secretName", "v1/Secret", RelationshipType.TLS_SECRET),
    ),
    # resourceNames carry no kind, so these never resolve to a node.
    ("rbac.authorization.k8s.io", "v1", "Role"): (
        RelationshipRule(".rules[*].resourceNames[*]", "", RelationshipType.GRANT_ACCESS),
    ),
    ("rbac.authorization.k8s.io", "v1", "RoleBinding"): (
        RelationshipRule(".roleRef.name", f"{_RBAC}/Role", RelationshipType.BIND_ROLE),
        RelationshipRule(".subjects[*]", "", RelationshipType.ASSIGN_TO, object_reference=True),
    ),
    ("rbac.authorization.k8s.io", "v1", "ClusterRoleBinding"): (
        RelationshipRule(".roleRef.name", f"{_RBAC}/ClusterRole", RelationshipType.BIND_ROLE),
        RelationshipRule(".subjects[*]", "", RelationshipType.ASSIGN_TO, object_reference=True),
    ),
}
