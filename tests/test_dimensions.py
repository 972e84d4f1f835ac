"""
Tests for dimension-key resolution rules
"""
from normalize.dimensions import (
    KIND_RULE,
    NAMESPACE_RULE,
    WORKLOAD_RULE,
    infer_kind,
    kind_from_label,
    resolve,
    resolve_kind,
    resolve_namespace,
    resolve_workload,
)


class TestNamespaceRule:
    """Namespace resolution cascade"""

    def test_canonical_key_wins(self):
        res = resolve(NAMESPACE_RULE, {"my.namespace": "other", "k8s.namespace.name": "prod"})
        assert res.value == "prod"
        assert res.source == "exact:k8s.namespace.name"

    def test_cloud_application_namespace_key(self):
        res = resolve(NAMESPACE_RULE, {"dt.entity.cloud_application_namespace.name": "shop"})
        assert res.value == "shop"
        assert res.source == "exact:dt.entity.cloud_application_namespace.name"

    def test_needle_is_case_insensitive(self):
        res = resolve(NAMESPACE_RULE, {"Custom.NameSpace": "batch"})
        assert res.value == "batch"
        assert res.source == "needle:namespace"

    def test_default_unknown(self):
        assert resolve_namespace({"pod": "x"}) == "unknown"


class TestWorkloadRule:
    """Workload resolution cascade"""

    def test_canonical_key(self):
        assert resolve_workload({"k8s.workload.name": "api"}, [], "prod") == "api"

    def test_needle_workload_before_cloud_application(self):
        dm = {"dt.entity.cloud_application": "CLOUD_APP-1", "custom.workload": "worker"}
        res = resolve(WORKLOAD_RULE, dm)
        assert res.value == "worker"
        assert res.source == "needle:workload"

    def test_positional_fallback_skips_namespace(self):
        res = resolve(WORKLOAD_RULE, {}, ["prod", "", "cart"], exclude="prod")
        assert res.value == "cart"
        assert res.source == "positional"

    def test_default_unknown(self):
        assert resolve_workload({}, ["prod"], "prod") == "unknown"


class TestKindRule:
    """Workload kind resolution"""

    def test_canonical_kind_label_is_normalized(self):
        assert resolve_kind({"k8s.workload.kind": "StatefulSet"}, "db") == "statefulset"

    def test_kind_needle(self):
        res = resolve(KIND_RULE, {"workload_kind": "daemonset"})
        assert res.source == "needle:kind"
        assert resolve_kind({"workload_kind": "daemonset"}, "agent") == "daemonset"

    def test_heuristic_uses_workload_name(self):
        assert resolve_kind({"k8s.namespace.name": "prod"}, "nightly-cronjob") == "cronjob"

    def test_heuristic_uses_dimension_keys(self):
        assert resolve_kind({"k8s.deployment.name": "api"}, "api") == "deployment"

    def test_default_other(self):
        assert infer_kind("api", {"k8s.namespace.name": "prod"}) == "other"

    def test_label_mapping(self):
        assert kind_from_label("CronJob") == "cronjob"
        assert kind_from_label("job") == "job"
        assert kind_from_label("ReplicaSet") == "other"

    def test_resolution_is_deterministic(self):
        dm = {"k8s.namespace.name": "prod", "k8s.workload.name": "etl-job"}
        assert resolve_kind(dm, "etl-job") == resolve_kind(dict(dm), "etl-job") == "job"
