from typing import Dict


class ResourceLabels:
    SHARDINGSPHERE_DOMAIN: str = "shardingsphere.apache.org/"

    SHARDINGSPHERE_KIND_LABEL = SHARDINGSPHERE_DOMAIN + "kind"

    SHARDINGSPHERE_NAME_LABEL = SHARDINGSPHERE_DOMAIN + "name"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_NAME_LABEL = KUBERNETES_DOMAIN + "name"

    KUBERNETES_INSTANCE_LABEL = KUBERNETES_DOMAIN + "instance"

    KUBERNETES_COMPONENT_LABEL = KUBERNETES_DOMAIN + "component"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    APPLICATION_NAME = "shardingsphere-proxy"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = dict(labels) if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def as_dict(self) -> Dict[str, str]:
        """Return labels as dictionary."""
        return self._labels.copy()

    def include(self, label: str, value: str) -> "Labels":
        self.update({label: value})
        return self

    def include_shardingsphere_kind(self, kind: str) -> "Labels":
        return self.include(self.SHARDINGSPHERE_KIND_LABEL, kind)

    def include_shardingsphere_name(self, name: str) -> "Labels":
        return self.include(self.SHARDINGSPHERE_NAME_LABEL, name)

    def include_kubernetes_name(self, name: str) -> "Labels":
        return self.include(self.KUBERNETES_NAME_LABEL, name)

    def include_kubernetes_instance(self, instance_name: str) -> "Labels":
        return self.include(
            self.KUBERNETES_INSTANCE_LABEL,
            self.get_or_valid_label_value(instance_name),
        )

    def include_kubernetes_component(self, component: str) -> "Labels":
        return self.include(self.KUBERNETES_COMPONENT_LABEL, component)

    def include_kubernetes_managed_by(self, operator_name: str) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, operator_name)

    def get_or_valid_label_value(self, value: str) -> str:
        """Trim a value to a valid label value:
        * (([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?
        * 63 characters max
        """
        if not value:
            return ""
        return value[:63].rstrip("-_.")

    def __str__(self):
        return f"Labels<{self._labels}>"

    @classmethod
    def generate_default_labels(
        cls,
        resource_name: str,
        resource_kind: str,
        component_type: str,
        managed_by: str,
    ) -> "Labels":
        labels = Labels()
        return (
            labels.include_shardingsphere_kind(resource_kind)
            .include_shardingsphere_name(resource_name)
            .include_kubernetes_name(cls.APPLICATION_NAME)
            .include_kubernetes_instance(resource_name)
            .include_kubernetes_component(component_type)
            .include_kubernetes_managed_by(managed_by)
        )
