class ComputeNodeResources:
    """Encapsulates the naming scheme used for the resources which the operator manages
    for a ComputeNode.

    Every owned resource shares the namespaced name of its ComputeNode.
    """

    @classmethod
    def deployment_name(self, compute_node_name: str):
        return compute_node_name

    @classmethod
    def service_name(self, compute_node_name: str):
        return compute_node_name

    @classmethod
    def config_map_name(self, compute_node_name: str):
        return compute_node_name
