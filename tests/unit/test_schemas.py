"""Unit tests for ComputeNode spec (de)serialization."""

import pytest
from marshmallow import ValidationError
from shardingsphere_operator.types.models import PortBinding
from shardingsphere_operator.types.schemas import (
    ComputeNodeSpecSchema,
    PortBindingSchema,
)


class TestComputeNodeSpecSchema:
    def test_defaults(self):
        spec = ComputeNodeSpecSchema().load({})
        assert spec.replicas == 1
        assert spec.service_type == "ClusterIP"
        assert spec.port_bindings == []
        assert spec.selector.match_labels == {}
        assert spec.server_version is None
        assert spec.bootstrap is None

    def test_full_spec(self, compute_node_body):
        spec = ComputeNodeSpecSchema().load(compute_node_body["spec"])
        assert spec.replicas == 3
        assert spec.service_type == "NodePort"
        assert spec.selector.match_labels == {"app": "proxy"}
        binding = spec.port_bindings[0]
        assert isinstance(binding, PortBinding)
        assert binding.name == "server"
        assert binding.container_port == 3307
        assert binding.node_port == 0
        assert spec.bootstrap.server_config["props"] == {
            "proxy-frontend-database-protocol-type": "MySQL"
        }

    def test_rejects_unsupported_service_type(self):
        with pytest.raises(ValidationError):
            ComputeNodeSpecSchema().load({"serviceType": "Headless"})

    def test_probes(self):
        spec = ComputeNodeSpecSchema().load(
            {"probes": {"livenessProbe": {"tcpSocket": {"port": 3307}}}}
        )
        assert spec.probes.liveness_probe == {"tcpSocket": {"port": 3307}}
        assert spec.probes.readiness_probe is None


class TestPortBindingSchema:
    def test_protocol_defaults_to_tcp(self):
        binding = PortBindingSchema().load(
            {"name": "server", "containerPort": 3307, "servicePort": 3308}
        )
        assert binding.protocol == "TCP"
        assert binding.service_port == 3308

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            PortBindingSchema().load({"name": "server", "containerPort": 3307})

    def test_unknown_fields_are_dropped(self):
        binding = PortBindingSchema().load(
            {"name": "server", "containerPort": 3307, "servicePort": 3307, "hostPort": 1}
        )
        assert not hasattr(binding, "hostPort")

    def test_dump_uses_wire_names(self):
        binding = PortBinding(
            name="server",
            container_port=3307,
            service_port=3307,
            protocol="TCP",
            node_port=30080,
        )
        assert PortBindingSchema(many=True).dump([binding]) == [
            {
                "name": "server",
                "containerPort": 3307,
                "servicePort": 3307,
                "protocol": "TCP",
                "nodePort": 30080,
            }
        ]

    def test_replace_returns_new_binding(self):
        binding = PortBindingSchema().load(
            {"name": "server", "containerPort": 3307, "servicePort": 3307}
        )
        updated = binding.replace(node_port=30080)
        assert updated.node_port == 30080
        assert binding.node_port == 0
        assert updated != binding
