"""Tests for data models and validation."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from scs_ops_agent.exceptions import ValidationError, UnexpectedStateError, RemoteOperationError
from scs_ops_agent.models.instance import (
    DesiredSpec, InstanceHandle, InstanceStatus, ClusterType, ClusterTopology, MasterSlaveTopology,
    Billing, PaymentTiming, Reservation, ReconcileStep, PendingOperation, OperationKind, parse_status
)
from scs_ops_agent.models.factory import DesiredSpecFactory, InstanceDetailFactory


class TestDesiredSpec:
    """Test DesiredSpec model."""

    def test_default_values(self):
        """Test default spec values."""
        spec = DesiredSpec(instance_name="redis-a", node_type="cache.n1.micro")

        assert spec.cluster_type == ClusterType.MASTER_SLAVE
        assert spec.shard_num == 1
        assert spec.engine_version == "3.2"
        assert spec.port == 6379
        assert spec.billing.payment_timing == PaymentTiming.POSTPAID
        assert spec.subnets == []

    @pytest.mark.parametrize("name", ["redis-a", "Redis_01/prod.v2", "缓存实例"])
    def test_valid_instance_names(self, name):
        assert DesiredSpecFactory.create_master_slave(name).instance_name == name

    @pytest.mark.parametrize("name", ["", "1redis", "-redis", "redis a", "r" * 66])
    def test_invalid_instance_names(self, name):
        with pytest.raises(PydanticValidationError) as exc_info:
            DesiredSpecFactory.create_master_slave(name)

        assert "instance_name" in str(exc_info.value)

    def test_cluster_shard_num_validation(self):
        """Cluster shard counts come from a fixed set."""
        assert DesiredSpecFactory.create_cluster(shard_num=8).shard_num == 8

        with pytest.raises(PydanticValidationError) as exc_info:
            DesiredSpecFactory.create_cluster(shard_num=3)

        assert "shard_num must be one of" in str(exc_info.value)

    def test_master_slave_has_one_shard(self):
        with pytest.raises(PydanticValidationError):
            DesiredSpec(instance_name="redis-a", node_type="cache.n1.micro", shard_num=2)

    def test_default_shard_num_rejected_for_cluster(self):
        with pytest.raises(PydanticValidationError):
            DesiredSpec(instance_name="redis-a", node_type="cache.n1.micro", cluster_type=ClusterType.CLUSTER)

    def test_engine_version_validation(self):
        assert DesiredSpecFactory.create_master_slave(engine_version="4.0").engine_version == "4.0"

        with pytest.raises(PydanticValidationError):
            DesiredSpecFactory.create_master_slave(engine_version="5.0")

    def test_auto_renew_requires_prepaid(self):
        with pytest.raises(PydanticValidationError) as exc_info:
            DesiredSpecFactory.create_master_slave(auto_renew_time_unit="month", auto_renew_time_length=1)

        assert "Prepaid" in str(exc_info.value)

    @pytest.mark.parametrize("unit,length", [("month", 10), ("year", 4), ("month", 0)])
    def test_auto_renew_length_bounds(self, unit, length):
        with pytest.raises(PydanticValidationError):
            DesiredSpec(
                instance_name="redis-a",
                node_type="cache.n1.micro",
                billing=Billing(payment_timing=PaymentTiming.PREPAID),
                auto_renew_time_unit=unit,
                auto_renew_time_length=length
            )

    def test_reservation_validation(self):
        assert Reservation(reservation_length=24).reservation_length == 24
        assert Reservation(reservation_time_unit="month").reservation_time_unit == "Month"

        with pytest.raises(PydanticValidationError):
            Reservation(reservation_length=10)
        with pytest.raises(PydanticValidationError):
            Reservation(reservation_time_unit="Year")

    def test_spec_is_immutable(self):
        spec = DesiredSpecFactory.create_master_slave()

        with pytest.raises(TypeError):
            spec.node_type = "cache.n1.large"

    def test_topology(self):
        assert DesiredSpecFactory.create_master_slave(node_type="A").topology() == \
            MasterSlaveTopology(node_type="A")
        assert DesiredSpecFactory.create_cluster(shard_num=4).topology() == ClusterTopology(shard_num=4)


class TestDesiredSpecFromConfig:
    """Test DesiredSpec.from_config()."""

    def test_valid_mapping(self):
        spec = DesiredSpec.from_config({
            'instance_name': 'redis-a',
            'node_type': 'cache.n1.small',
            'cluster_type': 'cluster',
            'shard_num': 4,
            'subnets': [{'subnet_id': 'sbn-1', 'zone_name': 'cn-bj-a'}]
        })

        assert spec.cluster_type == ClusterType.CLUSTER
        assert spec.subnets[0].subnet_id == 'sbn-1'

    def test_invalid_mapping_names_field(self):
        with pytest.raises(ValidationError) as exc_info:
            DesiredSpec.from_config({'instance_name': 'redis-a', 'node_type': 'x', 'port': 0})

        assert exc_info.value.details['field'] == 'port'
        assert exc_info.value.error_code.value == 'VALIDATION_ERROR'

    def test_missing_required_field(self):
        with pytest.raises(ValidationError) as exc_info:
            DesiredSpec.from_config({'instance_name': 'redis-a'})

        assert exc_info.value.details['field'] == 'node_type'


class TestCreateArgs:
    """Test DesiredSpec.to_create_args()."""

    def test_postpaid_omits_reservation(self):
        """Reservation and auto renewal are sent only for prepaid instances."""
        spec = DesiredSpecFactory.create_master_slave(
            billing=Billing(payment_timing=PaymentTiming.POSTPAID, reservation=Reservation(reservation_length=12))
        )

        args = spec.to_create_args()

        assert args['billing'] == {'paymentTiming': 'Postpaid'}
        assert 'autoRenewTimeUnit' not in args
        assert args['instanceName'] == "terraform-redis"
        assert args['clusterType'] == "master_slave"
        assert args['shardNum'] == 1

    def test_prepaid_includes_reservation(self):
        args = DesiredSpecFactory.create_prepaid(reservation_length=3).to_create_args()

        assert args['billing']['reservation'] == {'reservationLength': 3, 'reservationTimeUnit': 'Month'}
        assert args['autoRenewTimeUnit'] == 'month'

    def test_placement(self):
        spec = DesiredSpecFactory.create_master_slave(
            vpc_id="vpc-1",
            subnets=[{'subnet_id': 'sbn-1', 'zone_name': 'cn-bj-a'}]
        )

        args = spec.to_create_args()

        assert args['vpcId'] == "vpc-1"
        assert args['subnets'] == [{'subnetId': 'sbn-1', 'zoneName': 'cn-bj-a'}]


class TestInstanceHandle:
    """Test InstanceHandle.from_detail()."""

    def test_master_slave_detail(self):
        detail = InstanceDetailFactory.create_detail(
            instance_id="scs-1",
            node_type="cache.n1.small",
            tags=[{'tagKey': 'env', 'tagValue': 'prod'}]
        )

        handle = InstanceHandle.from_detail("scs-1", detail)

        assert handle.instance_id == "scs-1"
        assert handle.status == InstanceStatus.RUNNING
        assert handle.cluster_type == ClusterType.MASTER_SLAVE
        assert handle.topology == MasterSlaveTopology(node_type="cache.n1.small")
        assert handle.v_net_ip == "192.168.0.10"
        assert handle.zone_names == ['cn-bj-a']
        assert handle.tags == {'env': 'prod'}

    def test_cluster_detail(self):
        detail = InstanceDetailFactory.create_detail(
            instance_id="scs-2", cluster_type=ClusterType.CLUSTER, shard_num=6,
            status=InstanceStatus.MODIFYING
        )

        handle = InstanceHandle.from_detail("scs-2", detail)

        assert handle.cluster_type == ClusterType.CLUSTER
        assert isinstance(handle.topology, ClusterTopology)
        assert handle.topology.shard_num == 6
        assert handle.status == InstanceStatus.MODIFYING

    def test_unknown_cluster_type(self):
        detail = InstanceDetailFactory.create_detail(instance_id="scs-3", clusterType="sentinel")

        with pytest.raises(ValidationError):
            InstanceHandle.from_detail("scs-3", detail)

    def test_unknown_status(self):
        detail = InstanceDetailFactory.create_detail(instance_id="scs-4", instanceStatus="Hibernating")

        with pytest.raises(UnexpectedStateError) as exc_info:
            InstanceHandle.from_detail("scs-4", detail)

        assert exc_info.value.status == "Hibernating"

    def test_null_field_raises_package_error(self):
        detail = InstanceDetailFactory.create_detail(instance_id="scs-5", instanceName=None)

        with pytest.raises(RemoteOperationError) as exc_info:
            InstanceHandle.from_detail("scs-5", detail)

        assert exc_info.value.details['instance_id'] == "scs-5"
        assert exc_info.value.details['operation'] == "read"
        assert isinstance(exc_info.value.cause, PydanticValidationError)

    def test_parse_status(self):
        assert parse_status("Paused") == InstanceStatus.PAUSED


class TestSteps:
    """Test ReconcileStep and PendingOperation."""

    def test_describe(self):
        step = ReconcileStep(kind=OperationKind.RESIZE_SHARD_NUM, instance_id="scs-1", params={'shard_num': 4})

        assert step.describe() == "resize_shard_num(shard_num=4)"

    def test_pending_operation_deadline(self):
        pending = PendingOperation(kind=OperationKind.DELETE, instance_id="scs-1", client_token="t", timeout=60)

        assert (pending.deadline - pending.issued_at).total_seconds() == 60

    def test_pending_operation_requires_positive_timeout(self):
        with pytest.raises(PydanticValidationError):
            PendingOperation(kind=OperationKind.CREATE, client_token="t", timeout=0)
