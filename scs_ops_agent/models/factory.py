"""Factory classes for creating test data and model instances."""

from typing import Dict, Any, Optional
import uuid

from scs_ops_agent.models.instance import (
    DesiredSpec, InstanceHandle, InstanceStatus, ClusterType, Billing,
    PaymentTiming, Reservation
)


class DesiredSpecFactory:
    """Factory for creating DesiredSpec instances."""

    @staticmethod
    def create_master_slave(
        instance_name: str = "terraform-redis",
        node_type: str = "cache.n1.micro",
        **overrides: Any
    ) -> DesiredSpec:
        """Create a master/slave desired spec."""
        return DesiredSpec(
            instance_name=instance_name,
            node_type=node_type,
            cluster_type=ClusterType.MASTER_SLAVE,
            shard_num=1,
            **overrides
        )

    @staticmethod
    def create_cluster(
        instance_name: str = "terraform-redis-cluster",
        shard_num: int = 2,
        node_type: str = "cache.n1.small",
        **overrides: Any
    ) -> DesiredSpec:
        """Create a cluster desired spec."""
        return DesiredSpec(
            instance_name=instance_name,
            node_type=node_type,
            cluster_type=ClusterType.CLUSTER,
            shard_num=shard_num,
            **overrides
        )

    @staticmethod
    def create_prepaid(instance_name: str = "prepaid-redis", reservation_length: int = 1) -> DesiredSpec:
        """Create a prepaid master/slave desired spec with monthly auto renewal."""
        return DesiredSpec(
            instance_name=instance_name,
            node_type="cache.n1.micro",
            billing=Billing(
                payment_timing=PaymentTiming.PREPAID,
                reservation=Reservation(reservation_length=reservation_length)
            ),
            auto_renew_time_unit="month",
            auto_renew_time_length=1
        )


class InstanceDetailFactory:
    """Factory for control-plane instance detail documents."""

    @staticmethod
    def create_detail(
        instance_id: Optional[str] = None,
        status: InstanceStatus = InstanceStatus.RUNNING,
        instance_name: str = "terraform-redis",
        cluster_type: ClusterType = ClusterType.MASTER_SLAVE,
        node_type: str = "cache.n1.micro",
        shard_num: int = 1,
        **overrides: Any
    ) -> Dict[str, Any]:
        """Create an instance detail as returned by the control plane."""
        detail = {
            'instanceId': instance_id or f"scs-{uuid.uuid4().hex[:8]}",
            'instanceName': instance_name,
            'instanceStatus': status.value,
            'clusterType': cluster_type.value,
            'nodeType': node_type,
            'shardNum': shard_num,
            'engine': 'redis',
            'engineVersion': '3.2',
            'port': 6379,
            'domain': 'redis.example.internal',
            'vnetIp': '192.168.0.10',
            'capacity': 1,
            'usedCapacity': 0,
            'paymentTiming': PaymentTiming.POSTPAID.value,
            'zoneNames': ['cn-bj-a'],
            'vpcId': 'vpc-default',
            'subnets': [{'subnetId': 'sbn-default', 'zoneName': 'cn-bj-a'}],
            'autoRenew': False,
            'tags': [],
            'instanceCreateTime': '2026-01-01T00:00:00Z',
            'instanceExpireTime': '',
        }
        detail.update(overrides)
        return detail

    @staticmethod
    def create_handle(instance_id: str = "scs-test", **kwargs: Any) -> InstanceHandle:
        """Create an observed handle from a generated detail."""
        detail = InstanceDetailFactory.create_detail(instance_id=instance_id, **kwargs)
        return InstanceHandle.from_detail(instance_id, detail)
