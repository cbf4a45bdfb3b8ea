"""SCS instance models: statuses, topology, desired spec and observed handle."""

import re
from pydantic import BaseModel, Field, validator
from pydantic import ValidationError as PydanticValidationError
from typing import Dict, Any, Optional, List, Union, Literal
from enum import Enum
from datetime import datetime, timedelta

from scs_ops_agent.exceptions import ValidationError, UnexpectedStateError, RemoteOperationError


class InstanceStatus(str, Enum):
    """Status reported by the control plane for an SCS instance."""
    CREATING = "Creating"
    RUNNING = "Running"
    MODIFYING = "Modifying"
    MODIFY_FAILED = "ModifyFailed"
    PAUSING = "Pausing"
    PAUSED = "Paused"
    DELETING = "Deleting"
    DELETED = "Deleted"
    ISOLATED = "Isolated"
    FAILED = "Failed"
    EXPIRED = "Expired"


class OperationKind(str, Enum):
    """Kinds of control-plane operations issued by the engine."""
    CREATE = "create"
    READ = "read"
    RENAME = "rename"
    RESIZE_NODE_TYPE = "resize_node_type"
    RESIZE_SHARD_NUM = "resize_shard_num"
    DELETE = "delete"


class ClusterType(str, Enum):
    """Structural mode of an instance, fixed at creation."""
    CLUSTER = "cluster"
    MASTER_SLAVE = "master_slave"


class PaymentTiming(str, Enum):
    """Billing payment timing."""
    PREPAID = "Prepaid"
    POSTPAID = "Postpaid"


ALLOWED_CLUSTER_SHARD_NUMS = (2, 4, 6, 8, 12, 16, 24, 32, 48, 64, 96, 128)
ALLOWED_ENGINE_VERSIONS = ("3.2", "4.0")
ALLOWED_RESERVATION_LENGTHS = (1, 2, 3, 4, 5, 6, 7, 8, 9, 12, 24, 36)

INSTANCE_NAME_PATTERN = re.compile(r'^[a-zA-Z\u4e00-\u9fa5][a-zA-Z0-9\u4e00-\u9fa5\-_/.]{0,64}$')

# Terminal statuses that all count as "gone" once a delete was accepted.
DELETE_TARGET_STATUSES = frozenset({
    InstanceStatus.PAUSED,
    InstanceStatus.DELETED,
    InstanceStatus.ISOLATED,
})

CREATE_BAD_STATUSES = frozenset({
    InstanceStatus.PAUSING,
    InstanceStatus.PAUSED,
    InstanceStatus.DELETED,
    InstanceStatus.DELETING,
    InstanceStatus.FAILED,
    InstanceStatus.MODIFYING,
    InstanceStatus.MODIFY_FAILED,
    InstanceStatus.EXPIRED,
})

UPDATE_BAD_STATUSES = frozenset({
    InstanceStatus.MODIFY_FAILED,
    InstanceStatus.FAILED,
    InstanceStatus.PAUSING,
    InstanceStatus.PAUSED,
    InstanceStatus.DELETING,
    InstanceStatus.DELETED,
    InstanceStatus.ISOLATED,
    InstanceStatus.EXPIRED,
})


def parse_status(raw: Any, instance_id: Optional[str] = None,
                 operation: Optional[str] = None) -> InstanceStatus:
    """Parse a raw status string, rejecting anything outside InstanceStatus."""
    try:
        return InstanceStatus(raw)
    except ValueError:
        raise UnexpectedStateError(str(raw), operation=operation, instance_id=instance_id)


class ClusterTopology(BaseModel):
    """Clustered instance; resized by changing the shard count."""
    cluster_type: Literal["cluster"] = "cluster"
    shard_num: int = Field(..., description="Number of shards", ge=1)

    class Config:
        frozen = True


class MasterSlaveTopology(BaseModel):
    """Master/slave instance; resized by changing the node type."""
    cluster_type: Literal["master_slave"] = "master_slave"
    node_type: str = Field(..., description="Node specification, e.g. cache.n1.micro")

    class Config:
        frozen = True


Topology = Union[ClusterTopology, MasterSlaveTopology]


class Reservation(BaseModel):
    """Reservation terms for prepaid instances."""
    reservation_length: int = Field(default=1, description="Reservation length")
    reservation_time_unit: str = Field(default="Month", description="Reservation time unit")

    class Config:
        frozen = True

    @validator('reservation_length')
    def validate_reservation_length(cls, v):
        """Validate reservation length against the allowed terms."""
        if v not in ALLOWED_RESERVATION_LENGTHS:
            raise ValueError(f"reservation_length must be one of {list(ALLOWED_RESERVATION_LENGTHS)}")
        return v

    @validator('reservation_time_unit')
    def validate_reservation_time_unit(cls, v):
        """Only monthly reservations are supported."""
        if v.lower() != "month":
            raise ValueError("reservation_time_unit must be Month")
        return "Month"


class Billing(BaseModel):
    """Billing terms of an instance."""
    payment_timing: PaymentTiming = Field(default=PaymentTiming.POSTPAID, description="Payment timing")
    reservation: Optional[Reservation] = Field(None, description="Reservation, used only when Prepaid")

    class Config:
        frozen = True


class Subnet(BaseModel):
    """Subnet placement of an instance."""
    subnet_id: str = Field(..., description="Subnet identifier")
    zone_name: str = Field(..., description="Availability zone name")

    class Config:
        frozen = True


class DesiredSpec(BaseModel):
    """Immutable snapshot of the target configuration of an SCS instance."""
    instance_name: str = Field(..., description="Name of the instance")
    node_type: str = Field(..., description="Node specification, e.g. cache.n1.micro")
    cluster_type: ClusterType = Field(default=ClusterType.MASTER_SLAVE, description="Topology, fixed at creation")
    shard_num: int = Field(default=1, description="Number of shards")
    engine_version: str = Field(default="3.2", description="Engine version, fixed at creation")
    port: int = Field(default=6379, description="Access port, fixed at creation", ge=1, le=65535)
    proxy_num: int = Field(default=0, description="Number of proxies", ge=0)
    replication_num: int = Field(default=2, description="Number of replicas", ge=1)
    purchase_count: int = Field(default=1, description="Number of instances to buy", ge=1)
    vpc_id: Optional[str] = Field(None, description="VPC identifier")
    subnets: List[Subnet] = Field(default_factory=list, description="Subnet placements")
    billing: Billing = Field(default_factory=Billing, description="Billing terms")
    auto_renew_time_unit: Optional[str] = Field(None, description="Auto renewal unit (month or year)")
    auto_renew_time_length: Optional[int] = Field(None, description="Auto renewal length")

    class Config:
        frozen = True

    @validator('instance_name')
    def validate_instance_name(cls, v):
        """Validate instance name format."""
        if not INSTANCE_NAME_PATTERN.match(v):
            raise ValueError(
                "instance_name must start with a letter, be 1-65 characters long and "
                "contain only letters, digits, Chinese characters and '-', '_', '/', '.'"
            )
        return v

    @validator('shard_num', always=True)
    def validate_shard_num(cls, v, values):
        """Validate shard count against the topology."""
        cluster_type = values.get('cluster_type')
        if cluster_type == ClusterType.CLUSTER and v not in ALLOWED_CLUSTER_SHARD_NUMS:
            raise ValueError(f"shard_num must be one of {list(ALLOWED_CLUSTER_SHARD_NUMS)} for cluster instances")
        if cluster_type == ClusterType.MASTER_SLAVE and v != 1:
            raise ValueError("shard_num must be 1 for master_slave instances")
        return v

    @validator('engine_version')
    def validate_engine_version(cls, v):
        """Validate engine version."""
        if v not in ALLOWED_ENGINE_VERSIONS:
            raise ValueError(f"engine_version must be one of {list(ALLOWED_ENGINE_VERSIONS)}")
        return v

    @validator('auto_renew_time_unit')
    def validate_auto_renew_time_unit(cls, v, values):
        """Auto renewal is only available for prepaid instances."""
        if v is None:
            return v
        if v not in ('month', 'year'):
            raise ValueError("auto_renew_time_unit must be month or year")
        billing = values.get('billing')
        if billing is not None and billing.payment_timing != PaymentTiming.PREPAID:
            raise ValueError("auto_renew_time_unit is only valid when payment_timing is Prepaid")
        return v

    @validator('auto_renew_time_length')
    def validate_auto_renew_time_length(cls, v, values):
        """Validate auto renewal length against its unit."""
        if v is None:
            return v
        unit = values.get('auto_renew_time_unit')
        if unit == 'month' and not 1 <= v <= 9:
            raise ValueError("auto_renew_time_length must be 1-9 when auto_renew_time_unit is month")
        if unit == 'year' and not 1 <= v <= 3:
            raise ValueError("auto_renew_time_length must be 1-3 when auto_renew_time_unit is year")
        return v

    @classmethod
    def from_config(cls, data: Dict[str, Any]) -> 'DesiredSpec':
        """Build a desired spec from a plain mapping, raising ValidationError on bad input."""
        try:
            return cls(**data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get('loc', ()))
            raise ValidationError(f"Invalid desired spec: {first.get('msg')}", field=field or None) from e
        except TypeError as e:
            raise ValidationError(f"Invalid desired spec: {e}") from e

    def topology(self) -> Topology:
        """Return the tagged topology variant of this spec."""
        if self.cluster_type == ClusterType.CLUSTER:
            return ClusterTopology(shard_num=self.shard_num)
        return MasterSlaveTopology(node_type=self.node_type)

    def to_create_args(self) -> Dict[str, Any]:
        """Build the create request body expected by the control plane."""
        billing: Dict[str, Any] = {'paymentTiming': self.billing.payment_timing.value}
        args: Dict[str, Any] = {
            'instanceName': self.instance_name,
            'nodeType': self.node_type,
            'clusterType': self.cluster_type.value,
            'shardNum': self.shard_num,
            'engineVersion': self.engine_version,
            'port': self.port,
            'proxyNum': self.proxy_num,
            'replicationNum': self.replication_num,
            'purchaseCount': self.purchase_count,
            'billing': billing,
        }

        if self.billing.payment_timing == PaymentTiming.PREPAID:
            reservation = self.billing.reservation or Reservation()
            billing['reservation'] = {
                'reservationLength': reservation.reservation_length,
                'reservationTimeUnit': reservation.reservation_time_unit,
            }
            # Auto renewal only takes effect when the unit is set.
            if self.auto_renew_time_unit:
                args['autoRenewTimeUnit'] = self.auto_renew_time_unit
                args['autoRenewTime'] = self.auto_renew_time_length or 1

        if self.vpc_id:
            args['vpcId'] = self.vpc_id
        if self.subnets:
            args['subnets'] = [
                {'subnetId': subnet.subnet_id, 'zoneName': subnet.zone_name}
                for subnet in self.subnets
            ]

        return args


class InstanceHandle(BaseModel):
    """Observed state of a remote SCS instance."""
    instance_id: str = Field(..., description="Remote instance identifier, immutable")
    instance_name: str = Field(..., description="Current instance name")
    status: InstanceStatus = Field(..., description="Current instance status")
    topology: Topology = Field(..., description="Topology variant", discriminator='cluster_type')
    node_type: Optional[str] = Field(None, description="Current node specification")
    engine: Optional[str] = Field(None, description="Engine, e.g. redis")
    engine_version: Optional[str] = Field(None, description="Engine version")
    port: Optional[int] = Field(None, description="Access port")
    domain: Optional[str] = Field(None, description="Access domain")
    v_net_ip: Optional[str] = Field(None, description="Internal access IP")
    capacity: Optional[int] = Field(None, description="Memory capacity in GB")
    used_capacity: Optional[int] = Field(None, description="Used memory capacity in GB")
    payment_timing: Optional[str] = Field(None, description="Payment timing")
    zone_names: List[str] = Field(default_factory=list, description="Zone names")
    vpc_id: Optional[str] = Field(None, description="VPC identifier")
    subnets: List[Subnet] = Field(default_factory=list, description="Subnet placements")
    auto_renew: Optional[bool] = Field(None, description="Whether auto renewal is on")
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")
    create_time: Optional[str] = Field(None, description="Creation time")
    expire_time: Optional[str] = Field(None, description="Expiry time")

    class Config:
        frozen = True

    @property
    def cluster_type(self) -> ClusterType:
        return ClusterType(self.topology.cluster_type)

    @classmethod
    def from_detail(cls, instance_id: str, detail: Dict[str, Any]) -> 'InstanceHandle':
        """Build a handle from a control-plane instance detail document."""
        status = parse_status(detail.get('instanceStatus'), instance_id=instance_id,
                              operation=OperationKind.READ.value)

        cluster_type = detail.get('clusterType', ClusterType.MASTER_SLAVE.value)
        if cluster_type not in (ClusterType.CLUSTER.value, ClusterType.MASTER_SLAVE.value):
            raise ValidationError(f"Unknown cluster type '{cluster_type}'", field='clusterType', value=cluster_type)

        try:
            return cls._from_valid_detail(instance_id, detail, status, cluster_type)
        except (PydanticValidationError, TypeError, AttributeError) as e:
            raise RemoteOperationError(
                f"Malformed detail for SCS instance '{instance_id}': {e}",
                operation=OperationKind.READ.value,
                instance_id=instance_id,
                cause=e
            ) from e

    @classmethod
    def _from_valid_detail(
        cls,
        instance_id: str,
        detail: Dict[str, Any],
        status: InstanceStatus,
        cluster_type: str
    ) -> 'InstanceHandle':
        if cluster_type == ClusterType.CLUSTER.value:
            topology = ClusterTopology(shard_num=detail.get('shardNum', 1))
        else:
            topology = MasterSlaveTopology(node_type=detail.get('nodeType', ''))

        subnets = [
            Subnet(subnet_id=subnet.get('subnetId', ''), zone_name=subnet.get('zoneName', ''))
            for subnet in detail.get('subnets') or []
        ]
        tags = {tag['tagKey']: tag.get('tagValue', '') for tag in detail.get('tags') or [] if 'tagKey' in tag}

        return cls(
            instance_id=detail.get('instanceId') or instance_id,
            instance_name=detail.get('instanceName', ''),
            status=status,
            topology=topology,
            node_type=detail.get('nodeType'),
            engine=detail.get('engine'),
            engine_version=detail.get('engineVersion'),
            port=detail.get('port'),
            domain=detail.get('domain'),
            v_net_ip=detail.get('vnetIp'),
            capacity=detail.get('capacity'),
            used_capacity=detail.get('usedCapacity'),
            payment_timing=detail.get('paymentTiming'),
            zone_names=detail.get('zoneNames') or [],
            vpc_id=detail.get('vpcId'),
            subnets=subnets,
            auto_renew=detail.get('autoRenew'),
            tags=tags,
            create_time=detail.get('instanceCreateTime'),
            expire_time=detail.get('instanceExpireTime'),
        )


class ReconcileStep(BaseModel):
    """One mutation of an update plan."""
    kind: OperationKind = Field(..., description="Kind of mutation")
    instance_id: str = Field(..., description="Target instance")
    params: Dict[str, Any] = Field(default_factory=dict, description="Mutation parameters")

    class Config:
        frozen = True

    def describe(self) -> str:
        changes = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.kind.value}({changes})"


class PendingOperation(BaseModel):
    """An operation issued against an instance and not yet converged."""
    kind: OperationKind = Field(..., description="Kind of operation")
    instance_id: Optional[str] = Field(None, description="Target instance, unknown until create returns")
    client_token: str = Field(..., description="Idempotency token shared by every attempt")
    timeout: float = Field(..., description="Timeout budget in seconds", gt=0)
    issued_at: datetime = Field(default_factory=datetime.utcnow, description="Issue timestamp")

    @property
    def deadline(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.timeout)
