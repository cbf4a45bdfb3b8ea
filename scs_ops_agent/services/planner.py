"""Diff of a desired spec against an observed instance into ordered steps."""

from typing import List

from scs_ops_agent.exceptions import ValidationError
from scs_ops_agent.models.instance import (
    DesiredSpec, InstanceHandle, ReconcileStep, OperationKind,
    ClusterTopology, MasterSlaveTopology
)


def check_fixed_fields(handle: InstanceHandle, desired: DesiredSpec) -> None:
    """Reject changes to fields that are fixed once the instance exists."""
    if desired.cluster_type != handle.cluster_type:
        raise ValidationError(
            f"cluster_type of instance {handle.instance_id} is {handle.cluster_type.value} "
            f"and cannot be changed after creation",
            field='cluster_type', value=desired.cluster_type.value
        )

    if handle.engine_version and desired.engine_version != handle.engine_version:
        raise ValidationError(
            f"engine_version of instance {handle.instance_id} cannot be changed after creation",
            field='engine_version', value=desired.engine_version
        )

    if handle.port and desired.port != handle.port:
        raise ValidationError(
            f"port of instance {handle.instance_id} cannot be changed after creation",
            field='port', value=desired.port
        )


def plan_steps(handle: InstanceHandle, desired: DesiredSpec) -> List[ReconcileStep]:
    """Return the mutations that bring ``handle`` to ``desired``, in execution order.

    Rename always comes first. Only the resize that matches the instance's
    topology is considered: node type for master/slave, shard count for
    cluster. Neither input is modified.
    """
    check_fixed_fields(handle, desired)

    steps = []
    instance_id = handle.instance_id

    if desired.instance_name != handle.instance_name:
        steps.append(ReconcileStep(
            kind=OperationKind.RENAME,
            instance_id=instance_id,
            params={'instance_name': desired.instance_name}
        ))

    topology = handle.topology
    if isinstance(topology, MasterSlaveTopology):
        if desired.node_type != topology.node_type:
            steps.append(ReconcileStep(
                kind=OperationKind.RESIZE_NODE_TYPE,
                instance_id=instance_id,
                params={'node_type': desired.node_type}
            ))
    elif isinstance(topology, ClusterTopology):
        if desired.shard_num != topology.shard_num:
            steps.append(ReconcileStep(
                kind=OperationKind.RESIZE_SHARD_NUM,
                instance_id=instance_id,
                params={'shard_num': desired.shard_num}
            ))

    return steps
