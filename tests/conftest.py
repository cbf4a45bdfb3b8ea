"""Pytest configuration and fixtures."""

import pytest
from typing import Any, Dict, List, Optional

from scs_ops_agent.clients.base import ScsClient, RemoteServiceError, INSTANCE_NOT_EXIST
from scs_ops_agent.config import TimeoutConfig
from scs_ops_agent.models.factory import InstanceDetailFactory
from scs_ops_agent.models.instance import InstanceStatus
from scs_ops_agent.services.reconciler import ReconciliationService


def not_found_error() -> RemoteServiceError:
    return RemoteServiceError(INSTANCE_NOT_EXIST, "instance does not exist", status_code=404)


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeScsClient(ScsClient):
    """In-memory control plane with scripted statuses and failures.

    ``statuses`` feeds successive ``get_instance_detail`` calls; an entry may
    be an ``InstanceStatus`` or an exception to raise. Once the script runs
    out, the last reported status keeps being returned.
    """

    def __init__(self, detail: Optional[Dict[str, Any]] = None, statuses: Optional[List[Any]] = None):
        self.detail = detail or InstanceDetailFactory.create_detail(instance_id="scs-test")
        self.statuses = list(statuses or [])
        self.failures: Dict[str, List[Exception]] = {}
        self.calls: List[tuple] = []
        self.gone = False

    def fail(self, method: str, *errors: Exception) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def method_calls(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method,) + args)
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def create_instance(self, args, client_token):
        self._record('create_instance', args, client_token)
        self.detail.update({
            'instanceName': args['instanceName'],
            'clusterType': args['clusterType'],
            'nodeType': args['nodeType'],
            'shardNum': args['shardNum'],
            'instanceStatus': InstanceStatus.CREATING.value,
        })
        return self.detail['instanceId']

    def get_instance_detail(self, instance_id):
        self._record('get_instance_detail', instance_id)
        if self.statuses:
            status = self.statuses.pop(0)
            if isinstance(status, Exception):
                raise status
            self.detail['instanceStatus'] = status.value
        if self.gone:
            raise not_found_error()
        return dict(self.detail)

    def update_instance_name(self, instance_id, instance_name, client_token):
        self._record('update_instance_name', instance_id, instance_name, client_token)
        self.detail['instanceName'] = instance_name

    def resize_instance(self, instance_id, node_type=None, shard_num=None):
        self._record('resize_instance', instance_id, node_type, shard_num)
        if node_type is not None:
            self.detail['nodeType'] = node_type
        if shard_num is not None:
            self.detail['shardNum'] = shard_num

    def delete_instance(self, instance_id, client_token):
        self._record('delete_instance', instance_id, client_token)


class LaggingScsClient(FakeScsClient):
    """Control plane that accepts a resize at once but applies it only while reporting Modifying."""

    def __init__(self, detail: Optional[Dict[str, Any]] = None, statuses: Optional[List[Any]] = None):
        super().__init__(detail=detail, statuses=statuses)
        self.pending: Dict[str, Any] = {}

    def resize_instance(self, instance_id, node_type=None, shard_num=None):
        self._record('resize_instance', instance_id, node_type, shard_num)
        if node_type is not None:
            self.pending['nodeType'] = node_type
        if shard_num is not None:
            self.pending['shardNum'] = shard_num

    def get_instance_detail(self, instance_id):
        detail = super().get_instance_detail(instance_id)
        if self.pending and detail['instanceStatus'] == InstanceStatus.MODIFYING.value:
            self.detail.update(self.pending)
            self.pending.clear()
            detail = dict(self.detail)
        return detail


class FakeScsFleet(ScsClient):
    """Several fake instances behind one client, keyed by instance id."""

    def __init__(self, *instance_ids: str):
        self.instances = {
            instance_id: FakeScsClient(detail=InstanceDetailFactory.create_detail(instance_id=instance_id))
            for instance_id in instance_ids
        }

    def create_instance(self, args, client_token):
        raise RemoteServiceError("NotSupported", "fleet does not create instances", status_code=400)

    def get_instance_detail(self, instance_id):
        return self.instances[instance_id].get_instance_detail(instance_id)

    def update_instance_name(self, instance_id, instance_name, client_token):
        self.instances[instance_id].update_instance_name(instance_id, instance_name, client_token)

    def resize_instance(self, instance_id, node_type=None, shard_num=None):
        self.instances[instance_id].resize_instance(instance_id, node_type=node_type, shard_num=shard_num)

    def delete_instance(self, instance_id, client_token):
        self.instances[instance_id].delete_instance(instance_id, client_token)


@pytest.fixture
def clock():
    """Fake clock shared by the invoker and the waiter."""
    return FakeClock()


@pytest.fixture
def timeouts():
    """Short timeouts: six poll intervals per operation."""
    return TimeoutConfig(
        create_timeout=60,
        update_timeout=60,
        delete_timeout=60,
        read_timeout=30,
        poll_interval=10
    )


@pytest.fixture
def fake_client():
    """Fake control plane holding one Running master/slave instance."""
    return FakeScsClient()


@pytest.fixture
def service(fake_client, timeouts, clock):
    """Reconciliation service wired to the fake control plane and clock."""
    return ReconciliationService(fake_client, timeouts=timeouts, clock=clock, sleep=clock.sleep)
