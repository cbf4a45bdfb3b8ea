"""Abstract control-plane client for SCS instances."""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional


# Error codes returned by the SCS control plane
INTERNAL_ERROR = "InternalError"
INVALID_INSTANCE_STATUS = "InvalidInstanceStatus"
INSTANCE_NOT_EXIST = "InstanceNotExist"
RESOURCE_NOT_FOUND = "ResourceNotFound"
RELEASE_INSTANCE_FAILED = "ReleaseInstanceFailed"
OPERATION_EXCEPTION = "OperationException"


class RemoteServiceError(Exception):
    """Raw failure reported by the control plane."""

    def __init__(
        self,
        code: str,
        message: str = "",
        status_code: Optional[int] = None,
        request_id: Optional[str] = None
    ):
        super().__init__(message or code)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [f"[Code: {self.code}"]
        if self.status_code is not None:
            parts.append(f"; HTTP Status: {self.status_code}")
        if self.request_id:
            parts.append(f"; RequestId: {self.request_id}")
        return f"{self.message} {''.join(parts)}]".strip()


class ScsClient(ABC):
    """Remote operations consumed by the reconciliation engine.

    Methods may be implemented either as plain functions or as coroutines;
    the engine runs plain functions in the default executor.
    """

    @abstractmethod
    def create_instance(self, args: Dict[str, Any], client_token: str) -> str:
        """Create an instance and return its identifier."""
        pass

    @abstractmethod
    def get_instance_detail(self, instance_id: str) -> Dict[str, Any]:
        """Return the instance detail; raise a not-found error once deleted."""
        pass

    @abstractmethod
    def update_instance_name(self, instance_id: str, instance_name: str, client_token: str) -> None:
        """Rename an instance."""
        pass

    @abstractmethod
    def resize_instance(
        self,
        instance_id: str,
        node_type: Optional[str] = None,
        shard_num: Optional[int] = None
    ) -> None:
        """Change the node type or the shard count of an instance."""
        pass

    @abstractmethod
    def delete_instance(self, instance_id: str, client_token: str) -> None:
        """Release an instance."""
        pass
