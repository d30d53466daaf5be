"""Asset movement operations (transfer, swap, bridge, vault calls)."""

from vaultflow.operations.base import AssetOperation, FlowLedger, OperationContext
from vaultflow.operations.factory import OperationSet, create_operation_set

__all__ = [
    "AssetOperation",
    "FlowLedger",
    "OperationContext",
    "OperationSet",
    "create_operation_set",
]
