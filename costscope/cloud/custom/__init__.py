"""Provider priced from the custom pricing document."""

from costscope.cloud.custom.provider import CustomNodeKey, CustomProvider, CustomPVKey

__all__ = ["CustomNodeKey", "CustomPVKey", "CustomProvider"]
