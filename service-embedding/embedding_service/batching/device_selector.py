"""Device selection for embedding inference."""

import platform
from typing import Any, Dict, Optional

import torch
import structlog

logger = structlog.get_logger("embedding_service.device_selector")


class DeviceSelector:
    """Maps symbolic device names onto available torch devices.

    Detection runs once and is cached. A requested accelerator that is not
    available falls back to CPU with a warning instead of failing.
    """

    CUDA_ALIASES = ("cuda", "gpu")
    METAL_ALIASES = ("metal", "mps")

    def __init__(self):
        self.device_info: Dict[str, Any] = {}
        self._detection_complete = False

    def detect(self) -> Dict[str, Any]:
        """Detect available accelerators."""
        if self._detection_complete:
            return self.device_info

        info = {
            "platform": platform.system(),
            "architecture": platform.machine(),
            "cuda_available": False,
            "mps_available": False,
            "cuda_device_count": 0,
            "recommended_device": "cpu",
        }

        try:
            if torch.cuda.is_available():
                info["cuda_available"] = True
                info["cuda_device_count"] = torch.cuda.device_count()
                info["recommended_device"] = "cuda:0"
            elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
                info["mps_available"] = True
                info["recommended_device"] = "mps"
        except Exception as e:
            logger.error("Accelerator detection failed", error=str(e))
            info["cuda_available"] = False
            info["mps_available"] = False
            info["recommended_device"] = "cpu"

        self.device_info = info
        self._detection_complete = True

        logger.info(
            "Device detection completed",
            cuda_available=info["cuda_available"],
            mps_available=info["mps_available"],
            cuda_device_count=info["cuda_device_count"],
            recommended_device=info["recommended_device"],
        )
        return info

    def select(self, name: Optional[str]) -> torch.device:
        """Resolve ``name`` (``cpu``, ``cuda``, ``metal``, ``auto``...) to a device."""
        info = self.detect()
        preference = (name or "cpu").strip().lower()

        if preference == "cpu":
            device = "cpu"
        elif preference in self.CUDA_ALIASES:
            if info["cuda_available"]:
                device = "cuda:0"
            else:
                logger.warning("CUDA requested but not available, falling back to CPU")
                device = "cpu"
        elif preference in self.METAL_ALIASES:
            if info["mps_available"]:
                device = "mps"
            else:
                logger.warning("Metal requested but not available, falling back to CPU")
                device = "cpu"
        elif preference == "auto":
            device = info["recommended_device"]
        else:
            logger.warning("Unknown device, falling back to CPU", requested=name)
            device = "cpu"

        logger.debug("Device selected", device=device, preference=preference)
        return torch.device(device)

    def clear_cache(self, device: torch.device) -> None:
        """Release cached accelerator memory after a model is superseded."""
        try:
            if device.type == "cuda":
                torch.cuda.empty_cache()
                logger.info("CUDA cache cleared", device=str(device))
            elif device.type == "mps" and hasattr(torch, "mps"):
                torch.mps.empty_cache()
                logger.info("MPS cache cleared", device=str(device))
        except RuntimeError as e:
            logger.warning("Failed to clear cache", device=str(device), error=str(e))
