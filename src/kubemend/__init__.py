"""KubeMend: fault-tolerant repair for Kubernetes YAML manifests."""

__version__ = "1.0.0"

from kubemend.core.models import FixerOptions, FixResult, FixChange
from kubemend.healing.pipeline import MultiPassFixer, fix_content

__all__ = ["FixerOptions", "FixResult", "FixChange", "MultiPassFixer", "fix_content", "__version__"]
