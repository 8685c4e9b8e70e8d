"""Public interface for the store package.

Exposes the kind registry, the `ManifestObject` capability wrapper and the
`KubeStore` client used by every sub-reconciler.
"""

from . import kinds
from .client import KubeStore, label_selector, load_client_config
from .kinds import ResourceKind
from .objects import ManifestObject

__all__ = [
    "kinds",
    "KubeStore",
    "ManifestObject",
    "ResourceKind",
    "label_selector",
    "load_client_config",
]
