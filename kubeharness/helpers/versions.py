"""
Detecting the harness's own version.

The version is determined only once at startup when the code is loaded,
from the installed package's metadata. When running from the source tree
without installation, the version is unknown (``None``).
"""
import importlib.metadata
from typing import Optional

version: Optional[str] = None

try:
    name, *_ = __name__.split('.')  # usually "kubeharness", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # running from the source tree.
