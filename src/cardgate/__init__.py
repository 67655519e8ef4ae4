"""cardgate — policy- and human-gated access to a stored payment card for AI agents."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from cardgate.gatekeeper.gatekeeper import Gatekeeper as Gatekeeper
    from cardgate.gatekeeper.models import PaymentRequest as PaymentRequest

_LAZY_EXPORTS = {
    "Gatekeeper": "cardgate.gatekeeper.gatekeeper",
    "PaymentRequest": "cardgate.gatekeeper.models",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'cardgate' has no attribute {name!r}")
