# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import importlib
import logging
import pkgutil
from typing import Dict, Type

from .provider_interface import ProviderAdapter, RequestOptions, UpstreamRequest

# --- Provider Adapter Registry ---

# Maps provider name (as used by the model registry) to its adapter class
PROVIDER_ADAPTERS: Dict[str, Type[ProviderAdapter]] = {}


def _register_providers():
    """
    Discovers adapter classes in this package.

    Every ``*_provider`` module is imported and any concrete ProviderAdapter
    subclass is registered under its ``provider_name``.
    """
    for _, module_name, _ in pkgutil.iter_modules(__path__):
        if not module_name.endswith("_provider"):
            continue
        module = importlib.import_module(f"{__name__}.{module_name}")

        for attribute_name in dir(module):
            attribute = getattr(module, attribute_name)
            if (
                isinstance(attribute, type)
                and issubclass(attribute, ProviderAdapter)
                and attribute is not ProviderAdapter
                and attribute.provider_name
            ):
                PROVIDER_ADAPTERS[attribute.provider_name] = attribute
                logging.getLogger("bridge_library").debug(
                    f"Registered provider: {attribute.provider_name}"
                )


def get_adapter(provider: str) -> ProviderAdapter:
    try:
        adapter_class = PROVIDER_ADAPTERS[provider]
    except KeyError:
        raise ValueError(f"No adapter registered for provider '{provider}'") from None
    return adapter_class()


# Discover and register providers when the package is imported
_register_providers()

__all__ = [
    "PROVIDER_ADAPTERS",
    "ProviderAdapter",
    "RequestOptions",
    "UpstreamRequest",
    "get_adapter",
]
