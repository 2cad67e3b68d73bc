"""Resolve ``"module.path:function"`` references from YAML into callables."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from typing import Any

from formknobs.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def resolve_function(func_ref: str) -> Callable[..., Any]:
    """Import and return the callable named by ``func_ref``.

    Both ``"pkg.module:func"`` and ``"pkg.module.func"`` are accepted.

    Raises:
        ConfigurationError: If the reference is malformed, the module cannot be
            imported, or the attribute is missing or not callable
    """
    ref = (func_ref or "").strip()
    if ":" in ref:
        module_path, _, func_name = ref.partition(":")
    elif "." in ref:
        module_path, _, func_name = ref.rpartition(".")
    else:
        module_path, func_name = "", ref

    if not module_path or not func_name:
        raise ConfigurationError(
            f"Invalid function reference: '{func_ref}'. "
            "Expected format: 'module.path:function_name'",
            context={"reference": func_ref},
        )

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import module '{module_path}' from reference '{func_ref}': {e}",
            context={"reference": func_ref, "module": module_path},
        ) from e

    func = getattr(module, func_name, None)
    if func is None:
        raise ConfigurationError(
            f"Function '{func_name}' not found in module '{module_path}'",
            context={"reference": func_ref, "module": module_path},
        )
    if not callable(func):
        raise ConfigurationError(
            f"'{func_name}' in module '{module_path}' is not callable "
            f"(got {type(func).__name__})",
            context={"reference": func_ref},
        )
    logger.debug("Resolved function reference %s", func_ref)
    return func


def resolve_callable(
    ref: str | Callable[..., Any],
    functions: dict[str, Callable[..., Any]] | None = None,
) -> Callable[..., Any]:
    """Resolve a callable, a registered name, or a module reference."""
    if callable(ref):
        return ref
    if not isinstance(ref, str):
        raise ConfigurationError(
            f"Expected a function reference string or callable, got {type(ref).__name__}"
        )
    if functions and ref in functions:
        return functions[ref]
    return resolve_function(ref)
