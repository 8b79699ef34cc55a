"""Demonstration client for the Mercle Face ID OAuth 2.0 Authorization Code flow."""
from __future__ import annotations

from .config import DemoConfig, load_config
from .errors import (
    ExchangeError,
    ProviderError,
    SecurityError,
    TransportFault,
    VerificationError,
)
from .sequencer import ExchangeSequencer, FlowState
from .state_guard import StateGuard

__all__ = [
    "DemoConfig",
    "ExchangeError",
    "ExchangeSequencer",
    "FlowState",
    "ProviderError",
    "SecurityError",
    "StateGuard",
    "TransportFault",
    "VerificationError",
    "load_config",
]

__version__ = "0.1.0"
