"""
SolForge Agent

Natural-language Solana transaction agent: parses a prompt into a typed
intent, simulates it, signs it with the server-held agent wallet and submits
it to the chosen cluster.
"""

__version__ = "1.0.0"

from .config import get_settings, Settings
from .executor import AgentExecutor, ExecutionRequest
from .intent_parser import IntentParser
from .wallet import AgentWallet

__all__ = [
    "__version__",
    "get_settings",
    "Settings",
    "AgentExecutor",
    "ExecutionRequest",
    "IntentParser",
    "AgentWallet",
]
