from .llm import (
    ChatOracle,
    Oracle,
    OracleError,
    OracleReply,
    OracleTimeout,
    OracleUnavailable,
    ask_oracle,
    build_client,
    smoke_check,
)
from .usage import ModelPrice, UsageRecord, UsageTracker, calculate_cost

__all__ = [
    "ChatOracle",
    "ModelPrice",
    "Oracle",
    "OracleError",
    "OracleReply",
    "OracleTimeout",
    "OracleUnavailable",
    "UsageRecord",
    "UsageTracker",
    "ask_oracle",
    "build_client",
    "calculate_cost",
    "smoke_check",
]
