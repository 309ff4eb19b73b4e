"""JSON Schema контракты внешних payload-ов фонда."""

from .validators import (
    ALLOCATION_POLICY,
    FUND_CONFIG,
    AllocationPolicyValidator,
    ContractValidator,
    FundConfigValidator,
    SchemaLoader,
    validate_allocation_policy,
    validate_fund_config,
)

__all__ = [
    "ALLOCATION_POLICY",
    "FUND_CONFIG",
    "SchemaLoader",
    "ContractValidator",
    "AllocationPolicyValidator",
    "FundConfigValidator",
    "validate_allocation_policy",
    "validate_fund_config",
]
