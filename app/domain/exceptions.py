from __future__ import annotations


class DomainError(Exception):
    """Base for domain errors."""


class StakingInputError(DomainError):
    """Invalid parameters for a staking query."""


class MissingPoolAddressError(DomainError):
    """A pool-scoped operation ran before any pool address was set."""


class GaugeResolutionError(DomainError):
    """The gauge factory has no gauge for the pool."""


class RemoteFetchError(DomainError):
    """An indexer or oracle query failed."""


class TransactionError(DomainError):
    """A stake/unstake submission was rejected or reverted."""


class PriceLookupDomainError(RemoteFetchError):
    """Could not get a price for the token."""
