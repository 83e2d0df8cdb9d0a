"""StakeGov — stake-weighted incentive ledger with live governance voting power."""

__version__ = "0.1.0"
