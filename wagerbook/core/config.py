"""Ledger-level configuration — every tunable constant in one place.

:class:`LedgerConfig` is a frozen dataclass.  Named constructors return
pre-populated instances; override a single field with
:func:`dataclasses.replace`::

    from dataclasses import replace
    from wagerbook.core.config import LedgerConfig

    cfg = replace(LedgerConfig.default(), module_identity=b"py/test_")

Environment variables (read by :meth:`LedgerConfig.from_env`, ``.env``
files are honoured):

* ``WAGERBOOK_MODULE_ID``   — module identity used to key randomness.
* ``WAGERBOOK_MAX_BALANCE`` — upper bound of the balance type.
* ``WAGERBOOK_RANDOM_SEED`` — entropy mixed into the hash randomness source.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

from wagerbook.core.odds_math import MAX_BALANCE

#: Default module identity: eight bytes, like an on-chain pallet id.
DEFAULT_MODULE_IDENTITY: Final[bytes] = b"py/bets_"


@dataclass(frozen=True)
class LedgerConfig:
    """Immutable configuration bundle for one ledger instance.

    Attributes:
        module_identity: Prefix of every randomness subject, so two ledgers
            sharing a randomness source still draw independent scores.
        max_score: Exclusive upper bound of a generated score.  Scores are
            drawn uniformly from ``[0, max_score)``.
        max_trials: Total number of draws the score generator may make
            while rejecting values that would bias the modulus.
        goals_threshold: Total-goals line for Under/Over predictions.
            A total equal to the line loses both Under and Over.
        max_balance: Largest representable balance; arithmetic saturates
            here instead of overflowing.
        random_seed: Entropy mixed into :class:`HashRandomnessSource`.
    """

    module_identity: bytes = DEFAULT_MODULE_IDENTITY
    max_score: int = 9
    max_trials: int = 10
    goals_threshold: int = 3
    max_balance: int = MAX_BALANCE
    random_seed: bytes = b""

    @classmethod
    def default(cls) -> "LedgerConfig":
        return cls()

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Build a config from environment variables, falling back to defaults."""
        load_dotenv()
        module_identity = os.getenv("WAGERBOOK_MODULE_ID")
        max_balance = os.getenv("WAGERBOOK_MAX_BALANCE")
        random_seed = os.getenv("WAGERBOOK_RANDOM_SEED", "")
        return cls(
            module_identity=(
                module_identity.encode() if module_identity else DEFAULT_MODULE_IDENTITY
            ),
            max_balance=int(max_balance) if max_balance else MAX_BALANCE,
            random_seed=random_seed.encode(),
        )
