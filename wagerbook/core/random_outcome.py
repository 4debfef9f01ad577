"""Pseudo-random match scores — the placeholder result oracle.

A score is one draw from a :class:`~wagerbook.core.interfaces.RandomnessSource`
reduced modulo ``max_score`` (9).  Reducing a 32-bit value modulo 9 is
biased towards the low residues because ``2**32`` is not a multiple of 9;
draws in the top, incomplete block are therefore rejected and redrawn.

Rejection procedure
-------------------
Let ``limit = MAX_U32 - MAX_U32 % max_score``.  A draw ``r < limit`` is
accepted.  Otherwise redraw with the seed offset increased by one, up to
``max_trials`` draws in total (10).  The probability of a rejection is
``(MAX_U32 % 9 + 1) / 2**32`` ≈ 1e-9, so exhausting all trials is
practically impossible; if it does happen the last draw is used anyway so
closing a match never blocks.

Each draw is keyed by ``module_identity || u32_le(seed)``.  The home score
uses seed offset 0 and the away score offset 1, so they come from distinct
subjects of the same source.

Run tests with::

    pytest tests/test_random_outcome.py -v
"""

from __future__ import annotations

import hashlib
import logging
import struct
from dataclasses import dataclass
from typing import Iterable, Iterator

from wagerbook.core.config import LedgerConfig
from wagerbook.core.interfaces import RandomnessSource
from wagerbook.core.odds_math import MAX_U32

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Randomness sources
# ---------------------------------------------------------------------------


class HashRandomnessSource(RandomnessSource):
    """BLAKE2b over ``seed || block || subject``.

    Deterministic for a given seed, block number and subject.  The host
    calls :meth:`advance` between operations so that successive matches,
    which all use the same subjects, still get fresh scores.
    """

    def __init__(self, seed: bytes = b"", block: int = 0) -> None:
        self.seed = seed
        self.block = block

    def random_u32(self, subject: bytes) -> int:
        digest = hashlib.blake2b(
            self.seed + struct.pack("<Q", self.block) + subject,
            digest_size=32,
        ).digest()
        # First four bytes, little-endian, like decoding a u32 from a hash.
        return struct.unpack_from("<I", digest)[0]

    def advance(self) -> None:
        self.block += 1


class SequenceRandomnessSource(RandomnessSource):
    """Replays a fixed sequence of draws, ignoring the subject.

    Records every subject it was asked for in :attr:`subjects`.

    Raises:
        IndexError: when more draws are requested than were supplied.
    """

    def __init__(self, values: Iterable[int]) -> None:
        self._values: Iterator[int] = iter(values)
        self.subjects: list[bytes] = []

    def random_u32(self, subject: bytes) -> int:
        self.subjects.append(subject)
        try:
            return next(self._values)
        except StopIteration:
            raise IndexError("SequenceRandomnessSource exhausted") from None


# ---------------------------------------------------------------------------
# Score generator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreDraw:
    """Generated score plus the number of raw draws it took (1..max_trials)."""

    score: int
    draws: int


class RandomOutcomeGenerator:
    """Turns seed offsets into unbiased scores in ``[0, max_score)``."""

    def __init__(self, source: RandomnessSource, config: LedgerConfig | None = None):
        self.source = source
        self.config = config or LedgerConfig.default()
        self.limit = MAX_U32 - MAX_U32 % self.config.max_score

    def subject(self, seed_diff: int) -> bytes:
        """Randomness subject for ``seed_diff``: module identity + u32 LE."""
        return self.config.module_identity + struct.pack("<I", seed_diff & MAX_U32)

    def random_number(self, seed_diff: int) -> int:
        return self.source.random_u32(self.subject(seed_diff))

    def draw_score(self, seed_diff: int) -> ScoreDraw:
        random_number = self.random_number(seed_diff)
        draws = 1
        # Best-effort attempt to remove the modulus bias.
        for i in range(1, self.config.max_trials):
            if random_number < self.limit:
                break
            random_number = self.random_number(seed_diff + i)
            draws += 1
        else:
            if random_number >= self.limit:
                logger.warning(
                    "All %d draws for seed offset %d were biased; using the last one",
                    draws, seed_diff,
                )
        return ScoreDraw(score=random_number % self.config.max_score, draws=draws)

    def generate_score(self, seed_diff: int) -> int:
        return self.draw_score(seed_diff).score
