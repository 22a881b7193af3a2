"""
Hypothesis beam for transducer search.

A beam is an insertion-ordered set of hypotheses keyed by token sequence.
Adding a hypothesis whose tokens are already present merges the two by
log-sum-exp of their scores: both are different alignments of the same
output, so their probabilities add.
"""

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..core.types import Hypothesis


def merge_hypotheses(first: Hypothesis, second: Hypothesis) -> Hypothesis:
    """Combine two alignments of the same token sequence."""
    if first.tokens != second.tokens:
        raise ValueError("can only merge hypotheses with identical tokens")
    score = float(np.logaddexp(first.score, second.score))
    decoder_out = first.decoder_out if first.decoder_out is not None else second.decoder_out
    timestamps = first.timestamps if first.score >= second.score else second.timestamps
    return Hypothesis(
        tokens=first.tokens,
        score=score,
        decoder_out=decoder_out,
        timestamps=timestamps,
    )


def topk_indices(values: np.ndarray, k: int) -> np.ndarray:
    """
    Indices of the k largest values, largest first.

    Equal values are ordered by ascending index, so the result does not depend
    on how np.partition happens to arrange ties.
    """
    values = np.asarray(values).reshape(-1)
    n = values.size
    k = min(k, n)
    if k <= 0:
        return np.zeros(0, dtype=np.int64)

    if k == n:
        idx = np.arange(n)
    else:
        kth = np.partition(values, n - k)[n - k]
        above = np.flatnonzero(values > kth)
        ties = np.flatnonzero(values == kth)[:k - above.size]
        idx = np.concatenate([above, ties])

    order = np.lexsort((idx, -values[idx]))
    return idx[order]


class HypothesisBeam:
    """Ordered hypotheses, unique by token sequence."""

    def __init__(self, hyps: Iterable[Hypothesis] = ()):
        self._hyps: Dict[Tuple[int, ...], Hypothesis] = {}
        for hyp in hyps:
            self.add(hyp)

    @classmethod
    def initial(cls) -> "HypothesisBeam":
        """The blank-prefix beam: one empty hypothesis with score 0."""
        return cls([Hypothesis()])

    def add(self, hyp: Hypothesis) -> None:
        """Insert `hyp`, merging by log-sum-exp if its tokens are already present.

        A merged entry keeps the position of the first insertion.
        """
        existing = self._hyps.get(hyp.tokens)
        if existing is None:
            self._hyps[hyp.tokens] = hyp
        else:
            self._hyps[hyp.tokens] = merge_hypotheses(existing, hyp)

    def topk(self, k: int) -> "HypothesisBeam":
        """Best `k` by score; ties keep insertion order."""
        ranked = sorted(self._hyps.values(), key=lambda h: -h.score)
        return HypothesisBeam(ranked[:k])

    def best(self) -> Hypothesis:
        """Highest score; ties go to the shorter token sequence, then insertion order."""
        if not self._hyps:
            raise ValueError("empty beam")
        return min(
            enumerate(self._hyps.values()),
            key=lambda item: (-item[1].score, len(item[1].tokens), item[0]),
        )[1]

    def get(self, tokens: Tuple[int, ...]) -> Optional[Hypothesis]:
        return self._hyps.get(tuple(tokens))

    def token_sequences(self) -> List[Tuple[int, ...]]:
        return list(self._hyps.keys())

    def __contains__(self, tokens) -> bool:
        return tuple(tokens) in self._hyps

    def __iter__(self) -> Iterator[Hypothesis]:
        return iter(list(self._hyps.values()))

    def __len__(self) -> int:
        return len(self._hyps)

    def __repr__(self) -> str:
        items = ", ".join(f"{list(h.tokens)}:{h.score:.3f}" for h in self._hyps.values())
        return f"HypothesisBeam([{items}])"
