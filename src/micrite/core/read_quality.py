"""
Read-quality triage predicates.

A good quality *sequence* is likely to be a real biological sequence that
is worth sending to the taxonomic classifier. A good quality *alignment*
is additionally a convincing primary alignment to its reference. A good
quality sequence is not necessarily a good quality alignment.

A good quality sequence:
    1. Is at least ``min_len`` bases long
    2. Has a mean phred score of at least ``min_phred``
    3. Contains no more than ``max_n`` ambiguous (N) bases
    4. Is not a PCR/optical duplicate and did not fail vendor QC

Sequence complexity (homopolymer reads) is not assessed.
"""

from __future__ import annotations

from collections.abc import Sequence

from micrite.core.alignment import AlignmentRecord
from micrite.core.constants import AMBIGUOUS_BASE


def count_ambiguous_bases(sequence: str) -> int:
    """Number of ambiguous (N) bases in a sequence."""
    return sequence.count(AMBIGUOUS_BASE)


def average_phred(qualities: Sequence[int]) -> float:
    """Arithmetic mean of per-base phred scores, 0.0 for an empty array."""
    if not qualities:
        return 0.0
    return sum(qualities) / len(qualities)


def is_good_quality_sequence(
    record: AlignmentRecord,
    min_len: int,
    min_phred: float,
    max_n: int,
) -> bool:
    """Check whether a record's sequence is good enough to classify.

    Args:
        record: Alignment record.
        min_len: Minimum sequence length (inclusive).
        min_phred: Minimum mean phred score (inclusive).
        max_n: Maximum number of ambiguous bases (inclusive).

    Returns:
        True if the sequence passes every check.
    """
    # Flag and length checks first, they are free
    if (
        record.is_quality_check_failed
        or record.is_duplicate
        or len(record.sequence) < min_len
    ):
        return False

    if count_ambiguous_bases(record.sequence) > max_n:
        return False

    return average_phred(record.qualities) >= min_phred


def is_good_quality_alignment(
    record: AlignmentRecord,
    min_len: int,
    min_phred: float,
    max_n: int,
    min_mapq: int,
    min_alignment_score: int,
) -> bool:
    """Check whether a record is a convincing alignment.

    The sequence must pass is_good_quality_sequence() and the record must be
    a mapped, primary, QC-passing alignment with mapping quality above
    ``min_mapq`` and an ``AS`` tag above ``min_alignment_score`` (both
    exclusive). Records without an integer AS tag score 0.
    """
    if not is_good_quality_sequence(record, min_len, min_phred, max_n):
        return False

    alignment_score = record.alignment_score if record.alignment_score is not None else 0

    return (
        not record.is_secondary
        and not record.is_quality_check_failed
        and not record.is_unmapped
        and record.mapq > min_mapq
        and alignment_score > min_alignment_score
    )
