"""
Module: edge
Purpose: Similarity edges and the closed set of evidence methods.
"""

from dataclasses import dataclass
from enum import Enum


class EvidenceMethod(str, Enum):
    EXACT = "exact"
    PERCEPTUAL_TIGHT = "perceptual_tight"
    PERCEPTUAL_LOOSE = "perceptual_loose"
    EXIF_TIMESTAMP = "exif_timestamp"
    EXIF_CAMERA = "exif_camera"
    FILENAME = "filename"


# Per-method weights; combined per pair by summing, capped at MAX_PAIR_WEIGHT.
METHOD_WEIGHTS = {
    EvidenceMethod.EXACT: 1.0,
    EvidenceMethod.PERCEPTUAL_TIGHT: 0.6,
    EvidenceMethod.PERCEPTUAL_LOOSE: 0.25,
    EvidenceMethod.EXIF_TIMESTAMP: 0.25,
    EvidenceMethod.EXIF_CAMERA: 0.1,
    EvidenceMethod.FILENAME: 0.1,
}
MAX_PAIR_WEIGHT = 1.0

# Methods that can surface a pair on their own.
PRIMARY_METHODS = frozenset(
    {EvidenceMethod.EXACT, EvidenceMethod.PERCEPTUAL_TIGHT, EvidenceMethod.PERCEPTUAL_LOOSE}
)


@dataclass(frozen=True)
class SimilarityEdge:
    """
    Undirected edge between two records; id_a is always the smaller id.
    """

    id_a: int
    id_b: int
    method: EvidenceMethod
    score: float
    weight: float

    def __post_init__(self):
        if self.id_a == self.id_b:
            raise ValueError("SimilarityEdge requires two distinct records")
        if self.id_a > self.id_b:
            low, high = self.id_b, self.id_a
            object.__setattr__(self, "id_a", low)
            object.__setattr__(self, "id_b", high)

    @property
    def pair(self) -> tuple[int, int]:
        return (self.id_a, self.id_b)

    @property
    def key(self) -> tuple[int, int, EvidenceMethod]:
        return (self.id_a, self.id_b, self.method)


def make_edge(id_a: int, id_b: int, method: EvidenceMethod, score: float = 0.0) -> SimilarityEdge:
    return SimilarityEdge(id_a, id_b, method, score, METHOD_WEIGHTS[method])
