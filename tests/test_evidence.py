from datetime import datetime

from conftest import make_record
from dupegraph.config import EngineConfig
from dupegraph.duplicates import build_clusters
from dupegraph.evidence import EvidenceGraph, build_evidence, pair_edges
from dupegraph.hashing import hash_rotations
from dupegraph.index import SimilarityIndex
from dupegraph.models.edge import EvidenceMethod, make_edge

TIGHT = (1 << 2) - 1            # distance 2 from 0
LOOSE = (1 << 7) - 1            # distance 7 from 0
FAR = (1 << 20) - 1             # distance 20 from 0


def evidence(records, config=None):
    config = config or EngineConfig()
    return build_evidence(records, SimilarityIndex(max_radius=config.loose_distance), config)


def methods_by_pair(graph):
    grouped = {}
    for edge in graph.edges():
        grouped.setdefault(edge.pair, set()).add(edge.method)
    return grouped


def weight_of(graph, id_a, id_b):
    (pair,) = [p for p in graph.pair_evidence() if (p.id_a, p.id_b) == (id_a, id_b)]
    return pair.weight


def test_exact_duplicates_link_to_smallest_id():
    records = [make_record(i, exact_hash="same", phash=0) for i in range(3)]
    graph = evidence(records)
    assert methods_by_pair(graph) == {
        (0, 1): {EvidenceMethod.EXACT},
        (0, 2): {EvidenceMethod.EXACT},
    }


def test_tight_perceptual_match_is_a_strong_edge():
    graph = evidence([make_record(0, phash=0), make_record(1, phash=TIGHT)])
    (edge,) = graph.edges()
    assert edge.method is EvidenceMethod.PERCEPTUAL_TIGHT
    assert edge.score == 2
    assert weight_of(graph, 0, 1) == 0.6


def test_rotated_hash_is_found_through_rotation_queries():
    value = 0x0123_4567_89AB_CDEF
    rotated = hash_rotations(value)[1]
    graph = evidence([make_record(0, phash=value), make_record(1, phash=rotated)])
    assert methods_by_pair(graph) == {(0, 1): {EvidenceMethod.PERCEPTUAL_TIGHT}}


def test_loose_match_without_corroboration_is_dropped():
    graph = evidence([make_record(0, phash=0), make_record(1, phash=LOOSE)])
    assert len(graph) == 0


def test_loose_match_with_timestamp_is_kept():
    when = datetime(2022, 7, 14, 9, 30, 0)
    records = [
        make_record(0, phash=0, captured_at=when),
        make_record(1, phash=LOOSE, captured_at=when),
    ]
    graph = evidence(records)
    assert methods_by_pair(graph) == {
        (0, 1): {EvidenceMethod.PERCEPTUAL_LOOSE, EvidenceMethod.EXIF_TIMESTAMP}
    }
    assert weight_of(graph, 0, 1) == 0.5


def test_filename_and_exif_alone_never_create_edges():
    when = datetime(2022, 7, 14, 9, 30, 0)
    records = [
        make_record(0, "/a/beach_sunset.jpg", phash=0, captured_at=when, camera=("Canon", "R5")),
        make_record(1, "/b/beach_sunset (1).jpg", phash=FAR, captured_at=when, camera=("Canon", "R5")),
    ]
    assert len(evidence(records)) == 0


def test_disabled_methods_produce_no_edges():
    records = [
        make_record(0, exact_hash="same", phash=0),
        make_record(1, exact_hash="same", phash=0),
        make_record(2, phash=TIGHT),
    ]
    only_exact = EngineConfig(methods=frozenset({"exact"}))
    assert methods_by_pair(evidence(records, only_exact)) == {(0, 1): {EvidenceMethod.EXACT}}
    only_perceptual = EngineConfig(methods=frozenset({"perceptual"}))
    assert methods_by_pair(evidence(records, only_perceptual)) == {
        (0, 1): {EvidenceMethod.PERCEPTUAL_TIGHT},
        (0, 2): {EvidenceMethod.PERCEPTUAL_TIGHT},
        (1, 2): {EvidenceMethod.PERCEPTUAL_TIGHT},
    }


def test_combined_pair_weight_is_capped():
    when = datetime(2022, 7, 14, 9, 30, 0)
    a = make_record(0, "/a/beach_sunset.jpg", phash=0, captured_at=when, camera=("Canon", "R5"))
    b = make_record(1, "/b/beach_sunset.jpg", phash=TIGHT, captured_at=when, camera=("Canon", "R5"))
    edges = pair_edges(a, b, 2, EngineConfig())
    assert {edge.method for edge in edges} == {
        EvidenceMethod.PERCEPTUAL_TIGHT,
        EvidenceMethod.EXIF_TIMESTAMP,
        EvidenceMethod.EXIF_CAMERA,
        EvidenceMethod.FILENAME,
    }
    graph = EvidenceGraph(edges)
    (pair,) = graph.pair_evidence()
    assert pair.weight == 1.0
    assert pair.methods == ("exif_camera", "exif_timestamp", "filename", "perceptual_tight")


def test_graph_deduplicates_and_normalizes_edges():
    graph = EvidenceGraph()
    assert graph.add(make_edge(5, 2, EvidenceMethod.EXACT))
    assert not graph.add(make_edge(2, 5, EvidenceMethod.EXACT))
    (edge,) = graph.edges()
    assert edge.pair == (2, 5)


def test_evidence_is_deterministic_across_batch_sizes():
    records = [make_record(i, phash=(i % 3) * FAR + (i % 2)) for i in range(40)]
    small = evidence(records, EngineConfig(batch_size=1, max_workers=4))
    large = evidence(records, EngineConfig(batch_size=64))
    assert small.edges() == large.edges()


def test_prepopulated_index_entries_outside_the_run_are_ignored():
    index = SimilarityIndex(max_radius=10)
    index.insert(0, 0, "same")
    records = [make_record(i, exact_hash="same", phash=0) for i in (1, 2)]
    graph = build_evidence(records, index, EngineConfig())
    assert methods_by_pair(graph) == {(1, 2): {EvidenceMethod.EXACT}}
    (cluster,) = build_clusters(records, graph)
    assert cluster.member_ids == {1, 2}
