import math

import numpy as np
import pytest

from signage.recognition.matcher import DescriptorMatcher, find_best_match
from signage.types import Identity, MatchResult, euclidean_distance


def make_identity(identity_id, *descriptors):
    return Identity(id=identity_id, descriptors=tuple(tuple(float(v) for v in d) for d in descriptors))


def test_distance_to_itself_is_zero():
    rng = np.random.default_rng(3)
    probe = tuple(rng.normal(size=128).tolist())
    result = find_best_match(probe, [make_identity("user1", probe)])
    assert result.distance == 0.0
    assert result.identity.id == "user1"


def test_empty_snapshot_returns_infinity():
    result = find_best_match([0.1, 0.2, 0.3], [])
    assert result == MatchResult(distance=math.inf, identity=None)
    assert DescriptorMatcher().match([0.1, 0.2, 0.3]).identity is None


def test_match_is_true_minimum_over_all_descriptors():
    rng = np.random.default_rng(7)
    identities = [
        make_identity(f"user{i}", *rng.normal(size=(3, 16)).tolist()) for i in range(1, 6)
    ]
    probe = rng.normal(size=16).tolist()

    expected = min(
        (euclidean_distance(probe, sample), identity.id)
        for identity in identities
        for sample in identity.descriptors
    )
    result = find_best_match(probe, identities)

    assert result.distance == pytest.approx(expected[0])
    assert result.identity.id == expected[1]


def test_ties_resolve_to_first_encountered_identity():
    identities = [
        make_identity("user1", [1.0, 0.0]),
        make_identity("user2", [-1.0, 0.0]),
    ]
    result = find_best_match([0.0, 0.0], identities)
    assert result.distance == pytest.approx(1.0)
    assert result.identity.id == "user1"


def test_identity_without_descriptors_is_skipped():
    identities = [make_identity("user1"), make_identity("user2", [3.0, 4.0])]
    result = find_best_match([0.0, 0.0], identities)
    assert result.identity.id == "user2"
    assert result.distance == pytest.approx(5.0)

    only_empty = find_best_match([0.0, 0.0], [make_identity("user1")])
    assert only_empty.distance == math.inf


def test_threshold_is_applied_by_caller_not_matcher():
    matcher = DescriptorMatcher([make_identity("user1", [0.0, 0.0])], threshold=0.55)

    near = matcher.match([0.3, 0.4])
    far = matcher.match([0.6, 0.0])

    assert near.distance == pytest.approx(0.5)
    assert matcher.is_recognized(near)
    assert far.identity.id == "user1"
    assert not matcher.is_recognized(far)


def test_distance_equal_to_threshold_is_rejected():
    matcher = DescriptorMatcher([make_identity("user1", [0.0, 0.0])], threshold=0.5)
    assert not matcher.is_recognized(matcher.match([0.5, 0.0]))


def test_replace_snapshot_swaps_candidates():
    matcher = DescriptorMatcher([make_identity("user1", [0.0, 0.0])])
    matcher.replace_snapshot([make_identity("user2", [1.0, 1.0])])
    assert [identity.id for identity in matcher.identities] == ["user2"]
    assert matcher.match([1.0, 1.0]).identity.id == "user2"


def test_length_mismatch_raises():
    matcher = DescriptorMatcher([make_identity("user1", [0.0, 0.0, 0.0])])
    with pytest.raises(ValueError):
        matcher.match([0.0, 0.0])
