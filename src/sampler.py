"""
Weighted Sampler: fixed-size draws per weight bucket for the real test.
Draws from a shuffled bag without replacement; an empty bag is refilled with a fresh
shuffle of the whole bucket, so every question appears once before any repeats.
"""
import logging
import random
from typing import Dict, List, Mapping, Optional

from src.errors import EmptyBucket
from src.models import Question, SessionQuestion
from src.repository import QuestionRepository

logger = logging.getLogger(__name__)


class WeightedSampler:
    def __init__(self, repository: QuestionRepository, rng: Optional[random.Random] = None):
        self.repository = repository
        self.rng = rng or random.Random()

    def sample(self, weight: int, count: int) -> List[Question]:
        """Return exactly `count` questions of the given weight."""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        pool = self.repository.by_weight(weight)
        if not pool:
            raise EmptyBucket(weight)

        bag: List[Question] = []
        out: List[Question] = []
        while len(out) < count:
            if not bag:
                bag = list(pool)
                self.rng.shuffle(bag)
            out.append(bag.pop())
        return out

    def build_session_pool(self, weight_counts: Mapping[int, int]) -> List[SessionQuestion]:
        """
        Concatenate each bucket's sample in ascending weight order and number them 1..N.
        Bucket order and length are fixed by the format; only question identity varies.
        """
        seq: List[Question] = []
        for weight in sorted(weight_counts):
            seq.extend(self.sample(weight, weight_counts[weight]))
        pool = [SessionQuestion(question=q, position=i + 1) for i, q in enumerate(seq)]
        logger.debug(f"Built session pool of {len(pool)} questions")
        return pool


def check_format(repository: QuestionRepository, weight_counts: Mapping[int, int]) -> Dict[int, int]:
    """
    Compare the real-test format against the catalog.
    Raises EmptyBucket for a weight with no questions; returns {weight: shortfall} for buckets
    smaller than their count (those will repeat questions).
    """
    available = repository.weight_counts()
    shortfall = {}
    for weight in sorted(weight_counts):
        have = available.get(weight, 0)
        if have == 0:
            raise EmptyBucket(weight)
        if have < weight_counts[weight]:
            shortfall[weight] = weight_counts[weight] - have
    if shortfall:
        logger.warning(f"Catalog buckets smaller than the real-test format (repeats likely): {shortfall}")
    return shortfall
