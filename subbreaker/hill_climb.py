import multiprocessing
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from subbreaker.cipher import Key
from subbreaker.log import get_logger
from subbreaker.n_gram_model import QuadgramModel, score_packed
from subbreaker.results import BreakerResult

log = get_logger(__name__)

# A round's local optimum: (decode table, fitness, keys scored in the round)
RoundRecord = Tuple[np.ndarray, float, int]


# =======================================================================
# ==  STOPPING POLICY                                                  ==
# =======================================================================

@dataclass(frozen=True)
class StopPolicy:
    """When to stop starting new hill climbing rounds.

    max_rounds: total number of rounds.
    max_seconds: wall clock budget, checked between rounds only.
    consolidate: stop once the best key was reached this many times.
    None disables a criterion; at least one must remain.
    """

    max_rounds: Optional[int] = 10000
    max_seconds: Optional[float] = None
    consolidate: Optional[int] = 3

    def __post_init__(self):
        for name in ("max_rounds", "max_seconds", "consolidate"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must not be negative")
        if self.max_rounds is None and self.max_seconds is None and self.consolidate is None:
            raise ValueError("At least one stopping criterion is required")

    def is_done(self, rounds: int, elapsed: float, best_hits: int) -> bool:
        if self.max_rounds is not None and rounds >= self.max_rounds:
            return True
        if self.max_seconds is not None and elapsed >= self.max_seconds:
            return True
        if self.consolidate is not None and best_hits >= self.consolidate:
            return True
        return False

    def rounds_left(self, rounds: int) -> Optional[int]:
        if self.max_rounds is None:
            return None
        return max(self.max_rounds - rounds, 0)


# =======================================================================
# ==  ONE ROUND                                                        ==
# =======================================================================

def swap_pairs(n: int) -> Tuple[np.ndarray, np.ndarray]:
    rows, cols = np.triu_indices(n, k=1)
    return rows.astype(np.int64), cols.astype(np.int64)


def climb(table: np.ndarray, cipher_indices: np.ndarray, n: int,
          rng: np.random.Generator) -> RoundRecord:
    """
    Steepest ascent from a random key to a local optimum.

    Keys are handled as decode tables (cipher index -> plaintext index, with a
    fixed last slot for the sentinel). Swapping two key characters swaps two
    entries of the decode table. Only strict improvements are accepted.
    """
    rows, cols = swap_pairs(n)

    def fitness(decode: np.ndarray) -> float:
        return score_packed(table, decode[cipher_indices], n)

    current = np.append(rng.permutation(n), n).astype(np.int64)
    current_score = fitness(current)
    nbr_keys = 1

    while True:
        best_score = current_score
        best_pair = None
        for i, j in zip(rows, cols):
            candidate = current.copy()
            candidate[i], candidate[j] = current[j], current[i]
            score = fitness(candidate)
            nbr_keys += 1
            if score > best_score:
                best_score, best_pair = score, (i, j)
        if best_pair is None:
            return current, current_score, nbr_keys
        i, j = best_pair
        current[i], current[j] = current[j], current[i]
        current_score = best_score


# =======================================================================
# ==  TOP-LEVEL WORKER FUNCTIONS FOR MULTIPROCESSING                   ==
# =======================================================================

# Read-only data of each worker process, set once by the pool initializer
WORKER_VARS = {}


def init_worker(table, cipher_indices, n):
    WORKER_VARS['table'] = table
    WORKER_VARS['cipher_indices'] = cipher_indices
    WORKER_VARS['n'] = n


def climb_one_round(seed: np.random.SeedSequence) -> RoundRecord:
    return climb(
        WORKER_VARS['table'],
        WORKER_VARS['cipher_indices'],
        WORKER_VARS['n'],
        np.random.default_rng(seed),
    )


# =======================================================================
# ==  SEARCH ENGINE                                                    ==
# =======================================================================

class HillClimber:
    def __init__(self, model: QuadgramModel, policy: Optional[StopPolicy] = None,
                 workers: int = 1, seed: Optional[int] = None, progress: bool = False):
        """
        model: quadgram model used as objective, shared read-only by all rounds
        policy: stopping policy, see StopPolicy
        workers: number of processes; 1 runs every round in this process
        seed: seed for the random start keys, None for fresh entropy
        progress: show a tqdm progress bar over the rounds
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.model = model
        self.alphabet = model.alphabet
        self.policy = policy or StopPolicy()
        self.workers = workers
        self.seed = seed
        self.progress = progress

    def break_cipher(self, ciphertext: str) -> BreakerResult:
        start_time = time.perf_counter()
        n = len(self.alphabet)
        cipher_indices = self.alphabet.to_indices(ciphertext)
        seeds = np.random.SeedSequence(self.seed)
        # keys differing only in letters absent from the ciphertext decode alike
        used = np.unique(cipher_indices[cipher_indices < n])

        best: Optional[RoundRecord] = None
        best_hits = 0
        nbr_keys = 0
        nbr_rounds = 0

        log.info(
            "search started",
            alphabet=self.alphabet.chars,
            cipher_length=len(ciphertext),
            workers=self.workers,
            max_rounds=self.policy.max_rounds,
            max_seconds=self.policy.max_seconds,
        )

        with tqdm(total=self.policy.max_rounds, desc="Hill climbing", unit="round",
                  disable=not self.progress) as bar:
            for records in self._rounds(cipher_indices, n, seeds):
                for decode, score, keys in records:
                    nbr_rounds += 1
                    nbr_keys += keys
                    if best is None or score > best[1]:
                        best, best_hits = (decode, score, keys), 1
                        log.debug("new best key", round=nbr_rounds, fitness=score)
                    elif np.array_equal(decode[used], best[0][used]):
                        best_hits += 1
                bar.update(len(records))
                if self.policy.is_done(nbr_rounds, time.perf_counter() - start_time, best_hits):
                    break

        if best is None:
            decode, score = np.arange(n + 1, dtype=np.int64), None
        else:
            decode, score = best[0], best[1]
        key = Key.from_decode_table(decode, self.alphabet)
        plaintext = key.decode(ciphertext)
        if score is None:
            score = self.model.score(plaintext)

        result = BreakerResult.from_run(
            ciphertext=ciphertext,
            plaintext=plaintext,
            key=key.key,
            alphabet=self.alphabet.chars,
            fitness=score,
            nbr_keys=nbr_keys,
            nbr_rounds=nbr_rounds,
            seconds=time.perf_counter() - start_time,
        )
        log.info(
            "search done",
            key=result.key,
            fitness=result.fitness,
            rounds=result.nbr_rounds,
            keys=result.nbr_keys,
            keys_per_second=round(result.keys_per_second),
        )
        return result

    def _batch_size(self, rounds: int) -> int:
        left = self.policy.rounds_left(rounds)
        return self.workers if left is None else min(self.workers, left)

    def _rounds(self, cipher_indices, n, seeds):
        """Yield batches of round records until the policy says stop.

        The policy is only checked before a batch is started, so a round in
        flight always runs to its local optimum.
        """
        if self.policy.is_done(0, 0.0, 0):
            return

        if self.workers == 1:
            while True:
                rng = np.random.default_rng(seeds.spawn(1)[0])
                yield [climb(self.model.table, cipher_indices, n, rng)]

        init_args = (self.model.table, cipher_indices, n)
        context = multiprocessing.get_context('spawn')
        with context.Pool(processes=self.workers, initializer=init_worker,
                          initargs=init_args) as pool:
            rounds = 0
            while True:
                size = self._batch_size(rounds)
                if size == 0:
                    return
                records: List[RoundRecord] = pool.map(climb_one_round, seeds.spawn(size))
                rounds += len(records)
                yield records
