from dataclasses import asdict, dataclass
from typing import Any, Dict

MIN_ELAPSED_SECONDS = 1e-9


@dataclass(frozen=True)
class BreakerInfo:
    """Information about the quadgrams of a language, computed at model build time.

    alphabet: the alphabet the model was trained for.
    nbr_quadgrams: number of quadgram windows counted in the corpus.
    most_frequent_quadgram: the most frequent four character sequence
        (for English this is expected to be "tion").
    max_fitness: the fitness value of the most frequent quadgram.
    average_fitness: the expected per-quadgram fitness of uniformly random
        text over the alphabet.
    """

    alphabet: str
    nbr_quadgrams: int
    most_frequent_quadgram: str
    max_fitness: float
    average_fitness: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"alphabet = {self.alphabet}\n"
            f"nbr_quadgrams = {self.nbr_quadgrams}\n"
            f"most_frequent_quadgram = {self.most_frequent_quadgram}\n"
            f"max_fitness = {self.max_fitness}\n"
            f"average_fitness = {self.average_fitness}"
        )


@dataclass(frozen=True)
class BreakerResult:
    """The outcome of breaking a substitution cipher.

    nbr_keys counts every key scored over all rounds, nbr_rounds the hill
    climbs started from a random key.
    """

    ciphertext: str
    plaintext: str
    key: str
    alphabet: str
    fitness: float
    nbr_keys: int
    nbr_rounds: int
    keys_per_second: float
    seconds: float

    @classmethod
    def from_run(cls, ciphertext: str, plaintext: str, key: str, alphabet: str,
                 fitness: float, nbr_keys: int, nbr_rounds: int,
                 seconds: float) -> "BreakerResult":
        if seconds < MIN_ELAPSED_SECONDS:
            keys_per_second = 0.0
        else:
            keys_per_second = nbr_keys / seconds
        return cls(
            ciphertext=ciphertext,
            plaintext=plaintext,
            key=key,
            alphabet=alphabet,
            fitness=float(fitness),
            nbr_keys=nbr_keys,
            nbr_rounds=nbr_rounds,
            keys_per_second=keys_per_second,
            seconds=seconds,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return f"key = {self.key}"
