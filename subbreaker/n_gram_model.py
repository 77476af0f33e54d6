import json
import math
import os
from typing import Iterable, Iterator, List, Optional, Sequence, Union

import numpy as np
from tqdm import tqdm

from subbreaker.cipher import DEFAULT_ALPHABET, Alphabet, as_alphabet
from subbreaker.errors import (
    CorpusTooShort,
    InputIOError,
    ModelFileError,
)
from subbreaker.log import get_logger
from subbreaker.results import BreakerInfo

log = get_logger(__name__)

# ==============================
# CONFIGURATION
# ==============================
BITS_PER_CHAR = 5
CHAR_MASK = (1 << BITS_PER_CHAR) - 1
TABLE_SIZE = 1 << 4 * BITS_PER_CHAR      # 32^4 slots, whatever the alphabet size
CHUNK_SIZE = 1 << 20                     # characters read per corpus chunk
MIN_COUNT_DIVISOR = 10                   # unseen quadgrams sit below min_count / 10
FITNESS_SCALE = 1000

MODEL_FIELDS = (
    "alphabet",
    "nbr_quadgrams",
    "most_frequent_quadgram",
    "max_fitness",
    "average_fitness",
    "quadgrams",
)


# ==============================
# TEXT PREPROCESSING
# ==============================
def iter_corpus_files(path: str) -> Iterator[str]:
    """Yield path itself for a file, or all .txt files under a directory."""
    if not os.path.isdir(path):
        yield path
        return
    for fname in sorted(os.listdir(path)):
        if fname.lower().endswith(".txt"):
            yield os.path.join(path, fname)


def read_corpus(paths: Iterable[str], chunk_size: int = CHUNK_SIZE,
                progress: bool = False) -> Iterator[str]:
    """Yield the text of the given files in chunks."""
    files: List[str] = []
    for path in paths:
        files.extend(iter_corpus_files(path))
    log.info("corpus files found", count=len(files))

    for path in tqdm(files, desc="Counting quadgrams", unit="file", disable=not progress):
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                while True:
                    chunk = f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except OSError as e:
            raise InputIOError(f"Cannot read corpus file {path}: {e}") from e


def pack_quadgrams(indices: np.ndarray) -> np.ndarray:
    """Pack every 4-character window of an index sequence into 20 bits."""
    return (
        (indices[:-3] << 3 * BITS_PER_CHAR)
        | (indices[1:-2] << 2 * BITS_PER_CHAR)
        | (indices[2:-1] << BITS_PER_CHAR)
        | indices[3:]
    )


def score_packed(table: np.ndarray, indices: np.ndarray, n: int) -> float:
    """Sum the table values of every window; 0 below four alphabet characters."""
    if np.count_nonzero(indices < n) < 4:
        return 0.0
    return float(table[pack_quadgrams(indices)].sum())


def unpack_quadgram(code: int, alphabet: Alphabet) -> str:
    return "".join(
        alphabet.char_at((code >> shift) & CHAR_MASK)
        for shift in (3 * BITS_PER_CHAR, 2 * BITS_PER_CHAR, BITS_PER_CHAR, 0)
    )


# ==============================
# BUILD COUNTS
# ==============================
def count_quadgrams(corpus: Union[str, Iterable[str]], alphabet: Alphabet) -> np.ndarray:
    """
    Count all quadgrams of the corpus.

    Characters outside of the alphabet are mapped to the sentinel index, so
    word boundaries and punctuation take part in the windows. The last three
    indices of a chunk are carried over into the next one.
    """
    if isinstance(corpus, str):
        corpus = [corpus]

    counts = np.zeros(TABLE_SIZE, dtype=np.int64)
    history = np.empty(0, dtype=np.int64)
    n = len(alphabet)
    usable = 0

    for chunk in corpus:
        indices = alphabet.to_indices(chunk)
        if not indices.size:
            continue
        usable += int(np.count_nonzero(indices < n))
        seq = np.concatenate([history, indices])
        if seq.size >= 4:
            counts += np.bincount(pack_quadgrams(seq), minlength=TABLE_SIZE)
        history = seq[-3:]

    if usable < 4:
        raise CorpusTooShort(
            f"Corpus must contain at least 4 characters of the alphabet, got {usable}."
        )
    return counts


# ==============================
# NORMALIZATION
# ==============================
def normalize_counts(counts: np.ndarray) -> np.ndarray:
    """
    Turn raw counts into log-fitness values.

    Each seen quadgram gets log(p) - log(min_count / 10 / total), so every
    seen quadgram scores above the zero of unseen ones. The values are then
    scaled so that the expected value over the corpus is 1000.
    """
    total = int(counts.sum())
    seen = counts > 0
    probs = counts[seen] / total
    offset = math.log(int(counts[seen].min()) / MIN_COUNT_DIVISOR / total)
    values = np.log(probs) - offset
    norm = float((probs * values).sum())

    table = np.zeros(TABLE_SIZE, dtype=np.float64)
    table[seen] = np.rint(values / norm * FITNESS_SCALE)
    return table


def describe_table(table: np.ndarray, counts_total: int, alphabet: Alphabet) -> BreakerInfo:
    n = len(alphabet)
    best = int(np.argmax(table))
    # uniformly random text over the alphabet never produces sentinel windows
    alphabet_only = table.reshape((1 << BITS_PER_CHAR,) * 4)[:n, :n, :n, :n]
    return BreakerInfo(
        alphabet=alphabet.chars,
        nbr_quadgrams=counts_total,
        most_frequent_quadgram=unpack_quadgram(best, alphabet),
        max_fitness=float(table[best]),
        average_fitness=float(alphabet_only.sum()) / n ** 4,
    )


class QuadgramModel:
    """Quadgram log-fitness table for one alphabet. Read-only once built."""

    def __init__(self, alphabet: Union[str, Alphabet], table: np.ndarray, info: BreakerInfo):
        self.alphabet = as_alphabet(alphabet)
        self.alphabet.check_model_size()
        self.table = table
        self.info = info

    @classmethod
    def build(cls, corpus: Union[str, Iterable[str]],
              alphabet: Union[str, Alphabet] = DEFAULT_ALPHABET) -> "QuadgramModel":
        alphabet = as_alphabet(alphabet)
        alphabet.check_model_size()
        counts = count_quadgrams(corpus, alphabet)
        table = normalize_counts(counts)
        info = describe_table(table, int(counts.sum()), alphabet)
        log.info(
            "quadgram model built",
            alphabet=info.alphabet,
            nbr_quadgrams=info.nbr_quadgrams,
            most_frequent_quadgram=info.most_frequent_quadgram,
        )
        return cls(alphabet, table, info)

    def score(self, text: str) -> float:
        return FitnessScorer(self).score(text)

    def __repr__(self) -> str:
        return f"QuadgramModel(alphabet={self.alphabet.chars!r}, nbr_quadgrams={self.info.nbr_quadgrams})"


# ==============================
# SEQUENCE SCORING
# ==============================
class FitnessScorer:
    """Sums the quadgram table entries of every window of a text.

    Higher is more language-like. Texts with fewer than four alphabet
    characters score 0.
    """

    def __init__(self, model: QuadgramModel):
        self.model = model
        self.table = model.table
        self.alphabet = model.alphabet

    def score_indices(self, indices: np.ndarray) -> float:
        return score_packed(self.table, indices, len(self.alphabet))

    def score(self, text: str) -> float:
        return self.score_indices(self.alphabet.to_indices(text))

    def average(self, text: str) -> float:
        """Fitness per quadgram, comparable to BreakerInfo.average_fitness."""
        indices = self.alphabet.to_indices(text)
        windows = indices.size - 3
        if windows < 1:
            return 0.0
        return self.score(text) / windows


# ==============================
# SAVE / LOAD
# ==============================
def save_model(model: QuadgramModel, model_path: str) -> None:
    obj = model.info.to_dict()
    obj["quadgrams"] = model.table.tolist()
    try:
        with open(model_path, "w", encoding="utf-8") as f:
            json.dump(obj, f)
    except OSError as e:
        raise ModelFileError(f"Cannot write model file {model_path}: {e}") from e
    log.info("model saved", path=model_path)


def load_model(model_path: str) -> QuadgramModel:
    try:
        with open(model_path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except OSError as e:
        raise ModelFileError(f"Cannot read model file {model_path}: {e}") from e
    except ValueError as e:
        raise ModelFileError(f"Model file {model_path} is not valid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise ModelFileError(f"Model file {model_path} must contain a JSON object.")
    missing = [name for name in MODEL_FIELDS if name not in obj]
    if missing:
        raise ModelFileError(f"Model file {model_path} lacks fields: {', '.join(missing)}")

    quadgrams = obj["quadgrams"]
    if not isinstance(quadgrams, list) or len(quadgrams) != TABLE_SIZE:
        raise ModelFileError(
            f"Model file {model_path}: quadgrams must be a list of {TABLE_SIZE} numbers."
        )
    try:
        table = np.asarray(quadgrams, dtype=np.float64)
        alphabet = Alphabet(obj["alphabet"])
        alphabet.check_model_size()
        info = BreakerInfo(
            alphabet=alphabet.chars,
            nbr_quadgrams=int(obj["nbr_quadgrams"]),
            most_frequent_quadgram=str(obj["most_frequent_quadgram"]),
            max_fitness=float(obj["max_fitness"]),
            average_fitness=float(obj["average_fitness"]),
        )
    except (TypeError, ValueError) as e:
        raise ModelFileError(f"Model file {model_path} is malformed: {e}") from e

    log.debug("model loaded", path=model_path, alphabet=info.alphabet)
    return QuadgramModel(alphabet, table, info)


# ==============================
# MAIN PIPELINE
# ==============================
def build_and_save(corpus_paths: Sequence[str], model_path: str,
                   alphabet: Union[str, Alphabet] = DEFAULT_ALPHABET,
                   progress: bool = False,
                   chunk_size: Optional[int] = None) -> QuadgramModel:
    corpus = read_corpus(corpus_paths, chunk_size=chunk_size or CHUNK_SIZE, progress=progress)
    model = QuadgramModel.build(corpus, alphabet)
    save_model(model, model_path)
    return model
