from subbreaker.cipher import DEFAULT_ALPHABET, Alphabet, Key
from subbreaker.errors import (
    AlphabetError,
    BreakerError,
    CorpusTooShort,
    InputIOError,
    InvalidKeyError,
    ModelFileError,
)
from subbreaker.hill_climb import HillClimber, StopPolicy
from subbreaker.n_gram_model import FitnessScorer, QuadgramModel, load_model, save_model
from subbreaker.results import BreakerInfo, BreakerResult

__version__ = "0.1.0"
