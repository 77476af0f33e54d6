import os

import pytest
import structlog

from subbreaker.n_gram_model import QuadgramModel

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
CORPUS_PATH = os.path.join(DATA_DIR, "corpus.txt")


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture(scope="session")
def corpus_text():
    with open(CORPUS_PATH, "r", encoding="utf-8") as f:
        return f.read()


@pytest.fixture(scope="session")
def english_model(corpus_text):
    return QuadgramModel.build(corpus_text)


@pytest.fixture(scope="session")
def abcd_model():
    """Model whose only quadgram is "abcd"."""
    return QuadgramModel.build("abcd")
