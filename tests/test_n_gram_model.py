import json
import math

import numpy as np
import pytest

from subbreaker.cipher import DEFAULT_ALPHABET, Alphabet, Key
from subbreaker.errors import AlphabetError, CorpusTooShort, InputIOError, ModelFileError
from subbreaker.n_gram_model import (
    TABLE_SIZE,
    FitnessScorer,
    QuadgramModel,
    build_and_save,
    count_quadgrams,
    iter_corpus_files,
    load_model,
    normalize_counts,
    read_corpus,
    save_model,
    score_packed,
)

ABCD_CODE = (0 << 15) | (1 << 10) | (2 << 5) | 3


class TestBuild:
    """Test suite for building a quadgram model"""

    @pytest.mark.parametrize("corpus", ["", "abc", "a b. c!", "...."])
    def test_corpus_too_short(self, corpus):
        with pytest.raises(CorpusTooShort):
            QuadgramModel.build(corpus)

    def test_alphabet_too_long(self):
        with pytest.raises(AlphabetError):
            QuadgramModel.build("abcd" * 10, DEFAULT_ALPHABET + "0123456")

    def test_single_quadgram(self, abcd_model):
        assert abcd_model.table[ABCD_CODE] == 1000.0
        assert np.count_nonzero(abcd_model.table) == 1

    def test_single_quadgram_info(self, abcd_model):
        info = abcd_model.info
        assert info.alphabet == DEFAULT_ALPHABET
        assert info.nbr_quadgrams == 1
        assert info.most_frequent_quadgram == "abcd"
        assert info.max_fitness == 1000.0
        assert info.average_fitness == pytest.approx(1000.0 / 26 ** 4)

    def test_foreign_characters_become_sentinel(self):
        model = QuadgramModel.build("ab cd")
        assert model.info.nbr_quadgrams == 2
        assert model.info.most_frequent_quadgram == "ab_c"
        code = (1 << 15) | (26 << 10) | (2 << 5) | 3
        assert model.table[code] > 0

    def test_case_is_folded(self):
        upper = count_quadgrams("HELLO WORLD", Alphabet(DEFAULT_ALPHABET))
        lower = count_quadgrams("hello world", Alphabet(DEFAULT_ALPHABET))
        assert np.array_equal(upper, lower)

    def test_windows_span_chunks(self):
        alphabet = Alphabet(DEFAULT_ALPHABET)
        whole = count_quadgrams("hello world", alphabet)
        chunked = count_quadgrams(["hel", "", "lo w", "o", "rld"], alphabet)
        assert np.array_equal(whole, chunked)
        assert whole.sum() == len("hello world") - 3

    def test_normalization_keeps_frequency_order(self, corpus_text):
        counts = count_quadgrams(corpus_text, Alphabet(DEFAULT_ALPHABET))
        table = normalize_counts(counts)
        seen = counts > 0
        assert np.all(table[seen] > 0)
        assert np.all(table[~seen] == 0)
        order = np.argsort(counts[seen], kind="stable")
        assert np.all(np.diff(table[seen][order]) >= 0)

    def test_normalization_values(self):
        counts = np.zeros(TABLE_SIZE, dtype=np.int64)
        counts[1], counts[2] = 3, 1
        table = normalize_counts(counts)
        offset = math.log(1 / 10 / 4)
        v1, v2 = math.log(0.75) - offset, math.log(0.25) - offset
        norm = 0.75 * v1 + 0.25 * v2
        assert table[1] == round(v1 / norm * 1000)
        assert table[2] == round(v2 / norm * 1000)

    def test_english_model(self, english_model):
        info = english_model.info
        assert len(info.most_frequent_quadgram) == 4
        assert info.max_fitness == english_model.table.max()
        assert 0 < info.average_fitness < info.max_fitness


class TestFitnessScorer:
    """Test suite for FitnessScorer"""

    def test_short_text_scores_zero(self, abcd_model):
        scorer = FitnessScorer(abcd_model)
        assert scorer.score("abc") == 0.0
        assert scorer.score("a.b.c") == 0.0
        assert scorer.average("ab") == 0.0

    def test_sum_of_windows(self, abcd_model):
        scorer = FitnessScorer(abcd_model)
        assert scorer.score("abcd") == 1000.0
        assert scorer.score("ABCD") == 1000.0
        assert scorer.score("abcdxabcd") == 2000.0
        assert scorer.score("dcba") == 0.0

    def test_average(self, abcd_model):
        assert FitnessScorer(abcd_model).average("abcdabcd") == pytest.approx(2000.0 / 5)

    def test_english_beats_scrambled(self, english_model, corpus_text):
        text = corpus_text[:400]
        scrambled = Key.random(DEFAULT_ALPHABET, np.random.default_rng(3)).encode(text)
        scorer = FitnessScorer(english_model)
        assert scorer.score(text) > scorer.score(scrambled)
        assert english_model.score(text) == scorer.score(text)

    def test_score_indices_matches_score(self, english_model):
        scorer = FitnessScorer(english_model)
        text = "the surveyor came back"
        assert scorer.score_indices(english_model.alphabet.to_indices(text)) == scorer.score(text)

    def test_score_packed_counts_alphabet_characters(self, abcd_model):
        alphabet = abcd_model.alphabet
        n = len(alphabet)
        # five indices, only three of them alphabet characters
        assert score_packed(abcd_model.table, alphabet.to_indices("a.b.c"), n) == 0.0
        indices = alphabet.to_indices("xabcdx")
        assert score_packed(abcd_model.table, indices, n) == FitnessScorer(abcd_model).score("xabcdx")


class TestCorpusFiles:
    """Test suite for reading corpus files"""

    def test_iter_directory(self, tmp_path):
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a.TXT").write_text("a")
        (tmp_path / "notes.md").write_text("c")
        names = [p.rsplit("/", 1)[-1] for p in iter_corpus_files(str(tmp_path))]
        assert names == ["a.TXT", "b.txt"]

    def test_iter_single_file(self, tmp_path):
        path = tmp_path / "corpus.dat"
        path.write_text("text")
        assert list(iter_corpus_files(str(path))) == [str(path)]

    def test_read_in_chunks(self, tmp_path):
        path = tmp_path / "corpus.txt"
        path.write_text("abcdefghij")
        assert list(read_corpus([str(path)], chunk_size=4)) == ["abcd", "efgh", "ij"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputIOError):
            list(read_corpus([str(tmp_path / "missing.txt")]))

    def test_build_propagates_read_errors(self, tmp_path):
        corpus = read_corpus([str(tmp_path / "missing.txt")])
        with pytest.raises(InputIOError):
            QuadgramModel.build(corpus)


class TestModelFile:
    """Test suite for saving and loading model files"""

    def test_round_trip(self, tmp_path, english_model):
        path = str(tmp_path / "model.json")
        save_model(english_model, path)
        loaded = load_model(path)
        assert loaded.info == english_model.info
        assert np.array_equal(loaded.table, english_model.table)
        assert loaded.alphabet == english_model.alphabet

    def test_file_format(self, tmp_path, abcd_model):
        path = tmp_path / "model.json"
        save_model(abcd_model, str(path))
        obj = json.loads(path.read_text())
        assert set(obj) == {
            "alphabet", "nbr_quadgrams", "most_frequent_quadgram",
            "max_fitness", "average_fitness", "quadgrams",
        }
        assert len(obj["quadgrams"]) == 32 ** 4
        assert obj["quadgrams"][ABCD_CODE] == 1000.0

    def test_build_and_save(self, tmp_path):
        corpus = tmp_path / "corpus.txt"
        corpus.write_text("abcd abcd")
        path = str(tmp_path / "model.json")
        model = build_and_save([str(corpus)], path, chunk_size=3)
        assert load_model(path).info == model.info
        assert model.info.nbr_quadgrams == 6

    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelFileError, match="Cannot read"):
            load_model(str(tmp_path / "missing.json"))

    def test_unwritable_path(self, tmp_path, abcd_model):
        with pytest.raises(ModelFileError, match="Cannot write"):
            save_model(abcd_model, str(tmp_path / "no" / "such" / "dir.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text("{not json")
        with pytest.raises(ModelFileError, match="not valid JSON"):
            load_model(str(path))

    def test_missing_fields(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps({"alphabet": "abc"}))
        with pytest.raises(ModelFileError, match="lacks fields"):
            load_model(str(path))

    def test_wrong_table_size(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps({
            "alphabet": "abc", "nbr_quadgrams": 1, "most_frequent_quadgram": "abca",
            "max_fitness": 1.0, "average_fitness": 0.1, "quadgrams": [0.0] * 10,
        }))
        with pytest.raises(ModelFileError, match="quadgrams"):
            load_model(str(path))

    def test_invalid_alphabet(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps({
            "alphabet": "aab", "nbr_quadgrams": 1, "most_frequent_quadgram": "abab",
            "max_fitness": 1.0, "average_fitness": 0.1, "quadgrams": [0] * TABLE_SIZE,
        }))
        with pytest.raises(ModelFileError, match="malformed"):
            load_model(str(path))
