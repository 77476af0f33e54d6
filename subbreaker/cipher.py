from typing import Dict, Optional, Union

import numpy as np

from subbreaker.errors import AlphabetError, InvalidKeyError

DEFAULT_ALPHABET = "abcdefghijklmnopqrstuvwxyz"
MAX_ALPHABET_LENGTH = 32  # each index must fit into 5 bits


def _lower(ch: str) -> str:
    low = ch.lower()
    return low if len(low) == 1 else ch


def _upper(ch: str) -> str:
    """Upper case a single character without breaking the 1:1 mapping.

    "ß".upper() is "SS", which would corrupt a translation table, so such
    characters are kept as they are.
    """
    up = ch.upper()
    if len(up) != 1 or _lower(up) != ch:
        return ch
    return up


class Alphabet:
    """Ordered set of unique characters a substitution cipher works on.

    Characters are stored in lower case. The upper case mirror of every
    character is computed once, so transcoding and scoring never call
    str.upper() on the hot path.
    """

    def __init__(self, chars: str):
        chars = "".join(_lower(ch) for ch in chars)
        if not chars:
            raise AlphabetError("Alphabet must not be empty.")
        if len(set(chars)) != len(chars):
            raise AlphabetError("Alphabet characters must be unique.")

        self.chars = chars
        self.upper_chars = "".join(_upper(ch) for ch in chars)
        self.index_of: Dict[str, int] = {}
        for idx, (low, up) in enumerate(zip(self.chars, self.upper_chars)):
            self.index_of[low] = idx
            self.index_of[up] = idx

    def __len__(self) -> int:
        return len(self.chars)

    def __str__(self) -> str:
        return self.chars

    def __repr__(self) -> str:
        return f"Alphabet({self.chars!r})"

    def __eq__(self, other) -> bool:
        if isinstance(other, Alphabet):
            return self.chars == other.chars
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.chars)

    @property
    def sentinel(self) -> Optional[int]:
        """Index shared by all characters outside of the alphabet.

        A 32 character alphabet uses every 5-bit value, so it has no
        sentinel and foreign characters are dropped instead.
        """
        if len(self.chars) < MAX_ALPHABET_LENGTH:
            return len(self.chars)
        return None

    def check_model_size(self) -> None:
        if len(self.chars) > MAX_ALPHABET_LENGTH:
            raise AlphabetError(
                f"Alphabet must not have more than {MAX_ALPHABET_LENGTH} characters, "
                f"got {len(self.chars)}."
            )

    def to_indices(self, text: str) -> np.ndarray:
        """Map text to alphabet indices, case insensitive."""
        sentinel = self.sentinel
        lookup = self.index_of
        if sentinel is None:
            it = (lookup[ch] for ch in text if ch in lookup)
        else:
            it = (lookup.get(ch, sentinel) for ch in text)
        return np.fromiter(it, dtype=np.int64)

    def char_at(self, idx: int) -> str:
        if idx < len(self.chars):
            return self.chars[idx]
        return "_"


def as_alphabet(alphabet: Union[str, Alphabet]) -> Alphabet:
    if isinstance(alphabet, Alphabet):
        return alphabet
    return Alphabet(alphabet)


class Key:
    """Uses a key and an alphabet for transcoding substitution ciphers.

    The first character of the alphabet corresponds to the first character
    of the key, the second to the second, and so on::

        Alphabet: abcdefghijklmnopqrstuvwxyz
        Key:      zebrascdfghijklmnopqtuvwxy

    "flee at once. we are discovered!" is enciphered as
    "siaa zq lkba. va zoa rfpbluaoar!". Case is preserved and characters
    outside of the alphabet pass through unchanged.
    """

    def __init__(self, key: str, alphabet: Union[str, Alphabet] = DEFAULT_ALPHABET):
        self.alphabet = as_alphabet(alphabet)
        self.key = self._check_key(key, self.alphabet)

        encode_map: Dict[str, str] = {}
        decode_map: Dict[str, str] = {}
        pairs = zip(self.alphabet.chars, self.alphabet.upper_chars, self.key)
        for low, up, key_low in pairs:
            key_up = _upper(key_low)
            encode_map[low] = key_low
            decode_map[key_low] = low
            # caseless characters keep their lower case mapping
            if up != low:
                encode_map[up] = key_up
            if key_up != key_low:
                decode_map[key_up] = up
        self._encode_map = str.maketrans(encode_map)
        self._decode_map = str.maketrans(decode_map)

    @staticmethod
    def _check_key(key: str, alphabet: Alphabet) -> str:
        key = "".join(_lower(ch) for ch in key)
        if len(set(key)) != len(key):
            raise InvalidKeyError("Key characters must be unique.")
        if len(key) != len(alphabet):
            raise InvalidKeyError(
                f"Key must be as long as the alphabet ({len(alphabet)} characters), "
                f"got {len(key)}."
            )
        if set(key) != set(alphabet.chars):
            raise InvalidKeyError("Key must use the same set of characters as the alphabet.")
        return key

    @classmethod
    def random(cls, alphabet: Union[str, Alphabet] = DEFAULT_ALPHABET,
               rng: Optional[np.random.Generator] = None) -> "Key":
        alphabet = as_alphabet(alphabet)
        rng = rng or np.random.default_rng()
        order = rng.permutation(len(alphabet))
        return cls("".join(alphabet.chars[i] for i in order), alphabet)

    @classmethod
    def from_decode_table(cls, table, alphabet: Union[str, Alphabet]) -> "Key":
        """Build a key from a cipher index -> plaintext index table."""
        alphabet = as_alphabet(alphabet)
        n = len(alphabet)
        key = [""] * n
        for cipher_idx in range(n):
            key[int(table[cipher_idx])] = alphabet.chars[cipher_idx]
        return cls("".join(key), alphabet)

    @property
    def decode_table(self) -> np.ndarray:
        """Cipher index -> plaintext index, plus a fixed slot for the sentinel."""
        n = len(self.alphabet)
        table = np.arange(n + 1, dtype=np.int64)
        for plain_idx, ch in enumerate(self.key):
            table[self.alphabet.index_of[ch]] = plain_idx
        return table

    def encode(self, plaintext: str) -> str:
        return plaintext.translate(self._encode_map)

    def decode(self, ciphertext: str) -> str:
        return ciphertext.translate(self._decode_map)

    def __eq__(self, other) -> bool:
        if isinstance(other, Key):
            return self.key == other.key and self.alphabet == other.alphabet
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.key, self.alphabet.chars))

    def __str__(self) -> str:
        return f"Key: {self.key}"

    def __repr__(self) -> str:
        return f"Key({self.key!r}, {self.alphabet.chars!r})"
