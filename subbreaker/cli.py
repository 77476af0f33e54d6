import json
from typing import Optional, Tuple

import click

from subbreaker.cipher import DEFAULT_ALPHABET, Key
from subbreaker.errors import BreakerError, InputIOError
from subbreaker.fetcher import BOOKS_DIR, Fetcher
from subbreaker.hill_climb import HillClimber, StopPolicy
from subbreaker.log import configure_logging
from subbreaker.n_gram_model import FitnessScorer, build_and_save, load_model


def load_ciphertext(file_path: str, field: str = "ciphertext") -> str:
    """Read a text file, or one field of a JSON file such as {"ciphertext": ..., "plaintext": ...}."""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = f.read()
    except OSError as e:
        raise InputIOError(f"Cannot read {file_path}: {e}") from e
    if file_path.lower().endswith(".json"):
        try:
            return json.loads(data)[field]
        except (ValueError, KeyError, TypeError) as e:
            raise InputIOError(f"{file_path} has no \"{field}\" field: {e}") from e
    return data


def symbol_error_rate(guess: str, expected: str) -> float:
    if not expected:
        return 0.0
    correct = sum(1 for p, r in zip(guess, expected) if p == r)
    return 1 - correct / len(expected)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug events.")
@click.option("--log-json", is_flag=True, help="Log events as JSON lines.")
def cli(verbose: bool, log_json: bool):
    """Break monoalphabetic substitution ciphers with quadgram statistics."""
    configure_logging(verbose=verbose, json_logs=log_json)


@cli.command()
@click.argument("corpus", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False))
@click.option("--alphabet", "-a", default=DEFAULT_ALPHABET, show_default=True)
def generate(corpus: Tuple[str, ...], output: str, alphabet: str):
    """Generate a quadgram model file from corpus files or directories."""
    try:
        model = build_and_save(corpus, output, alphabet, progress=True)
    except BreakerError as e:
        raise click.ClickException(str(e))
    click.echo(str(model.info))


@cli.command("break")
@click.option("--ciphertext", "-c", help="The ciphertext to break.")
@click.option("--ciphertext-file", "-f", type=click.Path(exists=True, dir_okay=False),
              help="Text file, or JSON file with a \"ciphertext\" field.")
@click.option("--model", "-m", "model_path", required=True, envvar="SUBBREAKER_MODEL",
              type=click.Path(exists=True, dir_okay=False))
@click.option("--max-rounds", type=click.IntRange(min=0), default=10000, show_default=True)
@click.option("--max-seconds", type=click.FloatRange(min=0), default=None)
@click.option("--consolidate", type=click.IntRange(min=1), default=3, show_default=True,
              help="Stop once the best key was found this many times.")
@click.option("--workers", "-w", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--seed", type=int, default=None)
@click.option("--expected-plaintext", type=click.Path(exists=True, dir_okay=False),
              help="Known plaintext, used to report the symbol error rate.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
def break_(ciphertext: Optional[str], ciphertext_file: Optional[str], model_path: str,
           max_rounds: int, max_seconds: Optional[float], consolidate: int, workers: int,
           seed: Optional[int], expected_plaintext: Optional[str], as_json: bool):
    """Break a substitution cipher."""
    if (ciphertext is None) == (ciphertext_file is None):
        raise click.UsageError("Give exactly one of --ciphertext and --ciphertext-file.")
    try:
        if ciphertext_file:
            ciphertext = load_ciphertext(ciphertext_file)
        model = load_model(model_path)
        policy = StopPolicy(max_rounds=max_rounds, max_seconds=max_seconds, consolidate=consolidate)
        result = HillClimber(model, policy, workers=workers, seed=seed,
                             progress=not as_json).break_cipher(ciphertext)
        expected = load_ciphertext(expected_plaintext, field="plaintext") if expected_plaintext else None
    except BreakerError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    avg = FitnessScorer(model).average(result.plaintext)
    click.echo(str(result))
    click.echo(f"fitness = {result.fitness:.0f} ({avg:.2f} per quadgram, "
               f"model average {model.info.average_fitness:.2f})")
    click.echo(f"rounds = {result.nbr_rounds}, keys = {result.nbr_keys}, "
               f"{result.keys_per_second:.0f} keys/s, {result.seconds:.2f} s")
    click.echo("")
    click.echo(result.plaintext)
    if expected is not None:
        click.echo(f"\nSER: {symbol_error_rate(result.plaintext, expected):.4f}")


@cli.command()
@click.argument("text")
@click.option("--key", "-k", required=True)
@click.option("--alphabet", "-a", default=DEFAULT_ALPHABET, show_default=True)
def encode(text: str, key: str, alphabet: str):
    """Encode TEXT with a substitution key."""
    try:
        click.echo(Key(key, alphabet).encode(text))
    except BreakerError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument("text")
@click.option("--key", "-k", required=True)
@click.option("--alphabet", "-a", default=DEFAULT_ALPHABET, show_default=True)
def decode(text: str, key: str, alphabet: str):
    """Decode TEXT with a substitution key."""
    try:
        click.echo(Key(key, alphabet).decode(text))
    except BreakerError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option("--model", "-m", "model_path", required=True, envvar="SUBBREAKER_MODEL",
              type=click.Path(exists=True, dir_okay=False))
def info(model_path: str):
    """Show the information stored in a model file."""
    try:
        model = load_model(model_path)
    except BreakerError as e:
        raise click.ClickException(str(e))
    click.echo(str(model.info))


@cli.command()
@click.option("--books-dir", "-d", default=BOOKS_DIR, show_default=True,
              type=click.Path(file_okay=False))
def fetch(books_dir: str):
    """Download Project Gutenberg books to train a model on."""
    try:
        fetcher = Fetcher(books_dir)
    except OSError as e:
        raise click.ClickException(f"Cannot create books directory {books_dir}: {e}")
    saved = fetcher.fetch_all_books()
    click.echo(f"{len(saved)} books in {books_dir}")


if __name__ == "__main__":
    cli()
