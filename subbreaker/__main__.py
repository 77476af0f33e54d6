"""Main entry point for the subbreaker package."""
from subbreaker.cli import cli


def main():
    """Main entry point function."""
    cli()


if __name__ == "__main__":
    main()
