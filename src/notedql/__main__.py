"""Allow running notedql as `python -m notedql`."""

from notedql.cli import main


if __name__ == "__main__":
    main()
