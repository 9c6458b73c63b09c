"""cli entrypoint for uwu canvas."""

from .api.server import main


if __name__ == "__main__":
    main()
