"""Entry point: delegates to CLI app (one module per mode: serve, listen, replay)."""

from src.cli import app
from src.utils.tracing import shutdown_tracing
from rich.traceback import install


def main() -> None:
    try:
        install(show_locals=False, max_frames=5, word_wrap=True)
        app()
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    main()
