import sys
from pathlib import Path

from workflow_studio.cli import run as run_cli
from workflow_studio.cli import run_file


if __name__ == "__main__":
    args = sys.argv[1:]
    paths = [Path(arg) for arg in args if not arg.startswith("--")]
    document = paths[0] if paths else None

    if document is not None and "--validate" in args:
        sys.exit(run_file(document, validate_only=True))
    if document is not None and "--run" in args:
        sys.exit(run_file(document))
    run_cli(document)
