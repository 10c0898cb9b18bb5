import sys

from workflow_cli.cli import run


if __name__ == "__main__":
    run(sys.argv[1:])
