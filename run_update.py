import sys

from readme_pulse.runner import run_update


if __name__ == "__main__":
    sys.exit(run_update())
