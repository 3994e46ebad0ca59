import os
import sys


def _is_running_under_pytest() -> bool:
    """Detect pytest presence from command-line arguments or environment.

    This checks both sys.argv (for main pytest process) and PYTEST_CURRENT_TEST
    environment variable (which is set in all pytest workers, including xdist workers).
    """
    if "PYTEST_CURRENT_TEST" in os.environ:
        return True
    return any(arg and "pytest" in str(arg).lower() for arg in sys.argv)


RUNNING_PYTEST = _is_running_under_pytest()
