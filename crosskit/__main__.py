"""
Entry point for running crosskit as a module.

Usage: python -m crosskit [+toolchain] [OPTIONS] [COMMAND] [-- ARGS]
"""

from crosskit.cli.parser import main

if __name__ == "__main__":
    main()
