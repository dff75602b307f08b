# main.py
from __future__ import annotations
import sys

from tools.kwd_cli import main as cli_main

def main() -> int:
    args = sys.argv[1:] or ["listen"]
    return cli_main(args)

if __name__ == "__main__":
    sys.exit(main())
