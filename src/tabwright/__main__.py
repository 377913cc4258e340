"""
tabwright 包入口点 - 支持 `python -m tabwright` 调用
"""

import sys

from tabwright.main import main

if __name__ == "__main__":
    sys.exit(main())
