import sys

from combotree.cli import main

sys.exit(main())
