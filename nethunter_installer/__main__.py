import sys

from .utils.install.install_cli import main

sys.exit(main())
