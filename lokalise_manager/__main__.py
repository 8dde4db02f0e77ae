import sys

from lokalise_manager.cli import main

sys.exit(main())
